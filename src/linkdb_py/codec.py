from __future__ import annotations

import types
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from decimal import Decimal
from functools import cache
from typing import Any, Union, cast, get_args, get_origin, get_type_hints

from .errors import ValidationError
from .model import LINK_TYPE, BelongsToLink, TableDefinition
from .registry import Registry


def format_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"expected ISO-8601 date string, got {type(value).__name__}")
    try:
        return datetime.fromisoformat(value)
    except ValueError as err:
        raise ValidationError(f"invalid date: {value!r}") from err


def utc_now() -> datetime:
    # Stored dates carry millisecond precision; truncate so decoded values compare equal.
    now = datetime.now(UTC)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def partition_key_value(table: TableDefinition, type_name: str, id: str) -> str:
    return f"{type_name}{table.delimiter}{id}"


def entity_key(table: TableDefinition, type_name: str, id: str) -> dict[str, str]:
    return {
        table.partition_key.alias: partition_key_value(table, type_name, id),
        table.sort_key.alias: type_name,
    }


def link_key(
    table: TableDefinition,
    owner_type: str,
    owner_id: str,
    related_type: str,
    related_id: str | None = None,
) -> dict[str, str]:
    """Key of a link row in the owner's partition.

    With ``related_id`` the sort key is ``<RelatedType>#<relatedId>`` (HasMany and
    HasAndBelongsToMany edges); without it the sort key is the bare type name,
    which allows a single HasOne edge per owner.
    """
    sort_key = related_type if related_id is None else partition_key_value(table, related_type, related_id)
    return {
        table.partition_key.alias: partition_key_value(table, owner_type, owner_id),
        table.sort_key.alias: sort_key,
    }


def build_link(foreign_entity_type: str, foreign_key: str, *, now: datetime | None = None) -> BelongsToLink:
    ts = now or utc_now()
    return BelongsToLink(
        id=str(uuid.uuid4()),
        foreign_key=foreign_key,
        foreign_entity_type=foreign_entity_type,
        created_at=ts,
        updated_at=ts,
    )


def _unwrap_optional(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is not Union and origin is not types.UnionType:
        return annotation
    non_none = [a for a in get_args(annotation) if a is not type(None)]  # noqa: E721
    if len(non_none) == 1:
        return non_none[0]
    return annotation


def _coerce_value(value: Any, annotation: Any) -> Any:
    if value is None:
        return None

    annotation = _unwrap_optional(annotation)
    if annotation is int and isinstance(value, Decimal):
        return int(value)
    if annotation is float and isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Decimal) and annotation is Any:
        return int(value) if value == value.to_integral_value() else float(value)

    origin = get_origin(annotation)
    if origin is set and isinstance(value, set):
        (elem_type,) = get_args(annotation) or (Any,)
        return {_coerce_value(v, elem_type) for v in value}
    if origin is list and isinstance(value, list):
        (elem_type,) = get_args(annotation) or (Any,)
        return [_coerce_value(v, elem_type) for v in value]

    return value


def encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_date(value)
    if isinstance(value, float):
        return Decimal(str(value))
    return value


@cache
def _type_hints(entity_type: type[Any]) -> dict[str, Any]:
    try:
        return get_type_hints(entity_type)
    except Exception:
        return dict(getattr(entity_type, "__annotations__", {}))


class ItemCodec:
    def __init__(self, registry: Registry) -> None:
        self._registry = registry
        self._table = registry.table

    def to_item(self, type_name: str, attributes: Mapping[str, Any]) -> dict[str, Any]:
        attrs = self._registry.attributes_of(type_name)
        out: dict[str, Any] = {}
        for name, value in attributes.items():
            attr_def = attrs.get(name)
            if attr_def is None:
                raise ValidationError(f"{type_name}: unknown attribute {name!r}")
            out[attr_def.attribute_name] = encode_value(value)
        return out

    def entity_item(self, type_name: str, id: str, attributes: Mapping[str, Any]) -> dict[str, Any]:
        return {**entity_key(self._table, type_name, id), **self.to_item(type_name, attributes)}

    def from_item(self, type_name: str, item: Mapping[str, Any]) -> Any:
        definition = self._registry.entity(type_name)
        hints = _type_hints(definition.entity_type)

        kwargs: dict[str, Any] = {}
        for name, attr_def in self._registry.attributes_of(type_name).items():
            if attr_def.kind == "key" or attr_def.attribute_name not in item:
                continue
            raw = item[attr_def.attribute_name]
            if attr_def.is_date and raw is not None:
                kwargs[name] = parse_date(raw)
            else:
                kwargs[name] = _coerce_value(raw, hints.get(name, Any))

        try:
            return definition.entity_type(**kwargs)
        except TypeError as err:
            raise ValidationError(f"{type_name}: {err}") from err

    def link_item(self, key: Mapping[str, str], link: BelongsToLink) -> dict[str, Any]:
        aliases = self._table.default_fields
        return {
            **key,
            aliases.id: link.id,
            aliases.type: LINK_TYPE,
            aliases.foreign_key: link.foreign_key,
            aliases.foreign_entity_type: link.foreign_entity_type,
            aliases.created_at: format_date(link.created_at),
            aliases.updated_at: format_date(link.updated_at),
        }

    def link_from_item(self, item: Mapping[str, Any]) -> BelongsToLink:
        aliases = self._table.default_fields
        try:
            return BelongsToLink(
                id=str(item[aliases.id]),
                foreign_key=str(item[aliases.foreign_key]),
                foreign_entity_type=str(item[aliases.foreign_entity_type]),
                created_at=parse_date(item[aliases.created_at]),
                updated_at=parse_date(item[aliases.updated_at]),
            )
        except KeyError as err:
            raise ValidationError(f"{LINK_TYPE}: missing attribute {err.args[0]!r}") from err

    def type_of(self, item: Mapping[str, Any]) -> str | None:
        value = item.get(self._table.default_fields.type)
        return cast(str, value) if isinstance(value, str) else None

    def id_of(self, item: Mapping[str, Any]) -> str | None:
        value = item.get(self._table.default_fields.id)
        return cast(str, value) if isinstance(value, str) else None

    def is_link(self, item: Mapping[str, Any]) -> bool:
        return self.type_of(item) == LINK_TYPE

    def decode(self, item: Mapping[str, Any]) -> Any:
        type_name = self.type_of(item)
        if type_name == LINK_TYPE:
            return self.link_from_item(item)
        if type_name is None or not self._registry.has_entity(type_name):
            raise ValidationError(f"unable to infer entity type of item: {type_name!r}")
        return self.from_item(type_name, item)
