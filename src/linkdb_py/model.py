from __future__ import annotations

import re
import types
from collections.abc import Mapping, Sequence
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from datetime import datetime
from typing import Any, Union, cast, get_args, get_origin, get_type_hints, overload

LINK_TYPE = "BelongsToLink"

_TOKEN_UNSAFE = re.compile(r"[^A-Za-z0-9_]")


class ModelDefinitionError(ValueError):
    pass


@dataclass(frozen=True)
class KeyAttribute:
    name: str
    alias: str


@dataclass(frozen=True)
class DefaultFields:
    id: str = "Id"
    type: str = "Type"
    created_at: str = "CreatedAt"
    updated_at: str = "UpdatedAt"
    foreign_key: str = "ForeignKey"
    foreign_entity_type: str = "ForeignEntityType"

    def entity_aliases(self) -> dict[str, str]:
        return {
            "id": self.id,
            "type": self.type,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def link_aliases(self) -> dict[str, str]:
        return {
            "foreign_key": self.foreign_key,
            "foreign_entity_type": self.foreign_entity_type,
        }


@dataclass(frozen=True)
class IndexDefinition:
    name: str
    partition_key: str
    sort_key: str | None = None


def gsi(name: str, *, partition_key: str, sort_key: str | None = None) -> IndexDefinition:
    return IndexDefinition(name=name, partition_key=partition_key, sort_key=sort_key)


@dataclass(frozen=True)
class TableDefinition:
    name: str
    partition_key: KeyAttribute = field(default_factory=lambda: KeyAttribute("pk", "PK"))
    sort_key: KeyAttribute = field(default_factory=lambda: KeyAttribute("sk", "SK"))
    delimiter: str = "#"
    default_fields: DefaultFields = field(default_factory=DefaultFields)
    indexes: tuple[IndexDefinition, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ModelDefinitionError("table name is required")
        if not self.delimiter:
            raise ModelDefinitionError("delimiter must be non-empty")
        aliases = [
            self.partition_key.alias,
            self.sort_key.alias,
            *self.default_fields.entity_aliases().values(),
            *self.default_fields.link_aliases().values(),
        ]
        if len(set(aliases)) != len(aliases):
            raise ModelDefinitionError(f"duplicate table attribute aliases: {aliases}")

    def index(self, name: str) -> IndexDefinition | None:
        for idx in self.indexes:
            if idx.name == name:
                return idx
        return None


@dataclass(frozen=True)
class AttributeDefinition:
    python_name: str
    attribute_name: str
    nullable: bool = False
    foreign_key: str | None = None
    is_date: bool = False
    kind: str = "attribute"  # attribute | default | key | link


@dataclass(frozen=True)
class BelongsTo:
    property_name: str
    target: str
    foreign_key: str


@dataclass(frozen=True)
class HasOne:
    property_name: str
    target: str
    foreign_key: str


@dataclass(frozen=True)
class HasMany:
    property_name: str
    target: str
    foreign_key: str


@dataclass(frozen=True)
class HasAndBelongsToMany:
    property_name: str
    target: str
    join_table: str


type Relationship = BelongsTo | HasOne | HasMany | HasAndBelongsToMany


@dataclass(frozen=True)
class JoinSide:
    entity: str
    foreign_key: str


@dataclass(frozen=True)
class JoinTableDefinition:
    name: str
    left: JoinSide
    right: JoinSide

    def sides(self) -> tuple[JoinSide, JoinSide]:
        return (self.left, self.right)

    def other_side(self, entity: str) -> JoinSide:
        if self.left.entity == entity:
            return self.right
        if self.right.entity == entity:
            return self.left
        raise ModelDefinitionError(f"join table {self.name} does not reference {entity}")


@dataclass(frozen=True, kw_only=True)
class Entity:
    id: str
    type: str
    created_at: datetime
    updated_at: datetime


DEFAULT_FIELD_NAMES = frozenset(f.name for f in fields(Entity))


@overload
def linkdb_field(
    *,
    name: str | None = None,
    nullable: bool = False,
    foreign_key: str | None = None,
    ignore: bool = False,
) -> Any: ...


@overload
def linkdb_field(
    *,
    name: str | None = None,
    nullable: bool = False,
    foreign_key: str | None = None,
    ignore: bool = False,
    default: Any,
) -> Any: ...


@overload
def linkdb_field(
    *,
    name: str | None = None,
    nullable: bool = False,
    foreign_key: str | None = None,
    ignore: bool = False,
    default_factory: Any,
) -> Any: ...


def linkdb_field(
    *,
    name: str | None = None,
    nullable: bool = False,
    foreign_key: str | None = None,
    ignore: bool = False,
    default: Any = MISSING,
    default_factory: Any = MISSING,
) -> Any:
    if default is not MISSING and default_factory is not MISSING:
        raise ValueError("linkdb_field: cannot set both default and default_factory")

    if nullable and default is MISSING and default_factory is MISSING:
        default = None

    linkdb: dict[str, Any] = {"nullable": nullable, "ignore": ignore}
    if name is not None:
        linkdb["name"] = name
    if foreign_key is not None:
        linkdb["foreign_key"] = foreign_key

    return field(default=default, default_factory=default_factory, metadata={"linkdb": linkdb})


def belongs_to(target: str, *, foreign_key: str) -> Any:
    return field(
        default=None,
        compare=False,
        metadata={"linkdb": {"relationship": "BelongsTo", "target": target, "foreign_key": foreign_key}},
    )


def has_one(target: str, *, foreign_key: str) -> Any:
    return field(
        default=None,
        compare=False,
        metadata={"linkdb": {"relationship": "HasOne", "target": target, "foreign_key": foreign_key}},
    )


def has_many(target: str, *, foreign_key: str) -> Any:
    return field(
        default_factory=list,
        compare=False,
        metadata={"linkdb": {"relationship": "HasMany", "target": target, "foreign_key": foreign_key}},
    )


def has_and_belongs_to_many(target: str, *, join_table: str) -> Any:
    return field(
        default_factory=list,
        compare=False,
        metadata={
            "linkdb": {"relationship": "HasAndBelongsToMany", "target": target, "join_table": join_table}
        },
    )


def _build_relationship(property_name: str, opts: Mapping[str, Any]) -> Relationship:
    kind = opts["relationship"]
    target = str(opts.get("target") or "")
    if not target:
        raise ModelDefinitionError(f"{property_name}: relationship target is required")

    if kind == "BelongsTo":
        return BelongsTo(property_name=property_name, target=target, foreign_key=str(opts["foreign_key"]))
    if kind == "HasOne":
        return HasOne(property_name=property_name, target=target, foreign_key=str(opts["foreign_key"]))
    if kind == "HasMany":
        return HasMany(property_name=property_name, target=target, foreign_key=str(opts["foreign_key"]))
    if kind == "HasAndBelongsToMany":
        return HasAndBelongsToMany(
            property_name=property_name, target=target, join_table=str(opts["join_table"])
        )
    raise ModelDefinitionError(f"{property_name}: unknown relationship kind {kind!r}")


def _is_datetime_annotation(annotation: Any) -> bool:
    if isinstance(annotation, str):
        return "datetime" in annotation
    if annotation is datetime:
        return True
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        return any(arg is datetime for arg in get_args(annotation))
    return False


@dataclass(frozen=True)
class EntityDefinition[T]:
    entity_type: type[T]
    name: str
    attributes: Mapping[str, AttributeDefinition]
    relationships: Mapping[str, Relationship]

    @classmethod
    def from_dataclass(cls, entity_type: type[T], *, name: str | None = None) -> EntityDefinition[T]:
        if not is_dataclass(entity_type) or not issubclass(cast(type, entity_type), Entity):
            raise ModelDefinitionError("entity_type must be a dataclass extending Entity")

        resolved_name = name or entity_type.__name__
        if resolved_name == LINK_TYPE:
            raise ModelDefinitionError(f"{LINK_TYPE} is a reserved entity name")

        try:
            hints = get_type_hints(entity_type)
        except Exception:
            hints = {}

        attributes: dict[str, AttributeDefinition] = {}
        relationships: dict[str, Relationship] = {}
        aliases: set[str] = set()

        for dc_field in fields(cast(Any, entity_type)):
            if dc_field.name in DEFAULT_FIELD_NAMES:
                continue

            opts = cast(dict[str, Any], dc_field.metadata.get("linkdb", {}))
            if opts.get("relationship"):
                relationships[dc_field.name] = _build_relationship(dc_field.name, opts)
                continue
            if opts.get("ignore", False):
                continue

            alias = str(opts.get("name") or dc_field.name)
            if alias in aliases:
                raise ModelDefinitionError(f"duplicate attribute name: {alias}")
            aliases.add(alias)

            annotation = hints.get(dc_field.name, dc_field.type)
            attributes[dc_field.name] = AttributeDefinition(
                python_name=dc_field.name,
                attribute_name=alias,
                nullable=bool(opts.get("nullable", False)),
                foreign_key=opts.get("foreign_key"),
                is_date=_is_datetime_annotation(annotation),
            )

        for rel in relationships.values():
            if isinstance(rel, BelongsTo) and rel.foreign_key not in attributes:
                raise ModelDefinitionError(
                    f"{resolved_name}.{rel.property_name}: "
                    f"foreign key attribute {rel.foreign_key!r} is not declared"
                )

        return cls(
            entity_type=entity_type,
            name=resolved_name,
            attributes=attributes,
            relationships=relationships,
        )


def table_attributes(table: TableDefinition) -> dict[str, AttributeDefinition]:
    """Attributes every entity row carries: the key pair plus the default fields."""
    out: dict[str, AttributeDefinition] = {
        table.partition_key.name: AttributeDefinition(
            python_name=table.partition_key.name, attribute_name=table.partition_key.alias, kind="key"
        ),
        table.sort_key.name: AttributeDefinition(
            python_name=table.sort_key.name, attribute_name=table.sort_key.alias, kind="key"
        ),
    }
    for python_name, alias in table.default_fields.entity_aliases().items():
        out[python_name] = AttributeDefinition(
            python_name=python_name,
            attribute_name=alias,
            is_date=python_name in {"created_at", "updated_at"},
            kind="default",
        )
    return out


def link_attributes(table: TableDefinition) -> dict[str, AttributeDefinition]:
    return {
        python_name: AttributeDefinition(python_name=python_name, attribute_name=alias, kind="link")
        for python_name, alias in table.default_fields.link_aliases().items()
    }


def expression_token(attribute_name: str) -> str:
    """Placeholder stem for an attribute in DynamoDB expressions: `#<token>` and `:<token>`."""
    return _TOKEN_UNSAFE.sub("_", attribute_name)


def entity_definitions(entities: Sequence[Any]) -> list[EntityDefinition[Any]]:
    return [e if isinstance(e, EntityDefinition) else EntityDefinition.from_dataclass(e) for e in entities]


@dataclass(frozen=True, kw_only=True)
class BelongsToLink:
    id: str
    foreign_key: str
    foreign_entity_type: str
    created_at: datetime
    updated_at: datetime
    type: str = LINK_TYPE
