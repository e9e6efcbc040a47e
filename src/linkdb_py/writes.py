from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from .builders import TransactWriteBuilder
from .codec import ItemCodec, entity_key, utc_now
from .errors import NotFoundError, ValidationError
from .expressions import attribute_exists, attribute_not_exists, build_update_expression
from .registry import Registry
from .relationships import RelationshipTransactions
from .store import Store
from .transaction import TransactPut, TransactUpdate

logger = logging.getLogger(__name__)


def validate_attributes(
    registry: Registry, type_name: str, attributes: Mapping[str, Any], *, partial: bool
) -> dict[str, Any]:
    definition = registry.entity(type_name)

    for name, value in attributes.items():
        if name in definition.relationships:
            raise ValidationError(f"{type_name}: relationship {name!r} cannot be written as an attribute")
        attr_def = definition.attributes.get(name)
        if attr_def is None:
            raise ValidationError(f"{type_name}: unknown attribute {name!r}")
        if value is None and not attr_def.nullable:
            raise ValidationError(f"{type_name}: attribute {name!r} is not nullable")

    if not partial:
        missing = [
            name
            for name, attr_def in definition.attributes.items()
            if not attr_def.nullable and name not in attributes
        ]
        if missing:
            raise ValidationError(f"{type_name}: missing required attributes: {', '.join(missing)}")

    return dict(attributes)


class Create:
    def __init__(self, registry: Registry, type_name: str, *, store: Store) -> None:
        self._registry = registry
        self._type_name = type_name
        self._store = store
        self._table = registry.table_of(type_name)
        self._codec = ItemCodec(registry)
        self._builder = TransactWriteBuilder(store)

    def run(self, attributes: Mapping[str, Any]) -> Any:
        attrs = validate_attributes(self._registry, self._type_name, attributes, partial=False)

        entity_id = str(uuid.uuid4())
        now = utc_now()
        defaults = {"id": entity_id, "type": self._type_name, "created_at": now, "updated_at": now}
        values = {name: value for name, value in attrs.items() if value is not None}
        item = self._codec.entity_item(self._type_name, entity_id, {**defaults, **values})

        self._builder.add_put(
            TransactPut(
                table_name=self._table.name,
                item=item,
                condition_expression=attribute_not_exists(self._table.partition_key.alias),
            ),
            f"{self._type_name} with id: {entity_id} already exists",
        )
        RelationshipTransactions(self._registry, self._type_name, self._builder).build(entity_id, attrs)

        self._builder.commit()
        logger.debug("created %s %s", self._type_name, entity_id)
        return self._codec.from_item(self._type_name, item)


class Update:
    def __init__(self, registry: Registry, type_name: str, *, store: Store) -> None:
        self._registry = registry
        self._type_name = type_name
        self._store = store
        self._table = registry.table_of(type_name)
        self._codec = ItemCodec(registry)
        self._builder = TransactWriteBuilder(store)
        self._entity_id: str | None = None
        self._current: dict[str, Any] | None = None

    def run(self, id: str, attributes: Mapping[str, Any]) -> dict[str, Any]:
        if not attributes:
            raise ValidationError(f"{self._type_name}: update requires at least one attribute")
        attrs = validate_attributes(self._registry, self._type_name, attributes, partial=True)

        self._entity_id = id
        updated = {**attrs, "updated_at": utc_now()}
        expression = build_update_expression(self._codec.to_item(self._type_name, updated))

        self._builder.add_update(
            TransactUpdate(
                table_name=self._table.name,
                key=entity_key(self._table, self._type_name, id),
                update_expression=expression.update_expression,
                condition_expression=attribute_exists(self._table.partition_key.alias),
                expression_attribute_names=expression.expression_attribute_names,
                expression_attribute_values=expression.expression_attribute_values,
            ),
            f"{self._type_name} with ID '{id}' does not exist",
        )
        RelationshipTransactions(self._registry, self._type_name, self._builder).build(
            id, attrs, current=self._current_attributes
        )

        self._builder.commit()
        logger.debug("updated %s %s: %s", self._type_name, id, sorted(attrs))
        return updated

    def _current_attributes(self) -> dict[str, Any]:
        if self._current is not None:
            return self._current
        if self._entity_id is None:
            raise ValidationError("update has not been started")

        item = self._store.get_item(
            self._table.name,
            entity_key(self._table, self._type_name, self._entity_id),
            consistent_read=True,
        )
        if item is None:
            raise NotFoundError(f"{self._type_name} with ID '{self._entity_id}' does not exist")

        entity = self._codec.from_item(self._type_name, item)
        definition = self._registry.entity(self._type_name)
        self._current = {name: getattr(entity, name) for name in definition.attributes}
        return self._current
