from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from .builders import TransactWriteBuilder
from .codec import ItemCodec, build_link, entity_key, link_key
from .errors import ValidationError
from .expressions import attribute_exists, attribute_not_exists
from .model import BelongsTo, HasMany, HasOne
from .registry import Registry
from .transaction import TransactConditionCheck, TransactDelete, TransactPut

logger = logging.getLogger(__name__)

_MISSING: Any = object()


class RelationshipTransactions:
    """Appends the link maintenance for an entity's BelongsTo foreign keys to a builder.

    For every foreign key being set: a condition check that the target exists and,
    when the target declares the reciprocal HasMany/HasOne, a guarded put of the
    BelongsToLink in the target's partition. On update (``current`` given) a
    changed foreign key first deletes the link under the previous target.
    """

    def __init__(self, registry: Registry, type_name: str, builder: TransactWriteBuilder) -> None:
        self._registry = registry
        self._type_name = type_name
        self._builder = builder
        self._table = registry.table_of(type_name)
        self._codec = ItemCodec(registry)

    def build(
        self,
        entity_id: str,
        attributes: Mapping[str, Any],
        *,
        current: Callable[[], Mapping[str, Any]] | None = None,
    ) -> None:
        for rel in self._registry.belongs_to_of(self._type_name):
            if rel.foreign_key not in attributes:
                continue

            value = attributes[rel.foreign_key]
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"{self._type_name}.{rel.foreign_key} must be a string id")

            previous = current().get(rel.foreign_key) if current is not None else _MISSING
            if current is not None and previous == value:
                continue

            reciprocal = self._registry.reciprocal_of(self._type_name, rel)

            if isinstance(previous, str) and reciprocal is not None:
                self._delete_link(rel, reciprocal, entity_id, previous)

            if value is None:
                continue

            self._check_target_exists(rel, value)
            if isinstance(reciprocal, HasMany):
                self._put_has_many_link(rel, entity_id, value)
            elif isinstance(reciprocal, HasOne):
                self._put_has_one_link(rel, entity_id, value)

    def _check_target_exists(self, rel: BelongsTo, target_id: str) -> None:
        self._builder.add_condition_check(
            TransactConditionCheck(
                table_name=self._table.name,
                key=entity_key(self._table, rel.target, target_id),
                condition_expression=attribute_exists(self._table.partition_key.alias),
            ),
            f"{rel.target} with ID '{target_id}' does not exist",
        )

    def _put_has_many_link(self, rel: BelongsTo, entity_id: str, target_id: str) -> None:
        key = link_key(self._table, rel.target, target_id, self._type_name, entity_id)
        self._builder.add_put(
            TransactPut(
                table_name=self._table.name,
                item=self._codec.link_item(key, build_link(self._type_name, entity_id)),
                condition_expression=attribute_not_exists(self._table.partition_key.alias),
            ),
            f"{self._type_name} with ID '{entity_id}' already belongs to {rel.target} with Id '{target_id}'",
        )

    def _put_has_one_link(self, rel: BelongsTo, entity_id: str, target_id: str) -> None:
        key = link_key(self._table, rel.target, target_id, self._type_name)
        self._builder.add_put(
            TransactPut(
                table_name=self._table.name,
                item=self._codec.link_item(key, build_link(self._type_name, entity_id)),
                condition_expression=attribute_not_exists(self._table.partition_key.alias),
            ),
            f"{rel.target} with id: {target_id} already has an associated {self._type_name}",
        )

    def _delete_link(
        self, rel: BelongsTo, reciprocal: HasMany | HasOne, entity_id: str, target_id: str
    ) -> None:
        related_id = entity_id if isinstance(reciprocal, HasMany) else None
        key = link_key(self._table, rel.target, target_id, self._type_name, related_id)
        logger.debug("%s %s: moving %s link away from %s", self._type_name, entity_id, rel.target, target_id)
        self._builder.add_delete(
            TransactDelete(table_name=self._table.name, key=key),
            f"Failed to delete BelongsToLink with keys: {key}",
        )
