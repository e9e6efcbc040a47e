from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .builders import TransactWriteBuilder
from .codec import ItemCodec, build_link, entity_key, link_key
from .errors import ValidationError
from .expressions import attribute_exists, attribute_not_exists
from .model import JoinSide
from .registry import Registry
from .store import Store
from .transaction import TransactConditionCheck, TransactDelete, TransactPut

logger = logging.getLogger(__name__)


class JoinTable:
    """Maintains the pair of BelongsToLinks behind a HasAndBelongsToMany edge.

    ``keys`` maps each side's foreign key name to an id, for example
    ``{"author_id": "a1", "book_id": "b1"}``.
    """

    def __init__(self, registry: Registry, name: str, *, store: Store) -> None:
        self._registry = registry
        self._definition = registry.join_table(name)
        self._store = store
        self._table = registry.table
        self._codec = ItemCodec(registry)

    def create(self, keys: Mapping[str, str]) -> None:
        ids = self._ids(keys)
        builder = TransactWriteBuilder(self._store)
        left, right = self._definition.sides()
        self._add_link(builder, left, right, ids)
        self._add_link(builder, right, left, ids)
        builder.commit()
        logger.debug("%s: linked %s", self._definition.name, ids)

    def delete(self, keys: Mapping[str, str]) -> None:
        ids = self._ids(keys)
        builder = TransactWriteBuilder(self._store)
        left, right = self._definition.sides()
        self._remove_link(builder, left, right, ids)
        self._remove_link(builder, right, left, ids)
        builder.commit()
        logger.debug("%s: unlinked %s", self._definition.name, ids)

    def _ids(self, keys: Mapping[str, Any]) -> dict[str, str]:
        expected = {side.foreign_key for side in self._definition.sides()}
        if set(keys) != expected:
            raise ValidationError(
                f"{self._definition.name}: expected keys {sorted(expected)}, got {sorted(keys)}"
            )
        for name, value in keys.items():
            if not isinstance(value, str) or not value:
                raise ValidationError(f"{self._definition.name}: {name} must be a non-empty string")
        return dict(keys)

    def _add_link(
        self, builder: TransactWriteBuilder, parent: JoinSide, linked: JoinSide, ids: Mapping[str, str]
    ) -> None:
        parent_id = ids[parent.foreign_key]
        linked_id = ids[linked.foreign_key]
        key = link_key(self._table, parent.entity, parent_id, linked.entity, linked_id)

        builder.add_put(
            TransactPut(
                table_name=self._table.name,
                item=self._codec.link_item(key, build_link(linked.entity, linked_id)),
                condition_expression=attribute_not_exists(self._table.partition_key.alias),
            ),
            f"{parent.entity} with ID {parent_id} is already linked to {linked.entity} with ID {linked_id}",
        )
        builder.add_condition_check(
            TransactConditionCheck(
                table_name=self._table.name,
                key=entity_key(self._table, parent.entity, parent_id),
                condition_expression=attribute_exists(self._table.partition_key.alias),
            ),
            f"{parent.entity} with ID {parent_id} does not exist",
        )

    def _remove_link(
        self, builder: TransactWriteBuilder, parent: JoinSide, linked: JoinSide, ids: Mapping[str, str]
    ) -> None:
        parent_id = ids[parent.foreign_key]
        linked_id = ids[linked.foreign_key]
        builder.add_delete(
            TransactDelete(
                table_name=self._table.name,
                key=link_key(self._table, parent.entity, parent_id, linked.entity, linked_id),
                condition_expression=attribute_exists(self._table.partition_key.alias),
            ),
            f"{parent.entity} with ID {parent_id} is not linked to {linked.entity} with ID {linked_id}",
        )
