from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from .builders import TransactWriteBuilder
from .codec import ItemCodec, entity_key, link_key, partition_key_value
from .errors import NotFoundError, NullConstraintViolationError, TransactionWriteFailedError
from .expressions import attribute_exists, build_update_expression
from .model import BelongsToLink, HasAndBelongsToMany, HasMany, HasOne, Relationship
from .query import compile_query
from .registry import Registry
from .store import Store
from .transaction import TransactDelete, TransactUpdate

logger = logging.getLogger(__name__)


class Delete:
    """Deletes an entity together with everything in its partition.

    Link rows owned by the entity are removed, the foreign key on each linked
    row is cleared (or the delete is refused when that key is not nullable), and
    the entity's own BelongsTo links in related partitions are removed.
    """

    def __init__(self, registry: Registry, type_name: str, *, store: Store) -> None:
        self._registry = registry
        self._type_name = type_name
        self._store = store
        self._table = registry.table_of(type_name)
        self._codec = ItemCodec(registry)
        self._builder = TransactWriteBuilder(store)
        self._violations: list[Exception] = []

    def run(self, id: str) -> None:
        compiled = compile_query(
            self._registry,
            self._type_name,
            {self._table.partition_key.name: partition_key_value(self._table, self._type_name, id)},
            consistent_read=True,
        )
        rows = self._store.query(compiled.to_request(self._table.name))
        if not rows:
            raise NotFoundError(f"Item does not exist: {id}")

        for row in rows:
            row_type = self._codec.type_of(row)
            if row_type == self._type_name and self._codec.id_of(row) == id:
                self._delete_row(row, f"Failed to delete {self._type_name} with Id: {id}")
                self._delete_belongs_to_links(id, row)
            elif self._codec.is_link(row):
                self._delete_row(row, f"Failed to delete BelongsToLink with keys: {self._keys_json(row)}")
                self._unlink(id, self._codec.link_from_item(row))
            else:
                logger.warning("%s %s: deleting unrecognized %s row", self._type_name, id, row_type)
                self._delete_row(row, f"Failed to delete item with keys: {self._keys_json(row)}")

        if self._violations:
            raise TransactionWriteFailedError(self._violations, "Failed Validations")

        self._builder.commit()
        logger.debug("deleted %s %s (%d rows)", self._type_name, id, len(rows))

    def _row_key(self, row: Mapping[str, Any]) -> dict[str, Any]:
        pk = self._table.partition_key.alias
        sk = self._table.sort_key.alias
        return {pk: row[pk], sk: row[sk]}

    def _keys_json(self, row: Mapping[str, Any]) -> str:
        return json.dumps(self._row_key(row))

    def _delete_row(self, row: Mapping[str, Any], message: str) -> None:
        self._builder.add_delete(TransactDelete(table_name=self._table.name, key=self._row_key(row)), message)

    def _delete_key(self, key: Mapping[str, Any]) -> None:
        self._builder.add_delete(
            TransactDelete(table_name=self._table.name, key=key),
            f"Failed to delete BelongsToLink with keys: {json.dumps(dict(key))}",
        )

    def _delete_belongs_to_links(self, id: str, row: Mapping[str, Any]) -> None:
        entity = self._codec.from_item(self._type_name, row)
        for rel in self._registry.belongs_to_of(self._type_name):
            foreign_key = getattr(entity, rel.foreign_key, None)
            if foreign_key is None:
                continue
            reciprocal = self._registry.reciprocal_of(self._type_name, rel)
            if isinstance(reciprocal, HasMany):
                self._delete_key(link_key(self._table, rel.target, foreign_key, self._type_name, id))
            elif isinstance(reciprocal, HasOne):
                self._delete_key(link_key(self._table, rel.target, foreign_key, self._type_name))

    def _relationship_for(self, link: BelongsToLink) -> Relationship | None:
        for rel in self._registry.relationships_of(self._type_name):
            if rel.target != link.foreign_entity_type:
                continue
            if isinstance(rel, (HasMany, HasOne, HasAndBelongsToMany)):
                return rel
        return None

    def _unlink(self, id: str, link: BelongsToLink) -> None:
        rel = self._relationship_for(link)
        if rel is None:
            logger.warning(
                "%s %s: link to %s %s has no relationship",
                self._type_name,
                id,
                link.foreign_entity_type,
                link.foreign_key,
            )
            return

        if isinstance(rel, HasAndBelongsToMany):
            self._delete_key(link_key(self._table, rel.target, link.foreign_key, self._type_name, id))
            return

        self._nullify_foreign_key(rel, link.foreign_key)

    def _nullify_foreign_key(self, rel: HasMany | HasOne, target_id: str) -> None:
        attr_def = self._registry.entity(rel.target).attributes[rel.foreign_key]
        if not attr_def.nullable:
            self._violations.append(
                NullConstraintViolationError(
                    f"Cannot set {rel.target} with id: '{target_id}' attribute '{rel.foreign_key}' to null"
                )
            )
            return

        expression = build_update_expression({attr_def.attribute_name: None})
        self._builder.add_update(
            TransactUpdate(
                table_name=self._table.name,
                key=entity_key(self._table, rel.target, target_id),
                update_expression=expression.update_expression,
                condition_expression=attribute_exists(self._table.partition_key.alias),
                expression_attribute_names=expression.expression_attribute_names,
            ),
            f"Failed to remove foreign key attribute from {rel.target} with Id: {target_id}",
        )
