from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from .builders import TransactGetBuilder
from .codec import ItemCodec, entity_key, partition_key_value
from .errors import ValidationError
from .model import LINK_TYPE, BelongsTo, BelongsToLink, HasAndBelongsToMany, HasMany, HasOne, Relationship
from .query import FilterParams, compile_query
from .registry import Registry
from .store import Store
from .transaction import TransactGet

logger = logging.getLogger(__name__)


class FindById:
    def __init__(self, registry: Registry, type_name: str, *, store: Store) -> None:
        self._registry = registry
        self._type_name = type_name
        self._store = store
        self._table = registry.table_of(type_name)
        self._codec = ItemCodec(registry)

    def run(
        self,
        id: str,
        *,
        include: Sequence[str] | None = None,
        consistent_read: bool = False,
    ) -> Any | None:
        if not include:
            item = self._store.get_item(
                self._table.name,
                entity_key(self._table, self._type_name, id),
                consistent_read=consistent_read,
            )
            return self._codec.from_item(self._type_name, item) if item is not None else None

        relationships = self._resolve_includes(include)
        return self._find_with_includes(id, relationships)

    def _resolve_includes(self, include: Sequence[str]) -> list[Relationship]:
        out: list[Relationship] = []
        for name in include:
            rel = self._registry.relationship(self._type_name, name)
            if rel is None:
                raise ValidationError(f"{self._type_name}: unknown relationship {name!r}")
            if rel not in out:
                out.append(rel)
        return out

    def _filter(self, relationships: Sequence[Relationship]) -> FilterParams:
        # Link rows in this partition point at HasMany/HasOne/HasAndBelongsToMany targets.
        linked_types = sorted({rel.target for rel in relationships if not isinstance(rel, BelongsTo)})
        if not linked_types:
            return {"type": self._type_name}
        return {
            "$or": [
                {"type": self._type_name},
                {"type": LINK_TYPE, "foreign_entity_type": linked_types},
            ]
        }

    def _find_with_includes(self, id: str, relationships: Sequence[Relationship]) -> Any | None:
        compiled = compile_query(
            self._registry,
            self._type_name,
            {self._table.partition_key.name: partition_key_value(self._table, self._type_name, id)},
            filter=self._filter(relationships),
            consistent_read=True,
        )
        rows = self._store.query(compiled.to_request(self._table.name))

        entity_row: dict[str, Any] | None = None
        links: list[BelongsToLink] = []
        for row in rows:
            row_type = self._codec.type_of(row)
            if row_type == self._type_name and self._codec.id_of(row) == id:
                entity_row = row
            elif row_type == LINK_TYPE:
                links.append(self._codec.link_from_item(row))

        if entity_row is None:
            return None

        entity = self._codec.from_item(self._type_name, entity_row)

        by_target: dict[str, Relationship] = {}
        for rel in relationships:
            if not isinstance(rel, BelongsTo):
                by_target.setdefault(rel.target, rel)

        builder = TransactGetBuilder(self._store)
        pending: list[Relationship] = []
        for link in links:
            rel = by_target.get(link.foreign_entity_type)
            if rel is None:
                logger.warning(
                    "%s %s: link to %s has no included relationship",
                    self._type_name,
                    id,
                    link.foreign_entity_type,
                )
                continue
            builder.add_get(
                TransactGet(
                    table_name=self._table.name,
                    key=entity_key(self._table, link.foreign_entity_type, link.foreign_key),
                )
            )
            pending.append(rel)

        for rel in relationships:
            if not isinstance(rel, BelongsTo):
                continue
            foreign_key = getattr(entity, rel.foreign_key, None)
            if foreign_key is None:
                continue
            builder.add_get(
                TransactGet(table_name=self._table.name, key=entity_key(self._table, rel.target, foreign_key))
            )
            pending.append(rel)

        values: dict[str, Any] = {
            rel.property_name: [] if isinstance(rel, (HasMany, HasAndBelongsToMany)) else None
            for rel in relationships
        }
        for rel, item in zip(pending, builder.commit(), strict=True):
            if item is None:
                logger.warning("%s %s: %s target is missing", self._type_name, id, rel.property_name)
                continue
            if self._codec.type_of(item) != rel.target:
                logger.warning(
                    "%s %s: ignoring %s row for %s",
                    self._type_name,
                    id,
                    self._codec.type_of(item),
                    rel.property_name,
                )
                continue

            related = self._codec.from_item(rel.target, item)
            if isinstance(rel, (HasMany, HasAndBelongsToMany)):
                values[rel.property_name].append(related)
            elif isinstance(rel, (HasOne, BelongsTo)):
                values[rel.property_name] = related

        return dataclasses.replace(entity, **values)


class Query:
    def __init__(self, registry: Registry, type_name: str, *, store: Store) -> None:
        self._registry = registry
        self._type_name = type_name
        self._store = store
        self._table = registry.table_of(type_name)
        self._codec = ItemCodec(registry)

    def run(
        self,
        key: str | Mapping[str, Any],
        *,
        sk_condition: Any | None = None,
        filter: FilterParams | None = None,
        index_name: str | None = None,
        consistent_read: bool = False,
    ) -> list[Any]:
        if isinstance(key, str):
            conditions: dict[str, Any] = {
                self._table.partition_key.name: partition_key_value(self._table, self._type_name, key)
            }
            if sk_condition is not None:
                conditions[self._table.sort_key.name] = sk_condition
        else:
            if sk_condition is not None:
                raise ValidationError("sk_condition is only supported when querying by id")
            conditions = dict(key)

        compiled = compile_query(
            self._registry,
            self._type_name,
            conditions,
            filter=filter,
            index_name=index_name,
            consistent_read=consistent_read or None,
        )
        rows = self._store.query(compiled.to_request(self._table.name))
        return [self._codec.decode(row) for row in rows]
