from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, cast

from .delete import Delete
from .model import BelongsToLink
from .query import FilterParams
from .reads import FindById, Query
from .registry import Registry
from .store import Store
from .writes import Create, Update


class Table[T]:
    """Entry point for one entity type.

    Every call builds a fresh operation, so no transaction state is shared
    between calls; the registry and store are shared and read-only.
    """

    def __init__(
        self,
        registry: Registry,
        entity: type[T] | str,
        *,
        client: Any | None = None,
        store: Store | None = None,
    ) -> None:
        if store is not None and client is not None:
            raise ValueError("pass either client or store, not both")

        definition = registry.entity(entity) if isinstance(entity, str) else registry.entity_for(entity)
        self._registry = registry
        self._type_name = definition.name
        self._store = store or Store(client)

    @property
    def type_name(self) -> str:
        return self._type_name

    @property
    def store(self) -> Store:
        return self._store

    def create(self, attributes: Mapping[str, Any] | None = None, **kwargs: Any) -> T:
        attrs = {**(attributes or {}), **kwargs}
        return cast(T, Create(self._registry, self._type_name, store=self._store).run(attrs))

    def update(self, id: str, attributes: Mapping[str, Any] | None = None, **kwargs: Any) -> dict[str, Any]:
        attrs = {**(attributes or {}), **kwargs}
        return Update(self._registry, self._type_name, store=self._store).run(id, attrs)

    def delete(self, id: str) -> None:
        Delete(self._registry, self._type_name, store=self._store).run(id)

    def find_by_id(
        self,
        id: str,
        *,
        include: Sequence[str] | None = None,
        consistent_read: bool = False,
    ) -> T | None:
        found = FindById(self._registry, self._type_name, store=self._store).run(
            id, include=include, consistent_read=consistent_read
        )
        return cast(T | None, found)

    def query(
        self,
        key: str | Mapping[str, Any],
        *,
        sk_condition: Any | None = None,
        filter: FilterParams | None = None,
        index_name: str | None = None,
        consistent_read: bool = False,
    ) -> list[T | BelongsToLink | Any]:
        return Query(self._registry, self._type_name, store=self._store).run(
            key,
            sk_condition=sk_condition,
            filter=filter,
            index_name=index_name,
            consistent_read=consistent_read,
        )
