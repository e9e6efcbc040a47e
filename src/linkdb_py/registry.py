from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from types import MappingProxyType
from typing import Any

from .model import (
    LINK_TYPE,
    AttributeDefinition,
    BelongsTo,
    EntityDefinition,
    HasAndBelongsToMany,
    HasMany,
    HasOne,
    JoinTableDefinition,
    ModelDefinitionError,
    Relationship,
    TableDefinition,
    entity_definitions,
    expression_token,
    link_attributes,
    table_attributes,
)

logger = logging.getLogger(__name__)


class Registry:
    """Read-only lookup of entity types, their attributes and relationships.

    Built once at startup and shared by every operation; nothing mutates it
    after construction.
    """

    def __init__(
        self,
        table: TableDefinition,
        entities: Sequence[type[Any] | EntityDefinition[Any]],
        *,
        join_tables: Sequence[JoinTableDefinition] = (),
    ) -> None:
        self._table = table

        by_name: dict[str, EntityDefinition[Any]] = {}
        by_type: dict[type[Any], EntityDefinition[Any]] = {}
        for definition in entity_definitions(entities):
            if definition.name in by_name:
                raise ModelDefinitionError(f"duplicate entity name: {definition.name}")
            by_name[definition.name] = definition
            by_type[definition.entity_type] = definition

        joins: dict[str, JoinTableDefinition] = {}
        for join in join_tables:
            if join.name in joins:
                raise ModelDefinitionError(f"duplicate join table: {join.name}")
            joins[join.name] = join

        self._entities = MappingProxyType(by_name)
        self._by_type = MappingProxyType(by_type)
        self._join_tables = MappingProxyType(joins)

        base = table_attributes(table)
        self._attributes = MappingProxyType(
            {
                name: MappingProxyType({**base, **dict(definition.attributes)})
                for name, definition in by_name.items()
            }
        )
        self._link_attributes = MappingProxyType(link_attributes(table))

        self._validate()
        logger.debug("registry built: entities=%s join_tables=%s", sorted(by_name), sorted(joins))

    @property
    def table(self) -> TableDefinition:
        return self._table

    @property
    def entity_names(self) -> tuple[str, ...]:
        return tuple(self._entities)

    def has_entity(self, type_name: str) -> bool:
        return type_name in self._entities

    def entity(self, type_name: str) -> EntityDefinition[Any]:
        try:
            return self._entities[type_name]
        except KeyError:
            raise ModelDefinitionError(f"unknown entity type: {type_name}") from None

    def entity_for(self, entity_type: type[Any]) -> EntityDefinition[Any]:
        try:
            return self._by_type[entity_type]
        except KeyError:
            raise ModelDefinitionError(f"entity class is not registered: {entity_type.__name__}") from None

    def table_of(self, type_name: str) -> TableDefinition:
        self.entity(type_name)
        return self._table

    def attributes_of(self, type_name: str) -> Mapping[str, AttributeDefinition]:
        self.entity(type_name)
        return self._attributes[type_name]

    def link_attributes(self) -> Mapping[str, AttributeDefinition]:
        return self._link_attributes

    def relationships_of(self, type_name: str) -> tuple[Relationship, ...]:
        return tuple(self.entity(type_name).relationships.values())

    def relationship(self, type_name: str, property_name: str) -> Relationship | None:
        return self.entity(type_name).relationships.get(property_name)

    def belongs_to_of(self, type_name: str) -> tuple[BelongsTo, ...]:
        return tuple(rel for rel in self.relationships_of(type_name) if isinstance(rel, BelongsTo))

    def reciprocal_of(self, type_name: str, rel: BelongsTo) -> HasMany | HasOne | None:
        for candidate in self.relationships_of(rel.target):
            if (
                isinstance(candidate, (HasMany, HasOne))
                and candidate.target == type_name
                and candidate.foreign_key == rel.foreign_key
            ):
                return candidate
        return None

    def join_table(self, name: str) -> JoinTableDefinition:
        try:
            return self._join_tables[name]
        except KeyError:
            raise ModelDefinitionError(f"unknown join table: {name}") from None

    def _validate(self) -> None:
        for join in self._join_tables.values():
            for side in join.sides():
                if side.entity not in self._entities:
                    raise ModelDefinitionError(f"join table {join.name}: unknown entity {side.entity}")
            if join.left.foreign_key == join.right.foreign_key:
                raise ModelDefinitionError(f"join table {join.name}: foreign keys must differ")

        for name, definition in self._entities.items():
            if name == LINK_TYPE:
                raise ModelDefinitionError(f"{LINK_TYPE} is a reserved entity name")

            self._validate_tokens(name)
            for attr_def in definition.attributes.values():
                if attr_def.foreign_key is not None and attr_def.foreign_key not in self._entities:
                    raise ModelDefinitionError(
                        f"{name}.{attr_def.python_name}: unknown foreign key target {attr_def.foreign_key}"
                    )

            # Link rows carry only the related type name, so each target gets one link-backed edge.
            linked: dict[str, str] = {}

            for rel in definition.relationships.values():
                where = f"{name}.{rel.property_name}"
                if rel.target not in self._entities:
                    raise ModelDefinitionError(f"{where}: unknown target entity {rel.target}")

                if isinstance(rel, BelongsTo):
                    if rel.foreign_key not in definition.attributes:
                        raise ModelDefinitionError(
                            f"{where}: foreign key {rel.foreign_key!r} is not declared"
                        )
                    declared = definition.attributes[rel.foreign_key].foreign_key
                    if declared is not None and declared != rel.target:
                        raise ModelDefinitionError(
                            f"{where}: foreign key {rel.foreign_key!r} references {declared}, "
                            f"not {rel.target}"
                        )
                    continue

                previous = linked.setdefault(rel.target, rel.property_name)
                if previous != rel.property_name:
                    raise ModelDefinitionError(f"{where}: {name}.{previous} already links to {rel.target}")

                if isinstance(rel, (HasMany, HasOne)):
                    if rel.foreign_key not in self._entities[rel.target].attributes:
                        raise ModelDefinitionError(
                            f"{where}: foreign key {rel.foreign_key!r} is not declared on {rel.target}"
                        )
                elif isinstance(rel, HasAndBelongsToMany):
                    join = self._join_tables.get(rel.join_table)
                    if join is None:
                        raise ModelDefinitionError(f"{where}: unknown join table {rel.join_table}")
                    entities = {side.entity for side in join.sides()}
                    if {name, rel.target} != entities:
                        raise ModelDefinitionError(
                            f"{where}: join table {rel.join_table} does not join {name} and {rel.target}"
                        )

    def _validate_tokens(self, type_name: str) -> None:
        seen: dict[str, str] = {}
        attributes = {**self._attributes[type_name], **self._link_attributes}
        for attr_def in attributes.values():
            alias = attr_def.attribute_name
            other = seen.setdefault(expression_token(alias), alias)
            if other != alias:
                raise ModelDefinitionError(
                    f"{type_name}: attribute names {other!r} and {alias!r} share the expression token "
                    f"#{expression_token(alias)}"
                )
