from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .codec import encode_value
from .errors import ValidationError
from .model import AttributeDefinition, expression_token
from .registry import Registry

OR_KEY = "$or"
BEGINS_WITH_KEY = "$beginsWith"


@dataclass(frozen=True)
class BeginsWith:
    value: Any


def begins_with(value: Any) -> BeginsWith:
    return BeginsWith(value)


type ConditionValue = Any | Sequence[Any] | BeginsWith
type AndConditions = Mapping[str, ConditionValue]
type FilterParams = Mapping[str, Any]


@dataclass(frozen=True)
class CompiledQuery:
    key_condition_expression: str
    filter_expression: str | None = None
    expression_attribute_names: Mapping[str, str] = field(default_factory=dict)
    expression_attribute_values: Mapping[str, Any] = field(default_factory=dict)
    index_name: str | None = None
    consistent_read: bool | None = None

    def to_request(self, table_name: str) -> dict[str, Any]:
        req: dict[str, Any] = {
            "TableName": table_name,
            "KeyConditionExpression": self.key_condition_expression,
            "ExpressionAttributeNames": dict(self.expression_attribute_names),
            "ExpressionAttributeValues": dict(self.expression_attribute_values),
        }
        if self.filter_expression is not None:
            req["FilterExpression"] = self.filter_expression
        if self.index_name is not None:
            req["IndexName"] = self.index_name
        if self.consistent_read is not None:
            req["ConsistentRead"] = self.consistent_read
        return req


class _ExpressionCompiler:
    def __init__(self, attributes: Mapping[str, AttributeDefinition]) -> None:
        self._attributes = attributes
        self._counter = 0
        self.names: dict[str, str] = {}
        self.values: dict[str, Any] = {}

    def _name(self, field_name: str) -> tuple[str, str]:
        attr_def = self._attributes.get(field_name)
        if attr_def is None:
            raise ValidationError(f"unknown field: {field_name}")
        token = expression_token(attr_def.attribute_name)
        self.names[f"#{token}"] = attr_def.attribute_name
        return f"#{token}", token

    def _value(self, token: str, value: Any) -> str:
        if value is None:
            raise ValidationError(f"condition value for {token} must not be None")
        self._counter += 1
        placeholder = f":{token}{self._counter}"
        self.values[placeholder] = encode_value(value)
        return placeholder

    def condition(self, field_name: str, value: ConditionValue, *, allow_in: bool = True) -> str:
        name, token = self._name(field_name)

        if isinstance(value, Mapping) and set(value) == {BEGINS_WITH_KEY}:
            value = BeginsWith(value[BEGINS_WITH_KEY])

        if isinstance(value, BeginsWith):
            return f"begins_with({name}, {self._value(token, value.value)})"

        if isinstance(value, (list, tuple)):
            if not allow_in:
                raise ValidationError(f"IN conditions are not allowed on key field: {field_name}")
            if not value:
                raise ValidationError(f"IN condition for {field_name} must not be empty")
            placeholders = [self._value(token, v) for v in value]
            return f"{name} IN ({','.join(placeholders)})"

        if isinstance(value, Mapping):
            raise ValidationError(f"unsupported condition for {field_name}: {value!r}")

        return f"{name} = {self._value(token, value)}"

    def and_conditions(self, conditions: AndConditions, *, allow_in: bool = True) -> list[str]:
        out: list[str] = []
        for field_name, value in conditions.items():
            if field_name == OR_KEY:
                raise ValidationError(f"{OR_KEY} is only allowed at the top level of a filter")
            out.append(self.condition(field_name, value, allow_in=allow_in))
        return out

    def or_expression(self, branches: Any) -> str:
        if not isinstance(branches, (list, tuple)) or not branches:
            raise ValidationError(f"{OR_KEY} must be a non-empty list of conditions")

        compiled: list[str] = []
        for branch in branches:
            if not isinstance(branch, Mapping) or not branch:
                raise ValidationError(f"{OR_KEY} entries must be non-empty mappings")
            conditions = self.and_conditions(branch)
            joined = " AND ".join(conditions)
            compiled.append(f"({joined})" if len(conditions) > 1 else joined)
        return " OR ".join(compiled)

    def filter_expression(self, filter: FilterParams) -> str:
        if not isinstance(filter, Mapping) or not filter:
            raise ValidationError("filter must be a non-empty mapping")

        and_part = {k: v for k, v in filter.items() if k != OR_KEY}
        or_expr = self.or_expression(filter[OR_KEY]) if OR_KEY in filter else None
        and_expr = " AND ".join(self.and_conditions(and_part)) if and_part else None

        if or_expr is not None and and_expr is not None:
            return f"({or_expr}) AND ({and_expr})"
        return or_expr if or_expr is not None else str(and_expr)


def compile_query(
    registry: Registry,
    type_name: str,
    key: AndConditions,
    *,
    filter: FilterParams | None = None,
    index_name: str | None = None,
    consistent_read: bool | None = None,
) -> CompiledQuery:
    if not key:
        raise ValidationError("key conditions are required")
    if index_name is not None:
        if registry.table.indexes and registry.table.index(index_name) is None:
            raise ValidationError(f"unknown index: {index_name}")
        if consistent_read:
            raise ValidationError("consistent_read is not supported for global secondary indexes")

    compiler = _ExpressionCompiler({**registry.attributes_of(type_name), **registry.link_attributes()})

    # Filter first: its placeholders take the lower counter values.
    filter_expression = compiler.filter_expression(filter) if filter is not None else None
    key_expression = " AND ".join(compiler.and_conditions(key, allow_in=False))

    return CompiledQuery(
        key_condition_expression=key_expression,
        filter_expression=filter_expression,
        expression_attribute_names=compiler.names,
        expression_attribute_values=compiler.values,
        index_name=index_name,
        consistent_read=consistent_read,
    )
