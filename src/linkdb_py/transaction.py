from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


def _expression_fields(
    condition_expression: str | None,
    names: Mapping[str, str] | None,
    values: Mapping[str, Any] | None,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if condition_expression is not None:
        out["ConditionExpression"] = condition_expression
    if names:
        out["ExpressionAttributeNames"] = dict(names)
    if values:
        out["ExpressionAttributeValues"] = dict(values)
    return out


@dataclass(frozen=True)
class TransactPut:
    table_name: str
    item: Mapping[str, Any]
    condition_expression: str | None = None
    expression_attribute_names: Mapping[str, str] | None = None
    expression_attribute_values: Mapping[str, Any] | None = None

    def to_request(self) -> dict[str, Any]:
        return {
            "Put": {
                "TableName": self.table_name,
                "Item": dict(self.item),
                **_expression_fields(
                    self.condition_expression,
                    self.expression_attribute_names,
                    self.expression_attribute_values,
                ),
            }
        }


@dataclass(frozen=True)
class TransactDelete:
    table_name: str
    key: Mapping[str, Any]
    condition_expression: str | None = None
    expression_attribute_names: Mapping[str, str] | None = None
    expression_attribute_values: Mapping[str, Any] | None = None

    def to_request(self) -> dict[str, Any]:
        return {
            "Delete": {
                "TableName": self.table_name,
                "Key": dict(self.key),
                **_expression_fields(
                    self.condition_expression,
                    self.expression_attribute_names,
                    self.expression_attribute_values,
                ),
            }
        }


@dataclass(frozen=True)
class TransactUpdate:
    table_name: str
    key: Mapping[str, Any]
    update_expression: str
    condition_expression: str | None = None
    expression_attribute_names: Mapping[str, str] | None = None
    expression_attribute_values: Mapping[str, Any] | None = None

    def to_request(self) -> dict[str, Any]:
        return {
            "Update": {
                "TableName": self.table_name,
                "Key": dict(self.key),
                "UpdateExpression": self.update_expression,
                **_expression_fields(
                    self.condition_expression,
                    self.expression_attribute_names,
                    self.expression_attribute_values,
                ),
            }
        }


@dataclass(frozen=True)
class TransactConditionCheck:
    table_name: str
    key: Mapping[str, Any]
    condition_expression: str
    expression_attribute_names: Mapping[str, str] | None = None
    expression_attribute_values: Mapping[str, Any] | None = None

    def to_request(self) -> dict[str, Any]:
        return {
            "ConditionCheck": {
                "TableName": self.table_name,
                "Key": dict(self.key),
                **_expression_fields(
                    self.condition_expression,
                    self.expression_attribute_names,
                    self.expression_attribute_values,
                ),
            }
        }


@dataclass(frozen=True)
class TransactGet:
    table_name: str
    key: Mapping[str, Any]

    def to_request(self) -> dict[str, Any]:
        return {"Get": {"TableName": self.table_name, "Key": dict(self.key)}}


type TransactWriteAction = TransactPut | TransactDelete | TransactUpdate | TransactConditionCheck
