from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .codec import encode_value
from .errors import ValidationError
from .model import expression_token


@dataclass(frozen=True)
class UpdateExpression:
    update_expression: str
    expression_attribute_names: dict[str, str]
    expression_attribute_values: dict[str, Any]


def build_update_expression(item: Mapping[str, Any]) -> UpdateExpression:
    """SET every non-None attribute of ``item`` and REMOVE every None one."""
    if not item:
        raise ValidationError("update requires at least one attribute")

    names: dict[str, str] = {}
    values: dict[str, Any] = {}
    set_parts: list[str] = []
    remove_parts: list[str] = []

    for attribute_name, value in item.items():
        token = expression_token(attribute_name)
        names[f"#{token}"] = attribute_name
        if value is None:
            remove_parts.append(f"#{token}")
            continue
        values[f":{token}"] = encode_value(value)
        set_parts.append(f"#{token} = :{token}")

    clauses: list[str] = []
    if set_parts:
        clauses.append("SET " + ", ".join(set_parts))
    if remove_parts:
        clauses.append("REMOVE " + ", ".join(remove_parts))

    return UpdateExpression(
        update_expression=" ".join(clauses),
        expression_attribute_names=names,
        expression_attribute_values=values,
    )


def attribute_exists(attribute_name: str) -> str:
    return f"attribute_exists({attribute_name})"


def attribute_not_exists(attribute_name: str) -> str:
    return f"attribute_not_exists({attribute_name})"
