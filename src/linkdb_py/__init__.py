from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .errors import (
    AwsError,
    CancellationReason,
    ConditionalCheckFailedError,
    LinkdbPyError,
    NotFoundError,
    NullConstraintViolationError,
    TransactionCanceledError,
    TransactionWriteFailedError,
    ValidationError,
)
from .model import (
    LINK_TYPE,
    AttributeDefinition,
    BelongsTo,
    BelongsToLink,
    DefaultFields,
    Entity,
    EntityDefinition,
    HasAndBelongsToMany,
    HasMany,
    HasOne,
    IndexDefinition,
    JoinSide,
    JoinTableDefinition,
    KeyAttribute,
    ModelDefinitionError,
    Relationship,
    TableDefinition,
    belongs_to,
    gsi,
    has_and_belongs_to_many,
    has_many,
    has_one,
    linkdb_field,
)
from .query import BeginsWith, CompiledQuery, begins_with, compile_query
from .transaction import (
    TransactConditionCheck,
    TransactDelete,
    TransactGet,
    TransactPut,
    TransactUpdate,
    TransactWriteAction,
)

if TYPE_CHECKING:
    from .builders import TransactGetBuilder, TransactWriteBuilder
    from .join_table import JoinTable
    from .registry import Registry
    from .runtime import (
        AwsCallMetric,
        create_dynamodb_client,
        create_lambda_boto3_config,
        get_lambda_dynamodb_client,
        instrument_boto3_client,
        is_lambda_environment,
    )
    from .schema import build_create_table_request, create_table, delete_table, describe_table, ensure_table
    from .store import Store
    from .table import Table


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except Exception:
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def get_version() -> str:
    return __version__


def __getattr__(name: str) -> Any:
    if name == "Registry":
        from .registry import Registry

        return Registry
    if name == "Table":
        from .table import Table

        return Table
    if name == "Store":
        from .store import Store

        return Store
    if name == "JoinTable":
        from .join_table import JoinTable

        return JoinTable
    if name in {"TransactGetBuilder", "TransactWriteBuilder"}:
        from . import builders

        return getattr(builders, name)
    if name in {
        "build_create_table_request",
        "create_table",
        "delete_table",
        "describe_table",
        "ensure_table",
    }:
        from . import schema

        return getattr(schema, name)
    if name in {
        "AwsCallMetric",
        "create_dynamodb_client",
        "create_lambda_boto3_config",
        "get_lambda_dynamodb_client",
        "instrument_boto3_client",
        "is_lambda_environment",
    }:
        from . import runtime

        return getattr(runtime, name)
    raise AttributeError(name)


__all__ = [
    "AttributeDefinition",
    "AwsCallMetric",
    "AwsError",
    "BeginsWith",
    "BelongsTo",
    "BelongsToLink",
    "CancellationReason",
    "CompiledQuery",
    "ConditionalCheckFailedError",
    "DefaultFields",
    "Entity",
    "EntityDefinition",
    "HasAndBelongsToMany",
    "HasMany",
    "HasOne",
    "IndexDefinition",
    "JoinSide",
    "JoinTable",
    "JoinTableDefinition",
    "KeyAttribute",
    "LINK_TYPE",
    "LinkdbPyError",
    "ModelDefinitionError",
    "NotFoundError",
    "NullConstraintViolationError",
    "Registry",
    "Relationship",
    "Store",
    "Table",
    "TableDefinition",
    "TransactConditionCheck",
    "TransactDelete",
    "TransactGet",
    "TransactGetBuilder",
    "TransactPut",
    "TransactUpdate",
    "TransactWriteAction",
    "TransactWriteBuilder",
    "TransactionCanceledError",
    "TransactionWriteFailedError",
    "ValidationError",
    "__version__",
    "begins_with",
    "belongs_to",
    "build_create_table_request",
    "compile_query",
    "create_dynamodb_client",
    "create_lambda_boto3_config",
    "create_table",
    "delete_table",
    "describe_table",
    "ensure_table",
    "get_lambda_dynamodb_client",
    "get_version",
    "gsi",
    "has_and_belongs_to_many",
    "has_many",
    "has_one",
    "instrument_boto3_client",
    "is_lambda_environment",
    "linkdb_field",
]
