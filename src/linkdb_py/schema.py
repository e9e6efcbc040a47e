from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from botocore.exceptions import ClientError

from .aws_errors import map_client_error
from .errors import ValidationError
from .model import TableDefinition
from .runtime import create_dynamodb_client

logger = logging.getLogger(__name__)

BillingMode = str  # "PAY_PER_REQUEST" | "PROVISIONED"

_TABLE_MISSING = "ResourceNotFoundException"
_TABLE_IN_USE = "ResourceInUseException"


def _error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def build_create_table_request(
    table: TableDefinition,
    *,
    billing_mode: BillingMode = "PAY_PER_REQUEST",
    provisioned_throughput: dict[str, int] | None = None,
) -> dict[str, Any]:
    """CreateTable arguments for the single table: string PK/SK plus one GSI per index (projection ALL)."""
    billing_mode = (billing_mode or "PAY_PER_REQUEST").strip() or "PAY_PER_REQUEST"
    if billing_mode not in {"PAY_PER_REQUEST", "PROVISIONED"}:
        raise ValidationError(f"unsupported billing_mode: {billing_mode}")
    if billing_mode == "PROVISIONED" and provisioned_throughput is None:
        raise ValidationError("provisioned_throughput is required when billing_mode=PROVISIONED")
    throughput = provisioned_throughput if billing_mode == "PROVISIONED" else None

    key_names: set[str] = {table.partition_key.alias, table.sort_key.alias}
    indexes: list[dict[str, Any]] = []
    for idx in table.indexes:
        key_schema = [{"AttributeName": idx.partition_key, "KeyType": "HASH"}]
        key_names.add(idx.partition_key)
        if idx.sort_key is not None:
            key_schema.append({"AttributeName": idx.sort_key, "KeyType": "RANGE"})
            key_names.add(idx.sort_key)

        index: dict[str, Any] = {
            "IndexName": idx.name,
            "KeySchema": key_schema,
            "Projection": {"ProjectionType": "ALL"},
        }
        if throughput is not None:
            index["ProvisionedThroughput"] = dict(throughput)
        indexes.append(index)

    req: dict[str, Any] = {
        "TableName": table.name,
        "BillingMode": billing_mode,
        "KeySchema": [
            {"AttributeName": table.partition_key.alias, "KeyType": "HASH"},
            {"AttributeName": table.sort_key.alias, "KeyType": "RANGE"},
        ],
        # Composite keys, type names and index keys are all strings.
        "AttributeDefinitions": [{"AttributeName": name, "AttributeType": "S"} for name in sorted(key_names)],
    }
    if throughput is not None:
        req["ProvisionedThroughput"] = dict(throughput)
    if indexes:
        req["GlobalSecondaryIndexes"] = indexes
    return req


def create_table(
    table: TableDefinition,
    *,
    client: Any | None = None,
    billing_mode: BillingMode = "PAY_PER_REQUEST",
    provisioned_throughput: dict[str, int] | None = None,
    wait_for_active: bool = True,
    wait_timeout_seconds: float = 300.0,
    poll_interval_seconds: float = 0.25,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    client = client or create_dynamodb_client()
    req = build_create_table_request(
        table,
        billing_mode=billing_mode,
        provisioned_throughput=provisioned_throughput,
    )

    try:
        client.create_table(**req)
        logger.info("creating table %s", table.name)
    except ClientError as err:
        if _error_code(err) != _TABLE_IN_USE:
            raise map_client_error(err) from err
        logger.debug("table %s already exists", table.name)

    if wait_for_active:
        _wait_until(
            lambda: _table_status(client, table.name) == "ACTIVE",
            timeout_seconds=wait_timeout_seconds,
            poll_interval_seconds=poll_interval_seconds,
            sleep=sleep,
            what=f"table ACTIVE: {table.name}",
        )


def ensure_table(
    table: TableDefinition,
    *,
    client: Any | None = None,
    billing_mode: BillingMode = "PAY_PER_REQUEST",
    provisioned_throughput: dict[str, int] | None = None,
    wait_for_active: bool = True,
    wait_timeout_seconds: float = 300.0,
    poll_interval_seconds: float = 0.25,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Create the table if it is missing; otherwise check its key schema and wait for it."""
    client = client or create_dynamodb_client()

    try:
        resp = client.describe_table(TableName=table.name)
    except ClientError as err:
        if _error_code(err) != _TABLE_MISSING:
            raise map_client_error(err) from err
        create_table(
            table,
            client=client,
            billing_mode=billing_mode,
            provisioned_throughput=provisioned_throughput,
            wait_for_active=wait_for_active,
            wait_timeout_seconds=wait_timeout_seconds,
            poll_interval_seconds=poll_interval_seconds,
            sleep=sleep,
        )
        return

    _check_key_schema(table, resp.get("Table", {}))
    if wait_for_active and resp.get("Table", {}).get("TableStatus") != "ACTIVE":
        _wait_until(
            lambda: _table_status(client, table.name) == "ACTIVE",
            timeout_seconds=wait_timeout_seconds,
            poll_interval_seconds=poll_interval_seconds,
            sleep=sleep,
            what=f"table ACTIVE: {table.name}",
        )


def delete_table(
    table: TableDefinition,
    *,
    client: Any | None = None,
    wait_for_delete: bool = True,
    wait_timeout_seconds: float = 300.0,
    poll_interval_seconds: float = 0.25,
    ignore_missing: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    client = client or create_dynamodb_client()

    try:
        client.delete_table(TableName=table.name)
        logger.info("deleting table %s", table.name)
    except ClientError as err:
        if ignore_missing and _error_code(err) == _TABLE_MISSING:
            return
        raise map_client_error(err) from err

    if wait_for_delete:
        _wait_until(
            lambda: _table_status(client, table.name) is None,
            timeout_seconds=wait_timeout_seconds,
            poll_interval_seconds=poll_interval_seconds,
            sleep=sleep,
            what=f"table deletion: {table.name}",
        )


def describe_table(table: TableDefinition, *, client: Any | None = None) -> dict[str, Any]:
    client = client or create_dynamodb_client()
    try:
        return dict(client.describe_table(TableName=table.name))
    except ClientError as err:
        raise map_client_error(err) from err


def _check_key_schema(table: TableDefinition, description: Mapping[str, Any]) -> None:
    key_schema = description.get("KeySchema")
    if not key_schema:
        return
    actual = {entry.get("KeyType"): entry.get("AttributeName") for entry in key_schema}
    expected = {"HASH": table.partition_key.alias, "RANGE": table.sort_key.alias}
    if actual != expected:
        raise ValidationError(f"table {table.name} has key schema {actual}, expected {expected}")


def _table_status(client: Any, table_name: str) -> str | None:
    """TableStatus, or None once the table no longer exists."""
    try:
        resp = client.describe_table(TableName=table_name)
    except ClientError as err:
        if _error_code(err) == _TABLE_MISSING:
            return None
        raise map_client_error(err) from err
    return str(resp.get("Table", {}).get("TableStatus", ""))


def _wait_until(
    done: Callable[[], bool],
    *,
    timeout_seconds: float,
    poll_interval_seconds: float,
    sleep: Callable[[float], None],
    what: str,
) -> None:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        if done():
            return
        sleep(poll_interval_seconds)
    raise ValidationError(f"timed out waiting for {what}")
