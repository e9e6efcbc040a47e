from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

import boto3

from linkdb_py import (
    Entity,
    Registry,
    Table,
    TableDefinition,
    TransactionWriteFailedError,
    belongs_to,
    delete_table,
    ensure_table,
    has_many,
    linkdb_field,
)


@dataclass(frozen=True, kw_only=True)
class Customer(Entity):
    name: str = linkdb_field(name="Name")
    orders: list[Order] = has_many("Order", foreign_key="customer_id")


@dataclass(frozen=True, kw_only=True)
class Order(Entity):
    placed_at: datetime = linkdb_field(name="PlacedAt")
    customer_id: str = linkdb_field(name="CustomerId", foreign_key="Customer")
    customer: Customer | None = belongs_to("Customer", foreign_key="customer_id")


def _client():
    return boto3.client(
        "dynamodb",
        endpoint_url=os.environ.get("DYNAMODB_ENDPOINT", "http://localhost:8000"),
        region_name=os.environ.get("AWS_REGION", "us-east-1"),
        aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID", "dummy"),
        aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY", "dummy"),
    )


def main() -> None:
    client = _client()
    table = TableDefinition(name=f"linkdb_py_example_{uuid.uuid4().hex[:12]}")
    ensure_table(table, client=client)

    try:
        registry = Registry(table, [Customer, Order])
        customers = Table(registry, Customer, client=client)
        orders = Table(registry, Order, client=client)

        ada = customers.create(name="Ada")
        for _ in range(3):
            orders.create(customer_id=ada.id, placed_at=datetime.now(UTC))

        found = customers.find_by_id(ada.id, include=["orders"])
        print("orders for", ada.name, "->", [o.id for o in found.orders] if found else [])

        print("partition rows:", customers.query(ada.id))

        try:
            customers.delete(ada.id)
        except TransactionWriteFailedError as err:
            print("delete refused:", err)
    finally:
        delete_table(table, client=client, ignore_missing=True)


if __name__ == "__main__":
    main()
