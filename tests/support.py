from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from linkdb_py import (
    Entity,
    JoinSide,
    JoinTableDefinition,
    TableDefinition,
    belongs_to,
    gsi,
    has_and_belongs_to_many,
    has_many,
    has_one,
    linkdb_field,
)
from linkdb_py.mocks import FakeDynamoDBClient
from linkdb_py.registry import Registry

TABLE = TableDefinition(
    name="shop",
    indexes=(gsi("by-name", partition_key="Name"),),
)

CREATED = "2024-03-01T10:00:00.000Z"
UPDATED = "2024-03-02T11:30:00.000Z"


@dataclass(frozen=True, kw_only=True)
class Customer(Entity):
    name: str = linkdb_field(name="Name")
    address: str | None = linkdb_field(name="Address", nullable=True)
    orders: list[Order] = has_many("Order", foreign_key="customer_id")
    payment_methods: list[PaymentMethod] = has_many("PaymentMethod", foreign_key="customer_id")
    profile: Profile | None = has_one("Profile", foreign_key="customer_id")


@dataclass(frozen=True, kw_only=True)
class Order(Entity):
    order_date: datetime = linkdb_field(name="OrderDate")
    customer_id: str = linkdb_field(name="CustomerId", foreign_key="Customer")
    payment_method_id: str | None = linkdb_field(
        name="PaymentMethodId", foreign_key="PaymentMethod", nullable=True
    )
    total: int | None = linkdb_field(name="Total", nullable=True)
    customer: Customer | None = belongs_to("Customer", foreign_key="customer_id")
    payment_method: PaymentMethod | None = belongs_to("PaymentMethod", foreign_key="payment_method_id")


@dataclass(frozen=True, kw_only=True)
class PaymentMethod(Entity):
    last_four: str = linkdb_field(name="LastFour")
    customer_id: str | None = linkdb_field(name="CustomerId", foreign_key="Customer", nullable=True)
    customer: Customer | None = belongs_to("Customer", foreign_key="customer_id")
    orders: list[Order] = has_many("Order", foreign_key="payment_method_id")


@dataclass(frozen=True, kw_only=True)
class Profile(Entity):
    bio: str = linkdb_field(name="Bio")
    customer_id: str = linkdb_field(name="CustomerId", foreign_key="Customer")
    customer: Customer | None = belongs_to("Customer", foreign_key="customer_id")


@dataclass(frozen=True, kw_only=True)
class Warehouse(Entity):
    city: str = linkdb_field(name="City")


@dataclass(frozen=True, kw_only=True)
class Shipment(Entity):
    warehouse_id: str = linkdb_field(name="WarehouseId", foreign_key="Warehouse")
    warehouse: Warehouse | None = belongs_to("Warehouse", foreign_key="warehouse_id")


@dataclass(frozen=True, kw_only=True)
class Author(Entity):
    name: str = linkdb_field(name="Name")
    books: list[Book] = has_and_belongs_to_many("Book", join_table="AuthorBook")


@dataclass(frozen=True, kw_only=True)
class Book(Entity):
    title: str = linkdb_field(name="Title")
    authors: list[Author] = has_and_belongs_to_many("Author", join_table="AuthorBook")


AUTHOR_BOOK = JoinTableDefinition(
    name="AuthorBook",
    left=JoinSide(entity="Author", foreign_key="author_id"),
    right=JoinSide(entity="Book", foreign_key="book_id"),
)

ENTITIES = (Customer, Order, PaymentMethod, Profile, Warehouse, Shipment, Author, Book)


def build_registry(table: TableDefinition = TABLE) -> Registry:
    return Registry(table, ENTITIES, join_tables=[AUTHOR_BOOK])


_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def av(item: Mapping[str, Any]) -> dict[str, Any]:
    return {k: _serializer.serialize(v) for k, v in item.items()}


def from_av(item: Mapping[str, Any]) -> dict[str, Any]:
    return {k: _deserializer.deserialize(v) for k, v in item.items()}


def entity_row(type_name: str, id: str, **attrs: Any) -> dict[str, Any]:
    return {
        "PK": f"{type_name}#{id}",
        "SK": type_name,
        "Id": id,
        "Type": type_name,
        "CreatedAt": CREATED,
        "UpdatedAt": UPDATED,
        **attrs,
    }


def link_row(
    owner: str, owner_id: str, related: str, related_id: str, *, has_one: bool = False
) -> dict[str, Any]:
    return {
        "PK": f"{owner}#{owner_id}",
        "SK": related if has_one else f"{related}#{related_id}",
        "Id": f"link-{owner_id}-{related_id}",
        "Type": "BelongsToLink",
        "ForeignKey": related_id,
        "ForeignEntityType": related,
        "CreatedAt": CREATED,
        "UpdatedAt": UPDATED,
    }


def echo_transact_get(rows: Mapping[tuple[str, str], Mapping[str, Any]]) -> Any:
    """A transact_get_items response builder that looks each requested key up in ``rows``."""

    def respond(req: Mapping[str, Any]) -> dict[str, Any]:
        responses = []
        for entry in req["TransactItems"]:
            key = from_av(entry["Get"]["Key"])
            row = rows.get((key["PK"], key["SK"]))
            responses.append({"Item": av(row)} if row is not None else {})
        return {"Responses": responses}

    return respond


def transact_items(client: FakeDynamoDBClient) -> list[dict[str, Any]]:
    writes = client.requests("transact_write_items")
    assert writes, "no transact_write_items call recorded"
    return list(writes[-1]["TransactItems"])
