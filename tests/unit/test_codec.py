from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from support import CREATED, TABLE, Order, entity_row, link_row

from linkdb_py import BelongsToLink, ValidationError
from linkdb_py.codec import (
    ItemCodec,
    build_link,
    entity_key,
    format_date,
    link_key,
    parse_date,
    utc_now,
)
from linkdb_py.registry import Registry


def test_format_date_is_utc_with_millisecond_precision() -> None:
    assert format_date(datetime(2024, 3, 1, 10, 0, 0, 123456, tzinfo=UTC)) == "2024-03-01T10:00:00.123Z"
    assert format_date(datetime(2024, 3, 1, 10, 0)) == "2024-03-01T10:00:00.000Z"

    plus_two = timezone(timedelta(hours=2))
    assert format_date(datetime(2024, 3, 1, 12, 0, tzinfo=plus_two)) == "2024-03-01T10:00:00.000Z"


def test_parse_date_round_trips_and_rejects_garbage() -> None:
    parsed = parse_date(CREATED)
    assert parsed == datetime(2024, 3, 1, 10, 0, tzinfo=UTC)
    assert format_date(parsed) == CREATED

    with pytest.raises(ValidationError, match="invalid date"):
        parse_date("yesterday")
    with pytest.raises(ValidationError, match="ISO-8601"):
        parse_date(12)


def test_utc_now_is_truncated_to_milliseconds() -> None:
    now = utc_now()
    assert now.tzinfo is UTC
    assert now.microsecond % 1000 == 0


def test_keys_follow_table_layout() -> None:
    assert entity_key(TABLE, "Customer", "c1") == {"PK": "Customer#c1", "SK": "Customer"}
    assert link_key(TABLE, "Customer", "c1", "Order", "o1") == {"PK": "Customer#c1", "SK": "Order#o1"}
    assert link_key(TABLE, "Customer", "c1", "Profile") == {"PK": "Customer#c1", "SK": "Profile"}


def test_entity_item_encodes_dates_and_aliases(registry: Registry) -> None:
    codec = ItemCodec(registry)
    item = codec.entity_item(
        "Order",
        "o1",
        {
            "id": "o1",
            "type": "Order",
            "created_at": parse_date(CREATED),
            "updated_at": parse_date(CREATED),
            "order_date": datetime(2024, 2, 29, tzinfo=UTC),
            "customer_id": "c1",
            "total": 12.5,
        },
    )

    assert item == {
        "PK": "Order#o1",
        "SK": "Order",
        "Id": "o1",
        "Type": "Order",
        "CreatedAt": CREATED,
        "UpdatedAt": CREATED,
        "OrderDate": "2024-02-29T00:00:00.000Z",
        "CustomerId": "c1",
        "Total": Decimal("12.5"),
    }


def test_from_item_decodes_dates_and_numbers(registry: Registry) -> None:
    codec = ItemCodec(registry)
    order = codec.from_item(
        "Order",
        entity_row("Order", "o1", OrderDate="2024-02-29T00:00:00.000Z", CustomerId="c1", Total=Decimal("42")),
    )

    assert isinstance(order, Order)
    assert order.id == "o1"
    assert order.order_date == datetime(2024, 2, 29, tzinfo=UTC)
    assert order.created_at == parse_date(CREATED)
    assert order.total == 42 and isinstance(order.total, int)
    assert order.payment_method_id is None
    assert order.customer is None


def test_from_item_missing_required_attribute(registry: Registry) -> None:
    with pytest.raises(ValidationError, match="Order"):
        ItemCodec(registry).from_item("Order", entity_row("Order", "o1", CustomerId="c1"))


def test_to_item_rejects_unknown_attribute(registry: Registry) -> None:
    with pytest.raises(ValidationError, match="unknown attribute 'colour'"):
        ItemCodec(registry).to_item("Order", {"colour": "red"})


def test_link_item_round_trip(registry: Registry) -> None:
    codec = ItemCodec(registry)
    link = build_link("Order", "o1", now=parse_date(CREATED))
    item = codec.link_item(link_key(TABLE, "Customer", "c1", "Order", "o1"), link)

    assert item["PK"] == "Customer#c1"
    assert item["SK"] == "Order#o1"
    assert item["Type"] == "BelongsToLink"
    assert item["ForeignKey"] == "o1"
    assert item["ForeignEntityType"] == "Order"
    assert item["CreatedAt"] == CREATED
    assert codec.is_link(item)
    assert codec.link_from_item(item) == link


def test_decode_dispatches_on_type(registry: Registry) -> None:
    codec = ItemCodec(registry)

    decoded_link = codec.decode(link_row("Customer", "c1", "Order", "o1"))
    assert isinstance(decoded_link, BelongsToLink)
    assert decoded_link.foreign_key == "o1"

    decoded_order = codec.decode(entity_row("Order", "o1", OrderDate=CREATED, CustomerId="c1"))
    assert isinstance(decoded_order, Order)

    with pytest.raises(ValidationError, match="unable to infer entity type"):
        codec.decode(entity_row("Invoice", "i1"))
    with pytest.raises(ValidationError, match="missing attribute"):
        codec.link_from_item({"Type": "BelongsToLink", "Id": "l1"})
