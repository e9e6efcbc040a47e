from __future__ import annotations

import pytest
from support import TABLE

from linkdb_py import TableDefinition, ValidationError, gsi
from linkdb_py.errors import AwsError, NotFoundError
from linkdb_py.mocks import FakeDynamoDBClient
from linkdb_py.schema import (
    build_create_table_request,
    create_table,
    delete_table,
    describe_table,
    ensure_table,
)
from linkdb_py.testkit import client_error, no_sleep


def test_build_create_table_request_includes_indexes_and_sorted_attributes() -> None:
    table = TableDefinition(
        name="tbl",
        indexes=(gsi("by-name", partition_key="Name"), gsi("by-city", partition_key="City", sort_key="Zip")),
    )
    req = build_create_table_request(table)

    assert req["TableName"] == "tbl"
    assert req["BillingMode"] == "PAY_PER_REQUEST"
    assert req["KeySchema"] == [
        {"AttributeName": "PK", "KeyType": "HASH"},
        {"AttributeName": "SK", "KeyType": "RANGE"},
    ]
    assert req["AttributeDefinitions"] == [
        {"AttributeName": "City", "AttributeType": "S"},
        {"AttributeName": "Name", "AttributeType": "S"},
        {"AttributeName": "PK", "AttributeType": "S"},
        {"AttributeName": "SK", "AttributeType": "S"},
        {"AttributeName": "Zip", "AttributeType": "S"},
    ]
    assert req["GlobalSecondaryIndexes"] == [
        {
            "IndexName": "by-name",
            "KeySchema": [{"AttributeName": "Name", "KeyType": "HASH"}],
            "Projection": {"ProjectionType": "ALL"},
        },
        {
            "IndexName": "by-city",
            "KeySchema": [
                {"AttributeName": "City", "KeyType": "HASH"},
                {"AttributeName": "Zip", "KeyType": "RANGE"},
            ],
            "Projection": {"ProjectionType": "ALL"},
        },
    ]


def test_build_create_table_request_without_indexes() -> None:
    req = build_create_table_request(TableDefinition(name="plain"))
    assert "GlobalSecondaryIndexes" not in req
    assert [d["AttributeName"] for d in req["AttributeDefinitions"]] == ["PK", "SK"]


def test_build_create_table_request_provisioned_requires_throughput() -> None:
    with pytest.raises(ValidationError, match="provisioned_throughput is required"):
        build_create_table_request(TABLE, billing_mode="PROVISIONED")

    req = build_create_table_request(
        TABLE,
        billing_mode="PROVISIONED",
        provisioned_throughput={"ReadCapacityUnits": 1, "WriteCapacityUnits": 2},
    )
    assert req["ProvisionedThroughput"] == {"ReadCapacityUnits": 1, "WriteCapacityUnits": 2}
    assert req["GlobalSecondaryIndexes"][0]["ProvisionedThroughput"] == {
        "ReadCapacityUnits": 1,
        "WriteCapacityUnits": 2,
    }


def test_build_create_table_request_validates_billing_mode() -> None:
    with pytest.raises(ValidationError, match="unsupported billing_mode"):
        build_create_table_request(TABLE, billing_mode="ON_DEMAND")


def test_create_table_is_idempotent_and_waits_active() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "create_table",
        {"TableName": "shop", "BillingMode": "PAY_PER_REQUEST"},
        error=client_error("ResourceInUseException", "exists", operation="CreateTable"),
    )
    client.expect(
        "describe_table",
        {"TableName": "shop"},
        error=client_error("ResourceNotFoundException", "missing", operation="DescribeTable"),
    )
    client.expect("describe_table", {"TableName": "shop"}, response={"Table": {"TableStatus": "ACTIVE"}})

    create_table(TABLE, client=client, sleep=no_sleep)
    client.assert_no_pending()


def test_create_table_maps_validation_exception() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "create_table",
        {"TableName": "shop"},
        error=client_error("ValidationException", "bad", operation="CreateTable"),
    )

    with pytest.raises(ValidationError):
        create_table(TABLE, client=client, wait_for_active=False)
    client.assert_no_pending()


def test_create_table_times_out_waiting() -> None:
    client = FakeDynamoDBClient()
    client.expect("create_table", response={})

    with pytest.raises(ValidationError, match="timed out waiting for table ACTIVE"):
        create_table(TABLE, client=client, wait_timeout_seconds=0.0, sleep=no_sleep)


def test_ensure_table_creates_when_missing() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "describe_table",
        {"TableName": "shop"},
        error=client_error("ResourceNotFoundException", "missing", operation="DescribeTable"),
    )
    client.expect("create_table", {"TableName": "shop", "BillingMode": "PAY_PER_REQUEST"}, response={})
    client.expect("describe_table", {"TableName": "shop"}, response={"Table": {"TableStatus": "ACTIVE"}})

    ensure_table(TABLE, client=client, sleep=no_sleep)
    client.assert_no_pending()


def test_ensure_table_waits_for_active_when_table_exists() -> None:
    client = FakeDynamoDBClient()
    client.expect("describe_table", {"TableName": "shop"}, response={"Table": {"TableStatus": "CREATING"}})
    client.expect("describe_table", {"TableName": "shop"}, response={"Table": {"TableStatus": "ACTIVE"}})

    ensure_table(TABLE, client=client, sleep=no_sleep)
    client.assert_no_pending()


def test_delete_table_ignore_missing() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "delete_table",
        {"TableName": "shop"},
        error=client_error("ResourceNotFoundException", "missing", operation="DeleteTable"),
    )

    delete_table(TABLE, client=client, ignore_missing=True)
    client.assert_no_pending()


def test_delete_table_waits_for_deleted() -> None:
    client = FakeDynamoDBClient()
    client.expect("delete_table", {"TableName": "shop"}, response={})
    client.expect("describe_table", {"TableName": "shop"}, response={"Table": {"TableStatus": "DELETING"}})
    client.expect(
        "describe_table",
        {"TableName": "shop"},
        error=client_error("ResourceNotFoundException", "missing", operation="DescribeTable"),
    )

    delete_table(TABLE, client=client, sleep=no_sleep)
    client.assert_no_pending()


def test_describe_table_maps_errors() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "describe_table",
        {"TableName": "shop"},
        error=client_error("ResourceNotFoundException", "missing", operation="DescribeTable"),
    )
    with pytest.raises(NotFoundError):
        describe_table(TABLE, client=client)

    client = FakeDynamoDBClient()
    client.expect("describe_table", error=client_error("Nope", "x", operation="DescribeTable"))
    with pytest.raises(AwsError):
        describe_table(TABLE, client=client)


def test_describe_table_returns_response() -> None:
    client = FakeDynamoDBClient()
    client.expect("describe_table", {"TableName": "shop"}, response={"Table": {"TableStatus": "ACTIVE"}})
    resp = describe_table(TABLE, client=client)
    assert resp["Table"]["TableStatus"] == "ACTIVE"
    client.assert_no_pending()


def test_ensure_table_accepts_active_table_with_matching_keys() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "describe_table",
        {"TableName": "shop"},
        response={
            "Table": {
                "TableStatus": "ACTIVE",
                "KeySchema": [
                    {"AttributeName": "PK", "KeyType": "HASH"},
                    {"AttributeName": "SK", "KeyType": "RANGE"},
                ],
            }
        },
    )

    ensure_table(TABLE, client=client, sleep=no_sleep)
    client.assert_no_pending()


def test_ensure_table_rejects_mismatched_key_schema() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "describe_table",
        response={
            "Table": {
                "TableStatus": "ACTIVE",
                "KeySchema": [{"AttributeName": "pk", "KeyType": "HASH"}],
            }
        },
    )

    with pytest.raises(ValidationError, match="key schema"):
        ensure_table(TABLE, client=client, sleep=no_sleep)
