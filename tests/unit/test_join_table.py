from __future__ import annotations

import pytest
from support import av, from_av, transact_items

from linkdb_py import JoinTable, ModelDefinitionError, TransactionWriteFailedError, ValidationError
from linkdb_py.mocks import FakeDynamoDBClient
from linkdb_py.registry import Registry
from linkdb_py.store import Store
from linkdb_py.testkit import transaction_canceled

KEYS = {"author_id": "a1", "book_id": "b1"}


def test_create_links_both_sides(registry: Registry, client: FakeDynamoDBClient) -> None:
    client.expect("transact_write_items", response={})

    JoinTable(registry, "AuthorBook", store=Store(client)).create(KEYS)
    client.assert_no_pending()

    items = transact_items(client)
    assert [next(iter(entry)) for entry in items] == ["Put", "ConditionCheck", "Put", "ConditionCheck"]

    author_link = from_av(items[0]["Put"]["Item"])
    assert (author_link["PK"], author_link["SK"]) == ("Author#a1", "Book#b1")
    assert author_link["ForeignEntityType"] == "Book"
    assert author_link["ForeignKey"] == "b1"
    assert items[0]["Put"]["ConditionExpression"] == "attribute_not_exists(PK)"
    assert items[1]["ConditionCheck"]["Key"] == av({"PK": "Author#a1", "SK": "Author"})

    book_link = from_av(items[2]["Put"]["Item"])
    assert (book_link["PK"], book_link["SK"]) == ("Book#b1", "Author#a1")
    assert book_link["ForeignEntityType"] == "Author"
    assert book_link["ForeignKey"] == "a1"
    assert items[3]["ConditionCheck"]["Key"] == av({"PK": "Book#b1", "SK": "Book"})


def test_create_reports_missing_parent(registry: Registry, client: FakeDynamoDBClient) -> None:
    client.expect(
        "transact_write_items",
        error=transaction_canceled(["None", "None", "ConditionalCheckFailed", "ConditionalCheckFailed"]),
    )

    with pytest.raises(TransactionWriteFailedError) as exc_info:
        JoinTable(registry, "AuthorBook", store=Store(client)).create(KEYS)

    assert [str(e) for e in exc_info.value.errors] == [
        "ConditionalCheckFailed: Book with ID b1 is already linked to Author with ID a1",
        "ConditionalCheckFailed: Book with ID b1 does not exist",
    ]


def test_delete_removes_both_links(registry: Registry, client: FakeDynamoDBClient) -> None:
    client.expect("transact_write_items", response={})

    JoinTable(registry, "AuthorBook", store=Store(client)).delete(KEYS)

    items = transact_items(client)
    assert [entry["Delete"]["Key"] for entry in items] == [
        av({"PK": "Author#a1", "SK": "Book#b1"}),
        av({"PK": "Book#b1", "SK": "Author#a1"}),
    ]
    assert all(entry["Delete"]["ConditionExpression"] == "attribute_exists(PK)" for entry in items)


@pytest.mark.parametrize(
    "keys",
    [
        {"author_id": "a1"},
        {"author_id": "a1", "book_id": "b1", "extra": "x"},
        {"author_id": "a1", "book_id": ""},
        {"author_id": "a1", "book_id": 3},
    ],
)
def test_keys_are_validated(registry: Registry, client: FakeDynamoDBClient, keys: dict[str, object]) -> None:
    with pytest.raises(ValidationError, match="AuthorBook"):
        JoinTable(registry, "AuthorBook", store=Store(client)).create(keys)  # type: ignore[arg-type]
    assert client.calls == []


def test_unknown_join_table(registry: Registry, client: FakeDynamoDBClient) -> None:
    with pytest.raises(ModelDefinitionError, match="unknown join table"):
        JoinTable(registry, "Nope", store=Store(client))
