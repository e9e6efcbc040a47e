from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError

from .aws_errors import map_client_error as _map_client_error
from .aws_errors import map_transaction_error as _map_transaction_error
from .errors import ValidationError
from .runtime import create_dynamodb_client
from .transaction import TransactGet, TransactWriteAction

logger = logging.getLogger(__name__)

_ITEM_FIELDS = ("Item", "Key", "ExpressionAttributeValues")


class Store:
    """The four DynamoDB primitives the engine needs, over a low-level boto3 client.

    Requests and results use plain Python values; attribute-value serialization
    happens here and nowhere else.
    """

    def __init__(self, client: Any | None = None) -> None:
        self._client: Any = client or create_dynamodb_client()
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    @property
    def client(self) -> Any:
        return self._client

    def get_item(
        self, table_name: str, key: Mapping[str, Any], *, consistent_read: bool = False
    ) -> dict[str, Any] | None:
        req: dict[str, Any] = {"TableName": table_name, "Key": self._serialize_map(key)}
        if consistent_read:
            req["ConsistentRead"] = True

        try:
            resp = self._client.get_item(**req)
        except ClientError as err:
            raise _map_client_error(err) from err

        item = resp.get("Item")
        return self._deserialize_map(item) if item else None

    def query(self, request: Mapping[str, Any]) -> list[dict[str, Any]]:
        req = self._serialize_request(request)
        logger.debug("query %s: %s", req.get("TableName"), req.get("KeyConditionExpression"))

        try:
            resp = self._client.query(**req)
        except ClientError as err:
            raise _map_client_error(err) from err

        return [self._deserialize_map(item) for item in resp.get("Items", [])]

    def transact_get_items(self, gets: Sequence[TransactGet]) -> list[dict[str, Any] | None]:
        if len(gets) > 100:
            raise ValidationError("a transactional get supports at most 100 items")

        transact_items = [self._serialize_entry(get.to_request()) for get in gets]
        try:
            resp = self._client.transact_get_items(TransactItems=transact_items)
        except ClientError as err:
            raise _map_transaction_error(err) from err

        responses = resp.get("Responses", []) or []
        out: list[dict[str, Any] | None] = []
        for i in range(len(gets)):
            item = responses[i].get("Item") if i < len(responses) else None
            out.append(self._deserialize_map(item) if item else None)
        return out

    def transact_write_items(self, actions: Sequence[TransactWriteAction]) -> None:
        if not actions:
            raise ValidationError("actions is required")
        if len(actions) > 100:
            raise ValidationError("a transaction supports at most 100 actions")

        transact_items = [self._serialize_entry(action.to_request()) for action in actions]
        try:
            self._client.transact_write_items(TransactItems=transact_items)
        except ClientError as err:
            raise _map_transaction_error(err) from err

    def _serialize_entry(self, entry: Mapping[str, Any]) -> dict[str, Any]:
        ((op, req),) = entry.items()
        return {op: self._serialize_request(req)}

    def _serialize_request(self, request: Mapping[str, Any]) -> dict[str, Any]:
        out = dict(request)
        for name in _ITEM_FIELDS:
            if name in out:
                out[name] = self._serialize_map(out[name])
        return out

    def _serialize_map(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return {k: self._serializer.serialize(v) for k, v in values.items()}

    def _deserialize_map(self, item: Mapping[str, Any]) -> dict[str, Any]:
        return {k: self._deserializer.deserialize(v) for k, v in item.items()}
