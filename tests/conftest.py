from __future__ import annotations

import pytest
from support import build_registry

from linkdb_py.mocks import FakeDynamoDBClient
from linkdb_py.registry import Registry


@pytest.fixture()
def registry() -> Registry:
    return build_registry()


@pytest.fixture()
def client() -> FakeDynamoDBClient:
    return FakeDynamoDBClient()
