from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

type Response = Mapping[str, Any] | Callable[[Mapping[str, Any]], Mapping[str, Any]]
type Expectation = Mapping[str, Any] | Callable[[Mapping[str, Any]], None]


class _AnySentinel:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _AnySentinel()


def assert_request_matches(expected: Any, actual: Any, *, path: str = "request") -> None:
    """Partial structural match: dict keys in ``expected`` must be present, lists must match in full.

    ``ANY`` matches anything at its position.
    """
    if expected is ANY:
        return

    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            raise AssertionError(f"{path}: expected dict, got {type(actual).__name__}")
        for key, value in expected.items():
            if key not in actual:
                raise AssertionError(f"{path}: missing key {key!r}")
            assert_request_matches(value, actual[key], path=f"{path}.{key}")
    elif isinstance(expected, list):
        if not isinstance(actual, list):
            raise AssertionError(f"{path}: expected list, got {type(actual).__name__}")
        if len(expected) != len(actual):
            raise AssertionError(f"{path}: expected {len(expected)} items, got {len(actual)}")
        for i, (want, got) in enumerate(zip(expected, actual, strict=True)):
            assert_request_matches(want, got, path=f"{path}[{i}]")
    elif expected != actual:
        raise AssertionError(f"{path}: expected {expected!r}, got {actual!r}")


@dataclass(frozen=True)
class ExpectedCall:
    method: str
    expected: Expectation | None = None
    response: Response | None = None
    error: Exception | None = None


class FakeDynamoDBClient:
    """Scripted stand-in for a low-level boto3 DynamoDB client.

    Calls are matched against ``expect`` entries in order. A response may be a
    callable that builds the reply from the request, which keeps replies correct
    when chunks are dispatched from several threads.
    """

    def __init__(self) -> None:
        self._expected: list[ExpectedCall] = []
        self._lock = threading.Lock()
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def expect(
        self,
        method: str,
        expected: Expectation | None = None,
        *,
        response: Response | None = None,
        error: Exception | None = None,
    ) -> None:
        self._expected.append(ExpectedCall(method=method, expected=expected, response=response, error=error))

    def assert_no_pending(self) -> None:
        if self._expected:
            raise AssertionError(f"pending expected calls: {self._expected!r}")

    def requests(self, method: str) -> list[dict[str, Any]]:
        return [req for name, req in self.calls if name == method]

    def _handle(self, method: str, req: dict[str, Any]) -> Mapping[str, Any]:
        with self._lock:
            self.calls.append((method, dict(req)))
            if not self._expected:
                raise AssertionError(f"unexpected call: {method}")
            call = self._expected.pop(0)

        if call.method != method:
            raise AssertionError(f"expected {call.method}, got {method}")

        if callable(call.expected):
            call.expected(req)
        elif call.expected is not None:
            assert_request_matches(call.expected, req, path=method)

        if call.error is not None:
            raise call.error
        if callable(call.response):
            return dict(call.response(req))
        return dict(call.response or {})

    def get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("get_item", kwargs)

    def query(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("query", kwargs)

    def transact_get_items(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("transact_get_items", kwargs)

    def transact_write_items(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("transact_write_items", kwargs)

    def create_table(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("create_table", kwargs)

    def delete_table(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("delete_table", kwargs)

    def describe_table(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("describe_table", kwargs)
