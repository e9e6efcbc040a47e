from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, cast

import boto3
from botocore.config import Config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AwsCallMetric:
    service: str
    operation: str
    seconds: float
    ok: bool


def is_lambda_environment(environ: Mapping[str, str] = os.environ) -> bool:
    return bool(
        environ.get("AWS_LAMBDA_FUNCTION_NAME") or "AWS_Lambda" in (environ.get("AWS_EXECUTION_ENV") or "")
    )


def create_lambda_boto3_config(
    *,
    connect_timeout: float = 1.0,
    read_timeout: float = 3.0,
    max_attempts: int = 3,
) -> Config:
    return Config(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"max_attempts": max_attempts, "mode": "adaptive"},
    )


class _InstrumentedClient:
    """Proxies a boto3 client and reports one AwsCallMetric per API call."""

    def __init__(self, client: Any, service: str, on_call: Callable[[AwsCallMetric], None]) -> None:
        self._client = client
        self._service = service
        self._on_call = on_call

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._client, name)
        if name.startswith("_") or not callable(attr):
            return attr

        def wrapped(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            ok = False
            try:
                out = attr(*args, **kwargs)
                ok = True
                return out
            finally:
                seconds = time.monotonic() - start
                logger.debug("%s.%s ok=%s %.3fs", self._service, name, ok, seconds)
                self._on_call(AwsCallMetric(service=self._service, operation=name, seconds=seconds, ok=ok))

        return wrapped


def instrument_boto3_client(
    client: Any,
    *,
    service: str,
    on_call: Callable[[AwsCallMetric], None],
) -> Any:
    return _InstrumentedClient(client, service, on_call)


def create_dynamodb_client(
    *,
    endpoint_url: str | None = None,
    region: str | None = None,
    config: Config | None = None,
    session: Any | None = None,
    metrics: Callable[[AwsCallMetric], None] | None = None,
    environ: Mapping[str, str] = os.environ,
) -> Any:
    """Low-level DynamoDB client; ``DYNAMODB_ENDPOINT`` and ``AWS_REGION`` fill unset arguments.

    Inside Lambda the client gets short timeouts and adaptive retries unless a
    ``config`` is passed.
    """
    endpoint_url = endpoint_url or environ.get("DYNAMODB_ENDPOINT") or None
    region = region or environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION") or None
    if config is None and is_lambda_environment(environ):
        config = create_lambda_boto3_config()

    sess = session or boto3.session.Session(region_name=region)
    client = cast(Any, sess).client("dynamodb", region_name=region, endpoint_url=endpoint_url, config=config)
    if metrics is not None:
        client = instrument_boto3_client(client, service="dynamodb", on_call=metrics)
    return client


_shared_clients: dict[tuple[str | None, str | None], Any] = {}
_shared_lock = threading.Lock()


def get_lambda_dynamodb_client(
    *,
    endpoint_url: str | None = None,
    region: str | None = None,
    session: Any | None = None,
    metrics: Callable[[AwsCallMetric], None] | None = None,
    environ: Mapping[str, str] = os.environ,
) -> Any:
    """A DynamoDB client shared across warm Lambda invocations, keyed by endpoint and region."""
    key = (
        endpoint_url or environ.get("DYNAMODB_ENDPOINT") or None,
        region or environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION") or None,
    )
    with _shared_lock:
        existing = _shared_clients.get(key)
        if existing is None:
            existing = create_dynamodb_client(
                endpoint_url=key[0],
                region=key[1],
                session=session,
                metrics=metrics,
                environ=environ,
            )
            _shared_clients[key] = existing
        return existing


def _reset_lambda_clients_for_tests() -> None:
    with _shared_lock:
        _shared_clients.clear()
