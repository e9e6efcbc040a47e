from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from botocore.exceptions import ClientError

from .errors import (
    AwsError,
    CancellationReason,
    NotFoundError,
    TransactionCanceledError,
    ValidationError,
)

_MAPPED: dict[str, type[Exception]] = {
    "ValidationException": ValidationError,
    "ResourceNotFoundException": NotFoundError,
}


def _code_and_message(err: ClientError) -> tuple[str, str]:
    error = err.response.get("Error", {})
    return str(error.get("Code", "")), str(error.get("Message", ""))


def _reason(raw: Any) -> CancellationReason:
    if not isinstance(raw, Mapping):
        return CancellationReason(code="None")
    return CancellationReason(code=str(raw.get("Code") or "None"), message=str(raw.get("Message") or ""))


def map_client_error(err: ClientError) -> Exception:
    code, message = _code_and_message(err)
    mapped = _MAPPED.get(code)
    if mapped is not None:
        return mapped(message)
    return AwsError(code=code or "UnknownError", message=message or str(err))


def map_transaction_error(err: ClientError) -> Exception:
    """Like map_client_error, but keeps the positional CancellationReasons of a cancelled transaction."""
    code, message = _code_and_message(err)
    if code != "TransactionCanceledException":
        return map_client_error(err)

    # One entry per action; "None" marks actions that did not fail.
    reasons = tuple(_reason(raw) for raw in err.response.get("CancellationReasons") or [])
    return TransactionCanceledError(message=message or "transaction canceled", reasons=reasons)
