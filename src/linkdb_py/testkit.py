from __future__ import annotations

from collections.abc import Sequence

from botocore.exceptions import ClientError

from .mocks import ANY, FakeDynamoDBClient, assert_request_matches


def no_sleep(_: float) -> None:
    return None


def client_error(code: str, message: str = "", *, operation: str = "TransactWriteItems") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def transaction_canceled(reasons: Sequence[str | tuple[str, str]]) -> ClientError:
    """A TransactionCanceledException with one cancellation reason per action.

    Each reason is a code (``"None"`` for actions that passed) or a ``(code, message)`` pair.
    """
    cancellation_reasons = []
    for reason in reasons:
        code, message = (reason, "") if isinstance(reason, str) else reason
        entry = {"Code": code}
        if message:
            entry["Message"] = message
        cancellation_reasons.append(entry)

    codes = ", ".join(code if isinstance(code, str) else code[0] for code in reasons)
    return ClientError(
        {
            "Error": {
                "Code": "TransactionCanceledException",
                "Message": (
                    f"Transaction cancelled, please refer cancellation reasons for specific reasons [{codes}]"
                ),
            },
            "CancellationReasons": cancellation_reasons,
        },
        "TransactWriteItems",
    )


__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "assert_request_matches",
    "client_error",
    "no_sleep",
    "transaction_canceled",
]
