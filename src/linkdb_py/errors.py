from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


class LinkdbPyError(Exception):
    pass


class NotFoundError(LinkdbPyError):
    pass


class ValidationError(LinkdbPyError):
    pass


class ConditionalCheckFailedError(LinkdbPyError):
    pass


class NullConstraintViolationError(LinkdbPyError):
    pass


class TransactionWriteFailedError(LinkdbPyError):
    def __init__(self, errors: Sequence[Exception], message: str = "Failed Conditional Checks") -> None:
        super().__init__(message)
        self.errors = tuple(errors)
        self.message = message

    def __str__(self) -> str:
        details = "; ".join(str(err) for err in self.errors)
        return f"{self.message}: {details}" if details else self.message


@dataclass(frozen=True)
class CancellationReason:
    code: str
    message: str = ""


class TransactionCanceledError(LinkdbPyError):
    def __init__(self, *, message: str, reasons: tuple[CancellationReason, ...] = ()) -> None:
        super().__init__(message)
        self.reasons = reasons

    @property
    def reason_codes(self) -> tuple[str, ...]:
        return tuple(reason.code for reason in self.reasons)


class AwsError(LinkdbPyError):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
