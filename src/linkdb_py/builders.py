from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from .errors import (
    ConditionalCheckFailedError,
    TransactionCanceledError,
    TransactionWriteFailedError,
    ValidationError,
)
from .store import Store
from .transaction import (
    TransactConditionCheck,
    TransactDelete,
    TransactGet,
    TransactPut,
    TransactUpdate,
    TransactWriteAction,
)

logger = logging.getLogger(__name__)

MAX_TRANSACT_WRITE_ITEMS = 100
MAX_TRANSACT_GET_ITEMS = 100

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailed"


def _chunked[T](items: Sequence[T], size: int) -> Sequence[Sequence[T]]:
    if size <= 0:
        raise ValueError("size must be > 0")
    return [items[i : i + size] for i in range(0, len(items), size)]


class TransactWriteBuilder:
    """Collects the writes of one logical operation and commits them atomically.

    Failure messages are tracked by position so that a cancelled transaction can
    be reported per failed action.
    """

    def __init__(self, store: Store) -> None:
        self._store = store
        self._actions: list[TransactWriteAction] = []
        self._messages: dict[int, str] = {}
        self._committed = False

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def actions(self) -> tuple[TransactWriteAction, ...]:
        return tuple(self._actions)

    def add_put(self, action: TransactPut, error_message: str | None = None) -> None:
        self._add(action, error_message)

    def add_update(self, action: TransactUpdate, error_message: str | None = None) -> None:
        self._add(action, error_message)

    def add_delete(self, action: TransactDelete, error_message: str | None = None) -> None:
        self._add(action, error_message)

    def add_condition_check(self, action: TransactConditionCheck, error_message: str | None = None) -> None:
        self._add(action, error_message)

    def _add(self, action: TransactWriteAction, error_message: str | None) -> None:
        if self._committed:
            raise ValidationError("transaction has already been committed")
        if error_message is not None:
            self._messages[len(self._actions)] = error_message
        self._actions.append(action)

    def commit(self) -> None:
        if self._committed:
            raise ValidationError("transaction has already been committed")
        if not self._actions:
            raise ValidationError("transaction has no actions")
        if len(self._actions) > MAX_TRANSACT_WRITE_ITEMS:
            raise ValidationError(f"a transaction supports at most {MAX_TRANSACT_WRITE_ITEMS} actions")

        self._committed = True
        logger.debug("committing transaction with %d actions", len(self._actions))
        try:
            self._store.transact_write_items(self._actions)
        except TransactionCanceledError as err:
            failures = self._conditional_check_failures(err)
            if not failures:
                raise
            raise TransactionWriteFailedError(failures, "Failed Conditional Checks") from err

    def _conditional_check_failures(self, err: TransactionCanceledError) -> list[ConditionalCheckFailedError]:
        failures: list[ConditionalCheckFailedError] = []
        for index, reason in enumerate(err.reasons):
            if reason.code != CONDITIONAL_CHECK_FAILED:
                continue
            message = self._messages.get(index) or reason.message
            logger.error("transaction action %d failed: %s", index, message)
            failures.append(ConditionalCheckFailedError(f"{reason.code}: {message}"))
        return failures


class TransactGetBuilder:
    def __init__(self, store: Store, *, max_workers: int | None = None) -> None:
        self._store = store
        self._gets: list[TransactGet] = []
        self._max_workers = max_workers
        self._committed = False

    def __len__(self) -> int:
        return len(self._gets)

    def add_get(self, get: TransactGet) -> None:
        if self._committed:
            raise ValidationError("transaction has already been committed")
        self._gets.append(get)

    def commit(self) -> list[dict[str, Any] | None]:
        if self._committed:
            raise ValidationError("transaction has already been committed")
        self._committed = True
        if not self._gets:
            return []

        chunks = _chunked(self._gets, MAX_TRANSACT_GET_ITEMS)
        if len(chunks) == 1:
            return self._store.transact_get_items(chunks[0])

        workers = self._max_workers or len(chunks)
        results: list[list[dict[str, Any] | None]] = [[] for _ in chunks]
        with ThreadPoolExecutor(max_workers=workers) as ex:
            futures = {ex.submit(self._store.transact_get_items, chunk): i for i, chunk in enumerate(chunks)}
            for fut, i in futures.items():
                results[i] = fut.result()

        return [item for chunk in results for item in chunk]
