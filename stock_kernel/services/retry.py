"""
Conflict retry for contended ledger writes.

Responsibility:
    Re-runs a whole transaction when it lost a race on a material row:
    a stale optimistic-lock version, a PostgreSQL serialization failure or
    deadlock, or SQLite reporting the database as locked.  Gives up with
    ConcurrencyConflictError after a bounded number of attempts.

Architecture position:
    Kernel > Services.  Wraps complete ``Database.session_scope()`` units of
    work; never a partial transaction.
"""

import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from stock_kernel.exceptions import ConcurrencyConflictError
from stock_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")

# PostgreSQL SQLSTATEs: serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})

_RETRYABLE_MESSAGES = (
    "database is locked",
    "deadlock",
    "could not serialize",
)


def is_conflict(exc: BaseException) -> bool:
    """True if ``exc`` signals a lost race worth retrying."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        if sqlstate in _RETRYABLE_SQLSTATES:
            return True
        if isinstance(exc, OperationalError):
            message = str(exc.orig).lower()
            return any(fragment in message for fragment in _RETRYABLE_MESSAGES)
    return False


def run_with_retry(
    fn: Callable[[], T],
    *,
    operation: str,
    entity_id: str,
    max_retries: int = 5,
    backoff_seconds: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``fn`` until it succeeds, retrying only on conflicts.

    Args:
        fn: A complete unit of work (opens and closes its own transaction).
        operation: Name used in logs and the final error.
        entity_id: Contended entity, usually the material id.
        max_retries: Total attempts.
        backoff_seconds: Linear backoff step (attempt n waits n * step).

    Raises:
        ConcurrencyConflictError: all attempts hit a conflict.
        Any non-conflict exception from ``fn`` immediately.
    """
    for attempt in range(1, max_retries + 1):
        try:
            return fn()
        except (StaleDataError, DBAPIError) as exc:
            if not is_conflict(exc):
                raise
            if attempt == max_retries:
                logger.error(
                    "concurrency_conflict_exhausted",
                    extra={
                        "operation": operation,
                        "entity_id": entity_id,
                        "attempts": attempt,
                    },
                )
                raise ConcurrencyConflictError(operation, entity_id, attempt) from exc
            logger.warning(
                "concurrency_conflict_retry",
                extra={
                    "operation": operation,
                    "entity_id": entity_id,
                    "attempt": attempt,
                    "max_retries": max_retries,
                    "error_type": type(exc).__name__,
                },
            )
            sleep(backoff_seconds * attempt)
    raise AssertionError("unreachable")
