"""
Retries for transient SQLite contention

SQLite serializes writers with a file lock. Under concurrent requests an
append can fail with "database is locked" or "database is busy"; only those
are retried, with exponential backoff via tenacity. Schema problems, domain
errors and version conflicts propagate on the first attempt.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from procurement_ledger.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_TRANSIENT_MESSAGES = ("database is locked", "database is busy", "database table is locked")


def is_transient_sqlite_error(exc: BaseException) -> bool:
    """True for lock/busy OperationalErrors that a later attempt can clear"""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return any(m in message for m in _TRANSIENT_MESSAGES)


def _log_retry(what: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        logger.warning(
            f"{what} hit a locked database, retrying",
            attempt=retry_state.attempt_number,
            wait_s=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
            error=str(outcome.exception()) if outcome else None,
        )

    return before_sleep


def retry_on_sqlite_lock(
    max_attempts: int = 5,
    min_wait_ms: int = 50,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry an event store write while the database is locked

    Args:
        max_attempts: Attempts before the last error is re-raised
        min_wait_ms: Shortest backoff between attempts
        max_wait_ms: Longest backoff between attempts

    Example:
        @retry_on_sqlite_lock()
        def append_batch(...):
            conn.execute("INSERT ...")
    """
    return retry(
        retry=retry_if_exception(is_transient_sqlite_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=min_wait_ms / 1000.0,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=_log_retry("Event store write"),
        reraise=True,
    )


def retry_projection_rebuild(
    max_attempts: int = 3,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry replaying the event log into projections on startup

    Another process may be mid-write when the engine opens the database.
    """
    return retry(
        retry=retry_if_exception(is_transient_sqlite_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5.0),
        before_sleep=_log_retry("Projection rebuild"),
        reraise=True,
    )
