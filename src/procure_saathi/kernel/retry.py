"""
Retry logic with exponential backoff for transient failures.

Two kinds of transient failure exist here: SQLite lock contention, and
optimistic-concurrency version conflicts where another writer appended to
the same stream first. Both are retried inside a single operation - callers
never see implicit replays of their own requests.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from procure_saathi.kernel.errors import StreamVersionConflict
from procure_saathi.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def retry_on_sqlite_lock(
    max_attempts: int = 3,
    min_wait_ms: int = 100,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for SQLite lock contention (OperationalError).

    SQLite uses file-based locking and can report "database is locked"
    under concurrent writers. Retried with exponential backoff.

    Example:
        @retry_on_sqlite_lock()
        def append(...):
            conn.execute(...)
    """
    return retry(
        retry=retry_if_exception_type(sqlite3.OperationalError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=lambda retry_state: logger.warning(
            "SQLite lock detected, retrying",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )


def retry_on_version_conflict(
    max_attempts: int = 5,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for optimistic-concurrency conflicts.

    The decorated callable must re-read state on every attempt (the façade
    re-synchronises its projections from the store before deciding again).
    A small random jitter spreads out writers that collided.

    Example:
        @retry_on_version_conflict()
        def attempt():
            sync(stream_id)
            events = handler(...)
            store.append(stream_id, expected_version, events)
    """
    return retry(
        retry=retry_if_exception_type(StreamVersionConflict),
        stop=stop_after_attempt(max_attempts),
        wait=wait_random(min=0.0, max=0.02),
        before_sleep=lambda retry_state: logger.debug(
            "Stream version conflict, re-reading and retrying",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )
