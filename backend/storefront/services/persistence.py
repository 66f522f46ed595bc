# Overview: Persistence gateway; parameterized queries, scoped transactions and row locking.

"""
Thin layer over the Flask-SQLAlchemy scoped session.

The session is the process-scoped connection pool handle: Flask-SQLAlchemy
checks a connection out on first use inside a request and returns it when
the app context tears down, on every exit path. Services only ever need:

- query(sql, params): one parameterized statement
- transaction(work) / atomic(): an all-or-nothing unit of work
- lock_for_update(query): row locks for read-modify-write sequences
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

T = TypeVar("T")


def query(sql: str, params: dict[str, Any] | None = None) -> list[dict] | int:
    """
    Execute a single parameterized statement.

    Returns a list of row dicts for statements that produce rows, otherwise
    the affected row count. Values are always bound, never interpolated:

        query("SELECT id FROM users WHERE email = :email", {"email": email})
    """
    result = db.session.execute(text(sql), params or {})
    if result.returns_rows:
        return [dict(row._mapping) for row in result]
    return result.rowcount


@contextmanager
def atomic():
    """
    Scoped transaction: commit on normal exit, roll back on any exception.

    The exception is re-raised after rollback so callers see the failure.
    """
    try:
        yield db.session
        db.session.commit()
    except BaseException:
        db.session.rollback()
        raise


def transaction(work: Callable[[Any], T]) -> T:
    """Run `work(session)` as one all-or-nothing unit and return its result."""
    with atomic() as session:
        return work(session)


def lock_for_update(q):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but PostgreSQL will honor it.
    """
    return q.with_for_update()


def run_with_retry(func: Callable[[], T], *, attempts: int = 3, backoff_base: float = 0.1) -> T:
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError.
    `func` must be safe to re-run from scratch (it owns its transaction).
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    raise RuntimeError("run_with_retry called with attempts < 1")
