# Overview: Service-layer helpers for row locking and retrying contended transactions.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 5, backoff_base: float = 0.1, retry_on: tuple = ()):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts), plus any extra exception types in
    retry_on (team numbering retries IntegrityError on a lost race).
    The session is rolled back before every retry.
    """
    retryable = (OperationalError, StaleDataError) + tuple(retry_on)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retryable as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_atomic(func, *, attempts: int = 5, backoff_base: float = 0.1, retry_on: tuple = ()):
    """
    run_with_retry, plus a rollback when func raises anything else.

    Business errors are raised before commit; rolling back here guarantees
    nothing they left in the session is flushed by a later commit.
    """
    try:
        return run_with_retry(func, attempts=attempts, backoff_base=backoff_base, retry_on=retry_on)
    except Exception:
        db.session.rollback()
        raise
