# Overview: Row locking and retry helpers for read-modify-write stock updates.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id counter on stock-bearing models covers SQLite.
    """
    return query.with_for_update()


def run_with_retry(func, *, session=None, attempts: int = 3, backoff_base: float = 0.1, sleep=time.sleep):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (version_id mismatch: another writer committed first). The session is
    rolled back before each retry so the next attempt re-reads current values.
    """
    session = session or db.session
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            session.rollback()
            if attempt >= attempts - 1:
                raise
            sleep(backoff_base * (2 ** attempt))
