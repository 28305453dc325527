# Overview: Unit-of-work, row locking and retry helpers shared by every workflow service.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for read-then-conditional-write sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; unit_of_work() takes the
    database write lock up front there instead (BEGIN IMMEDIATE).
    """
    return query.with_for_update()


@contextmanager
def unit_of_work():
    """
    One atomic unit of work on the shared session.

    Commits when the block exits normally; any exception rolls back every
    partial mutation (inventory deltas, ledger rows, status changes, audit rows)
    and is re-raised.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError
    (version counter conflicts). Business errors propagate on the first raise.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def transactional(func):
    """Run func inside a unit of work, retrying on lock/version conflicts."""
    def _op():
        with unit_of_work():
            return func()

    return run_with_retry(
        _op,
        attempts=current_app.config.get("TX_RETRY_ATTEMPTS", 3),
        backoff_base=current_app.config.get("TX_RETRY_BACKOFF", 0.1),
    )
