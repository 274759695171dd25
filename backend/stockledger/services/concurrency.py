# Overview: Unit-of-work helpers: row locking and retry on concurrency failures.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import scoped_session
from sqlalchemy.orm.exc import StaleDataError

from ..config import setting


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update()


def begin_write(session) -> None:
    """
    Open the unit of work with a write lock on SQLite.

    Other dialects rely on lock_for_update(). Skipped when the session already
    has a transaction in progress, since SQLite refuses a nested BEGIN.
    """
    if session.get_bind().dialect.name != "sqlite":
        return
    # db.session is a scoped_session, which does not proxy in_transaction()
    current = session() if isinstance(session, scoped_session) else session
    if current.in_transaction():
        return
    session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(session, func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back and propagates, so a failed operation never leaves partial writes.
    """
    if attempts is None:
        attempts = setting("STOCKLEDGER_RETRY_ATTEMPTS")
    if backoff_base is None:
        backoff_base = setting("STOCKLEDGER_RETRY_BACKOFF")

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            session.rollback()
            raise
    if last_exc:
        raise last_exc
