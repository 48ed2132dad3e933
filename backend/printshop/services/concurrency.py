# Overview: Row locking, optimistic-lock commits and busy-database retries.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import StaleStateError


def lock_for_update(query):
    """SELECT ... FOR UPDATE on backends that support it (SQLite ignores it)."""
    return query.with_for_update()


@contextmanager
def commit_or_stale(order=None, message: str = "Order changed concurrently; refresh and retry"):
    """
    Unit of work of a workflow action: the block's changes, then commit.

    Orders carry a version_id; a concurrent writer makes the UPDATE match no
    row and SQLAlchemy raises StaleDataError. That can happen at commit or
    at any autoflush inside the block (a query issued after the order was
    changed), so both are covered. The session is rolled back and the error
    is surfaced as StaleStateError carrying the re-read order.
    """
    try:
        yield
        db.session.flush()
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        if order is not None:
            db.session.refresh(order)
        raise StaleStateError(message, order=order) from exc


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1) -> None:
    """
    Commit, retrying while the database reports lock contention.

    Used by the notification worker, which shares the database with
    operators moving cards on the board.
    """
    for attempt in range(attempts):
        try:
            db.session.commit()
            return
        except OperationalError:
            if attempt >= attempts - 1:
                db.session.rollback()
                raise
            time.sleep(backoff_base * (2 ** attempt))
