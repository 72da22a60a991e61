# Overview: Row locking and retry helpers for multi-step writes.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError

from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking before a lifecycle transition.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; JobOrder.version_id still
    rejects the losing writer of a concurrent transition there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on transient lock failures.

    Only OperationalError (deadlocks, "database is locked") is retried.
    StaleDataError means another request changed the row first; it is
    re-raised so the caller re-reads state instead of blindly replaying.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after database lock contention (attempt %d/%d)", attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
