# Overview: Locking and retry helpers shared by the stock, push and idempotency services.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking to a query whose rows are about to change.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the conditional UPDATE
    in stock_service is what serializes concurrent writers.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, label: str | None = None):
    """
    Run one unit of work, retrying on lock contention and stale versions.

    The session is rolled back before each retry, so `func` must redo all
    of its reads. Business errors raised by `func` propagate unchanged.
    """
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            delay = backoff_base * (2 ** attempt)
            logger.warning(
                "Retrying %s after %s (attempt %d/%d, sleeping %.2fs)",
                label or getattr(func, "__name__", "operation"),
                type(exc).__name__,
                attempt + 1,
                attempts,
                delay,
            )
            time.sleep(delay)
