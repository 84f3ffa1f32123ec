# Overview: Row locking and bounded retry for contended settlement rows.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the database-wide
    write lock plus the version_id columns on Order and CashRegisterShift
    provide the same serialization.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, busy database) and StaleDataError
    (optimistic locking conflicts). The session is rolled back before every
    retry so `func` always starts from a clean transaction. When the budget
    is exhausted a ConcurrencyError (transient) is raised. Any other
    exception rolls the session back and propagates unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("RETRY_BACKOFF_SECONDS", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            current_app.logger.warning(
                "Concurrency conflict in %s (attempt %s/%s): %s",
                getattr(func, "__qualname__", "operation"), attempt + 1, attempts, exc,
            )
            if attempt >= attempts - 1:
                raise ConcurrencyError(
                    "The record is busy, please try again",
                    {"attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            # Domain rejections can fire after partial writes; never leave
            # them pending in the session for the next commit.
            db.session.rollback()
            raise
