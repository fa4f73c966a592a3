# Overview: Transaction helpers for optimistic concurrency and store failures.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LedgerError, PersistenceError
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _configured_attempts() -> int:
    try:
        return int(current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3))
    except RuntimeError:
        return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute one unit of work inside its own transaction.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (a version_id check failed because another writer got there first).
    The session is rolled back before every retry so func() re-reads
    current rows.

    Domain errors (LedgerError) roll back and propagate unchanged. Any other
    store failure, or running out of attempts, becomes PersistenceError.
    """
    attempts = attempts or _configured_attempts()
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceError(
                    f"Concurrent update conflict persisted after {attempts} attempts",
                    cause=type(exc).__name__,
                ) from exc
            logger.info(
                "Retrying after %s (attempt %d/%d)", type(exc).__name__, attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
        except LedgerError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(f"Store operation failed: {exc.__class__.__name__}") from exc
