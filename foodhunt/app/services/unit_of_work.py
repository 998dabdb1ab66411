"""
services/unit_of_work.py — Run one service call as a committed transaction.

Routes wrap every mutating service call in run(). Business-rule failures
(AppError) roll back and propagate untouched. Transient store failures roll
back and are retried:

  - StaleDataError: a versioned meal_splits row changed underneath us
    (two creators accepting into the same split at once)
  - OperationalError: lost connection, lock/statement timeout
  - DBAPIError with connection_invalidated set

Every service operation re-reads its rows on each attempt, so a retry
re-checks membership and closed state before writing again.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from foodhunt.app.errors import AppError, TransientError

log = logging.getLogger(__name__)

T = TypeVar("T")


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (StaleDataError, OperationalError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def run(session: Session, work: Callable[[], T], attempts: int = 3) -> T:
    """
    Calls work() and commits. Returns work()'s result.

    Raises:
      AppError       — whatever work() raised, after rollback
      TransientError — still failing transiently after `attempts` tries
    """
    attempts = max(1, attempts)
    last_exc: Exception | None = None

    for attempt in range(1, attempts + 1):
        try:
            result = work()
            session.commit()
            return result
        except AppError:
            session.rollback()
            raise
        except (StaleDataError, DBAPIError) as exc:
            if not _is_transient(exc):
                session.rollback()
                raise
            session.rollback()
            last_exc = exc
            log.warning(
                "transient store failure (attempt %s/%s): %s",
                attempt, attempts, exc,
            )

    raise TransientError() from last_exc
