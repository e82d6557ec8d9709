from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from dental_booking.core.errors import SchedulingError, StorageUnavailable

logger = logging.getLogger("dental_booking.db")

T = TypeVar("T")

TRANSIENT_RETRY_MAX = 1
_TRANSIENT_MARKERS = (
    "deadlock detected",
    "could not serialize access",
    "database is locked",
    "lock wait timeout",
    "40p01",
    "40001",
)


def is_transient_error(exc: Exception) -> bool:
    if isinstance(exc, IntegrityError):
        return False
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    message = str(getattr(exc, "orig", None) or exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def run_in_transaction(db: Session, work: Callable[[], T], *, label: str) -> T:
    """Run ``work`` and commit, as one unit.

    Domain errors roll back and propagate unchanged. A transient storage
    failure is retried once; anything else from the driver surfaces as
    StorageUnavailable. ``work`` must load what it needs itself because a
    rollback expires every instance in the session.
    """
    attempt = 0
    while True:
        try:
            result = work()
            db.commit()
            return result
        except SchedulingError:
            db.rollback()
            raise
        except DBAPIError as exc:
            db.rollback()
            if is_transient_error(exc) and attempt < TRANSIENT_RETRY_MAX:
                attempt += 1
                logger.warning("Transient storage failure during %s; retrying once: %s", label, exc)
                continue
            logger.exception("Storage failure during %s", label)
            raise StorageUnavailable() from exc
