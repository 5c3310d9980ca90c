# Overview: Service-layer helpers for locking, write transactions and retry on contention.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ContentionError
from ..extensions import db

# PostgreSQL SQLSTATEs that mean "someone else holds it, try again"
_PG_CONTENTION_CODES = {
    "55P03",  # lock_not_available (lock_timeout)
    "40P01",  # deadlock_detected
    "40001",  # serialization_failure
}


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    populate_existing() makes the locked read overwrite anything already in
    the identity map, so checks always see the committed state.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    takes the database write lock up front instead.
    """
    return query.with_for_update().populate_existing()


def begin_write_transaction() -> None:
    """
    Open the unit of work for a mutating operation.

    On SQLite this issues BEGIN IMMEDIATE so concurrent writers queue on the
    database lock (bounded by the connection busy timeout) instead of
    failing late at commit. Other databases rely on lock_for_update() and the
    lock_timeout configured on the engine.
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_conn = db.session.connection().connection.dbapi_connection
    if not dbapi_conn.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def is_contention_error(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if not isinstance(exc, OperationalError):
        return False
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _PG_CONTENTION_CODES:
        return True
    message = str(exc.orig).lower()
    return "locked" in message or "lock timeout" in message or "deadlock" in message


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries lock waits that timed out, deadlocks (OperationalError) and
    optimistic locking conflicts (StaleDataError). When attempts run out the
    failure surfaces as ContentionError, the one error callers may blindly
    retry.

    Any other exception rolls the session back and propagates unchanged, so
    a failed operation never leaves partial writes pending.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if not is_contention_error(exc):
                raise
            if attempt >= attempts - 1:
                raise ContentionError(
                    "The record is busy, please retry",
                    details={"attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    raise ContentionError("The record is busy, please retry", details={"attempts": attempts})
