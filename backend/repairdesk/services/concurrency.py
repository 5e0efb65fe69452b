# Overview: Service-layer operations for concurrency; retry, row locking and per-tenant serialization.

from __future__ import annotations

import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Columns whose values are generated by the service layer (random suffix).
# A unique violation on one of these is transient: regenerate and retry.
GENERATED_NUMBER_COLUMNS = ("document_number", "ticket_number")


class NumberCollisionError(Exception):
    """Raised when every attempt to allocate a generated number collided."""
    pass


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def acquire_write_lock() -> None:
    """
    Serialize writers on SQLite, where FOR UPDATE is a no-op.

    BEGIN IMMEDIATE takes the database write lock up front so a concurrent
    existence-check-then-insert cannot interleave. Only issued when the DBAPI
    connection has no open transaction (pysqlite begins lazily), otherwise the
    caller already holds whatever lock its earlier statements took.
    """
    conn = db.session.connection()
    if conn.dialect.name != "sqlite":
        return
    driver_conn = conn.connection.driver_connection
    if getattr(driver_conn, "in_transaction", True):
        return
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def is_generated_number_collision(exc: IntegrityError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    if "unique" not in message and "duplicate" not in message:
        return False
    return any(column in message for column in GENERATED_NUMBER_COLUMNS)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and unique violations on generated
    document / ticket numbers. func must regenerate its number on every
    call; the session is rolled back before each retry.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except IntegrityError as exc:
            db.session.rollback()
            if not is_generated_number_collision(exc):
                raise
            last_exc = exc
            if attempt >= attempts - 1:
                raise NumberCollisionError(
                    f"Could not allocate a unique number after {attempts} attempts"
                ) from exc
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
