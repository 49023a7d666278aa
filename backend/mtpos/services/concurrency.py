# Overview: Locking and retry helpers shared by the transaction coordinators.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StoreError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (the database-level write lock
    serializes writers instead); Postgres honors it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError.
    func must be safe to re-run from scratch: the session is rolled back
    before each retry.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


@contextmanager
def transaction_scope():
    """
    One unit of work: commit on success, roll back on any failure.

    Row-store failures are re-raised as StoreError so callers only ever see
    the pipeline taxonomy.
    """
    try:
        yield db.session
        db.session.commit()
    except (OperationalError, StaleDataError):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreError(exc) from exc
    except Exception:
        db.session.rollback()
        raise


def run_transaction(func, *, attempts: int = 3):
    """run_with_retry + transaction_scope; OperationalError surviving all retries becomes StoreError."""
    def _op():
        with transaction_scope():
            return func()

    try:
        return run_with_retry(_op, attempts=attempts)
    except (OperationalError, StaleDataError) as exc:
        raise StoreError(exc) from exc


def insert_or_ignore(model, values: dict, conflict_columns: list[str]) -> bool:
    """
    INSERT ... ON CONFLICT DO NOTHING on the given unique columns.

    Returns True when this call created the row. Used for create-if-absent
    rows (counters, VAT periods, inventory, default accounts) so concurrent
    creators never fail each other's transaction.
    """
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"insert_or_ignore is not supported on {dialect}")

    stmt = insert(model.__table__).values(**values).on_conflict_do_nothing(index_elements=conflict_columns)
    result = db.session.execute(stmt)
    return bool(result.rowcount)
