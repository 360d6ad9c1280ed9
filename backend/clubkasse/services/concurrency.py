# Overview: Session-level helpers for row locking and single-commit ledger transactions.

from __future__ import annotations

from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from clubkasse.validation import ConcurrentUpdateError

T = TypeVar("T")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id_col check on UPDATE still catches lost updates.
    """
    return query.with_for_update()


def is_lock_conflict(exc: OperationalError) -> bool:
    """Deadlocks and lock timeouts, as opposed to real storage failures."""
    message = str(exc.orig if getattr(exc, "orig", None) is not None else exc).lower()
    return "locked" in message or "deadlock" in message or "lock wait timeout" in message


def run_in_transaction(session, func: Callable[[], T]) -> T:
    """
    Run func and commit its work as ONE database transaction.

    Any exception rolls back every write made by func, so a sale can never
    leave stock decremented without the matching balance update. Nothing is
    retried: losing an optimistic-lock race (StaleDataError) or a row lock
    surfaces as ConcurrentUpdateError and the caller decides what to do.
    """
    try:
        result = func()
        session.commit()
        return result
    except StaleDataError as exc:
        session.rollback()
        raise ConcurrentUpdateError() from exc
    except OperationalError as exc:
        session.rollback()
        if is_lock_conflict(exc):
            raise ConcurrentUpdateError() from exc
        raise
    except Exception:
        session.rollback()
        raise
