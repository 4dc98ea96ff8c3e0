# Overview: Concurrency helpers; per-key locks for the balance engine and retry for store transactions.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, session=None, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks, busy database) and
    StaleDataError. ``session`` is rolled back between attempts; it defaults
    to the local ``db.session``.
    """
    target = session if session is not None else db.session
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            target.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


class KeyedLocks:
    """
    Re-entrant lock per key (party id, product/branch pair).

    A caller may hold several keys at once; ``hold`` always acquires them in
    sorted order so two writers never wait on each other in a cycle.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[tuple, threading.RLock] = {}

    def _lock(self, key: tuple) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: tuple):
        ordered = sorted({k for k in keys if k is not None}, key=repr)
        acquired = []
        try:
            for key in ordered:
                lock = self._lock(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
