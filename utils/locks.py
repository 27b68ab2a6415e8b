"""
Court-scoped exclusive locks.

Every read-check-then-write sequence against a court (admission, resolution
cascades, group transitions, per-item expiry) holds the lock for each court
it touches. Locks are taken in ascending court id order so two operations
spanning several courts cannot deadlock. Waiting is bounded by
LOCK_TIMEOUT_SECONDS; on timeout BusyError is raised and nothing is changed.

These locks serialize threads within one process. Across processes the
`BEGIN IMMEDIATE` transaction in database.transaction() serializes writers.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterable

from flask import current_app

from utils.exceptions import BusyError

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_court_locks: Dict[int, threading.Lock] = {}


def _lock_for(court_id: int) -> threading.Lock:
    """Get (or lazily create) the lock object for a court."""
    with _registry_lock:
        lock = _court_locks.get(court_id)
        if lock is None:
            lock = threading.Lock()
            _court_locks[court_id] = lock
        return lock


def _default_timeout() -> float:
    try:
        return float(current_app.config.get('LOCK_TIMEOUT_SECONDS', 5))
    except RuntimeError:
        # Outside app context (scripts)
        return 5.0


@contextmanager
def court_locks(court_ids: Iterable[int], timeout: float = None):
    """
    Hold the exclusive lock of every given court for the duration of the block.

    Args:
        court_ids: Courts to lock (duplicates and None are ignored)
        timeout: Total seconds to wait for all locks (default from config)

    Raises:
        BusyError: If any lock is not acquired before the deadline
    """
    ids = sorted({int(c) for c in court_ids if c is not None})
    if timeout is None:
        timeout = _default_timeout()
    deadline = time.monotonic() + timeout
    acquired = []

    try:
        for court_id in ids:
            remaining = max(0.0, deadline - time.monotonic())
            lock = _lock_for(court_id)
            if not lock.acquire(timeout=remaining):
                logger.warning(f"Timed out after {timeout}s waiting for court {court_id} lock")
                raise BusyError(f"Court {court_id} is busy, retry later", court_id=court_id)
            acquired.append(lock)
        yield ids
    finally:
        for lock in reversed(acquired):
            lock.release()


def court_lock(court_id: int, timeout: float = None):
    """Shortcut for a single court."""
    return court_locks([court_id], timeout=timeout)
