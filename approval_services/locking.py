"""
approval_services.locking -- Per-key mutual exclusion.

One re-entrant lock per workflow instance id (and per application id for
``start``).  Operations on different keys never contend.  The lock is
re-entrant because ``decide`` calls ``advance`` while holding it.

Locks are held weakly: an entry lives only while some thread holds or
waits on the lock, so the table stays bounded by the number of in-flight
operations rather than by the number of instances ever touched.

Locks are process-local.  Writers in other processes are caught by the
store's version check (``OptimisticLockError`` on ``save``).
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Iterator
from contextlib import contextmanager


class InstanceLocks:
    """Lazily created ``threading.RLock`` per key."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )
        self._guard = threading.Lock()

    def lock_for(self, key: str) -> threading.RLock:
        """The lock for ``key``.  Callers must keep a reference while using it."""
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self.lock_for(key)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
