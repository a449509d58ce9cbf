"""
Concurrency — Per-target locks and cancellation tokens.

A target's local mirror is a shared on-disk resource. Git operations and
pipeline runs against the same mirror must never overlap, so every one of
them acquires the target's lock for its whole duration.

Locks are re-entrant: a pipeline holding the lock can run processors that
call back into the synchronizer on the same thread.

## Usage

    from deployer.concurrency import target_locks

    with target_locks.hold("editorial-dev"):
        ...
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag threaded through long-running calls."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds, returning early (True) if cancelled."""
        return self._event.wait(timeout)


class TargetLocks:
    """
    Registry of one re-entrant lock per target id.

    Locks live as long as the registry. A lock is never replaced, even after
    its target is deleted, so a re-created target with the same id still
    waits for work that holds the old one.
    """

    def __init__(self, acquire_timeout: Optional[float] = None):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()
        self.acquire_timeout = acquire_timeout

    def get(self, target_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(target_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[target_id] = lock
            return lock

    @contextmanager
    def hold(self, target_id: str, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold the target's lock for the duration of the block.

        Raises TimeoutError if the lock can't be acquired in time.
        """
        lock = self.get(target_id)
        wait = timeout if timeout is not None else self.acquire_timeout
        acquired = lock.acquire(timeout=wait) if wait is not None else lock.acquire()
        if not acquired:
            raise TimeoutError(f"Timed out waiting for lock on target '{target_id}'")
        try:
            yield
        finally:
            lock.release()


# Process-wide default
target_locks = TargetLocks()
