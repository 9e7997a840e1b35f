"""
Per-resource mutual exclusion with bounded waits

Every request that touches a budget item's balances holds that item's lock
for the whole read-check-write cycle. Locks are always taken in ascending
key order, so two requests touching overlapping sets of items cannot
deadlock. A lock that cannot be had within the timeout raises
ConcurrencyTimeout and releases everything already held.

Fun fact: Ordered lock acquisition is the same trick Dijkstra used to stop
his dining philosophers from starving: number the forks, always pick up the
lower one first.
"""

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from procurement_ledger.kernel.errors import ConcurrencyTimeout
from procurement_ledger.kernel.logging import get_logger
from procurement_ledger.kernel.metrics import lock_timeouts_total

logger = get_logger(__name__)


def budget_item_key(budget_item_id: str) -> str:
    return f"budget_item:{budget_item_id}"


def purchase_order_key(po_id: str) -> str:
    return f"purchase_order:{po_id}"


def receipt_key(receipt_id: str) -> str:
    return f"receipt:{receipt_id}"


class LockManager:
    """
    Registry of named locks

    Lock objects are created on first use and kept for the life of the
    process. Hierarchy used by the engine: a purchase order lock is taken
    before the budget item locks of its line items; within one call keys
    are sorted.
    """

    def __init__(self, timeout_seconds: float = 5.0) -> None:
        self.timeout_seconds = timeout_seconds
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(
        self, keys: Iterable[str], timeout_seconds: float | None = None
    ) -> Iterator[list[str]]:
        """
        Acquire every lock in `keys` (deduplicated, sorted) or none

        Args:
            keys: Lock keys (see budget_item_key / purchase_order_key)
            timeout_seconds: Per-lock wait, defaults to the manager's timeout

        Yields:
            The sorted keys actually held

        Raises:
            ConcurrencyTimeout: A lock was not acquired in time
        """
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        ordered = sorted(set(keys))
        acquired: list[threading.Lock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                if not lock.acquire(timeout=timeout):
                    lock_timeouts_total.inc()
                    logger.warning(
                        "Lock wait timed out",
                        lock_key=key,
                        requested=ordered,
                        timeout_seconds=timeout,
                    )
                    raise ConcurrencyTimeout(ordered, timeout)
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()

    def is_locked(self, key: str) -> bool:
        """True if some thread currently holds `key` (for diagnostics and tests)"""
        with self._registry_lock:
            lock = self._locks.get(key)
        return lock is not None and lock.locked()
