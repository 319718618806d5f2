"""Per-staff serialization of check-then-write sequences within one process."""

import threading
from contextlib import contextmanager
from typing import Iterator


class StaffLockRegistry:
    """
    One lock per (business, staff) pair, created on first use.

    Entries are kept for the life of the registry, so its size is bounded by
    the number of staff members that have taken a booking write.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[tuple[int, int], threading.Lock] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def lock_for(self, business_id: int, staff_id: int) -> threading.Lock:
        key = (business_id, staff_id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, business_id: int, *staff_ids: int) -> Iterator[None]:
        """Acquire locks for one or more staff members in a fixed order."""
        locks = [self.lock_for(business_id, sid) for sid in sorted(set(staff_ids))]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()
