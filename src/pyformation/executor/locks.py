"""Per-record lock registry.

Every WorkflowInstance and ComplianceCalendar has a single logical
owner: read-modify-write transitions on one record are serialized by
the lock registered under its id, while different records proceed in
parallel. Locks are held only around reservation and commit, never
across an external call.
"""

from __future__ import annotations

import asyncio


class KeyedLocks:
    """Lazily created ``asyncio.Lock`` per key.

    Usage:
        locks = KeyedLocks()
        async with locks.lock(instance.id):
            ...
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)


class ReservationSet:
    """In-flight reservations for work that runs outside the record lock.

    ``reserve`` and ``release`` must be called while holding the record's
    lock, so check-and-add is atomic with respect to other passes.
    """

    def __init__(self):
        self._reserved: set[tuple[str, str]] = set()

    def reserve(self, owner: str, item: str) -> bool:
        key = (owner, item)
        if key in self._reserved:
            return False
        self._reserved.add(key)
        return True

    def release(self, owner: str, item: str) -> None:
        self._reserved.discard((owner, item))

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._reserved
