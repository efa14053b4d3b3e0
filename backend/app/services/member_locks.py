"""
Per-resource locking for token-mutating operations.

Serializes balance checks and deductions for the same member (and enrollment
changes for the same class) inside one process. Database-level guards
(conditional UPDATEs, row locks, unique indexes) still apply across processes.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable, List, Tuple


def member_key(member_id: int) -> Tuple[str, int]:
    return ("member", member_id)


def class_key(class_id: int) -> Tuple[str, int]:
    return ("class", class_id)


def registration_key() -> Tuple[str, int]:
    """Single key serializing membership number allocation."""
    return ("registration", 0)


class KeyedLockRegistry:
    """
    Registry of asyncio locks keyed by (kind, id).

    Locks are created on demand and dropped once nobody holds or waits on
    them, so the registry does not grow with the number of members.
    """

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    def _checkout(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: Hashable) -> None:
        remaining = self._users.get(key, 1) - 1
        if remaining <= 0:
            self._users.pop(key, None)
            self._locks.pop(key, None)
        else:
            self._users[key] = remaining

    @asynccontextmanager
    async def hold(self, *keys: Hashable, timeout: float = None):
        """
        Acquire every lock for `keys` in sorted order.

        Raises:
            asyncio.TimeoutError: if the locks cannot be taken within `timeout`
        """
        ordered = sorted(set(keys))
        locks = [(key, self._checkout(key)) for key in ordered]
        acquired: List[asyncio.Lock] = []
        try:
            for _, lock in locks:
                if timeout is None:
                    await lock.acquire()
                else:
                    await asyncio.wait_for(lock.acquire(), timeout=timeout)
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key, _ in locks:
                self._checkin(key)

    def held_keys(self) -> List[Hashable]:
        return [key for key, lock in self._locks.items() if lock.locked()]


# Global registry shared by all request handlers in this process
lock_registry = KeyedLockRegistry()
