"""
Per-entity serialization points

A keyed lock gives every table, order, coupon or ticket sequence its own
re-entrant lock inside the process. It is always combined with a row lock
(SELECT ... FOR UPDATE) and a storage constraint, which are what hold across
processes.

Entries are reference counted: a key stays in the registry only while some
thread holds or waits for it.
"""

from contextlib import contextmanager
from typing import Dict, Hashable, Iterator
import threading


class _KeyedLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class KeyedLocks:
    """Registry of re-entrant locks keyed by an arbitrary hashable"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, _KeyedLock] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _acquire_entry(self, key: Hashable) -> _KeyedLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyedLock()
            entry.users += 1
            return entry

    def _release_entry(self, key: Hashable, entry: _KeyedLock) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(key) is entry:
                del self._locks[key]

    @contextmanager
    def hold(self, *key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block"""
        entry = self._acquire_entry(key)
        try:
            with entry.lock:
                yield
        finally:
            self._release_entry(key, entry)

    def clear(self) -> None:
        """Forget all locks (useful for testing)"""
        with self._guard:
            self._locks.clear()


# Global lock registry
entity_locks = KeyedLocks()
