"""Per-key locking within a process."""

import threading
import typing as t
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class KeyedLock:
    """Hands out one mutex per key.

    Locks are reference counted and dropped once nobody holds or waits for
    them, so the table does not grow with the number of keys ever seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        with self._guard:
            lock, users = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, users + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                _, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


__all__: t.Sequence[str] = ["KeyedLock"]
