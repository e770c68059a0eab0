import threading
from contextlib import contextmanager
from typing import Dict, List

from arena.errors import Busy


class EntityLocks:
    """One exclusive lock per room or game id.

    An entry lives only while some caller holds or waits on it, so deleted
    rooms and finished games leave nothing behind. State is serialized per
    entity only within a single server process.
    """

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[str, List] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str):
        key = str(key)
        lock = self._checkout(key)
        try:
            if not lock.acquire(timeout=self.timeout):
                raise Busy(f'{key} is busy, try again')
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(key)
