"""
Keyed locks: one re-entrant lock per key (group id, user id)
"""
from contextlib import contextmanager
from threading import Lock, RLock
from typing import Dict, Hashable


class KeyedLocks:
    """
    Hands out one RLock per key.

    The registry lock only guards the dictionary lookup; work is done under
    the per-key lock so unrelated keys never wait on each other.
    """

    def __init__(self):
        self._locks: Dict[Hashable, RLock] = {}
        self._registry_lock = Lock()

    def get(self, key) -> RLock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key):
        lock = self.get(key)
        with lock:
            yield

    def __len__(self):
        with self._registry_lock:
            return len(self._locks)
