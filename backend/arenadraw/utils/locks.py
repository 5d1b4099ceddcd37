"""
In-process keyed locks.

Pairing and bracket (re)generation take the lock for their key, e.g.
("group", 7) or ("bracket", 3), so two requests in this process never
interleave. The database check under the lock (Group.revision, completed
match counts) covers writers in other processes.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator

_registry_lock = threading.Lock()
_locks: Dict[Hashable, threading.Lock] = {}


def lock_for(key: Hashable) -> threading.Lock:
    with _registry_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _locks[key] = lock
        return lock


@contextmanager
def keyed_lock(key: Hashable) -> Iterator[None]:
    lock = lock_for(key)
    with lock:
        yield
