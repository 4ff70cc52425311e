import threading
import weakref
from contextlib import contextmanager
from typing import Iterator

_registry_lock = threading.Lock()
# Entries disappear once no caller holds a reference to the lock.
_month_locks: "weakref.WeakValueDictionary[tuple[int, int, int], threading.Lock]" = (
    weakref.WeakValueDictionary()
)


def _lock_for(key: tuple[int, int, int]) -> threading.Lock:
    with _registry_lock:
        lock = _month_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _month_locks[key] = lock
        return lock


@contextmanager
def month_lock(user_id: int, year: int, month: int) -> Iterator[None]:
    """Serialize read-aggregate-write sequences for one user's month.

    Holders must commit before leaving the block; otherwise a second writer
    can aggregate a ledger that does not yet contain the first one's entry.
    """
    lock = _lock_for((user_id, year, month))
    with lock:
        yield
