import gc
import threading

import locks
from locks import month_lock


def test_month_lock_serializes_writers_of_the_same_month():
    order = []
    entered = threading.Event()
    release = threading.Event()

    def holder():
        with month_lock(1, 2026, 3):
            entered.set()
            release.wait(timeout=5)
            order.append("holder")

    def waiter():
        with month_lock(1, 2026, 3):
            order.append("waiter")

    first = threading.Thread(target=holder)
    first.start()
    assert entered.wait(timeout=5)
    second = threading.Thread(target=waiter)
    second.start()
    second.join(timeout=0.1)
    assert order == []

    release.set()
    first.join(timeout=5)
    second.join(timeout=5)
    assert order == ["holder", "waiter"]


def test_other_months_and_users_do_not_block():
    with month_lock(1, 2026, 3):
        with month_lock(1, 2026, 4):
            with month_lock(2, 2026, 3):
                pass


def test_released_month_locks_are_not_retained():
    with month_lock(9, 2030, 1):
        assert (9, 2030, 1) in locks._month_locks
    gc.collect()
    assert (9, 2030, 1) not in locks._month_locks
