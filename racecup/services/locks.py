"""Process-local locks that serialize leaderboard recomputes per cup.

Two recomputes of the same cup must not interleave their delete/insert of
leaderboard entries. Different cups get different locks and never block
each other. These locks only cover one process; across workers the row lock
taken on the leaderboard inside the transaction does the same job.

A cup's lock lives in the registry only while some thread holds or waits on
it, so ids that are never used again do not pile up.
"""
from contextlib import contextmanager
from threading import Lock, RLock

_REGISTRY_LOCK = Lock()
# cup_id -> [RLock, number of threads holding or waiting]
_CUP_LOCKS = {}


def _checkout(cup_id):
    with _REGISTRY_LOCK:
        slot = _CUP_LOCKS.get(cup_id)
        if slot is None:
            slot = [RLock(), 0]
            _CUP_LOCKS[cup_id] = slot
        slot[1] += 1
        return slot[0]


def _checkin(cup_id):
    with _REGISTRY_LOCK:
        slot = _CUP_LOCKS.get(cup_id)
        if slot is None:
            return
        slot[1] -= 1
        if slot[1] <= 0:
            del _CUP_LOCKS[cup_id]


def registered_cup_ids():
    with _REGISTRY_LOCK:
        return set(_CUP_LOCKS)


@contextmanager
def cup_lock(cup_id, timeout_s=None):
    """Hold the recompute lock of ``cup_id`` for the duration of the block.

    ``timeout_s`` of None (or negative) waits forever. Raises TimeoutError
    when the lock is not acquired in time.
    """
    lock = _checkout(cup_id)
    try:
        if timeout_s is None or timeout_s < 0:
            acquired = lock.acquire()
        else:
            acquired = lock.acquire(timeout=float(timeout_s))
        if not acquired:
            raise TimeoutError(f'Timed out waiting for leaderboard lock of cup {cup_id}')
        try:
            yield
        finally:
            lock.release()
    finally:
        _checkin(cup_id)
