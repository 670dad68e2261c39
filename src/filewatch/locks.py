"""Locking primitives for coordinating registration and rebuilds."""

import threading
from contextlib import contextmanager
from typing import Iterator, List


class StripedLock:
    """
    A fixed set of locks selected by key hash.

    Operations on different directories usually land on different stripes
    and proceed in parallel; operations on the same directory always share one.
    """

    def __init__(self, stripes: int = 32):
        if stripes < 1:
            raise ValueError(f"stripes must be >= 1: {stripes}")
        self._locks: List[threading.RLock] = [threading.RLock() for _ in range(stripes)]

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, key: str) -> threading.RLock:
        return self._locks[hash(key) % len(self._locks)]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self.lock_for(key)
        with lock:
            yield


class RebuildGate:
    """
    Shared/exclusive gate.

    Registration and mode changes pass through in shared mode; a rebuild
    holds it exclusively. Waiting exclusive holders block new shared entries
    so a rebuild cannot starve. The exclusive side is reentrant for its
    owning thread, and that thread may also enter shared mode.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._shared = 0
        self._owner = None
        self._depth = 0
        self._waiting_exclusive = 0

    @contextmanager
    def shared(self) -> Iterator[None]:
        me = threading.get_ident()
        if self._owner == me:
            yield
            return

        with self._cond:
            while self._owner is not None or self._waiting_exclusive:
                self._cond.wait()
            self._shared += 1
        try:
            yield
        finally:
            with self._cond:
                self._shared -= 1
                if self._shared == 0:
                    self._cond.notify_all()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        me = threading.get_ident()
        with self._cond:
            if self._owner == me:
                self._depth += 1
            else:
                self._waiting_exclusive += 1
                try:
                    while self._owner is not None or self._shared:
                        self._cond.wait()
                finally:
                    self._waiting_exclusive -= 1
                self._owner = me
                self._depth = 1
        try:
            yield
        finally:
            with self._cond:
                self._depth -= 1
                if self._depth == 0:
                    self._owner = None
                    self._cond.notify_all()

    @property
    def locked_exclusive(self) -> bool:
        with self._cond:
            return self._owner is not None
