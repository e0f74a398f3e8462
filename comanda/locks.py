# comanda/locks.py
"""
Per-record exclusive locks.

Mutations on one order never interleave; different orders proceed in
parallel. Cross-entity operations take the order lock before the table lock.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class KeyedLocks:
    """Lazily created ``threading.Lock`` per key."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}

    def _get(self, key: Hashable) -> threading.Lock:
        with self._lock:
            lk = self._locks.get(key)
            if lk is None:
                lk = self._locks[key] = threading.Lock()
            return lk

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lk = self._get(key)
        with lk:
            yield


_REGISTRY = KeyedLocks()


def order_lock(order_id: int):
    return _REGISTRY.hold(("order", int(order_id)))


def table_lock(table_id: int):
    return _REGISTRY.hold(("table", int(table_id)))
