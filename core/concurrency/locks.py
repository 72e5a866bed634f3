"""
Evolv Concurrency — Keyed Locks and Versioned Snapshots
========================================================
Single-writer-per-aggregate discipline.

KeyedLockRegistry hands out one lock per key (order number, exchange
id) so a carrier webhook and a customer action on the same order are
serialized, while different orders proceed in parallel.

VersionedStore keeps frozen snapshots with an integer version.
save() is compare-and-set: a writer that computed its transition from
an older version is rejected with STALE_VERSION and must re-read.

Locks are held only to read prior state and to commit the result —
never across a gateway or carrier call.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Dict, Generic, Iterator, List, Optional, TypeVar

from core.commands.rejection import ReasonCode
from core.errors import ConflictError

logger = logging.getLogger("evolv.concurrency")

T = TypeVar("T")


class KeyedLockRegistry:
    """Lazily created re-entrant lock per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._lock_for(key)
        with lock:
            yield


class VersionedStore(Generic[T]):
    """
    In-memory snapshot store with optimistic version checks.

    Snapshots must be frozen dataclasses exposing `version: int`.
    """

    def __init__(self, key_of: Callable[[T], str], label: str) -> None:
        self._key_of = key_of
        self._label = label
        self._guard = threading.Lock()
        self._items: Dict[str, T] = {}

    def get(self, key: str) -> Optional[T]:
        with self._guard:
            return self._items.get(key)

    def add(self, item: T) -> T:
        key = self._key_of(item)
        with self._guard:
            if key in self._items:
                raise ConflictError.build(
                    ReasonCode.STALE_VERSION,
                    f"{self._label} '{key}' already exists.",
                    "VersionedStore.add",
                )
            stored = replace(item, version=1)
            self._items[key] = stored
            return stored

    def save(self, item: T, expected_version: int) -> T:
        key = self._key_of(item)
        with self._guard:
            current = self._items.get(key)
            current_version = getattr(current, "version", None)
            if current is None or current_version != expected_version:
                logger.warning(
                    "Stale write rejected for %s '%s': expected v%s, found v%s",
                    self._label, key, expected_version, current_version,
                )
                raise ConflictError.build(
                    ReasonCode.STALE_VERSION,
                    f"{self._label} '{key}' changed since it was read. Re-read and retry.",
                    "VersionedStore.save",
                )
            stored = replace(item, version=expected_version + 1)
            self._items[key] = stored
            return stored

    def all(self) -> List[T]:
        with self._guard:
            return list(self._items.values())

    def __len__(self) -> int:
        with self._guard:
            return len(self._items)
