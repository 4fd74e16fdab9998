"""Per-dataset locks serializing training within one process."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class DatasetLockRegistry:
    """Thread-safe registry handing out one lock per dataset id.

    Entries are reference counted and dropped once no caller holds or waits
    on them, so the registry does not grow with the number of datasets.
    """

    def __init__(self) -> None:
        self._locks: dict[int, tuple[threading.Lock, int]] = {}
        self._guard = threading.Lock()

    def _acquire_entry(self, dataset_id: int) -> threading.Lock:
        with self._guard:
            lock, users = self._locks.get(dataset_id, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[dataset_id] = (lock, users + 1)
            return lock

    def _release_entry(self, dataset_id: int) -> None:
        with self._guard:
            lock, users = self._locks[dataset_id]
            if users <= 1:
                self._locks.pop(dataset_id, None)
            else:
                self._locks[dataset_id] = (lock, users - 1)

    @contextmanager
    def hold(self, dataset_id: int) -> Iterator[None]:
        lock = self._acquire_entry(dataset_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(dataset_id)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


__all__ = ["DatasetLockRegistry"]
