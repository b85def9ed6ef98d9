"""
Latest-value cache shared between the snapshot writer and scrape-time readers.

The writer runs on the asyncio loop while Prometheus scrapes evaluate collectors
on HTTP worker threads, so the mapping is guarded by a thread-level
reader/writer lock rather than an asyncio primitive.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from .contracts import MetricSnapshot


class ReadWriteLock:
    """
    Many concurrent readers or a single writer.

    A waiting writer blocks new readers and only waits for the reads already in
    progress. Readers wait for at most the writes queued ahead of them.
    """

    def __init__(self) -> None:
        self._condition = threading.Condition(threading.Lock())
        self._readers = 0
        self._writers_waiting = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._condition:
            while self._writing or self._writers_waiting:
                self._condition.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._condition:
            self._writers_waiting += 1
            try:
                while self._writing or self._readers:
                    self._condition.wait()
            finally:
                self._writers_waiting -= 1
            self._writing = True
        try:
            yield
        finally:
            with self._condition:
                self._writing = False
                self._condition.notify_all()


class SnapshotStore:
    """Mapping of metric name to its most recently applied snapshot."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._snapshots: dict[str, MetricSnapshot] = {}

    def apply(self, snapshot: MetricSnapshot) -> None:
        """Replace any previous snapshot with the same name."""
        with self._lock.write():
            self._snapshots[snapshot.name] = snapshot

    def get(self, name: str) -> MetricSnapshot | None:
        """Return the latest snapshot, or None if the name was never applied."""
        with self._lock.read():
            return self._snapshots.get(name)

    def names(self) -> list[str]:
        with self._lock.read():
            return sorted(self._snapshots)

    def __contains__(self, name: object) -> bool:
        with self._lock.read():
            return name in self._snapshots

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._snapshots)


__all__ = ["ReadWriteLock", "SnapshotStore"]
