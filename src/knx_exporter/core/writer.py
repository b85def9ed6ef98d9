"""
Asyncio task that applies snapshots to the store.

The processor hands snapshots over through a bounded queue. With the default
size of one, a slow writer throttles ingestion instead of buffering telegrams.
Once `stop` has been called the writer refuses new snapshots, so shutdown must
stop producers first.
"""

from __future__ import annotations

import asyncio
import logging

from .contracts import MetricSnapshot
from .store import SnapshotStore

logger = logging.getLogger(__name__)


class WriterClosedError(RuntimeError):
    """Raised when a snapshot is submitted after the writer was stopped."""


class SnapshotWriter:
    """Single consumer that owns all writes to a `SnapshotStore`."""

    def __init__(self, store: SnapshotStore, *, queue_size: int = 1) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self._store = store
        self._queue: asyncio.Queue[MetricSnapshot | None] = asyncio.Queue(maxsize=queue_size)
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self.applied_total = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Start the writer loop."""
        if self._closed:
            raise WriterClosedError("Snapshot writer cannot be restarted after stop.")
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="knx-exporter-writer")
            logger.debug("Snapshot writer started.")

    async def submit(self, snapshot: MetricSnapshot) -> None:
        """Hand a snapshot to the writer, waiting while the queue is full."""
        if self._closed:
            raise WriterClosedError(f"Snapshot writer is stopped; cannot apply {snapshot.name}.")
        await self._queue.put(snapshot)

    async def stop(self) -> None:
        """Refuse further snapshots, apply the queued ones and wait for the loop to end."""
        if self._closed:
            return
        self._closed = True
        if self._task is None:
            return
        await self._queue.put(None)
        await self._task
        self._task = None
        logger.debug("Snapshot writer stopped after %d snapshots.", self.applied_total)

    async def _run(self) -> None:
        while True:
            snapshot = await self._queue.get()
            try:
                if snapshot is None:
                    break
                self._store.apply(snapshot)
                self.applied_total += 1
            finally:
                self._queue.task_done()


__all__ = ["SnapshotWriter", "WriterClosedError"]
