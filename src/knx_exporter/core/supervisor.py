"""
Run loop that pumps bus telegrams into the snapshot store.

The supervisor owns the transport, the processor and the writer task. It
connects once; a failure to connect becomes the terminal health error and is
not retried.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Awaitable, Callable

from prometheus_client import CollectorRegistry
from prometheus_client.registry import Collector

from .config import ConfigError, ConnectionSettings, ExporterSettings
from .contracts import BusClient, DatapointRegistry, HealthStatus
from .metrics import MetricsRegistry
from .processor import EventProcessor
from .store import SnapshotStore
from .writer import SnapshotWriter

logger = logging.getLogger(__name__)


class HealthState:
    """Terminal error that can be recorded exactly once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._error: BaseException | None = None

    @property
    def error(self) -> BaseException | None:
        return self._error

    def fail(self, error: BaseException) -> None:
        with self._lock:
            if self._error is not None:
                raise RuntimeError("Terminal health error already recorded.")
            self._error = error


class Supervisor:
    """Own the ingestion loop and the snapshot writer."""

    def __init__(
        self,
        settings: ExporterSettings,
        *,
        client_factory: Callable[[ConnectionSettings], Awaitable[BusClient]],
        datapoints: DatapointRegistry,
        store: SnapshotStore | None = None,
        queue_size: int = 1,
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory
        self.store = store if store is not None else SnapshotStore()
        self.metrics = MetricsRegistry(settings, self.store)
        self.processor = EventProcessor(settings, datapoints, self.metrics.message_counter)
        self._writer = SnapshotWriter(self.store, queue_size=queue_size)
        self._health = HealthState()
        self._client: BusClient | None = None
        self._closing = False

    def register_metrics(self, registry: CollectorRegistry) -> list[Collector]:
        return self.metrics.register(registry)

    @property
    def error(self) -> BaseException | None:
        return self._health.error

    @property
    def ready(self) -> bool:
        return self._client is not None and self._writer.running

    def health(self) -> HealthStatus:
        error = self._health.error
        if error is None:
            return HealthStatus(status="healthy")
        return HealthStatus(
            status="error",
            details={"error": str(error), "type": type(error).__name__},
        )

    async def run(self) -> None:
        """Connect, then process telegrams until the transport's stream ends."""
        try:
            self._client = await self._client_factory(self._settings.connection)
        except (ConfigError, ConnectionError) as exc:
            logger.error("Can not create KNX client: %s", exc)
            self._health.fail(exc)
            raise
        if self._closing:
            # close() was requested while the connection was being established.
            await self._client.close()

        await self._writer.start()
        logger.info("Waiting for incoming knx telegrams...")
        try:
            async for event in self._client.inbound():
                snapshot = self.processor.process(event)
                if snapshot is not None:
                    await self._writer.submit(snapshot)
        finally:
            await self._writer.stop()
        logger.info("Inbound telegram stream ended.")

    async def close(self) -> None:
        """Close the transport; `run` returns once the stream is drained."""
        self._closing = True
        if self._client is not None:
            await self._client.close()


__all__ = ["HealthState", "Supervisor"]
