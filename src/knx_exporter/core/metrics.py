"""
Pull-based Prometheus collectors backed by the snapshot store.

Each exported group address becomes a collector that looks up its snapshot at
scrape time. A metric that was never observed reports NaN instead of zero.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from prometheus_client import CollectorRegistry, Counter
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from .config import ConfigError, ExporterSettings
from .contracts import MetricType
from .store import SnapshotStore

logger = logging.getLogger(__name__)


def build_message_counter() -> Counter:
    """Traffic counter keyed by direction and processing outcome."""
    return Counter(
        "messages",
        "Number of KNX telegrams seen by the exporter.",
        ["direction", "processed"],
        namespace="knx",
        registry=None,
    )


class SnapshotCollector(Collector):
    """Expose the latest snapshot for one metric name."""

    def __init__(
        self,
        name: str,
        kind: MetricType,
        documentation: str,
        store: SnapshotStore,
        *,
        with_timestamp: bool = False,
    ) -> None:
        self.name = name
        self.kind = kind
        self.documentation = documentation
        self._store = store
        self._with_timestamp = with_timestamp

    def describe(self) -> Iterable[Metric]:
        yield self._family()

    def value(self) -> float:
        """Latest value, or NaN while the address has not been observed."""
        return self._sample()[0]

    def collect(self) -> Iterable[Metric]:
        value, timestamp = self._sample()
        family = self._family()
        family.add_metric([], value, timestamp=timestamp)
        yield family

    def _sample(self) -> tuple[float, float | None]:
        snapshot = self._store.get(self.name)
        if snapshot is None:
            return math.nan, None
        if self._with_timestamp:
            return snapshot.value, snapshot.timestamp.timestamp()
        return snapshot.value, None

    def _family(self) -> Metric:
        if self.kind is MetricType.COUNTER:
            return CounterMetricFamily(self.name, self.documentation, labels=[])
        return GaugeMetricFamily(self.name, self.documentation, labels=[])


class MetricsRegistry:
    """Build and register the collectors described by the address configuration."""

    def __init__(
        self,
        settings: ExporterSettings,
        store: SnapshotStore,
        *,
        message_counter: Counter | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self.message_counter = (
            message_counter if message_counter is not None else build_message_counter()
        )

    def build_collectors(self) -> list[Collector]:
        collectors: list[Collector] = [self.message_counter]
        for address, address_config in self._settings.address_configs.items():
            if not address_config.export:
                continue
            name = self._settings.name_for(address_config)
            kind = address_config.kind
            if kind is None:
                logger.debug(
                    'Skipping metric "%s" for group address %s: unknown metric type %r.',
                    name,
                    address,
                    address_config.metric_type,
                )
                continue
            logger.debug('Export KNX metric "%s" for group address %s.', name, address)
            collectors.append(
                SnapshotCollector(
                    name,
                    kind,
                    f"Value of {address}\n{address_config.comment}",
                    self._store,
                    with_timestamp=address_config.with_timestamp,
                )
            )
        return collectors

    def register(self, registry: CollectorRegistry) -> list[Collector]:
        """Register every collector, failing on duplicated metric names."""
        collectors = self.build_collectors()
        for collector in collectors:
            try:
                registry.register(collector)
            except ValueError as exc:
                raise ConfigError(f"Can not register metric: {exc}") from exc
        logger.info("Registered %d KNX metrics.", len(collectors) - 1)
        return collectors


__all__ = ["MetricsRegistry", "SnapshotCollector", "build_message_counter"]
