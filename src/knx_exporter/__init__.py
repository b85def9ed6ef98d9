"""
KNX exporter

Bridges KNX group telegrams to Prometheus by keeping the latest decoded value
of every configured group address and exposing it at scrape time.
"""

__version__ = "0.1.0"

from knx_exporter.core import (
    EventProcessor,
    ExporterSettings,
    MetricSnapshot,
    MetricsRegistry,
    SnapshotStore,
    Supervisor,
)

__all__ = [
    "EventProcessor",
    "ExporterSettings",
    "MetricSnapshot",
    "MetricsRegistry",
    "SnapshotStore",
    "Supervisor",
]
