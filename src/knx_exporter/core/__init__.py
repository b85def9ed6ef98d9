"""
Core ingestion pipeline: configuration, decoding, the snapshot store and the
supervisor that ties them together.
"""

from .config import ConfigError, ConfigService, ExporterSettings
from .contracts import GroupEvent, HealthStatus, MetricSnapshot, MetricType
from .metrics import MetricsRegistry, SnapshotCollector
from .processor import EventProcessor
from .store import SnapshotStore
from .supervisor import HealthState, Supervisor
from .writer import SnapshotWriter, WriterClosedError

__all__ = [
    "ConfigError",
    "ConfigService",
    "EventProcessor",
    "ExporterSettings",
    "GroupEvent",
    "HealthState",
    "HealthStatus",
    "MetricSnapshot",
    "MetricType",
    "MetricsRegistry",
    "SnapshotCollector",
    "SnapshotStore",
    "SnapshotWriter",
    "Supervisor",
    "WriterClosedError",
]
