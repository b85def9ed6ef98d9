"""
Contracts and payload schemas shared by the ingestion pipeline.

Telegrams arrive from the bus as `GroupEvent` payloads, leave the processor as
`MetricSnapshot` payloads, and are read back by the metrics collectors. The
protocols at the bottom describe the two collaborators the core consumes: the
bus transport and the datapoint-type registry.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import AsyncIterator
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .datapoints import DatapointValue


class MetricType(str, Enum):
    """Prometheus metric kind exported for a group address."""

    COUNTER = "counter"
    GAUGE = "gauge"

    @classmethod
    def parse(cls, value: str | None) -> MetricType | None:
        """Resolve a configured kind case-insensitively; unknown kinds map to None."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class GroupEvent(BaseModel):
    """A single telegram observed on the bus for a group address."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(description="Individual address of the sending device.")
    destination: str = Field(description="Destination group address, e.g. 1/2/3.")
    command: str = Field(default="GroupValueWrite", description="APCI service name.")
    data: bytes = Field(default=b"", description="Raw payload bytes.")


class MetricSnapshot(BaseModel):
    """Latest decoded value for one metric name."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: float
    timestamp: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(tz=dt.UTC),
        description="Capture timestamp in UTC.",
    )
    metric_type: MetricType | None = Field(default=None)


class HealthStatus(BaseModel):
    """Structured health report for liveness probes."""

    model_config = ConfigDict(extra="allow", frozen=True)

    status: str = Field(description="Health classification such as healthy/error.")
    details: dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class BusClient(Protocol):
    """Capability interface the supervisor needs from a bus transport."""

    def inbound(self) -> AsyncIterator[GroupEvent]: ...

    async def close(self) -> None: ...


class Datapoint(Protocol):
    """A datapoint type able to unpack raw payload bytes."""

    def unpack(self, data: bytes) -> DatapointValue: ...


class DatapointRegistry(Protocol):
    """Lookup of datapoint types by configured identifier such as ``9.001``."""

    def produce(self, dpt_id: str) -> Datapoint | None: ...
