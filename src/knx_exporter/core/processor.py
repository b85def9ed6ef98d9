"""
Turn inbound group telegrams into metric snapshots.

Every failure is resolved here: unmapped addresses are ignored, unknown DPTs and
undecodable payloads are dropped with a warning. The caller only ever sees a
snapshot or None.
"""

from __future__ import annotations

import logging

from prometheus_client import Counter

from ..logs import TRACE
from .config import ExporterSettings
from .contracts import DatapointRegistry, GroupEvent, MetricSnapshot
from .datapoints import DecodeError, UnsupportedValueError, to_float

logger = logging.getLogger(__name__)


class EventProcessor:
    """Resolve, decode and normalise one telegram at a time."""

    def __init__(
        self,
        settings: ExporterSettings,
        datapoints: DatapointRegistry,
        message_counter: Counter,
    ) -> None:
        self._settings = settings
        self._datapoints = datapoints
        self._messages = message_counter

    def process(self, event: GroupEvent) -> MetricSnapshot | None:
        self._messages.labels(direction="received", processed="false").inc()
        address_config = self._settings.lookup(event.destination)
        if address_config is None:
            logger.log(
                TRACE,
                "Got ignored %s telegram from %s for %s.",
                event.command,
                event.source,
                event.destination,
            )
            return None

        datapoint = self._datapoints.produce(address_config.dpt)
        if datapoint is None:
            logger.warning(
                'Can not find dpt description for "%s" to unpack %s telegram from %s for %s.',
                address_config.dpt,
                event.command,
                event.source,
                event.destination,
            )
            return None

        try:
            value = datapoint.unpack(event.data)
        except DecodeError as exc:
            logger.warning(
                "Can not unpack data from %s for %s: %s", event.source, event.destination, exc
            )
            return None

        try:
            number = to_float(value)
        except UnsupportedValueError as exc:
            logger.warning("Dropping telegram for %s: %s", event.destination, exc)
            return None

        metric_name = self._settings.name_for(address_config)
        logger.log(
            TRACE,
            "Processed value %s for %s on group address %s",
            value,
            metric_name,
            event.destination,
        )
        snapshot = MetricSnapshot(
            name=metric_name,
            value=number,
            metric_type=address_config.kind,
        )
        self._messages.labels(direction="received", processed="true").inc()
        return snapshot


__all__ = ["EventProcessor"]
