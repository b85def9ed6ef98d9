import logging

import pytest
from conftest import FakeDatapoints, make_event
from prometheus_client import CollectorRegistry

from knx_exporter.core.config import ExporterSettings
from knx_exporter.core.contracts import MetricType
from knx_exporter.core.datapoints import XknxDatapointRegistry
from knx_exporter.core.metrics import MetricsRegistry
from knx_exporter.core.processor import EventProcessor
from knx_exporter.core.store import SnapshotStore


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def processor(
    settings: ExporterSettings, datapoints: FakeDatapoints, registry: CollectorRegistry
) -> EventProcessor:
    metrics = MetricsRegistry(settings, SnapshotStore())
    metrics.register(registry)
    return EventProcessor(settings, datapoints, metrics.message_counter)


def _messages(registry: CollectorRegistry, processed: str) -> float:
    value = registry.get_sample_value(
        "knx_messages_total", {"direction": "received", "processed": processed}
    )
    return value or 0.0


def test_boolean_telegram_becomes_gauge_snapshot(
    processor: EventProcessor, registry: CollectorRegistry
) -> None:
    snapshot = processor.process(make_event("0/0/1", b"\x01"))

    assert snapshot is not None
    assert snapshot.name == "prefix_door_open"
    assert snapshot.value == 1.0
    assert snapshot.metric_type is MetricType.GAUGE
    assert _messages(registry, "false") == 1
    assert _messages(registry, "true") == 1


def test_false_boolean_is_zero(processor: EventProcessor) -> None:
    snapshot = processor.process(make_event("0/0/1", b"\x00"))

    assert snapshot is not None
    assert snapshot.value == 0.0


def test_unsigned_telegram_becomes_counter_snapshot(processor: EventProcessor) -> None:
    snapshot = processor.process(make_event("0/0/2", bytes([42])))

    assert snapshot is not None
    assert snapshot.name == "prefix_switch_count"
    assert snapshot.value == 42.0
    assert snapshot.metric_type is MetricType.COUNTER


def test_signed_and_float_values_are_normalised(processor: EventProcessor) -> None:
    signed = processor.process(make_event("0/0/4", b"\xfe"))
    floating = processor.process(make_event("0/0/3", (2150).to_bytes(2, "big")))

    assert signed is not None and signed.value == -2.0
    assert floating is not None and floating.value == 21.5


def test_unmapped_address_is_ignored(
    processor: EventProcessor, datapoints: FakeDatapoints, registry: CollectorRegistry
) -> None:
    assert processor.process(make_event("5/5/5", b"\x01")) is None

    assert datapoints.requested == []
    assert _messages(registry, "false") == 1
    assert _messages(registry, "true") == 0


def test_unknown_dpt_is_dropped_with_warning(
    processor: EventProcessor, registry: CollectorRegistry, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        assert processor.process(make_event("0/0/8", b"\x01")) is None

    assert "999.999" in caplog.text
    assert _messages(registry, "true") == 0


def test_malformed_payload_is_dropped_with_warning(
    processor: EventProcessor, registry: CollectorRegistry, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        assert processor.process(make_event("0/0/3", b"\x01")) is None

    assert "Can not unpack" in caplog.text
    assert _messages(registry, "false") == 1
    assert _messages(registry, "true") == 0


def test_non_numeric_value_is_dropped(
    processor: EventProcessor, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        assert processor.process(make_event("0/0/5", b"abc")) is None

    assert "numeric" in caplog.text


def test_unexported_address_still_produces_snapshot(processor: EventProcessor) -> None:
    snapshot = processor.process(make_event("0/0/6", bytes([7])))

    assert snapshot is not None
    assert snapshot.name == "prefix_hidden_value"


def test_unknown_metric_kind_yields_snapshot_without_type(processor: EventProcessor) -> None:
    snapshot = processor.process(make_event("0/0/7", bytes([3])))

    assert snapshot is not None
    assert snapshot.metric_type is None


def test_xknx_transcoders_decode_door_and_switch_telegrams(settings: ExporterSettings) -> None:
    metrics = MetricsRegistry(settings, SnapshotStore())
    real = EventProcessor(settings, XknxDatapointRegistry(), metrics.message_counter)

    door = real.process(make_event("0/0/1", b"\x01"))
    switch = real.process(make_event("0/0/2", bytes([42])))
    offset = real.process(make_event("0/0/4", bytes([0xFE])))

    assert door is not None and (door.name, door.value) == ("prefix_door_open", 1.0)
    assert switch is not None and (switch.name, switch.value) == ("prefix_switch_count", 42.0)
    assert offset is not None and offset.value == -2.0
