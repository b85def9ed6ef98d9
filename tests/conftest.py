from __future__ import annotations

import asyncio
import textwrap
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest

from knx_exporter.core.config import ConfigService, ExporterSettings
from knx_exporter.core.contracts import GroupEvent
from knx_exporter.core.datapoints import (
    BoolValue,
    DatapointValue,
    DecodeError,
    FloatValue,
    RawValue,
    SignedIntValue,
    UnsignedIntValue,
)


def _write_yaml(path: Path, content: str) -> None:
    path.write_text(textwrap.dedent(content).strip() + "\n", encoding="utf-8")


class FakeDatapoint:
    def __init__(self, size: int, decode: Callable[[bytes], DatapointValue]) -> None:
        self._size = size
        self._decode = decode

    def unpack(self, data: bytes) -> DatapointValue:
        if len(data) != self._size:
            raise DecodeError(f"expected {self._size} bytes, got {len(data)}")
        return self._decode(data)


class FakeDatapoints:
    """In-memory registry with a handful of common DPTs."""

    def __init__(self) -> None:
        self.requested: list[str] = []
        self._types = {
            "1.001": FakeDatapoint(1, lambda data: BoolValue(bool(data[0] & 0x01))),
            "5.010": FakeDatapoint(1, lambda data: UnsignedIntValue(data[0])),
            "6.010": FakeDatapoint(
                1, lambda data: SignedIntValue(int.from_bytes(data, "big", signed=True))
            ),
            "9.001": FakeDatapoint(2, lambda data: FloatValue(int.from_bytes(data, "big") / 100)),
            "16.000": FakeDatapoint(3, lambda data: RawValue(data.decode("ascii"))),
        }

    def produce(self, dpt_id: str) -> FakeDatapoint | None:
        self.requested.append(dpt_id)
        return self._types.get(dpt_id)


class FakeBusClient:
    """Transport double fed from a queue; `close` ends the inbound stream."""

    def __init__(self, events: list[GroupEvent] | None = None) -> None:
        self._queue: asyncio.Queue[GroupEvent | None] = asyncio.Queue()
        for event in events or []:
            self._queue.put_nowait(event)
        self.closed = False

    async def push(self, event: GroupEvent) -> None:
        await self._queue.put(event)

    async def inbound(self) -> AsyncIterator[GroupEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)


def make_event(destination: str, data: bytes, *, source: str = "1.1.5") -> GroupEvent:
    return GroupEvent(source=source, destination=destination, command="GroupValueWrite", data=data)


@pytest.fixture
def sample_config_file(tmp_path: Path) -> Path:
    """
    Provide a temporary configuration file for tests.
    """

    config_file = tmp_path / "config.yaml"
    _write_yaml(
        config_file,
        """
        Connection:
          Type: "tunnel"
          Endpoint: "192.168.1.15:3671"
        MetricsPrefix: "prefix_"
        http:
          port: 9999
          serveHttp: false
        AddressConfigs:
          "0/0/1":
            Name: door_open
            DPT: "1.001"
            Export: true
            MetricType: gauge
            Comment: Front door contact
          "0/0/2":
            name: switch_count
            dpt: "5.010"
            export: true
            metric_type: COUNTER
            comment: Hallway switch pulses
          "0/0/3":
            name: outside_temperature
            dpt: "9.001"
            export: true
            metricType: gauge
            withTimestamp: true
          "0/0/4":
            name: heating_offset
            dpt: "6.010"
            export: true
            metricType: gauge
          "0/0/5":
            name: display_text
            dpt: "16.000"
            export: true
            metricType: gauge
          "0/0/6":
            name: hidden_value
            dpt: "5.010"
            export: false
            metricType: gauge
          "0/0/7":
            name: odd_kind
            dpt: "5.010"
            export: true
            metricType: histogram
          "0/0/8":
            name: unknown_dpt
            dpt: "999.999"
            export: true
            metricType: gauge
        """,
    )
    return config_file


@pytest.fixture
def settings(sample_config_file: Path) -> ExporterSettings:
    return ConfigService(config_file=sample_config_file).settings


@pytest.fixture
def datapoints() -> FakeDatapoints:
    return FakeDatapoints()
