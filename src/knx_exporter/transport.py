"""
KNXnet/IP transports built on xknx.

The core only needs an async stream of group events and a way to close it. The
factory at the bottom picks tunnelling or routing from the configured
connection type and hides every xknx type behind the `BusClient` protocol.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from xknx import XKNX
from xknx.dpt import DPTArray, DPTBinary
from xknx.exceptions import XKNXException
from xknx.io import DEFAULT_MCAST_GRP, DEFAULT_MCAST_PORT, ConnectionConfig
from xknx.io import ConnectionType as XknxConnectionType
from xknx.telegram import GroupAddress, Telegram

from .core.config import ConfigError, ConnectionSettings, ConnectionType
from .core.contracts import BusClient, GroupEvent

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ConnectionSettings], Awaitable[BusClient]]


def parse_endpoint(endpoint: str, *, default_port: int = DEFAULT_MCAST_PORT) -> tuple[str, int]:
    """Split ``host[:port]`` into its parts."""
    host, separator, port_text = endpoint.strip().rpartition(":")
    if not separator:
        host, port_text = port_text, ""
    if not host:
        raise ConfigError(f"Invalid endpoint {endpoint!r}: missing host.")
    if not port_text:
        return host, default_port
    try:
        port = int(port_text)
    except ValueError as exc:
        raise ConfigError(f"Invalid endpoint {endpoint!r}: port must be numeric.") from exc
    if not 0 < port < 65536:
        raise ConfigError(f"Invalid endpoint {endpoint!r}: port out of range.")
    return host, port


def telegram_to_event(telegram: Telegram) -> GroupEvent | None:
    """Convert an xknx telegram for a group address into a `GroupEvent`."""
    if not isinstance(telegram.destination_address, GroupAddress):
        return None
    payload = telegram.payload
    value = getattr(payload, "value", None)
    if isinstance(value, DPTBinary):
        data = bytes([value.value])
    elif isinstance(value, DPTArray):
        data = bytes(value.value)
    else:
        data = b""
    return GroupEvent(
        source=str(telegram.source_address),
        destination=str(telegram.destination_address),
        command=type(payload).__name__,
        data=data,
    )


class XknxBusClient:
    """
    `BusClient` backed by a started xknx instance.

    xknx invokes telegram callbacks synchronously from its own consumer task and
    buffers unprocessed telegrams itself, so the handoff here never waits. With
    the default unbounded queue nothing is dropped; a bounded queue drops the
    newest telegram with a warning when full.
    """

    def __init__(self, xknx: XKNX, *, queue_size: int = 0) -> None:
        self._xknx = xknx
        self._queue: asyncio.Queue[GroupEvent | None] = asyncio.Queue(maxsize=queue_size)
        self._closed = False
        self.dropped_total = 0
        self._xknx.telegram_queue.register_telegram_received_cb(self._telegram_received)

    @classmethod
    async def connect(cls, connection_config: ConnectionConfig) -> XknxBusClient:
        xknx = XKNX(connection_config=connection_config)
        client = cls(xknx)
        try:
            await xknx.start()
        except (XKNXException, OSError) as exc:
            await xknx.stop()
            raise ConnectionError(f"Can not connect to KNX bus: {exc}") from exc
        return client

    def _telegram_received(self, telegram: Telegram) -> None:
        if self._closed:
            return
        event = telegram_to_event(telegram)
        if event is None:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped_total += 1
            logger.warning(
                "Inbound queue full; dropping %s telegram for %s.",
                event.command,
                event.destination,
            )

    async def inbound(self) -> AsyncIterator[GroupEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._xknx.stop()
        # A full bounded queue gives up its oldest telegrams so the end marker fits.
        while True:
            try:
                self._queue.put_nowait(None)
            except asyncio.QueueFull:
                self._queue.get_nowait()
            else:
                break


async def connect_tunnel(settings: ConnectionSettings) -> BusClient:
    host, port = parse_endpoint(settings.endpoint)
    logger.info("Connect to %s:%d using tunneling", host, port)
    return await XknxBusClient.connect(
        ConnectionConfig(
            connection_type=XknxConnectionType.TUNNELING,
            gateway_ip=host,
            gateway_port=port,
        )
    )


async def connect_router(settings: ConnectionSettings) -> BusClient:
    endpoint = settings.endpoint or DEFAULT_MCAST_GRP
    group, port = parse_endpoint(endpoint)
    logger.info("Connect to %s:%d using multicast routing", group, port)
    return await XknxBusClient.connect(
        ConnectionConfig(
            connection_type=XknxConnectionType.ROUTING,
            multicast_group=group,
            multicast_port=port,
        )
    )


TRANSPORTS: dict[ConnectionType, ClientFactory] = {
    ConnectionType.TUNNEL: connect_tunnel,
    ConnectionType.ROUTER: connect_router,
}


async def create_bus_client(settings: ConnectionSettings) -> BusClient:
    """Build the transport for the configured connection type."""
    try:
        factory = TRANSPORTS[ConnectionType(settings.type)]
    except (KeyError, ValueError) as exc:
        raise ConfigError("invalid connection type. must be either Tunnel or Router") from exc
    return await factory(settings)


__all__ = [
    "TRANSPORTS",
    "ClientFactory",
    "XknxBusClient",
    "create_bus_client",
    "parse_endpoint",
    "telegram_to_event",
]
