"""Serial transport using pyserial-asyncio-fast with direct Protocol access.

The protocol hands every received chunk straight to the session's read buffer
without a StreamReader in between; writes go to the transport eagerly and wait
only while the transport reports it is paused.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, cast

import serial
import serial_asyncio_fast  # type: ignore

from ..const import SERIAL_DATA_BITS, SERIAL_PARITY, SERIAL_STOP_BITS
from ..errors import TransportError
from ..util import log_hexdump
from .base import DataCallback

logger = logging.getLogger("webserialbridge.transport")


class FlowControlMixin:
    """Implement asyncio flow control logic."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._paused = False
        self._drain_waiter: asyncio.Future[None] | None = None
        self._connection_lost = False

    def pause_writing(self) -> None:
        self._paused = True

    def resume_writing(self) -> None:
        self._paused = False
        if self._drain_waiter and not self._drain_waiter.done():
            self._drain_waiter.set_result(None)
            self._drain_waiter = None

    def connection_lost(self, exc: Exception | None) -> None:
        self._connection_lost = True
        if self._drain_waiter and not self._drain_waiter.done():
            if exc:
                self._drain_waiter.set_exception(exc)
            else:
                self._drain_waiter.set_result(None)
            self._drain_waiter = None

    async def drain_helper(self) -> None:
        if self._connection_lost:
            raise ConnectionResetError("Connection lost")
        if not self._paused:
            return
        if self._drain_waiter is None:
            self._drain_waiter = self._loop.create_future()
        await self._drain_waiter


class SerialPortProtocol(FlowControlMixin, asyncio.Protocol):
    """Forward inbound bytes of one open port to its read buffer."""

    def __init__(self, path: str, on_data: DataCallback, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__(loop)
        self.path = path
        self._on_data = on_data
        self.transport: asyncio.Transport | None = None
        self.connected_future: asyncio.Future[None] = loop.create_future()
        self.closed_future: asyncio.Future[None] = loop.create_future()

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = cast(asyncio.Transport, transport)
        logger.debug("Serial transport established for %s", self.path)
        if not self.connected_future.done():
            self.connected_future.set_result(None)

    def data_received(self, data: bytes) -> None:
        log_hexdump(logger, logging.DEBUG, f"DEVICE > {self.path}", data)
        self._on_data(bytes(data))

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            logger.warning("Serial connection to %s lost: %s", self.path, exc)
        else:
            logger.debug("Serial connection to %s closed", self.path)
        self.transport = None
        super().connection_lost(exc)
        if not self.connected_future.done():
            self.connected_future.set_exception(exc or ConnectionError("Closed"))
        if not self.closed_future.done():
            self.closed_future.set_result(None)


class SerialPortDevice:
    """An open OS serial device."""

    def __init__(self, path: str, baudrate: int, transport: Any, protocol: SerialPortProtocol) -> None:
        self.path = path
        self.baudrate = baudrate
        self._transport = transport
        self._protocol = protocol

    @property
    def is_open(self) -> bool:
        return self._protocol.transport is not None and not self._transport.is_closing()

    async def write(self, data: bytes) -> None:
        if not self.is_open:
            raise TransportError(f"Write to closed device {self.path}")
        log_hexdump(logger, logging.DEBUG, f"HOST > {self.path}", data)
        try:
            self._transport.write(data)
            await self._protocol.drain_helper()
        except (OSError, serial.SerialException) as exc:
            raise TransportError(f"Write to {self.path} failed: {exc}") from exc

    async def set_control_lines(
        self,
        *,
        dtr: bool | None = None,
        rts: bool | None = None,
        brk: bool | None = None,
    ) -> None:
        port = getattr(self._transport, "serial", None)
        if port is None or not self.is_open:
            raise TransportError(f"Set signals on closed device {self.path}")
        try:
            if dtr is not None:
                port.dtr = dtr
            if rts is not None:
                port.rts = rts
            if brk is not None:
                port.break_condition = brk
        except (OSError, serial.SerialException, ValueError) as exc:
            raise TransportError(f"Setting signals on {self.path} failed: {exc}") from exc
        logger.debug("Control lines on %s: dtr=%s rts=%s break=%s", self.path, dtr, rts, brk)

    async def close(self) -> None:
        if self._transport.is_closing() and self._protocol.closed_future.done():
            return
        try:
            self._transport.close()
            await self._protocol.closed_future
        except (OSError, serial.SerialException) as exc:
            raise TransportError(f"Closing {self.path} failed: {exc}") from exc


async def open_serial_device(path: str, baudrate: int, on_data: DataCallback) -> SerialPortDevice:
    """Open *path* at *baudrate* with the fixed 8N1 line configuration."""
    loop = asyncio.get_running_loop()
    protocol_factory = functools.partial(SerialPortProtocol, path, on_data, loop)

    logger.info("Opening %s at %d baud (8N1)", path, baudrate)
    try:
        transport, proto = await serial_asyncio_fast.create_serial_connection(
            loop,
            protocol_factory,
            path,
            baudrate=baudrate,
            bytesize=SERIAL_DATA_BITS,
            parity=SERIAL_PARITY,
            stopbits=SERIAL_STOP_BITS,
        )
        protocol = cast(SerialPortProtocol, proto)
        await protocol.connected_future
    except (OSError, serial.SerialException, ValueError) as exc:
        raise TransportError(f"Failed to open {path}: {exc}") from exc

    return SerialPortDevice(path, baudrate, transport, protocol)


__all__ = [
    "FlowControlMixin",
    "SerialPortDevice",
    "SerialPortProtocol",
    "open_serial_device",
]
