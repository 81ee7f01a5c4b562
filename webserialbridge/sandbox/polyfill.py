"""Web Serial compatible objects backed by the sandbox call queue.

Client code written for ``navigator.serial`` uses ``Serial`` and ``SerialPort``
with the same shape, in snake_case:

    serial = Serial(context)
    port = await serial.request_port()
    await port.open({"baudRate": 115200})
    await port.writable.write(b"ping")
    chunk = await port.readable.read()

Host faults are raised here as the matching ``BridgeError`` subclass.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import msgspec

from ..const import USB_PRODUCT_ID, USB_VENDOR_ID
from ..errors import error_for_code
from ..protocol.messages import (
    Fault,
    Method,
    Outcome,
    PortRequestOptions,
    SerialOptions,
    SerialOutputSignals,
)
from .context import SandboxContext
from .streams import SerialPortReader, SerialPortWriter

logger = logging.getLogger("webserialbridge.polyfill")


def _unwrap(outcome: Outcome) -> Any:
    if isinstance(outcome, Fault):
        raise error_for_code(outcome.error, outcome.message, outcome.port_id)
    return outcome.value


def _to_wire(value: msgspec.Struct | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(value, msgspec.Struct):
        return msgspec.to_builtins(value)
    return dict(value)


class SerialPort:
    """One port id as seen by client code."""

    vendor_id = USB_VENDOR_ID
    product_id = USB_PRODUCT_ID

    def __init__(self, context: SandboxContext, port_id: str) -> None:
        self._context = context
        self._id = port_id
        self._active = False
        self._reader: SerialPortReader | None = None
        self._writer: SerialPortWriter | None = None
        # Chunks delivered while no reader is attached.
        self._backlog: list[bytes] = []

    def __repr__(self) -> str:
        return f"SerialPort({self._id!r}, active={self._active})"

    @property
    def id(self) -> str:
        return self._id

    @property
    def active(self) -> bool:
        return self._active

    def get_info(self) -> dict[str, int]:
        return {"usbVendorId": self.vendor_id, "usbProductId": self.product_id}

    async def open(self, options: SerialOptions | Mapping[str, Any]) -> None:
        _unwrap(await self._context.call(Method.OPEN_PORT, self._id, _to_wire(options)))
        # readPort flushes buffered bytes straight away, so listen first.
        self._backlog.clear()
        self._context.register_delivery(self._id, self._on_data)
        try:
            _unwrap(await self._context.call(Method.READ_PORT, self._id))
        except BaseException:
            self._context.unregister_delivery(self._id, self._on_data)
            raise
        self._active = True

    def _on_data(self, data: bytes) -> None:
        if self._reader is not None:
            self._reader.push(data)
        else:
            self._backlog.append(data)

    @property
    def readable(self) -> SerialPortReader | None:
        if not self._active:
            return None
        if self._reader is None:
            reader = SerialPortReader(self._release_stream)
            for chunk in self._backlog:
                reader.push(chunk)
            self._backlog.clear()
            self._reader = reader
        return self._reader

    @property
    def writable(self) -> SerialPortWriter | None:
        if not self._active:
            return None
        if self._writer is None:
            self._writer = SerialPortWriter(self._write, self._release_stream)
        return self._writer

    async def _write(self, data: bytes) -> None:
        _unwrap(await self._context.call(Method.WRITE_PORT, self._id, list(data)))

    def _release_stream(self, stream: object) -> None:
        if stream is self._reader:
            self._reader = None
        elif stream is self._writer:
            self._writer = None

    async def close(self) -> None:
        outcome = await self._context.call(Method.CLOSE_PORT, self._id)
        self._active = False
        self._context.unregister_delivery(self._id, self._on_data)
        self._backlog.clear()
        if self._reader is not None:
            self._reader.finish()
            self._reader = None
        if self._writer is not None:
            self._writer.release()
            self._writer = None
        _unwrap(outcome)

    async def set_signals(self, signals: SerialOutputSignals | Mapping[str, Any]) -> None:
        _unwrap(await self._context.call(Method.SET_SIGNALS, self._id, _to_wire(signals)))

    def add_event_listener(self, *args: Any, **kwargs: Any) -> None:
        """Accepted for compatibility; connect/disconnect events never fire."""


class Serial:
    """Stand-in for ``navigator.serial`` inside one sandbox."""

    def __init__(self, context: SandboxContext) -> None:
        self._context = context

    async def request_port(self, options: PortRequestOptions | Mapping[str, Any] | None = None) -> SerialPort:
        args = () if options is None else (_to_wire(options),)
        port_id = _unwrap(await self._context.call(Method.REQUEST_PORT, *args))
        logger.debug("Sandbox %s received port %s", self._context.name, port_id)
        return SerialPort(self._context, port_id)

    async def get_ports(self) -> list[SerialPort]:
        port_ids = _unwrap(await self._context.call(Method.LIST_PORTS))
        return [SerialPort(self._context, port_id) for port_id in port_ids]

    def add_event_listener(self, *args: Any, **kwargs: Any) -> None:
        """Accepted for compatibility; connect/disconnect events never fire."""


__all__ = ["Serial", "SerialPort"]
