"""Simulated serial device that echoes written bytes back to the reader."""

from __future__ import annotations

import asyncio
import logging

from ..errors import TransportError
from .base import DataCallback

logger = logging.getLogger("webserialbridge.transport.loopback")


class LoopbackDevice:
    """In-memory device: every write is echoed as inbound data on the next loop turn."""

    def __init__(self, path: str, baudrate: int, on_data: DataCallback, *, echo: bool = True) -> None:
        self.path = path
        self.baudrate = baudrate
        self.echo = echo
        self.written = bytearray()
        self.control_lines: dict[str, bool] = {"dtr": False, "rts": False, "brk": False}
        self.fail_writes = False
        self.fail_signals = False
        self.fail_close = False
        self._on_data = on_data
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def inject(self, data: bytes) -> None:
        """Simulate bytes arriving from the device."""
        if self._open:
            self._on_data(bytes(data))

    async def write(self, data: bytes) -> None:
        if not self._open:
            raise TransportError(f"Write to closed device {self.path}")
        if self.fail_writes:
            raise TransportError(f"Write to {self.path} failed")
        self.written.extend(data)
        if self.echo:
            asyncio.get_running_loop().call_soon(self.inject, bytes(data))

    async def set_control_lines(
        self,
        *,
        dtr: bool | None = None,
        rts: bool | None = None,
        brk: bool | None = None,
    ) -> None:
        if not self._open or self.fail_signals:
            raise TransportError(f"Setting signals on {self.path} failed")
        for name, value in (("dtr", dtr), ("rts", rts), ("brk", brk)):
            if value is not None:
                self.control_lines[name] = value

    async def close(self) -> None:
        self._open = False
        if self.fail_close:
            raise TransportError(f"Closing {self.path} failed")


class LoopbackFactory:
    """Device factory producing ``LoopbackDevice`` instances.

    Keeps every device it opened so callers can inspect or drive them.
    """

    def __init__(self, *, echo: bool = True) -> None:
        self.echo = echo
        self.devices: list[LoopbackDevice] = []
        self.fail_next_open: str | None = None

    @property
    def opened(self) -> int:
        return len(self.devices)

    @property
    def last(self) -> LoopbackDevice:
        return self.devices[-1]

    async def __call__(self, path: str, baudrate: int, on_data: DataCallback) -> LoopbackDevice:
        if self.fail_next_open is not None:
            reason, self.fail_next_open = self.fail_next_open, None
            raise TransportError(f"Failed to open {path}: {reason}")
        device = LoopbackDevice(path, baudrate, on_data, echo=self.echo)
        self.devices.append(device)
        logger.debug("Loopback device %d opened for %s at %d baud", len(self.devices), path, baudrate)
        return device


__all__ = ["LoopbackDevice", "LoopbackFactory"]
