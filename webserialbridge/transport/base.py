"""Device interface shared by the serial transports."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol

DataCallback = Callable[[bytes], None]


class SerialDevice(Protocol):
    """An open serial device as seen by the host dispatcher.

    Implementations raise ``TransportError`` for every hardware failure.
    """

    path: str
    baudrate: int

    @property
    def is_open(self) -> bool: ...

    async def write(self, data: bytes) -> None: ...

    async def set_control_lines(
        self,
        *,
        dtr: bool | None = None,
        rts: bool | None = None,
        brk: bool | None = None,
    ) -> None: ...

    async def close(self) -> None: ...


DeviceFactory = Callable[[str, int, DataCallback], Awaitable[SerialDevice]]

__all__ = ["DataCallback", "DeviceFactory", "SerialDevice"]
