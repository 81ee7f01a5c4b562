"""Transport layer for the Web Serial bridge."""

from __future__ import annotations

from ..config.settings import RuntimeConfig
from ..const import TRANSPORT_LOOPBACK
from .base import DataCallback, DeviceFactory, SerialDevice
from .loopback import LoopbackDevice, LoopbackFactory


def create_device_factory(config: RuntimeConfig) -> DeviceFactory:
    """Select the device factory named by ``config.transport``."""
    if config.transport == TRANSPORT_LOOPBACK:
        return LoopbackFactory()

    from .serial import open_serial_device

    return open_serial_device


__all__ = [
    "DataCallback",
    "DeviceFactory",
    "LoopbackDevice",
    "LoopbackFactory",
    "SerialDevice",
    "create_device_factory",
]
