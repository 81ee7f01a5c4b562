"""Unprivileged side of the bridge: call queue and Web Serial polyfill."""

from .context import SandboxContext
from .polyfill import Serial, SerialPort
from .streams import SerialPortReader, SerialPortWriter

__all__ = [
    "SandboxContext",
    "Serial",
    "SerialPort",
    "SerialPortReader",
    "SerialPortWriter",
]
