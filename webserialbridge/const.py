"""Constants shared across the Web Serial bridge."""

from __future__ import annotations

from typing import Final

# Line configuration is fixed to the bootloader convention (8N1).
SERIAL_DATA_BITS: Final[int] = 8
SERIAL_PARITY: Final[str] = "N"
SERIAL_STOP_BITS: Final[int] = 1

# Identity reported to client code; chosen to pass FTDI device filters.
USB_VENDOR_ID: Final[int] = 0x0403
USB_PRODUCT_ID: Final[int] = 0x6001

DEFAULT_SERIAL_PORT: Final[str] = "/tmp/simavr-uart0"
DEFAULT_READ_COALESCE_WINDOW: Final[float] = 0.025
DEFAULT_DEBUG_LOGGING: Final[bool] = False
DEFAULT_BOARD_READY_TIMEOUT: Final[float] = 5.0
BOARD_READY_POLL_INTERVAL: Final[float] = 0.05
BOARD_STOP_TIMEOUT: Final[float] = 2.0

DISPATCH_MODE_PER_PORT: Final[str] = "per-port"
DISPATCH_MODE_UNORDERED: Final[str] = "unordered"
DISPATCH_MODES: Final[frozenset[str]] = frozenset({DISPATCH_MODE_PER_PORT, DISPATCH_MODE_UNORDERED})
DEFAULT_DISPATCH_MODE: Final[str] = DISPATCH_MODE_PER_PORT

TRANSPORT_SERIAL: Final[str] = "serial"
TRANSPORT_LOOPBACK: Final[str] = "loopback"
TRANSPORTS: Final[frozenset[str]] = frozenset({TRANSPORT_SERIAL, TRANSPORT_LOOPBACK})
DEFAULT_TRANSPORT: Final[str] = TRANSPORT_SERIAL

CONFIG_ENV_VAR: Final[str] = "WEBSERIALBRIDGE_CONFIG"
CONFIG_TABLE: Final[str] = "webserialbridge"
