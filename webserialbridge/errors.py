"""Error taxonomy shared by both sides of the bridge.

Two families travel through the result channel with different meaning:

* ``ProtocolMisuseError`` subclasses report a caller bug (unknown port, open on
  an open port, I/O on a closed port, malformed call). They are never retried.
* ``TransportError`` reports a hardware failure of the serial device.

Each class carries a stable ``code`` so a fault can cross the sandbox boundary
as plain data and be re-raised as the same class on the other side.
"""

from __future__ import annotations

from typing import ClassVar, Final


class BridgeError(Exception):
    """Base class for every error surfaced by the bridge."""

    code: ClassVar[str] = "bridge"
    port_id: str | None = None


class ProtocolMisuseError(BridgeError):
    """The caller used the port protocol incorrectly."""

    code: ClassVar[str] = "misuse"


class UnknownPortError(ProtocolMisuseError):
    code: ClassVar[str] = "unknown_port"

    def __init__(self, port_id: str) -> None:
        super().__init__(f"Unknown serial port: {port_id}")
        self.port_id = port_id


class AlreadyOpenError(ProtocolMisuseError):
    code: ClassVar[str] = "already_open"

    def __init__(self, port_id: str) -> None:
        super().__init__(f"Port already open: {port_id}")
        self.port_id = port_id


class PortNotOpenError(ProtocolMisuseError):
    code: ClassVar[str] = "not_open"

    def __init__(self, port_id: str, operation: str = "request") -> None:
        super().__init__(f"{operation} on port that is not open: {port_id}")
        self.port_id = port_id


class InvalidCallError(ProtocolMisuseError):
    code: ClassVar[str] = "invalid_call"


class TransportError(BridgeError):
    """The serial device failed to open, write, close or set signals."""

    code: ClassVar[str] = "transport"


class BridgeInternalError(BridgeError):
    """A host handler failed unexpectedly."""

    code: ClassVar[str] = "internal"


class SandboxClosed(Exception):
    """Raised when pulling from a sandbox context that has been torn down."""


class BoardStartupError(RuntimeError):
    """The simulated board did not expose its serial device in time."""


_ERRORS_BY_CODE: Final[dict[str, type[BridgeError]]] = {
    cls.code: cls
    for cls in (
        BridgeError,
        ProtocolMisuseError,
        UnknownPortError,
        AlreadyOpenError,
        PortNotOpenError,
        InvalidCallError,
        TransportError,
        BridgeInternalError,
    )
}


def error_for_code(code: str, message: str, port_id: str | None = None) -> BridgeError:
    """Rebuild the exception described by a fault received over the wire."""
    cls = _ERRORS_BY_CODE.get(code, BridgeError)
    exc = cls.__new__(cls)
    Exception.__init__(exc, message)
    exc.port_id = port_id
    return exc


__all__ = [
    "AlreadyOpenError",
    "BoardStartupError",
    "BridgeError",
    "BridgeInternalError",
    "InvalidCallError",
    "PortNotOpenError",
    "ProtocolMisuseError",
    "SandboxClosed",
    "TransportError",
    "UnknownPortError",
    "error_for_code",
]
