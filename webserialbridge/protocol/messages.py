"""Wire messages exchanged between a sandbox context and the host.

Every value that crosses the boundary is one of the structs below, encoded as
JSON by msgspec. Keys are camelCase on the wire to match the Web Serial names
used by client code.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Final

import msgspec


class Method(StrEnum):
    """Fixed method set served by the host dispatcher."""

    REQUEST_PORT = "requestPort"
    LIST_PORTS = "listPorts"
    OPEN_PORT = "openPort"
    READ_PORT = "readPort"
    WRITE_PORT = "writePort"
    CLOSE_PORT = "closePort"
    SET_SIGNALS = "setSignals"


PORT_METHODS: Final[frozenset[str]] = frozenset(
    {
        Method.OPEN_PORT,
        Method.READ_PORT,
        Method.WRITE_PORT,
        Method.CLOSE_PORT,
        Method.SET_SIGNALS,
    }
)

ByteValue = Annotated[int, msgspec.Meta(ge=0, le=255)]
ByteList = list[ByteValue]


class Call(msgspec.Struct, rename="camel", frozen=True):
    """One polyfilled operation, produced by the sandbox and consumed once by the host."""

    call_id: str
    method: str
    args: list[Any] = []

    @property
    def port_id(self) -> str | None:
        """PortId named by the call, if the method operates on a port."""
        if self.method in PORT_METHODS and self.args and isinstance(self.args[0], str):
            return self.args[0]
        return None


class Ok(msgspec.Struct, tag_field="status", tag="ok", frozen=True):
    value: Any = None


class Fault(msgspec.Struct, tag_field="status", tag="fault", rename="camel", frozen=True):
    error: str
    message: str
    port_id: str | None = None


Outcome = Ok | Fault


class Response(msgspec.Struct, tag_field="type", tag="response", rename="camel", frozen=True):
    call_id: str
    outcome: Outcome


class Delivery(msgspec.Struct, tag_field="type", tag="delivery", rename="camel", frozen=True):
    """One coalesced chunk of inbound bytes for a port."""

    port_id: str
    data: bytes


HostMessage = Response | Delivery


class SerialPortFilter(msgspec.Struct, rename="camel", omit_defaults=True):
    """One entry of ``requestPort({filters})``.

    Bluetooth service class ids may be a UUID string or a 16-bit alias.
    Unknown keys are ignored.
    """

    usb_vendor_id: int | None = None
    usb_product_id: int | None = None
    bluetooth_service_class_id: str | int | None = None


class PortRequestOptions(msgspec.Struct, rename="camel", omit_defaults=True):
    filters: list[SerialPortFilter] = []
    allowed_bluetooth_service_class_ids: list[str | int] = []


class SerialOptions(msgspec.Struct, rename="camel"):
    """Subset of the Web Serial ``SerialOptions`` dictionary.

    Only ``baudRate`` is honoured; the line is always 8N1. The remaining keys
    are accepted so unmodified client code can pass them.
    """

    baud_rate: Annotated[int, msgspec.Meta(gt=0)]
    data_bits: int | None = None
    stop_bits: int | None = None
    parity: str | None = None
    buffer_size: int | None = None
    flow_control: str | None = None


class SerialOutputSignals(msgspec.Struct, rename="camel"):
    data_terminal_ready: bool | None = None
    request_to_send: bool | None = None
    brk: bool | None = msgspec.field(default=None, name="break")


_encoder = msgspec.json.Encoder()
_call_decoder = msgspec.json.Decoder(Call)
_host_decoder = msgspec.json.Decoder(HostMessage)


def encode_call(call: Call) -> bytes:
    return _encoder.encode(call)


def decode_call(payload: bytes) -> Call:
    return _call_decoder.decode(payload)


def encode_host_message(message: HostMessage) -> bytes:
    return _encoder.encode(message)


def decode_host_message(payload: bytes) -> HostMessage:
    return _host_decoder.decode(payload)


__all__ = [
    "ByteList",
    "Call",
    "Delivery",
    "Fault",
    "HostMessage",
    "Method",
    "Ok",
    "Outcome",
    "PORT_METHODS",
    "PortRequestOptions",
    "Response",
    "SerialOptions",
    "SerialOutputSignals",
    "SerialPortFilter",
    "decode_call",
    "decode_host_message",
    "encode_call",
    "encode_host_message",
]
