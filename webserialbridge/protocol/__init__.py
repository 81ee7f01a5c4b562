"""Bridge wire protocol."""

from .messages import (
    Call,
    Delivery,
    Fault,
    HostMessage,
    Method,
    Ok,
    Outcome,
    Response,
    SerialOptions,
    SerialOutputSignals,
    decode_call,
    decode_host_message,
    encode_call,
    encode_host_message,
)

__all__ = [
    "Call",
    "Delivery",
    "Fault",
    "HostMessage",
    "Method",
    "Ok",
    "Outcome",
    "Response",
    "SerialOptions",
    "SerialOutputSignals",
    "decode_call",
    "decode_host_message",
    "encode_call",
    "encode_host_message",
]
