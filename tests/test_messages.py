"""Tests for the wire messages exchanged with the sandbox."""

from __future__ import annotations

import json

import msgspec
import pytest

from webserialbridge.protocol.messages import (
    Call,
    Delivery,
    Fault,
    Method,
    Ok,
    Response,
    SerialOptions,
    SerialOutputSignals,
    decode_call,
    decode_host_message,
    encode_call,
    encode_host_message,
)


def test_call_uses_camel_case_keys() -> None:
    payload = encode_call(Call(call_id="c1", method=Method.OPEN_PORT, args=["p1", {"baudRate": 9600}]))
    assert json.loads(payload) == {
        "callId": "c1",
        "method": "openPort",
        "args": ["p1", {"baudRate": 9600}],
    }


def test_call_port_id_only_for_port_methods() -> None:
    assert Call(call_id="a", method=Method.WRITE_PORT, args=["p1", [1]]).port_id == "p1"
    assert Call(call_id="b", method=Method.REQUEST_PORT, args=[{"filters": []}]).port_id is None
    assert Call(call_id="c", method=Method.CLOSE_PORT, args=[]).port_id is None
    assert Call(call_id="d", method=Method.READ_PORT, args=[42]).port_id is None


def test_decode_call_defaults_args() -> None:
    call = decode_call(b'{"callId": "x", "method": "listPorts"}')
    assert call.args == []
    assert call.method == Method.LIST_PORTS


def test_decode_call_rejects_garbage() -> None:
    with pytest.raises(msgspec.DecodeError):
        decode_call(b"not json")
    with pytest.raises(msgspec.ValidationError):
        decode_call(b'{"method": "listPorts"}')


def test_response_outcome_is_tagged() -> None:
    ok = json.loads(encode_host_message(Response(call_id="c1", outcome=Ok("p1"))))
    assert ok == {"type": "response", "callId": "c1", "outcome": {"status": "ok", "value": "p1"}}

    fault = json.loads(
        encode_host_message(
            Response(call_id="c2", outcome=Fault(error="not_open", message="closed", port_id="p1"))
        )
    )
    assert fault["outcome"] == {
        "status": "fault",
        "error": "not_open",
        "message": "closed",
        "portId": "p1",
    }


def test_host_message_decoding_dispatches_on_type() -> None:
    delivery = decode_host_message(encode_host_message(Delivery(port_id="p1", data=b"\x00\xffhi")))
    assert isinstance(delivery, Delivery)
    assert delivery.data == b"\x00\xffhi"

    response = decode_host_message(b'{"type": "response", "callId": "c", "outcome": {"status": "fault", "error": "transport", "message": "boom"}}')
    assert isinstance(response, Response)
    assert isinstance(response.outcome, Fault)
    assert response.outcome.port_id is None


def test_serial_options_require_positive_baud_rate() -> None:
    options = msgspec.convert({"baudRate": 115200, "dataBits": 8}, SerialOptions)
    assert options.baud_rate == 115200
    assert options.data_bits == 8

    with pytest.raises(msgspec.ValidationError):
        msgspec.convert({"baudRate": 0}, SerialOptions)
    with pytest.raises(msgspec.ValidationError):
        msgspec.convert({}, SerialOptions)


def test_output_signals_map_break_keyword() -> None:
    signals = msgspec.convert({"break": True, "requestToSend": False}, SerialOutputSignals)
    assert signals.brk is True
    assert signals.request_to_send is False
    assert signals.data_terminal_ready is None
    assert msgspec.to_builtins(signals)["break"] is True
