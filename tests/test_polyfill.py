"""End-to-end tests: Web Serial polyfill -> call queue -> bridge host -> loopback device."""

from __future__ import annotations

import asyncio

import pytest

from webserialbridge.bridge import BridgeHost
from webserialbridge.config.settings import RuntimeConfig
from webserialbridge.errors import (
    AlreadyOpenError,
    PortNotOpenError,
    SandboxClosed,
    TransportError,
    UnknownPortError,
)
from webserialbridge.protocol.messages import (
    PortRequestOptions,
    SerialOptions,
    SerialOutputSignals,
    SerialPortFilter,
)
from webserialbridge.sandbox import SandboxContext, Serial, SerialPort
from webserialbridge.transport.loopback import LoopbackFactory

READ_TIMEOUT = 1.0


@pytest.mark.asyncio
async def test_echo_scenario(runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        serial = Serial(context)

        port = await serial.request_port()
        await port.open({"baudRate": 115200})
        assert port.active

        writer = port.writable
        reader = port.readable
        assert writer is not None and reader is not None
        assert port.writable is writer and port.readable is reader

        await writer.write(b"hello")
        chunk = await asyncio.wait_for(reader.read(), READ_TIMEOUT)
        assert chunk == b"hello"

        await port.close()
        assert not port.active
        assert port.readable is None and port.writable is None
        assert await reader.read() == b""

        context.close()


@pytest.mark.asyncio
async def test_port_identity_constants(runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        port = await Serial(context).request_port({"filters": [{"usbVendorId": 0x0403}]})

        assert port.vendor_id == 0x0403
        assert port.product_id == 0x6001
        assert port.get_info() == {"usbVendorId": 0x0403, "usbProductId": 0x6001}
        assert port.readable is None
        assert port.writable is None
        port.add_event_listener("disconnect", lambda event: None)

        context.close()


@pytest.mark.asyncio
async def test_get_ports_lists_every_known_port(runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        serial = Serial(context)

        first = await serial.request_port()
        second = await serial.request_port()
        await first.open(SerialOptions(baud_rate=9600))

        ports = await serial.get_ports()
        assert [port.id for port in ports] == [first.id, second.id]
        assert all(isinstance(port, SerialPort) for port in ports)

        context.close()


@pytest.mark.asyncio
async def test_protocol_errors_are_raised_as_their_classes(
    runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory
) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        serial = Serial(context)

        port = await serial.request_port()
        with pytest.raises(PortNotOpenError) as excinfo:
            await port.close()
        assert excinfo.value.port_id == port.id
        assert not port.active

        await port.open({"baudRate": 9600})
        with pytest.raises(AlreadyOpenError):
            await port.open({"baudRate": 9600})
        assert loopback_factory.opened == 1

        ghost = SerialPort(context, "ghost")
        with pytest.raises(UnknownPortError):
            await ghost.set_signals({"dataTerminalReady": True})

        context.close()


@pytest.mark.asyncio
async def test_transport_failures_surface_at_the_caller(
    runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory
) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        port = await Serial(context).request_port()

        loopback_factory.fail_next_open = "no such device"
        with pytest.raises(TransportError, match="no such device"):
            await port.open({"baudRate": 9600})
        assert not port.active

        await port.open({"baudRate": 9600})
        loopback_factory.last.fail_writes = True
        writer = port.writable
        assert writer is not None
        with pytest.raises(TransportError):
            await writer.write(b"x")

        loopback_factory.last.fail_close = True
        with pytest.raises(TransportError):
            await port.close()
        assert not port.active

        context.close()


@pytest.mark.asyncio
async def test_set_signals_reaches_device(runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        port = await Serial(context).request_port()
        await port.open({"baudRate": 57600})

        await port.set_signals(SerialOutputSignals(data_terminal_ready=False, request_to_send=True))
        await port.set_signals({"break": True})

        assert loopback_factory.last.control_lines == {"dtr": False, "rts": True, "brk": True}
        assert loopback_factory.last.baudrate == 57600

        context.close()


@pytest.mark.asyncio
async def test_two_ports_stream_concurrently(runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        serial = Serial(context)

        left = await serial.request_port()
        right = await serial.request_port()
        await left.open({"baudRate": 9600})
        left_device = loopback_factory.last
        await right.open({"baudRate": 9600})
        right_device = loopback_factory.last

        left_reader = left.readable
        right_reader = right.readable
        assert left_reader is not None and right_reader is not None

        left_device.inject(b"L1")
        right_device.inject(b"R1")

        assert await asyncio.wait_for(left_reader.read(), READ_TIMEOUT) == b"L1"
        assert await asyncio.wait_for(right_reader.read(), READ_TIMEOUT) == b"R1"

        context.close()


@pytest.mark.asyncio
async def test_reader_iteration_and_cancel(runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        port = await Serial(context).request_port()
        await port.open({"baudRate": 9600})

        reader = port.readable
        assert reader is not None
        loopback_factory.last.inject(b"one")
        await asyncio.sleep(runtime_config.read_coalesce_window * 5)
        loopback_factory.last.inject(b"two")

        received = []
        async for chunk in reader:
            received.append(chunk)
            if len(received) == 2:
                await reader.cancel()
        assert received == [b"one", b"two"]

        # Cancelling only drops the cached reader; a fresh one keeps receiving.
        fresh = port.readable
        assert fresh is not None and fresh is not reader
        loopback_factory.last.inject(b"three")
        assert await asyncio.wait_for(fresh.read(), READ_TIMEOUT) == b"three"

        context.close()


@pytest.mark.asyncio
async def test_bytes_before_first_reader_are_kept(
    runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory
) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        port = await Serial(context).request_port()
        await port.open({"baudRate": 9600})

        writer = port.writable
        assert writer is not None
        await writer.write(b"hi")
        await asyncio.sleep(runtime_config.read_coalesce_window * 5)

        reader = port.readable
        assert reader is not None
        assert await asyncio.wait_for(reader.read(), READ_TIMEOUT) == b"hi"

        context.close()


@pytest.mark.asyncio
async def test_bytes_between_readers_are_kept(runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        port = await Serial(context).request_port()
        await port.open({"baudRate": 9600})

        first = port.readable
        assert first is not None
        await first.cancel()

        loopback_factory.last.inject(b"gap")
        await asyncio.sleep(runtime_config.read_coalesce_window * 5)

        second = port.readable
        assert second is not None and second is not first
        assert await asyncio.wait_for(second.read(), READ_TIMEOUT) == b"gap"
        assert await first.read() == b""

        context.close()


@pytest.mark.asyncio
async def test_request_port_with_bluetooth_filter(
    runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory
) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        serial = Serial(context)

        port = await serial.request_port(
            {"filters": [{"bluetoothServiceClassId": "00001101-0000-1000-8000-00805f9b34fb"}]}
        )
        typed = await serial.request_port(
            PortRequestOptions(filters=[SerialPortFilter(bluetooth_service_class_id=0x1101)])
        )

        assert port.id != typed.id
        await port.open({"baudRate": 9600})
        assert port.active

        context.close()


@pytest.mark.asyncio
async def test_writer_close_releases_cached_writer(
    runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory
) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        port = await Serial(context).request_port()
        await port.open({"baudRate": 9600})

        writer = port.writable
        assert writer is not None
        await writer.write(bytearray(b"ab"))
        await writer.write([0x63])
        await writer.close()
        with pytest.raises(RuntimeError):
            await writer.write(b"d")

        assert port.writable is not writer
        assert bytes(loopback_factory.last.written) == b"abc"

        context.close()


@pytest.mark.asyncio
async def test_reopen_after_close_has_no_residual_bytes(
    runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory
) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        port = await Serial(context).request_port()

        await port.open({"baudRate": 9600})
        loopback_factory.last.inject(b"leftover")
        await port.close()

        await port.open({"baudRate": 9600})
        reader = port.readable
        assert reader is not None
        loopback_factory.last.inject(b"new")
        assert await asyncio.wait_for(reader.read(), READ_TIMEOUT) == b"new"

        context.close()


@pytest.mark.asyncio
async def test_sandbox_teardown_fails_pending_calls(runtime_config: RuntimeConfig) -> None:
    gate = asyncio.Event()
    inner = LoopbackFactory()

    async def stuck_factory(path, baudrate, on_data):
        await gate.wait()
        return await inner(path, baudrate, on_data)

    async with BridgeHost(runtime_config, stuck_factory) as host:
        context = SandboxContext("page")
        drain_task = host.attach(context)
        port = await Serial(context).request_port()

        opening = asyncio.create_task(port.open({"baudRate": 9600}))
        await asyncio.sleep(0.01)
        context.close()

        with pytest.raises(SandboxClosed, match="closed before the call completed"):
            await opening
        assert context.pending == 0
        await asyncio.wait_for(drain_task, READ_TIMEOUT)
        with pytest.raises(SandboxClosed):
            await Serial(context).request_port()


@pytest.mark.asyncio
async def test_bridge_host_closes_open_devices_on_exit(
    runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory
) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        context = SandboxContext("page")
        host.attach(context)
        port = await Serial(context).request_port()
        await port.open({"baudRate": 9600})
        assert len(host.drain_loops) == 1

    assert not loopback_factory.last.is_open
    assert host.drain_loops == []


@pytest.mark.asyncio
async def test_sandboxes_share_the_port_table(runtime_config: RuntimeConfig, loopback_factory: LoopbackFactory) -> None:
    async with BridgeHost(runtime_config, loopback_factory) as host:
        page = SandboxContext("page")
        worker = SandboxContext("worker")
        host.attach(page)
        host.attach(worker)

        port = await Serial(page).request_port()
        (seen,) = await Serial(worker).get_ports()
        assert seen.id == port.id

        await port.open({"baudRate": 9600})
        with pytest.raises(AlreadyOpenError):
            await seen.open({"baudRate": 9600})

        page.close()
        worker.close()
