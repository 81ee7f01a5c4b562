"""Host-side implementation of the fixed port method set."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import msgspec

from ..config.settings import RuntimeConfig
from ..errors import AlreadyOpenError, InvalidCallError, PortNotOpenError
from ..protocol.messages import (
    ByteList,
    Method,
    PortRequestOptions,
    SerialOptions,
    SerialOutputSignals,
)
from ..transport.base import DeviceFactory, SerialDevice
from .coalescer import ReadCoalescer
from .sessions import PortSession, PortSessionTable

logger = logging.getLogger("webserialbridge.dispatcher")


class CallerLink(Protocol):
    """Host-side view of the sandbox that issued a call."""

    name: str

    def deliver(self, port_id: str, data: bytes) -> bool: ...


MethodHandler = Callable[..., Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class MethodEntry:
    handler: MethodHandler
    arg_types: tuple[Any, ...]
    required: int


class MethodRegistry:
    """Registry that maps method names to handlers and their argument types."""

    def __init__(self) -> None:
        self._methods: dict[str, MethodEntry] = {}

    def __contains__(self, method: object) -> bool:
        return method in self._methods

    def register(
        self,
        method: str,
        handler: MethodHandler,
        arg_types: tuple[Any, ...] = (),
        *,
        required: int | None = None,
    ) -> None:
        self._methods[str(method)] = MethodEntry(
            handler=handler,
            arg_types=arg_types,
            required=len(arg_types) if required is None else required,
        )

    def get(self, method: str) -> MethodEntry | None:
        return self._methods.get(method)


def _convert_args(method: str, entry: MethodEntry, args: Sequence[Any]) -> list[Any]:
    if not entry.required <= len(args) <= len(entry.arg_types):
        raise InvalidCallError(
            f"{method} expects {entry.required}..{len(entry.arg_types)} arguments, got {len(args)}"
        )
    converted: list[Any] = []
    for index, (value, arg_type) in enumerate(zip(args, entry.arg_types)):
        try:
            converted.append(msgspec.convert(value, arg_type))
        except msgspec.ValidationError as exc:
            raise InvalidCallError(f"{method} argument {index}: {exc}") from exc
    return converted


class HostDispatcher:
    """Execute port calls against the session table and the serial transport.

    Handlers raise ``ProtocolMisuseError`` subclasses for caller bugs and
    ``TransportError`` for device failures; the drain loop turns both into
    tagged results for the sandbox.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        device_factory: DeviceFactory,
        sessions: PortSessionTable | None = None,
    ) -> None:
        self.config = config
        self.sessions = sessions if sessions is not None else PortSessionTable()
        self._device_factory = device_factory
        self.registry = MethodRegistry()

        self.registry.register(Method.REQUEST_PORT, self.request_port, (PortRequestOptions | None,), required=0)
        self.registry.register(Method.LIST_PORTS, self.list_ports)
        self.registry.register(Method.OPEN_PORT, self.open_port, (str, SerialOptions))
        self.registry.register(Method.READ_PORT, self.read_port, (str,))
        self.registry.register(Method.WRITE_PORT, self.write_port, (str, ByteList))
        self.registry.register(Method.CLOSE_PORT, self.close_port, (str,))
        self.registry.register(Method.SET_SIGNALS, self.set_signals, (str, SerialOutputSignals))

    async def dispatch(self, caller: CallerLink, method: str, args: Sequence[Any]) -> Any:
        """Validate *args* for *method* and run its handler."""
        entry = self.registry.get(method)
        if entry is None:
            raise InvalidCallError(f"Unknown method: {method}")
        converted = _convert_args(method, entry, args)
        logger.debug("%s > %s%s", caller.name, method, tuple(args[:1]))
        return await entry.handler(caller, *converted)

    def _open_session(self, port_id: str, operation: str) -> PortSession:
        session = self.sessions.get(port_id)
        if not session.active:
            raise PortNotOpenError(port_id, operation)
        return session

    async def request_port(self, caller: CallerLink, options: PortRequestOptions | None = None) -> str:
        if options is not None and options.filters:
            logger.debug("Ignoring %d port filters from %s", len(options.filters), caller.name)
        session = self.sessions.allocate()
        logger.info(
            "Port %s requested by %s",
            session.port_id,
            caller.name,
            extra={"sandbox": caller.name, "port_id": session.port_id},
        )
        return session.port_id

    async def list_ports(self, caller: CallerLink) -> list[str]:
        return self.sessions.port_ids()

    async def open_port(self, caller: CallerLink, port_id: str, options: SerialOptions) -> None:
        session = self.sessions.get(port_id)
        if session.busy:
            raise AlreadyOpenError(port_id)

        session.begin_open()
        coalescer = ReadCoalescer(self.config.read_coalesce_window, session.flush)
        session.coalescer = coalescer
        try:
            device: SerialDevice = await self._device_factory(
                self.config.serial_port,
                options.baud_rate,
                session.on_device_data,
            )
        except BaseException:
            coalescer.close()
            session.coalescer = None
            session.open_failed()
            raise

        session.attach(device, coalescer)
        logger.info(
            "Port %s opened on %s at %d baud",
            port_id,
            device.path,
            options.baud_rate,
            extra={"sandbox": caller.name, "port_id": port_id},
        )

    async def read_port(self, caller: CallerLink, port_id: str) -> None:
        session = self._open_session(port_id, "read")
        session.set_delivery(caller.deliver)

    async def write_port(self, caller: CallerLink, port_id: str, data: list[int]) -> None:
        session = self._open_session(port_id, "write")
        device = session.device
        assert device is not None
        await device.write(bytes(data))

    async def set_signals(self, caller: CallerLink, port_id: str, signals: SerialOutputSignals) -> None:
        session = self._open_session(port_id, "setSignals")
        device = session.device
        assert device is not None
        await device.set_control_lines(
            dtr=signals.data_terminal_ready,
            rts=signals.request_to_send,
            brk=signals.brk,
        )

    async def close_port(self, caller: CallerLink, port_id: str) -> None:
        session = self._open_session(port_id, "close")
        device = session.detach()
        logger.info("Port %s closed by %s", port_id, caller.name, extra={"sandbox": caller.name, "port_id": port_id})
        if device is not None:
            await device.close()


__all__ = ["CallerLink", "HostDispatcher", "MethodRegistry", "MethodEntry"]
