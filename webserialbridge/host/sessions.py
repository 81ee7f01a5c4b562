"""Port session table owned by the host dispatcher."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any, Final

from transitions import Machine

from ..errors import TransportError, UnknownPortError
from ..transport.base import SerialDevice
from .coalescer import ReadCoalescer

logger = logging.getLogger("webserialbridge.sessions")

# FSM states for PortSession
SESSION_STATE_RESERVED: Final[str] = "reserved"
SESSION_STATE_OPENING: Final[str] = "opening"
SESSION_STATE_OPEN: Final[str] = "open"

DeliveryTarget = Callable[[str, bytes], bool]


class PortSession:
    """A logical port that may or may not have a device attached.

    ``device is None`` means the port is known but not open. The session walks
    ``reserved -> opening -> open -> reserved``; the id stays valid across any
    number of open/close cycles.
    """

    if TYPE_CHECKING:
        fsm_state: str

        def begin_open(self) -> bool: ...
        def opened(self) -> bool: ...
        def open_failed(self) -> bool: ...
        def release(self) -> bool: ...

    def __init__(self, port_id: str) -> None:
        self.port_id = port_id
        self.device: SerialDevice | None = None
        self.coalescer: ReadCoalescer | None = None
        self.delivery: DeliveryTarget | None = None
        self._machine: Any = Machine(
            model=self,
            states=[SESSION_STATE_RESERVED, SESSION_STATE_OPENING, SESSION_STATE_OPEN],
            initial=SESSION_STATE_RESERVED,
            model_attribute="fsm_state",
            auto_transitions=False,
        )
        self._machine.add_transition("begin_open", SESSION_STATE_RESERVED, SESSION_STATE_OPENING)
        self._machine.add_transition("opened", SESSION_STATE_OPENING, SESSION_STATE_OPEN)
        self._machine.add_transition("open_failed", SESSION_STATE_OPENING, SESSION_STATE_RESERVED)
        self._machine.add_transition("release", SESSION_STATE_OPEN, SESSION_STATE_RESERVED)

    def __repr__(self) -> str:
        return f"PortSession({self.port_id!r}, state={self.fsm_state!r})"

    @property
    def active(self) -> bool:
        return self.fsm_state == SESSION_STATE_OPEN

    @property
    def busy(self) -> bool:
        """True while a device is attached or being acquired."""
        return self.fsm_state in (SESSION_STATE_OPENING, SESSION_STATE_OPEN)

    def on_device_data(self, data: bytes) -> None:
        coalescer = self.coalescer
        if coalescer is not None:
            coalescer.feed(data)

    def flush(self, chunk: bytes) -> bool:
        target = self.delivery
        if target is None:
            return False
        return target(self.port_id, chunk)

    def attach(self, device: SerialDevice, coalescer: ReadCoalescer) -> None:
        self.device = device
        self.coalescer = coalescer
        self.opened()

    def set_delivery(self, target: DeliveryTarget) -> None:
        self.delivery = target
        if self.coalescer is not None:
            self.coalescer.flush_now()

    def detach(self) -> SerialDevice | None:
        """Drop the device and buffered bytes; return the device for closing."""
        device = self.device
        if self.coalescer is not None:
            self.coalescer.close()
        self.coalescer = None
        self.delivery = None
        self.device = None
        if self.active:
            self.release()
        return device


class PortSessionTable:
    """Mapping from PortId to session."""

    def __init__(self) -> None:
        self._sessions: dict[str, PortSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, port_id: object) -> bool:
        return port_id in self._sessions

    def __iter__(self) -> Iterator[PortSession]:
        return iter(list(self._sessions.values()))

    def allocate(self) -> PortSession:
        port_id = uuid.uuid4().hex
        while port_id in self._sessions:
            port_id = uuid.uuid4().hex
        session = PortSession(port_id)
        self._sessions[port_id] = session
        logger.debug("Allocated port %s", port_id)
        return session

    def get(self, port_id: str) -> PortSession:
        try:
            return self._sessions[port_id]
        except KeyError:
            raise UnknownPortError(port_id) from None

    def port_ids(self) -> list[str]:
        return list(self._sessions)

    async def close_all(self) -> None:
        """Release every attached device; used at host shutdown."""
        for session in self:
            device = session.detach()
            if device is None:
                continue
            try:
                await device.close()
            except TransportError as exc:
                logger.warning("Failed to close port %s during shutdown: %s", session.port_id, exc)


__all__ = [
    "DeliveryTarget",
    "PortSession",
    "PortSessionTable",
    "SESSION_STATE_OPEN",
    "SESSION_STATE_OPENING",
    "SESSION_STATE_RESERVED",
]
