"""Host-side loop that consumes one sandbox's call queue."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import msgspec

from ..config.logging import call_context
from ..const import DEFAULT_DISPATCH_MODE, DISPATCH_MODE_PER_PORT
from ..errors import BridgeError, BridgeInternalError, SandboxClosed
from ..protocol.messages import (
    Call,
    Delivery,
    Fault,
    Ok,
    Outcome,
    Response,
    decode_call,
    encode_host_message,
)
from ..util import log_hexdump
from .dispatcher import HostDispatcher

logger = logging.getLogger("webserialbridge.drain")


class SandboxChannel(Protocol):
    """Host-facing half of a sandbox context."""

    name: str

    @property
    def closed(self) -> bool: ...

    async def pull_call(self) -> bytes: ...

    def post(self, payload: bytes) -> None: ...


class SandboxLink:
    """Posts responses and read deliveries back into one sandbox."""

    def __init__(self, channel: SandboxChannel) -> None:
        self._channel = channel
        self.name = channel.name

    @property
    def closed(self) -> bool:
        return self._channel.closed

    def deliver(self, port_id: str, data: bytes) -> bool:
        if self._channel.closed:
            return False
        log_hexdump(logger, logging.DEBUG, f"{self.name} < {port_id}", data)
        self._channel.post(encode_host_message(Delivery(port_id=port_id, data=data)))
        return True

    def respond(self, call_id: str, outcome: Outcome) -> None:
        if self._channel.closed:
            logger.debug("Dropping response %s for closed sandbox %s", call_id, self.name)
            return
        self._channel.post(encode_host_message(Response(call_id=call_id, outcome=outcome)))


class _PortLane:
    """Runs the calls for one PortId one after another."""

    def __init__(self, port_id: str, drain: DrainLoop) -> None:
        self.port_id = port_id
        self.queue: asyncio.Queue[Call] = asyncio.Queue()
        self.task = asyncio.create_task(self._run(drain), name=f"webserialbridge-lane-{port_id[:8]}")

    async def _run(self, drain: DrainLoop) -> None:
        while True:
            call = await self.queue.get()
            try:
                await drain.complete(call)
            except Exception:
                logger.exception("Port lane %s failed to answer %s", self.port_id, call.call_id)
            finally:
                self.queue.task_done()


class DrainLoop:
    """Pull calls from a sandbox, execute them and post the results back.

    The loop never waits for a call to finish before pulling the next one.
    With ``dispatch_mode="per-port"`` calls that name the same open-able port
    complete in pull order; everything else, and every call in ``unordered``
    mode, runs as its own task.
    """

    def __init__(
        self,
        channel: SandboxChannel,
        dispatcher: HostDispatcher,
        *,
        dispatch_mode: str = DEFAULT_DISPATCH_MODE,
    ) -> None:
        self.channel = channel
        self.dispatcher = dispatcher
        self.dispatch_mode = dispatch_mode
        self.link = SandboxLink(channel)
        self._lanes: dict[str, _PortLane] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks) + sum(lane.queue.qsize() for lane in self._lanes.values())

    async def run(self) -> None:
        logger.info("Drain loop started for %s (%s)", self.link.name, self.dispatch_mode)
        try:
            while True:
                try:
                    payload = await self.channel.pull_call()
                except SandboxClosed:
                    logger.info("Sandbox %s closed; drain loop stopping", self.link.name)
                    break
                try:
                    call = decode_call(payload)
                except msgspec.DecodeError as exc:
                    logger.warning("Dropping undecodable call from %s: %s", self.link.name, exc)
                    continue
                self._schedule(call)
        finally:
            await self._shutdown()

    def _schedule(self, call: Call) -> None:
        port_id = call.port_id
        if (
            self.dispatch_mode == DISPATCH_MODE_PER_PORT
            and port_id is not None
            and port_id in self.dispatcher.sessions
        ):
            lane = self._lanes.get(port_id)
            if lane is None:
                lane = self._lanes[port_id] = _PortLane(port_id, self)
            lane.queue.put_nowait(call)
            return

        task = asyncio.create_task(self.complete(call), name=f"webserialbridge-call-{call.method}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _log_context(self, call: Call) -> dict[str, str]:
        return call_context(self.link.name, call.call_id, call.method, call.port_id)

    async def complete(self, call: Call) -> None:
        outcome = await self.execute(call)
        self.link.respond(call.call_id, outcome)

    async def execute(self, call: Call) -> Outcome:
        """Run *call* and fold its result or failure into an ``Outcome``.

        Any exception other than cancellation becomes a ``Fault`` so that a
        broken handler never stalls the port lane it ran on.
        """
        try:
            value: Any = await self.dispatcher.dispatch(self.link, call.method, call.args)
        except BridgeError as exc:
            logger.info("%s failed: [%s] %s", call.method, exc.code, exc, extra=self._log_context(call))
            return Fault(error=exc.code, message=str(exc), port_id=exc.port_id or call.port_id)
        except Exception as exc:
            logger.critical(
                "Critical: Exception in handler for %s: %s",
                call.method,
                exc,
                exc_info=True,
                extra=self._log_context(call),
            )
            return Fault(
                error=BridgeInternalError.code,
                message=f"{type(exc).__name__}: {exc}",
                port_id=call.port_id,
            )
        logger.debug("%s completed", call.method, extra=self._log_context(call))
        return Ok(value)

    async def _shutdown(self) -> None:
        pending = [*self._tasks, *(lane.task for lane in self._lanes.values())]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        self._lanes.clear()


__all__ = ["DrainLoop", "SandboxChannel", "SandboxLink"]
