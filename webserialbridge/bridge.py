"""Bridge host: one session table shared by every attached sandbox."""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType

from .config.settings import RuntimeConfig
from .host.dispatcher import HostDispatcher
from .host.drain import DrainLoop, SandboxChannel
from .host.sessions import PortSessionTable
from .transport import DeviceFactory, create_device_factory

logger = logging.getLogger("webserialbridge.bridge")


class BridgeHost:
    """Owns the port sessions and runs one drain loop per attached sandbox.

    Usage::

        async with BridgeHost(config) as host:
            context = SandboxContext("page")
            host.attach(context)
            ...
            context.close()
    """

    def __init__(self, config: RuntimeConfig, device_factory: DeviceFactory | None = None) -> None:
        self.config = config
        self.device_factory = device_factory or create_device_factory(config)
        self.sessions = PortSessionTable()
        self.dispatcher = HostDispatcher(config, self.device_factory, self.sessions)
        self._loops: dict[asyncio.Task[None], DrainLoop] = {}

    @property
    def drain_loops(self) -> list[DrainLoop]:
        return list(self._loops.values())

    def attach(self, channel: SandboxChannel) -> asyncio.Task[None]:
        """Start draining *channel*; the task ends when the sandbox closes."""
        loop = DrainLoop(channel, self.dispatcher, dispatch_mode=self.config.dispatch_mode)
        task = asyncio.create_task(loop.run(), name=f"webserialbridge-drain-{channel.name}")
        self._loops[task] = loop
        task.add_done_callback(self._on_loop_done)
        logger.info("Attached sandbox %s", channel.name)
        return task

    def _on_loop_done(self, task: asyncio.Task[None]) -> None:
        self._loops.pop(task, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Drain loop %s failed: %s", task.get_name(), exc, exc_info=exc)

    async def close(self) -> None:
        """Stop every drain loop and release every open device."""
        tasks = list(self._loops)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.sessions.close_all()
        logger.info("Bridge host closed")

    async def __aenter__(self) -> BridgeHost:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["BridgeHost"]
