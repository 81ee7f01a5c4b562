"""Privileged side of the bridge: sessions, dispatcher and drain loop."""

from .coalescer import ReadCoalescer
from .dispatcher import HostDispatcher, MethodRegistry
from .drain import DrainLoop, SandboxLink
from .sessions import PortSession, PortSessionTable

__all__ = [
    "DrainLoop",
    "HostDispatcher",
    "MethodRegistry",
    "PortSession",
    "PortSessionTable",
    "ReadCoalescer",
    "SandboxLink",
]
