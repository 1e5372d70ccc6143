"""Per-host agent: resolve a local port to the process that owns it."""

from kimo.agent.inspector import ConnectionEntry, HostInspector, ProcessHandle, PsutilHostInspector
from kimo.agent.resolver import AgentPortResolver
from kimo.agent.server import KimoAgentServer, create_app

__all__ = [
    "AgentPortResolver",
    "ConnectionEntry",
    "HostInspector",
    "KimoAgentServer",
    "ProcessHandle",
    "PsutilHostInspector",
    "create_app",
]
