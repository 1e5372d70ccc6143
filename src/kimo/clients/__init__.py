"""Network clients."""

from kimo.clients.agent import AgentClient

__all__ = ["AgentClient"]
