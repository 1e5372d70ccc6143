# src/kimo/contracts/types.py
"""Records exchanged between sources, the correlation engine, and agents.

Snapshot records (SessionRecord, RoutingRecord, AgentProcessInfo) are
frozen once built. JoinedRecord is the only mutable record: the fan-out
attaches agent info to it exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Address:
    """A TCP endpoint as reported by one of the sources.

    ``host`` may be an IP literal or a hostname; compare addresses through
    AddressResolver.matches(), not ``==``, when hostnames are involved.
    """

    host: str
    port: int

    @classmethod
    def parse(cls, text: str) -> Address:
        """Parse ``host:port`` or ``[v6]:port``.

        Raises:
            ValueError: If the port is missing or not numeric.
        """
        host, sep, port = text.strip().rpartition(":")
        if not sep or not host:
            raise ValueError(f"address has no port: {text!r}")
        if not (port.isascii() and port.isdigit()):
            raise ValueError(f"address has invalid port: {text!r}")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        return cls(host=host, port=int(port))

    def to_dict(self) -> dict[str, Any]:
        return {"host": self.host, "port": self.port}

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class SessionRecord:
    """One row of the MySQL process list.

    ``time`` keeps the source representation; it is parsed when the
    response is assembled.
    """

    id: int
    user: str
    db: str | None
    command: str
    time: str
    state: str | None
    info: str | None
    address: Address


@dataclass(frozen=True, slots=True)
class RoutingRecord:
    """One relayed connection known to the TCP proxy.

    Attributes:
        client_out: Origin address (the client's side of the connection)
        proxy_out: Proxy-facing address, as seen by MySQL
    """

    client_out: Address
    proxy_out: Address


@dataclass(frozen=True, slots=True)
class AgentProcessInfo:
    """Process owning a local port on an agent host."""

    laddr: Address
    status: str
    pid: int
    name: str
    cmdline: list[str]
    hostname: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "laddr": self.laddr.to_dict(),
            "status": self.status,
            "pid": self.pid,
            "name": self.name,
            "cmdline": list(self.cmdline),
            "hostname": self.hostname,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentProcessInfo:
        """Build from the agent's JSON body.

        Raises:
            KeyError, TypeError, ValueError: If the body does not have the
                expected shape.
        """
        laddr = data["laddr"]
        cmdline = data["cmdline"]
        if cmdline is None:
            cmdline = []
        if not isinstance(cmdline, list):
            raise TypeError(f"cmdline must be a list, got {type(cmdline).__name__}")
        return cls(
            laddr=Address(host=str(laddr["host"]), port=int(laddr["port"])),
            status=str(data["status"]),
            pid=int(data["pid"]),
            name=str(data["name"]),
            cmdline=[str(part) for part in cmdline],
            hostname=str(data["hostname"]),
        )


@dataclass(slots=True)
class JoinedRecord:
    """A session paired with the routing record it rides on."""

    session: SessionRecord
    routing: RoutingRecord
    agent_info: AgentProcessInfo | None = None
    _attached: bool = field(default=False, repr=False, compare=False)

    def attach_agent_info(self, info: AgentProcessInfo | None) -> None:
        """Record the agent lookup outcome. ``None`` means unattributed.

        Raises:
            RuntimeError: If called more than once.
        """
        if self._attached:
            raise RuntimeError(f"agent info already attached for session {self.session.id}")
        self.agent_info = info
        self._attached = True


@dataclass(frozen=True, slots=True)
class ProcessRecord:
    """One row of the aggregator response."""

    id: int
    mysql_user: str
    db: str
    command: str
    time: int
    state: str
    info: str
    cmdline: list[str] | None
    pid: int | None
    host: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mysql_user": self.mysql_user,
            "db": self.db,
            "command": self.command,
            "time": self.time,
            "state": self.state,
            "info": self.info,
            "cmdline": None if self.cmdline is None else list(self.cmdline),
            "pid": self.pid,
            "host": self.host,
        }


@dataclass(frozen=True, slots=True)
class KimoResponse:
    """Aggregator response body."""

    processes: list[ProcessRecord]

    def to_dict(self) -> dict[str, Any]:
        return {"processes": [p.to_dict() for p in self.processes]}
