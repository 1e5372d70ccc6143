# src/kimo/agent/resolver.py
"""Map a local port to the process that owns it.

The connection table and the process table are sampled separately, so a
process may exit between the two snapshots. Such connections are skipped.
When several connections share the port, the first one whose process is
found wins; table order is whatever the OS reports and is not meaningful.
"""

from __future__ import annotations

import socket
from collections.abc import Sequence

import psutil
import structlog

from kimo.agent.inspector import HostInspector, ProcessHandle
from kimo.contracts.types import AgentProcessInfo

UNKNOWN_HOSTNAME = "UNKNOWN"


def local_hostname() -> str:
    try:
        return socket.gethostname()
    except OSError:
        return UNKNOWN_HOSTNAME


def find_process(pid: int, processes: Sequence[ProcessHandle]) -> ProcessHandle | None:
    for process in processes:
        if process.pid == pid:
            return process
    return None


class AgentPortResolver:
    """Resolve a local port to an AgentProcessInfo.

    Usage:
        resolver = AgentPortResolver(PsutilHostInspector())
        info = resolver.resolve(22001)   # None when nothing owns the port
    """

    def __init__(
        self,
        inspector: HostInspector,
        *,
        hostname: str | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._inspector = inspector
        self._hostname = hostname
        self._logger = logger or structlog.get_logger(__name__)

    @property
    def hostname(self) -> str:
        return self._hostname if self._hostname is not None else local_hostname()

    def resolve(self, port: int) -> AgentProcessInfo | None:
        """Find the process owning local ``port``.

        Raises:
            HostInspectionError: Either host table could not be read.
        """
        connections = self._inspector.connections()
        processes = self._inspector.processes()

        for conn in connections:
            if conn.laddr.port != port:
                continue
            if conn.pid is None:
                self._logger.debug("Connection has no owning pid", port=port)
                continue

            process = find_process(conn.pid, processes)
            if process is None:
                self._logger.debug("Process could not be found", pid=conn.pid)
                continue

            try:
                name = process.name()
            except psutil.Error:
                name = ""
            try:
                cmdline = list(process.cmdline())
            except psutil.Error:
                self._logger.debug("Cmdline could not be read", pid=conn.pid)
                cmdline = []

            return AgentProcessInfo(
                laddr=conn.laddr,
                status=conn.status,
                pid=conn.pid,
                name=name,
                cmdline=cmdline,
                hostname=self.hostname,
            )
        return None
