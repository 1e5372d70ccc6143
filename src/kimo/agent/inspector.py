# src/kimo/agent/inspector.py
"""Host connection and process tables.

HostInspector is the seam between the port resolver and the OS. The
production implementation uses psutil; tests supply fixed tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import psutil

from kimo.contracts.errors import HostInspectionError
from kimo.contracts.types import Address


@dataclass(frozen=True, slots=True)
class ConnectionEntry:
    """One row of the host connection table.

    ``pid`` is None when the OS does not disclose the owner.
    """

    laddr: Address
    status: str
    pid: int | None


@runtime_checkable
class ProcessHandle(Protocol):
    """The slice of psutil.Process the resolver relies on.

    name() and cmdline() may raise psutil.Error (process gone, access
    denied).
    """

    pid: int

    def name(self) -> str: ...

    def cmdline(self) -> list[str]: ...


class HostInspector(Protocol):
    """Point-in-time views of the host tables.

    Both methods raise HostInspectionError when the table cannot be read.
    """

    def connections(self) -> list[ConnectionEntry]: ...

    def processes(self) -> list[ProcessHandle]: ...


class PsutilHostInspector:
    """HostInspector backed by psutil."""

    def __init__(self, kind: str = "inet") -> None:
        self._kind = kind

    def connections(self) -> list[ConnectionEntry]:
        try:
            raw = psutil.net_connections(kind=self._kind)
        except (psutil.Error, OSError) as e:
            raise HostInspectionError(f"Error while getting connections: {e}") from e

        entries: list[ConnectionEntry] = []
        for conn in raw:
            if not conn.laddr:
                continue
            entries.append(
                ConnectionEntry(
                    laddr=Address(host=str(conn.laddr.ip), port=int(conn.laddr.port)),
                    status=str(conn.status),
                    pid=conn.pid,
                )
            )
        return entries

    def processes(self) -> list[ProcessHandle]:
        try:
            return list(psutil.process_iter())
        except (psutil.Error, OSError) as e:
            raise HostInspectionError(f"Error while getting processes: {e}") from e
