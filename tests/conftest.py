# tests/conftest.py
"""Shared test fixtures and fakes.

Fakes stand in for the collaborators at the seams the correlation engine
and the agent depend on:

- FakeSessionSource / FakeProxySource: SessionSource / ProxySource
- FakeAgentLookup: the agent client used by the fan-out
- FakeProcess / FakeInspector: psutil-shaped host tables for the agent

Fakes are exposed as factory fixtures so tests build exactly the scenario
they need.

Hypothesis Configuration:
- "ci" profile: 100 examples (default)
- "nightly" profile: 1000 examples
- "debug" profile: 10 examples, verbose

    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import os
import threading
from collections.abc import Callable, Sequence
from typing import Any

import psutil
import pytest
from hypothesis import Phase, Verbosity, settings

from kimo.agent.inspector import ConnectionEntry
from kimo.contracts.errors import HostInspectionError, NotFoundError
from kimo.contracts.types import (
    Address,
    AgentProcessInfo,
    RoutingRecord,
    SessionRecord,
)
from kimo.correlation.context import RequestContext

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Record builders
# =============================================================================


def make_session(
    session_id: int = 1,
    address: str = "10.0.0.5:5000",
    *,
    user: str = "app",
    db: str | None = "shop",
    command: str = "Query",
    time: str = "12",
    state: str | None = "executing",
    info: str | None = "SELECT 1",
) -> SessionRecord:
    return SessionRecord(
        id=session_id,
        user=user,
        db=db,
        command=command,
        time=time,
        state=state,
        info=info,
        address=Address.parse(address),
    )


def make_routing(client_out: str = "10.0.0.9:22001", proxy_out: str = "10.0.0.5:5000") -> RoutingRecord:
    return RoutingRecord(client_out=Address.parse(client_out), proxy_out=Address.parse(proxy_out))


def make_agent_info(
    pid: int = 77,
    *,
    name: str = "app",
    port: int = 22001,
    hostname: str = "client-host",
    cmdline: Sequence[str] = ("/usr/bin/app", "--serve"),
) -> AgentProcessInfo:
    return AgentProcessInfo(
        laddr=Address(host="10.0.0.9", port=port),
        status="ESTABLISHED",
        pid=pid,
        name=name,
        cmdline=list(cmdline),
        hostname=hostname,
    )


@pytest.fixture
def session_factory() -> Callable[..., SessionRecord]:
    return make_session


@pytest.fixture
def routing_factory() -> Callable[..., RoutingRecord]:
    return make_routing


@pytest.fixture
def agent_info_factory() -> Callable[..., AgentProcessInfo]:
    return make_agent_info


# =============================================================================
# Snapshot sources
# =============================================================================


class _FakeSource:
    """Returns a fixed snapshot after an optional cancellable delay.

    ``observed_cancel`` is set when the delay was cut short by the
    context; ``started`` is set when fetch() begins.
    """

    def __init__(
        self,
        records: list[Any],
        *,
        name: str,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.records = records
        self.name = name
        self.delay = delay
        self.error = error
        self.started = threading.Event()
        self.observed_cancel = threading.Event()
        self.calls = 0

    def fetch(self, ctx: RequestContext) -> list[Any]:
        self.calls += 1
        self.started.set()
        if self.delay and ctx.wait(self.delay):
            self.observed_cancel.set()
            ctx.raise_if_cancelled()
        if self.error is not None:
            raise self.error
        return list(self.records)


class FakeSessionSource(_FakeSource):
    def __init__(self, sessions: list[SessionRecord] | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("name", "mysql")
        super().__init__(sessions or [], **kwargs)


class FakeProxySource(_FakeSource):
    def __init__(self, routing: list[RoutingRecord] | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("name", "tcpproxy")
        super().__init__(routing or [], **kwargs)


@pytest.fixture
def session_source_factory() -> type[FakeSessionSource]:
    return FakeSessionSource


@pytest.fixture
def proxy_source_factory() -> type[FakeProxySource]:
    return FakeProxySource


# =============================================================================
# Agent lookup
# =============================================================================


class FakeAgentLookup:
    """Agent client answering from a (host, port) table.

    Values may be an AgentProcessInfo or an exception to raise. Missing
    keys raise NotFoundError. ``delays`` maps a host to a sleep applied
    before answering.
    """

    def __init__(
        self,
        answers: dict[tuple[str, int], AgentProcessInfo | Exception] | None = None,
        *,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.answers = answers or {}
        self.delays = delays or {}
        self.calls: list[tuple[str, int]] = []
        self._lock = threading.Lock()
        self._release = threading.Event()

    def release(self) -> None:
        """Wake every attempt still sleeping on a delay."""
        self._release.set()

    def get_process(self, host: str, port: int) -> AgentProcessInfo:
        with self._lock:
            self.calls.append((host, port))
        delay = self.delays.get(host)
        if delay:
            self._release.wait(delay)
        answer = self.answers.get((host, port))
        if answer is None:
            raise NotFoundError(host, port)
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture
def agent_lookup_factory() -> type[FakeAgentLookup]:
    return FakeAgentLookup


# =============================================================================
# Host tables
# =============================================================================


class FakeProcess:
    """psutil.Process look-alike.

    Pass an exception as ``name`` or ``cmdline`` to make the accessor raise.
    """

    def __init__(
        self,
        pid: int,
        name: str | Exception = "",
        cmdline: list[str] | Exception | None = None,
    ) -> None:
        self.pid = pid
        self._name = name
        self._cmdline = [] if cmdline is None else cmdline

    def name(self) -> str:
        if isinstance(self._name, Exception):
            raise self._name
        return self._name

    def cmdline(self) -> list[str]:
        if isinstance(self._cmdline, Exception):
            raise self._cmdline
        return self._cmdline


class FakeInspector:
    def __init__(
        self,
        connections: list[ConnectionEntry] | None = None,
        processes: list[FakeProcess] | None = None,
        *,
        error: HostInspectionError | None = None,
    ) -> None:
        self._connections = connections or []
        self._processes = processes or []
        self._error = error

    def connections(self) -> list[ConnectionEntry]:
        if self._error is not None:
            raise self._error
        return list(self._connections)

    def processes(self) -> list[FakeProcess]:
        if self._error is not None:
            raise self._error
        return list(self._processes)


def make_connection(port: int, pid: int | None, *, host: str = "127.0.0.1", status: str = "LISTEN") -> ConnectionEntry:
    return ConnectionEntry(laddr=Address(host=host, port=port), status=status, pid=pid)


@pytest.fixture
def mysqld_inspector() -> FakeInspector:
    """Host where pid 42 (mysqld) listens on 3306 and 8080 has no visible owner."""
    return FakeInspector(
        connections=[
            make_connection(22, 1, host="0.0.0.0"),
            make_connection(3306, 42, host="0.0.0.0"),
            make_connection(8080, None),
        ],
        processes=[
            FakeProcess(1, "sshd", ["/usr/sbin/sshd", "-D"]),
            FakeProcess(42, "mysqld", ["/usr/sbin/mysqld", "--port=3306"]),
        ],
    )


@pytest.fixture
def inspector_factory() -> type[FakeInspector]:
    return FakeInspector


@pytest.fixture
def process_factory() -> type[FakeProcess]:
    return FakeProcess


@pytest.fixture
def connection_factory() -> Callable[..., ConnectionEntry]:
    return make_connection


@pytest.fixture
def access_denied() -> psutil.AccessDenied:
    return psutil.AccessDenied(pid=42)
