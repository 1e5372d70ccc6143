# src/kimo/sources/protocols.py
"""Protocols for the two snapshot sources.

Sources are synchronous and return a point-in-time snapshot. They run on
worker threads and must honour the RequestContext they are given: stop
promptly and raise CancelledError once it is cancelled. Any other failure
should be raised as SourceFetchError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from kimo.contracts.types import RoutingRecord, SessionRecord
    from kimo.correlation.context import RequestContext


@runtime_checkable
class SessionSource(Protocol):
    """Yields the MySQL session snapshot."""

    name: str

    def fetch(self, ctx: RequestContext) -> list[SessionRecord]: ...


@runtime_checkable
class ProxySource(Protocol):
    """Yields the TCP proxy routing snapshot."""

    name: str

    def fetch(self, ctx: RequestContext) -> list[RoutingRecord]: ...
