# src/kimo/correlation/joiner.py
"""Join MySQL sessions to the TCP proxy connections they ride on.

MySQL sees the proxy's outbound address as the session's peer address, so
a session belongs to the routing record whose ``proxy_out`` equals it.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from kimo.contracts.errors import ResolutionError
from kimo.contracts.types import JoinedRecord, RoutingRecord, SessionRecord
from kimo.correlation.address import AddressResolver


class CorrelationJoiner:
    """Pair each session with its routing record.

    Tie-break: the first matching routing record in fetch order wins.
    Sessions without a match are dropped; they cannot be attributed.
    Output keeps the session order.
    """

    def __init__(
        self,
        resolver: AddressResolver,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._resolver = resolver
        self._logger = logger or structlog.get_logger(__name__)

    def join(
        self,
        sessions: Sequence[SessionRecord],
        routing_records: Sequence[RoutingRecord],
    ) -> list[JoinedRecord]:
        joined: list[JoinedRecord] = []
        for session in sessions:
            routing = self._find_routing_record(session, routing_records)
            if routing is None:
                continue
            joined.append(JoinedRecord(session=session, routing=routing))

        self._logger.info(
            "Joined sessions with proxy records",
            sessions=len(sessions),
            routing_records=len(routing_records),
            joined=len(joined),
        )
        return joined

    def _find_routing_record(
        self,
        session: SessionRecord,
        routing_records: Sequence[RoutingRecord],
    ) -> RoutingRecord | None:
        try:
            self._resolver.canonicalize(session.address.host)
        except ResolutionError as e:
            self._logger.debug("Session host unresolvable", session_id=session.id, error=str(e))
            return None

        for record in routing_records:
            if self._resolver.matches(record.proxy_out, session.address):
                return record
        return None
