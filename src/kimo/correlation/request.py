# src/kimo/correlation/request.py
"""One correlation request: fetch, join, fan out, assemble.

A CorrelationRequest is created for each inbound aggregator request and
owns that request's joined records. Nothing it holds is shared with other
requests except the thread-safe collaborators it is handed.
"""

from __future__ import annotations

import uuid

import structlog

from kimo.contracts.types import JoinedRecord, KimoResponse
from kimo.correlation.address import AddressResolver
from kimo.correlation.assembler import ResponseAssembler
from kimo.correlation.context import RequestContext
from kimo.correlation.fanout import AgentFanoutExecutor, ProcessLookup
from kimo.correlation.fetcher import SnapshotFetcher
from kimo.correlation.joiner import CorrelationJoiner
from kimo.sources.protocols import ProxySource, SessionSource


class CorrelationRequest:
    """Drive the correlation phases for a single request.

    Usage:
        request = CorrelationRequest(mysql_source, proxy_source, agent_client)
        response = request.run(RequestContext(timeout=30.0))
        body = response.to_dict()
    """

    def __init__(
        self,
        session_source: SessionSource,
        proxy_source: ProxySource,
        agent_client: ProcessLookup,
        *,
        max_workers: int | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self.request_id = uuid.uuid4().hex[:12]
        self._logger = (logger or structlog.get_logger(__name__)).bind(request_id=self.request_id)
        self._fetcher = SnapshotFetcher(session_source, proxy_source, logger=self._logger)
        self._joiner = CorrelationJoiner(AddressResolver(), logger=self._logger)
        self._fanout = AgentFanoutExecutor(agent_client, max_workers=max_workers, logger=self._logger)
        self._assembler = ResponseAssembler(logger=self._logger)
        self.records: list[JoinedRecord] = []

    def run(self, ctx: RequestContext) -> KimoResponse:
        """Run every phase and return the response.

        Raises:
            SourceFetchError: A snapshot source failed.
            CancelledError: ``ctx`` was cancelled before both snapshots arrived.
        """
        sessions, routing_records = self._fetcher.fetch(ctx)
        self.records = self._joiner.join(sessions, routing_records)
        self._fanout.resolve_all(ctx, self.records)
        return self._assembler.assemble(self.records)
