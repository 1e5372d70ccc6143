# src/kimo/correlation/fanout.py
"""Concurrent agent lookups for joined records.

One attempt per joined record asks the agent on the connection's origin
host which process owns the origin port. Attempts are independent: a
failure, timeout, or "not found" only leaves that record unattributed.

Unlike the snapshot fetch, this is a complete barrier. The call returns
once every attempt has finished, or early when the request context is
cancelled, in which case unfinished records stay unattributed.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Protocol

import structlog

from kimo.contracts.errors import AttemptError, NotFoundError
from kimo.contracts.types import AgentProcessInfo, JoinedRecord
from kimo.correlation.context import RequestContext

_POLL_INTERVAL_SEC = 0.05


class ProcessLookup(Protocol):
    """What the fan-out needs from an agent client."""

    def get_process(self, host: str, port: int) -> AgentProcessInfo: ...


class AgentFanoutExecutor:
    """Resolve every joined record against its origin host's agent.

    Results are attached by the calling thread as futures complete, so
    each record is written by exactly one thread, exactly once. Worker
    threads only read their record's immutable routing data.

    Usage:
        fanout = AgentFanoutExecutor(agent_client, max_workers=None)
        fanout.resolve_all(ctx, joined)
        assert all(r.agent_info is None or r.agent_info.pid for r in joined)
    """

    def __init__(
        self,
        client: ProcessLookup,
        *,
        max_workers: int | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            client: Agent client used for every attempt
            max_workers: Bound on concurrent attempts; one thread per
                record when None
            logger: Logger carrying request context
        """
        self._client = client
        self._max_workers = max_workers
        self._logger = logger or structlog.get_logger(__name__)

    def resolve_all(self, ctx: RequestContext, records: Sequence[JoinedRecord]) -> None:
        if not records:
            return

        workers = len(records) if self._max_workers is None else min(self._max_workers, len(records))
        self._logger.info("Resolving agent processes", records=len(records), workers=workers)

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="kimo-agent")
        futures: dict[Future[AgentProcessInfo | None], JoinedRecord] = {
            executor.submit(self._attempt, ctx, record): record for record in records
        }
        pending = set(futures)
        try:
            while pending:
                if ctx.cancelled:
                    self._logger.warning(
                        "Agent fan-out cancelled",
                        reason=ctx.reason,
                        unresolved=len(pending),
                    )
                    break
                done, pending = wait(pending, timeout=_POLL_INTERVAL_SEC, return_when=FIRST_COMPLETED)
                for future in done:
                    futures[future].attach_agent_info(self._outcome(future, futures[future]))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        # Late results of abandoned attempts are discarded, never attached.
        for future in pending:
            futures[future].attach_agent_info(None)

    def _attempt(self, ctx: RequestContext, record: JoinedRecord) -> AgentProcessInfo | None:
        if ctx.cancelled:
            return None
        origin = record.routing.client_out
        try:
            return self._client.get_process(origin.host, origin.port)
        except NotFoundError:
            self._logger.debug("Agent found no process", host=origin.host, port=origin.port)
            return None
        except AttemptError as e:
            self._logger.warning("Agent attempt failed", host=origin.host, port=origin.port, error=str(e))
            return None

    def _outcome(self, future: Future[AgentProcessInfo | None], record: JoinedRecord) -> AgentProcessInfo | None:
        error = future.exception()
        if error is not None:
            origin = record.routing.client_out
            self._logger.error(
                "Agent attempt raised unexpectedly",
                host=origin.host,
                port=origin.port,
                exc_info=error,
            )
            return None
        return future.result()
