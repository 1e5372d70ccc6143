# src/kimo/correlation/fetcher.py
"""Concurrent acquisition of the session and routing snapshots.

Both sources run on their own worker thread. The fetch is a join barrier
that short-circuits on failure:

- success requires both snapshots;
- the first failure cancels the other source and is raised immediately;
- cancellation of the caller's context aborts the wait with CancelledError.
"""

from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any

import structlog

from kimo.contracts.errors import CancelledError, SourceFetchError
from kimo.contracts.types import RoutingRecord, SessionRecord
from kimo.correlation.context import RequestContext
from kimo.sources.protocols import ProxySource, SessionSource

# Upper bound on how long a cancellation of the caller's context can go
# unnoticed while both sources are still running.
_POLL_INTERVAL_SEC = 0.05


class SnapshotFetcher:
    """Fetch sessions and routing records concurrently.

    Usage:
        fetcher = SnapshotFetcher(MysqlSessionSource(cfg.mysql), TCPProxySource(cfg.tcpproxy))
        sessions, routing = fetcher.fetch(ctx)
    """

    def __init__(
        self,
        session_source: SessionSource,
        proxy_source: ProxySource,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._session_source = session_source
        self._proxy_source = proxy_source
        self._logger = logger or structlog.get_logger(__name__)

    def fetch(self, ctx: RequestContext) -> tuple[list[SessionRecord], list[RoutingRecord]]:
        """Return (sessions, routing_records) once both sources finish.

        Raises:
            SourceFetchError: The first source failure.
            CancelledError: ``ctx`` was cancelled or its deadline passed.
        """
        fetch_ctx = ctx.child()
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="kimo-fetch")
        futures: dict[Future[Any], str] = {
            executor.submit(self._session_source.fetch, fetch_ctx): "sessions",
            executor.submit(self._proxy_source.fetch, fetch_ctx): "routing",
        }
        names = {"sessions": self._session_source.name, "routing": self._proxy_source.name}
        results: dict[str, Any] = {}
        pending = set(futures)
        try:
            while pending:
                ctx.raise_if_cancelled()
                done, pending = wait(pending, timeout=_POLL_INTERVAL_SEC, return_when=FIRST_COMPLETED)
                for future in done:
                    slot = futures[future]
                    error = future.exception()
                    if error is not None:
                        fetch_error = self._as_fetch_error(names[slot], error)
                        if fetch_error is error:
                            raise fetch_error
                        raise fetch_error from error
                    results[slot] = future.result()
                    self._logger.debug("Snapshot fetched", source=names[slot], count=len(results[slot]))
        except (SourceFetchError, CancelledError) as e:
            self._logger.error("Snapshot fetch aborted", error=str(e))
            raise
        finally:
            if pending:
                fetch_ctx.cancel("snapshot fetch aborted")
            executor.shutdown(wait=False, cancel_futures=True)

        return results["sessions"], results["routing"]

    @staticmethod
    def _as_fetch_error(source: str, error: BaseException) -> SourceFetchError | CancelledError:
        if isinstance(error, (SourceFetchError, CancelledError)):
            return error
        return SourceFetchError(source, f"{type(error).__name__}: {error}")

