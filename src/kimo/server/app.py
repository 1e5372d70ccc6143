# src/kimo/server/app.py
"""Starlette ASGI application for the kimo aggregator.

Each GET /procs runs one CorrelationRequest in Starlette's threadpool under
a RequestContext whose deadline is ``server.request_timeout``.

Usage:
    from kimo.server.app import create_app, KimoServer
    from kimo.core.config import ServerConfig

    app = create_app(ServerConfig())

    # Or inject collaborators (tests use in-memory sources)
    server = KimoServer(config, session_source=fake_mysql, proxy_source=fake_proxy)
    app = server.app
"""

from __future__ import annotations

import structlog
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from kimo.clients.agent import DEFAULT_IDLE_CONNECTIONS, AgentClient
from kimo.contracts.errors import CancelledError, SourceFetchError
from kimo.contracts.types import KimoResponse
from kimo.core.config import ServerConfig
from kimo.correlation.context import RequestContext
from kimo.correlation.fanout import ProcessLookup
from kimo.correlation.request import CorrelationRequest
from kimo.sources.mysql import MysqlSessionSource
from kimo.sources.protocols import ProxySource, SessionSource
from kimo.sources.tcpproxy import TCPProxySource

logger = structlog.get_logger(__name__)


class KimoServer:
    """Aggregator server.

    Owns the long-lived collaborators (SQLAlchemy engine, httpx pool) that
    every request shares. Anything not injected is built from ``config``.
    """

    def __init__(
        self,
        config: ServerConfig,
        *,
        session_source: SessionSource | None = None,
        proxy_source: ProxySource | None = None,
        agent_client: ProcessLookup | None = None,
    ) -> None:
        self._config = config
        self._session_source = session_source or MysqlSessionSource(config.mysql)
        self._proxy_source = proxy_source or TCPProxySource(config.tcpproxy)
        self._agent_client = agent_client or AgentClient(
            port=config.agent.port,
            connect_timeout=config.agent.connect_timeout,
            read_timeout=config.agent.read_timeout,
            max_idle_connections=config.agent.max_concurrency or DEFAULT_IDLE_CONNECTIONS,
        )
        self._app = self._create_app()

    def _create_app(self) -> Starlette:
        routes = [
            Route("/health", self._health_endpoint, methods=["GET"]),
            Route("/procs", self._procs_endpoint, methods=["GET"]),
        ]
        return Starlette(debug=False, routes=routes)

    @property
    def app(self) -> Starlette:
        """Get the Starlette ASGI application."""
        return self._app

    @property
    def config(self) -> ServerConfig:
        return self._config

    def correlate(self, timeout: float | None = None) -> KimoResponse:
        """Run one correlation request synchronously.

        Raises:
            SourceFetchError: A snapshot source failed.
            CancelledError: The deadline passed before both snapshots arrived.
        """
        ctx = RequestContext(timeout=self._config.request_timeout if timeout is None else timeout)
        request = CorrelationRequest(
            self._session_source,
            self._proxy_source,
            self._agent_client,
            max_workers=self._config.agent.max_concurrency,
        )
        try:
            return request.run(ctx)
        finally:
            # Stops any straggling agent attempts once the response is built.
            ctx.cancel("request finished")

    def close(self) -> None:
        """Release pooled connections held by the collaborators."""
        for collaborator in (self._session_source, self._proxy_source, self._agent_client):
            close = getattr(collaborator, "close", None)
            if callable(close):
                close()

    async def _health_endpoint(self, request: Request) -> Response:
        return JSONResponse({"status": "healthy"})

    async def _procs_endpoint(self, request: Request) -> Response:
        try:
            response = await run_in_threadpool(self.correlate)
        except SourceFetchError as e:
            logger.error("Snapshot source failed", source=e.source, error=e.message)
            return JSONResponse(
                {"error": {"type": "source_fetch_error", "source": e.source, "message": e.message}},
                status_code=502,
            )
        except CancelledError as e:
            logger.warning("Correlation request cancelled", reason=e.reason)
            return JSONResponse(
                {"error": {"type": "cancelled", "message": e.reason}},
                status_code=504,
            )
        return JSONResponse(response.to_dict())


def create_app(config: ServerConfig | None = None) -> Starlette:
    """Create the aggregator ASGI application from config.

    Args:
        config: Server configuration (defaults when omitted)

    Returns:
        Starlette ASGI application
    """
    server = KimoServer(config or ServerConfig())
    server.app.state.server = server
    return server.app
