# src/kimo/agent/server.py
"""Starlette ASGI application for the per-host kimo agent.

The agent answers one question for the aggregator: which local process
owns a given port.

Usage:
    from kimo.agent.server import create_app, KimoAgentServer

    app = create_app()

    # Or inject a resolver (tests use fixed host tables)
    server = KimoAgentServer(AgentPortResolver(inspector))
    app = server.app
"""

from __future__ import annotations

import structlog
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from kimo.agent.inspector import PsutilHostInspector
from kimo.agent.resolver import AgentPortResolver
from kimo.contracts.errors import ClientInputError, HostInspectionError

logger = structlog.get_logger(__name__)

_UINT32_MAX = 2**32 - 1

NOT_FOUND_MESSAGE = "process not found!"


def parse_port_param(value: str | None) -> int:
    """Parse the ``port`` query parameter.

    Raises:
        ClientInputError: If the value is missing or not an unsigned 32-bit integer.
    """
    if value is None or value == "":
        raise ClientInputError("port param is required")
    if not (value.isascii() and value.isdigit()):
        raise ClientInputError(f"port param is not a valid unsigned integer: {value!r}")
    port = int(value)
    if port > _UINT32_MAX:
        raise ClientInputError(f"port param is out of range: {value!r}")
    return port


class KimoAgentServer:
    """Agent HTTP server.

    Attributes:
        app: The Starlette ASGI application
        resolver: The port resolver answering /conns
    """

    def __init__(self, resolver: AgentPortResolver) -> None:
        self.resolver = resolver
        self._app = self._create_app()

    def _create_app(self) -> Starlette:
        routes = [
            Route("/health", self._health_endpoint, methods=["GET"]),
            Route("/conns", self._conns_endpoint, methods=["GET"]),
        ]
        return Starlette(debug=False, routes=routes)

    @property
    def app(self) -> Starlette:
        """Get the Starlette ASGI application."""
        return self._app

    async def _health_endpoint(self, request: Request) -> Response:
        return JSONResponse({"status": "healthy", "hostname": self.resolver.hostname})

    async def _conns_endpoint(self, request: Request) -> Response:
        try:
            port = parse_port_param(request.query_params.get("port"))
        except ClientInputError as e:
            return PlainTextResponse(str(e), status_code=400)

        # psutil walks /proc synchronously; keep it off the event loop.
        try:
            info = await run_in_threadpool(self.resolver.resolve, port)
        except HostInspectionError as e:
            logger.error("Host inspection failed", port=port, error=str(e))
            return PlainTextResponse(str(e), status_code=500)

        if info is None:
            logger.debug("No process owns port", port=port)
            return PlainTextResponse(NOT_FOUND_MESSAGE, status_code=404)

        logger.info("Resolved port", port=port, pid=info.pid, name=info.name)
        return JSONResponse(info.to_dict())


def create_app(resolver: AgentPortResolver | None = None) -> Starlette:
    """Create the agent ASGI application.

    Args:
        resolver: Port resolver; defaults to one backed by psutil

    Returns:
        Starlette ASGI application
    """
    server = KimoAgentServer(resolver or AgentPortResolver(PsutilHostInspector()))
    server.app.state.server = server
    return server.app
