# src/kimo/clients/agent.py
"""HTTP client for the per-host kimo agents.

One AgentClient is shared by every request of the server. httpx.Client is
thread-safe and its connection pool serves all concurrent fan-out threads.
"""

from __future__ import annotations

import json
from json import JSONDecodeError

import httpx
import structlog

from kimo.contracts.errors import AttemptError, NotFoundError
from kimo.contracts.types import AgentProcessInfo

logger = structlog.get_logger(__name__)

DEFAULT_IDLE_CONNECTIONS = 20


class AgentClient:
    """Ask an agent which process owns a local port on its host.

    Connection establishment and response read have independent deadlines.

    Example:
        client = AgentClient(port=3333, connect_timeout=2.0, read_timeout=5.0)
        info = client.get_process("10.0.0.9", 22001)
    """

    def __init__(
        self,
        *,
        port: int,
        connect_timeout: float,
        read_timeout: float,
        max_idle_connections: int = DEFAULT_IDLE_CONNECTIONS,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the agent client.

        Open connections are uncapped and there is no pool wait, so an
        attempt is bounded only by its own connect and read deadlines.

        Args:
            port: Port the agents listen on
            connect_timeout: Connection establishment deadline in seconds
            read_timeout: Response read deadline in seconds
            max_idle_connections: Keep-alive connections retained between requests
            http_client: Optional pre-built httpx.Client (tests inject one)
        """
        self._port = port
        self._timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=read_timeout,
            pool=None,
        )
        self._limits = httpx.Limits(max_connections=None, max_keepalive_connections=max_idle_connections)
        self._client = http_client or httpx.Client(
            timeout=self._timeout,
            limits=self._limits,
            follow_redirects=False,
        )

    @property
    def port(self) -> int:
        return self._port

    @property
    def timeout(self) -> httpx.Timeout:
        return self._timeout

    @property
    def limits(self) -> httpx.Limits:
        return self._limits

    def url_for(self, host: str) -> str:
        # IPv6 addresses need brackets in URLs
        host_for_url = f"[{host}]" if ":" in host else host
        return f"http://{host_for_url}:{self._port}/conns"

    def get_process(self, host: str, port: int) -> AgentProcessInfo:
        """Resolve ``port`` on ``host`` to its owning process.

        Raises:
            NotFoundError: The agent has no process for that port.
            AttemptError: Transport failure, timeout, unexpected status,
                or malformed body.
        """
        try:
            response = self._client.get(self.url_for(host), params={"port": port}, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise AttemptError(host, port, f"timeout: {e}") from e
        except httpx.HTTPError as e:
            raise AttemptError(host, port, f"{type(e).__name__}: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(host, port)
        if response.status_code != 200:
            raise AttemptError(host, port, f"HTTP {response.status_code}: {response.text.strip()}")

        try:
            body = json.loads(response.text)
        except JSONDecodeError as e:
            raise AttemptError(host, port, f"invalid JSON: {e}") from e
        if not isinstance(body, dict):
            raise AttemptError(host, port, f"expected JSON object, got {type(body).__name__}")

        try:
            info = AgentProcessInfo.from_dict(body)
        except (KeyError, TypeError, ValueError) as e:
            raise AttemptError(host, port, f"malformed response: {e!r}") from e

        logger.debug("Agent resolved port", host=host, port=port, pid=info.pid)
        return info

    def close(self) -> None:
        """Close the underlying httpx client and release connections."""
        self._client.close()
