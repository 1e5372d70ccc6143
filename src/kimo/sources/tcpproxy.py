# src/kimo/sources/tcpproxy.py
"""TCP proxy routing source.

Speaks the proxy's management protocol: send ``conns`` and read the
connection table until the proxy closes the socket. Each line describes
one relayed connection as four ``ip:port`` tokens:

    <client_out> <proxy_in> <proxy_out> <server_in>

``client_out`` is the origin of the connection and ``proxy_out`` is the
address MySQL reports for the session.
"""

from __future__ import annotations

import socket
import time
from typing import TYPE_CHECKING

import structlog

from kimo.contracts.errors import CancelledError, SourceFetchError
from kimo.contracts.types import Address, RoutingRecord
from kimo.core.config import TCPProxyConfig

if TYPE_CHECKING:
    from kimo.correlation.context import RequestContext

logger = structlog.get_logger(__name__)

CONNS_COMMAND = b"conns\n"

# Reads block at most this long before cancellation is re-checked.
_READ_SLICE_SEC = 0.25


def parse_routing_records(payload: str) -> list[RoutingRecord]:
    """Parse the ``conns`` output. Malformed lines are skipped."""
    records: list[RoutingRecord] = []
    for line in payload.splitlines():
        line = line.strip()
        if not line:
            continue
        fields = line.split()
        if len(fields) != 4:
            logger.debug("Skipping malformed proxy record", line=line)
            continue
        try:
            client_out = Address.parse(fields[0])
            proxy_out = Address.parse(fields[2])
        except ValueError as e:
            logger.debug("Skipping malformed proxy record", line=line, error=str(e))
            continue
        records.append(RoutingRecord(client_out=client_out, proxy_out=proxy_out))
    return records


class TCPProxySource:
    """ProxySource reading the TCP proxy management listener."""

    name = "tcpproxy"

    def __init__(self, config: TCPProxyConfig) -> None:
        self._config = config
        self._address = Address.parse(config.mgmt_address)

    def fetch(self, ctx: RequestContext) -> list[RoutingRecord]:
        ctx.raise_if_cancelled()
        try:
            with socket.create_connection(
                (self._address.host, self._address.port),
                timeout=self._config.connect_timeout,
            ) as sock:
                sock.sendall(CONNS_COMMAND)
                payload = self._read_all(sock, ctx)
        except TimeoutError as e:
            raise SourceFetchError(self.name, f"timeout talking to {self._address}: {e}") from e
        except OSError as e:
            raise SourceFetchError(self.name, f"cannot read {self._address}: {e}") from e

        return parse_routing_records(payload.decode("utf-8", errors="replace"))

    def _read_all(self, sock: socket.socket, ctx: RequestContext) -> bytes:
        deadline = time.monotonic() + self._config.read_timeout
        chunks: list[bytes] = []
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise SourceFetchError(self.name, f"read timeout after {self._config.read_timeout}s")
            sock.settimeout(min(_READ_SLICE_SEC, remaining))
            try:
                chunk = sock.recv(65536)
            except TimeoutError:
                if ctx.cancelled:
                    raise CancelledError(ctx.reason or "request cancelled") from None
                continue
            if not chunk:
                return b"".join(chunks)
            chunks.append(chunk)
