# tests/unit/sources/test_tcpproxy.py
"""Tests for TCPProxySource against a local management listener."""

import socket
import socketserver
import threading
import time
from collections.abc import Iterator

import pytest

from kimo.contracts.errors import CancelledError, SourceFetchError
from kimo.contracts.types import Address
from kimo.core.config import TCPProxyConfig
from kimo.correlation.context import RequestContext
from kimo.sources.tcpproxy import CONNS_COMMAND, TCPProxySource, parse_routing_records

_PAYLOAD = (
    b"10.0.0.9:22001 10.0.0.2:3307 10.0.0.5:5000 10.0.0.3:3306\n"
    b"10.0.0.8:40123 10.0.0.2:3307 10.0.0.5:5001 10.0.0.3:3306\n"
)


class _FakeProxy(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, payload: bytes, *, hold_open: bool = False) -> None:
        super().__init__(("127.0.0.1", 0), _ConnsHandler)
        self.payload = payload
        self.hold_open = hold_open
        self.release = threading.Event()
        self.commands: list[bytes] = []


class _ConnsHandler(socketserver.StreamRequestHandler):
    server: _FakeProxy

    def handle(self) -> None:
        self.server.commands.append(self.rfile.readline())
        self.wfile.write(self.server.payload)
        self.wfile.flush()
        if self.server.hold_open:
            self.server.release.wait(10.0)


def _start(server: _FakeProxy) -> Iterator[_FakeProxy]:
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.release.set()
        server.shutdown()
        server.server_close()


@pytest.fixture
def proxy() -> Iterator[_FakeProxy]:
    yield from _start(_FakeProxy(_PAYLOAD))


@pytest.fixture
def hanging_proxy() -> Iterator[_FakeProxy]:
    yield from _start(_FakeProxy(b"", hold_open=True))


def _source(server: socketserver.TCPServer, *, read_timeout: float = 2.0) -> TCPProxySource:
    host, port = server.server_address[:2]
    return TCPProxySource(TCPProxyConfig(mgmt_address=f"{host}:{port}", connect_timeout=1.0, read_timeout=read_timeout))


class TestParseRoutingRecords:
    def test_keeps_client_out_and_proxy_out(self) -> None:
        records = parse_routing_records(_PAYLOAD.decode())

        assert len(records) == 2
        assert records[0].client_out == Address("10.0.0.9", 22001)
        assert records[0].proxy_out == Address("10.0.0.5", 5000)
        assert records[1].client_out == Address("10.0.0.8", 40123)

    def test_skips_blank_and_malformed_lines(self) -> None:
        payload = "\n".join(
            [
                "",
                "10.0.0.9:22001 10.0.0.2:3307 10.0.0.5:5000",
                "garbage",
                "10.0.0.9 10.0.0.2:3307 10.0.0.5:5000 10.0.0.3:3306",
                "10.0.0.7:1 10.0.0.2:3307 10.0.0.5:2 10.0.0.3:3306",
                "   ",
            ]
        )

        records = parse_routing_records(payload)

        assert len(records) == 1
        assert records[0].client_out == Address("10.0.0.7", 1)

    def test_ipv6_tokens(self) -> None:
        records = parse_routing_records("[fd00::9]:22001 [fd00::2]:3307 [fd00::5]:5000 [fd00::3]:3306")

        assert records[0].client_out == Address("fd00::9", 22001)
        assert records[0].proxy_out == Address("fd00::5", 5000)


class TestFetch:
    def test_reads_table(self, proxy: _FakeProxy) -> None:
        records = _source(proxy).fetch(RequestContext(timeout=5.0))

        assert [r.proxy_out.port for r in records] == [5000, 5001]
        assert proxy.commands == [CONNS_COMMAND]

    def test_connection_refused(self) -> None:
        with socket.socket() as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]
        config = TCPProxyConfig(mgmt_address=f"127.0.0.1:{port}", connect_timeout=1.0, read_timeout=1.0)

        with pytest.raises(SourceFetchError) as exc_info:
            TCPProxySource(config).fetch(RequestContext(timeout=5.0))

        assert exc_info.value.source == "tcpproxy"

    def test_read_timeout(self, hanging_proxy: _FakeProxy) -> None:
        start = time.monotonic()
        with pytest.raises(SourceFetchError, match="read timeout"):
            _source(hanging_proxy, read_timeout=0.3).fetch(RequestContext(timeout=5.0))

        assert time.monotonic() - start < 3.0

    def test_cancellation_stops_read(self, hanging_proxy: _FakeProxy) -> None:
        ctx = RequestContext()
        timer = threading.Timer(0.2, ctx.cancel, args=("snapshot fetch aborted",))
        timer.start()
        try:
            with pytest.raises(CancelledError, match="snapshot fetch aborted"):
                _source(hanging_proxy, read_timeout=10.0).fetch(ctx)
        finally:
            timer.cancel()

    def test_cancelled_before_connect(self, proxy: _FakeProxy) -> None:
        ctx = RequestContext()
        ctx.cancel()

        with pytest.raises(CancelledError):
            _source(proxy).fetch(ctx)

        assert proxy.commands == []
