"""Snapshot sources for MySQL sessions and TCP proxy routing records."""

from kimo.sources.mysql import MysqlSessionSource
from kimo.sources.protocols import ProxySource, SessionSource
from kimo.sources.tcpproxy import TCPProxySource

__all__ = [
    "MysqlSessionSource",
    "ProxySource",
    "SessionSource",
    "TCPProxySource",
]
