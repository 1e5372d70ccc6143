# src/kimo/correlation/address.py
"""Canonical IP resolution for address equality.

MySQL may report a client host by name while the TCP proxy reports IPs,
so addresses are compared by canonical IP. The first address returned by
getaddrinfo() is authoritative.
"""

from __future__ import annotations

import ipaddress
import socket
import threading

import structlog

from kimo.contracts.errors import ResolutionError
from kimo.contracts.types import Address

logger = structlog.get_logger(__name__)


class AddressResolver:
    """Resolve hosts to canonical IP strings, caching per instance.

    Create one resolver per correlation request: the cache holds a
    point-in-time view and must not outlive the request snapshot.
    Failures are cached as well so a dead name is looked up once.
    """

    def __init__(self) -> None:
        self._cache: dict[str, str | ResolutionError] = {}
        self._lock = threading.Lock()

    def canonicalize(self, host: str) -> str:
        """Return the canonical IP for ``host``.

        IP literals are returned in normalized form without a lookup.

        Raises:
            ResolutionError: If the lookup fails or yields no address.
        """
        with self._lock:
            cached = self._cache.get(host)
        if cached is None:
            cached = self._resolve(host)
            with self._lock:
                self._cache[host] = cached
        if isinstance(cached, ResolutionError):
            raise ResolutionError(cached.host, str(cached))
        return cached

    def matches(self, left: Address, right: Address) -> bool:
        """Compare two addresses by canonical IP and exact port.

        An address that cannot be resolved matches nothing.
        """
        if left.port != right.port:
            return False
        try:
            return self.canonicalize(left.host) == self.canonicalize(right.host)
        except ResolutionError:
            return False

    def _resolve(self, host: str) -> str | ResolutionError:
        try:
            return str(ipaddress.ip_address(host))
        except ValueError:
            pass

        try:
            results = socket.getaddrinfo(host, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except (socket.gaierror, UnicodeError) as e:
            return ResolutionError(host, f"DNS resolution failed: {host}: {e}")
        if not results:
            return ResolutionError(host, f"DNS resolution returned no addresses: {host}")
        # results[i] = (family, type, proto, canonname, sockaddr); sockaddr[0] is the IP
        ip = str(results[0][4][0])
        logger.debug("Resolved host", host=host, ip=ip)
        return ip
