# src/kimo/contracts/errors.py
"""Error taxonomy for correlation, agent lookups, and snapshot sources.

Only SourceFetchError and CancelledError are fatal to an aggregator
request. Every other error is absorbed at the record it belongs to.
"""

from __future__ import annotations


class KimoError(Exception):
    """Base class for all kimo errors."""


class ResolutionError(KimoError):
    """Hostname could not be resolved to an IP address.

    Degrades to "no match" for the address being compared.
    """

    def __init__(self, host: str, message: str | None = None) -> None:
        super().__init__(message or f"could not resolve host: {host}")
        self.host = host


class SourceFetchError(KimoError):
    """A snapshot source (MySQL or TCP proxy) failed.

    Attributes:
        source: Name of the failing source ("mysql", "tcpproxy", ...)
    """

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class CancelledError(KimoError):
    """The request was cancelled or its deadline passed."""

    def __init__(self, reason: str = "request cancelled") -> None:
        super().__init__(reason)
        self.reason = reason


class AttemptError(KimoError):
    """A single agent call failed or timed out."""

    def __init__(self, host: str, port: int, message: str) -> None:
        super().__init__(f"agent {host} (port {port}): {message}")
        self.host = host
        self.port = port


class NotFoundError(KimoError):
    """The agent found no process owning the requested port.

    NOT a failure: this is the wire form of an absent result.
    """

    def __init__(self, host: str, port: int) -> None:
        super().__init__(f"agent {host}: no process for port {port}")
        self.host = host
        self.port = port


class ClientInputError(KimoError):
    """Caller supplied a missing or malformed parameter."""


class HostInspectionError(KimoError):
    """Reading the host connection or process table failed."""
