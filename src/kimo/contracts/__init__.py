"""Shared records and error types."""

from kimo.contracts.errors import (
    AttemptError,
    CancelledError,
    ClientInputError,
    HostInspectionError,
    KimoError,
    NotFoundError,
    ResolutionError,
    SourceFetchError,
)
from kimo.contracts.types import (
    Address,
    AgentProcessInfo,
    JoinedRecord,
    KimoResponse,
    ProcessRecord,
    RoutingRecord,
    SessionRecord,
)

__all__ = [
    "Address",
    "AgentProcessInfo",
    "AttemptError",
    "CancelledError",
    "ClientInputError",
    "HostInspectionError",
    "JoinedRecord",
    "KimoError",
    "KimoResponse",
    "NotFoundError",
    "ProcessRecord",
    "ResolutionError",
    "RoutingRecord",
    "SessionRecord",
    "SourceFetchError",
]
