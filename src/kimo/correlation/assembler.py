# src/kimo/correlation/assembler.py
"""Flatten joined records into the aggregator response."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from kimo.contracts.types import JoinedRecord, KimoResponse, ProcessRecord

_UINT32_MAX = 2**32 - 1


def parse_elapsed_time(value: str | None) -> int:
    """Parse a process list TIME value as an unsigned 32-bit integer.

    Raises:
        ValueError: If the value is not a plain decimal in range.
    """
    if value is None or not (value.isascii() and value.isdigit()):
        raise ValueError(f"time {value!r} is not an unsigned integer")
    parsed = int(value)
    if parsed > _UINT32_MAX:
        raise ValueError(f"time {value!r} is out of range")
    return parsed


class ResponseAssembler:
    """Build ProcessRecords from joined records.

    TIME parsing is best-effort: a bad value is logged and reported as 0 so
    the rest of the response is still produced.
    """

    def __init__(self, *, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.get_logger(__name__)

    def assemble(self, records: Sequence[JoinedRecord]) -> KimoResponse:
        self._logger.info("Returning response", processes=len(records))
        return KimoResponse(processes=[self.to_process(record) for record in records])

    def to_process(self, record: JoinedRecord) -> ProcessRecord:
        session = record.session
        try:
            elapsed = parse_elapsed_time(session.time)
        except ValueError as e:
            self._logger.error("Could not convert time", session_id=session.id, error=str(e))
            elapsed = 0

        agent = record.agent_info
        return ProcessRecord(
            id=session.id,
            mysql_user=session.user,
            db=session.db or "",
            command=session.command,
            time=elapsed,
            state=session.state or "",
            info=session.info or "",
            cmdline=None if agent is None else list(agent.cmdline),
            pid=None if agent is None else agent.pid,
            host=None if agent is None else agent.hostname,
        )
