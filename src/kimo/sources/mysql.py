# src/kimo/sources/mysql.py
"""MySQL process list source.

Reads information_schema.PROCESSLIST through SQLAlchemy. The engine is
created on first use and reused across requests; its connection pool is
thread-safe.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from kimo.contracts.errors import SourceFetchError
from kimo.contracts.types import Address, SessionRecord
from kimo.core.config import MysqlConfig

if TYPE_CHECKING:
    from kimo.correlation.context import RequestContext

logger = structlog.get_logger(__name__)

PROCESSLIST_QUERY = text("SELECT ID, USER, HOST, DB, COMMAND, TIME, STATE, INFO FROM information_schema.PROCESSLIST")


def session_from_row(row: Mapping[str, Any]) -> SessionRecord | None:
    """Convert one PROCESSLIST row to a SessionRecord.

    Returns None for sessions without a TCP peer (unix socket, bare
    "localhost", system threads); they can never match a proxy record.
    """
    host = row["HOST"]
    if not host:
        return None
    try:
        address = Address.parse(str(host))
    except ValueError:
        return None

    return SessionRecord(
        id=int(row["ID"]),
        user=str(row["USER"] or ""),
        db=row["DB"],
        command=str(row["COMMAND"] or ""),
        time="" if row["TIME"] is None else str(row["TIME"]),
        state=row["STATE"],
        info=row["INFO"],
        address=address,
    )


class MysqlSessionSource:
    """SessionSource backed by information_schema.PROCESSLIST."""

    name = "mysql"

    def __init__(self, config: MysqlConfig, *, engine: Engine | None = None) -> None:
        """Initialize the source.

        Args:
            config: MySQL connection settings
            engine: Optional pre-built engine (tests inject SQLite)
        """
        self._config = config
        self._engine = engine
        self._engine_lock = threading.Lock()

    def _get_engine(self) -> Engine:
        with self._engine_lock:
            if self._engine is None:
                self._engine = create_engine(
                    self._config.dsn,
                    pool_pre_ping=True,
                    connect_args={
                        "connect_timeout": self._config.connect_timeout,
                        "read_timeout": self._config.read_timeout,
                    },
                )
            return self._engine

    def fetch(self, ctx: RequestContext) -> list[SessionRecord]:
        ctx.raise_if_cancelled()
        try:
            with self._get_engine().connect() as conn:
                rows = conn.execute(PROCESSLIST_QUERY).mappings().all()
        except SQLAlchemyError as e:
            raise SourceFetchError(self.name, str(e)) from e
        # The query itself cannot be interrupted; drop a late result.
        ctx.raise_if_cancelled()

        sessions: list[SessionRecord] = []
        for row in rows:
            session = session_from_row(row)
            if session is None:
                logger.debug("Skipping session without TCP peer", session_id=row["ID"], host=row["HOST"])
                continue
            sessions.append(session)
        return sessions

    def close(self) -> None:
        """Dispose of the engine's connection pool."""
        with self._engine_lock:
            if self._engine is not None:
                self._engine.dispose()
                self._engine = None
