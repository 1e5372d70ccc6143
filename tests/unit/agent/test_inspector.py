# tests/unit/agent/test_inspector.py
"""Tests for PsutilHostInspector with psutil patched out."""

from types import SimpleNamespace
from unittest.mock import patch

import psutil
import pytest

from kimo.agent.inspector import ConnectionEntry, PsutilHostInspector
from kimo.contracts.errors import HostInspectionError
from kimo.contracts.types import Address


def _sconn(laddr: tuple[str, int] | tuple[()], status: str, pid: int | None) -> SimpleNamespace:
    addr = SimpleNamespace(ip=laddr[0], port=laddr[1]) if laddr else ()
    return SimpleNamespace(laddr=addr, raddr=(), status=status, pid=pid)


class TestConnections:
    def test_maps_psutil_entries(self) -> None:
        raw = [
            _sconn(("0.0.0.0", 3306), "LISTEN", 42),
            _sconn(("10.0.0.9", 22001), "ESTABLISHED", None),
        ]
        with patch("psutil.net_connections", return_value=raw) as mock_conns:
            entries = PsutilHostInspector().connections()

        mock_conns.assert_called_once_with(kind="inet")
        assert entries == [
            ConnectionEntry(laddr=Address("0.0.0.0", 3306), status="LISTEN", pid=42),
            ConnectionEntry(laddr=Address("10.0.0.9", 22001), status="ESTABLISHED", pid=None),
        ]

    def test_entries_without_local_address_are_dropped(self) -> None:
        raw = [_sconn((), "NONE", 1), _sconn(("::1", 5432), "LISTEN", 7)]
        with patch("psutil.net_connections", return_value=raw):
            entries = PsutilHostInspector().connections()

        assert [e.laddr for e in entries] == [Address("::1", 5432)]

    def test_access_denied_raises_inspection_error(self) -> None:
        with (
            patch("psutil.net_connections", side_effect=psutil.AccessDenied()),
            pytest.raises(HostInspectionError, match="Error while getting connections"),
        ):
            PsutilHostInspector().connections()


class TestProcesses:
    def test_lists_processes(self) -> None:
        procs = [SimpleNamespace(pid=1), SimpleNamespace(pid=42)]
        with patch("psutil.process_iter", return_value=iter(procs)):
            assert [p.pid for p in PsutilHostInspector().processes()] == [1, 42]

    def test_os_error_raises_inspection_error(self) -> None:
        with (
            patch("psutil.process_iter", side_effect=OSError("/proc unavailable")),
            pytest.raises(HostInspectionError, match="Error while getting processes"),
        ):
            PsutilHostInspector().processes()
