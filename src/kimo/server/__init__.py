"""Aggregator server: correlate MySQL sessions with client processes."""

from kimo.server.app import KimoServer, create_app

__all__ = ["KimoServer", "create_app"]
