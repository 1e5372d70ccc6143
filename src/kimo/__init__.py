"""
kimo: find the client process behind a MySQL connection.

Correlates MySQL sessions with TCP proxy routing records and asks a
per-host agent which process owns the originating connection.
"""

__version__ = "0.4.0"
