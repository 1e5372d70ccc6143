# src/kimo/correlation/context.py
"""Cancellation signal and deadline for one correlation request.

Every thread working on behalf of a request (both snapshot sources and
every agent attempt) receives the request's RequestContext, or a child of
it, and checks it at its suspension points.

Usage:
    ctx = RequestContext(timeout=30.0)
    fetch_ctx = ctx.child()          # cancelled whenever ctx is
    ...
    if fetch_ctx.wait(0.5):          # True once cancelled or expired
        return
    fetch_ctx.raise_if_cancelled()   # CancelledError
"""

from __future__ import annotations

import threading
import time

from kimo.contracts.errors import CancelledError


class RequestContext:
    """Thread-safe cancellation signal with an optional deadline.

    Cancellation is one-way and idempotent. A deadline does not set the
    signal by itself; ``cancelled`` reports it once the deadline passes.
    """

    def __init__(self, timeout: float | None = None, *, parent: RequestContext | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: list[RequestContext] = []
        self._reason: str | None = None

        deadline = None if timeout is None else time.monotonic() + timeout
        if parent is not None and parent._deadline is not None:
            deadline = parent._deadline if deadline is None else min(deadline, parent._deadline)
        self._deadline = deadline

        if parent is not None:
            parent._adopt(self)

    def child(self, timeout: float | None = None) -> RequestContext:
        """Derive a context cancelled together with this one."""
        return RequestContext(timeout, parent=self)

    def _adopt(self, child: RequestContext) -> None:
        with self._lock:
            reason = self._reason
            if reason is None:
                self._children.append(child)
        if reason is not None:
            child.cancel(reason)

    def cancel(self, reason: str = "request cancelled") -> None:
        """Set the signal and propagate it to every child."""
        with self._lock:
            if self._reason is not None:
                return
            self._reason = reason
            children = list(self._children)
            self._children.clear()
        self._event.set()
        for child in children:
            child.cancel(reason)

    @property
    def deadline_exceeded(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.deadline_exceeded

    @property
    def reason(self) -> str | None:
        """Why the context is cancelled, or None while it is live."""
        if self._reason is not None:
            return self._reason
        if self.deadline_exceeded:
            return "deadline exceeded"
        return None

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled, the deadline passes, or ``timeout`` elapses.

        Returns:
            True if the context is cancelled when the wait ends.
        """
        remaining = self.remaining()
        if remaining is not None:
            timeout = remaining if timeout is None else min(timeout, remaining)
        self._event.wait(timeout)
        return self.cancelled

    def raise_if_cancelled(self) -> None:
        """Raise CancelledError if the context is no longer live."""
        reason = self.reason
        if reason is not None:
            raise CancelledError(reason)
