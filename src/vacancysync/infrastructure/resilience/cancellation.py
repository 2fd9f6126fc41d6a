"""
Cooperative cancellation tokens.

A token wraps a ``threading.Event``. Linked tokens compose the host
shutdown signal with a per-cycle deadline: cancelling a parent cancels
its children, a child's deadline never cancels its parents.
"""

from __future__ import annotations

import logging
import threading
import time

from vacancysync.domain.errors import OperationCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe cancellation flag with an optional deadline."""

    def __init__(self, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: list[CancellationToken] = []
        self._reason = ""
        self._timed_out = False
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @classmethod
    def linked(cls, *parents: CancellationToken, timeout: float | None = None) -> CancellationToken:
        """
        Create a token cancelled when any parent is cancelled or the timeout passes.

        Args:
            parents: Tokens whose cancellation propagates to the child
            timeout: Optional deadline in seconds from now

        Returns:
            The linked child token
        """
        child = cls(timeout=timeout)
        for parent in parents:
            parent._attach(child)
        return child

    def _attach(self, child: CancellationToken) -> None:
        with self._lock:
            if not self._event.is_set():
                self._children.append(child)
                return
            reason = self._reason
        child.cancel(reason)

    def _check_deadline(self) -> None:
        if self._deadline is not None and not self._event.is_set():
            if time.monotonic() >= self._deadline:
                self._timed_out = True
                self.cancel("timeout")

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel this token and every linked child. Idempotent."""
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            children = list(self._children)
            self._children.clear()
        logger.debug("Cancellation requested: %s", reason)
        for child in children:
            child.cancel(reason)

    @property
    def cancelled(self) -> bool:
        self._check_deadline()
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    @property
    def timed_out(self) -> bool:
        """True when this token was cancelled by its own deadline."""
        self._check_deadline()
        return self._timed_out

    def remaining(self) -> float | None:
        """Seconds until the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to ``seconds`` unless cancelled first.

        Returns:
            True if the token is cancelled (before or during the wait)
        """
        if self.cancelled:
            return True
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._event.wait(remaining)
            return self.cancelled
        return self._event.wait(max(0.0, seconds)) or self.cancelled

    def raise_if_cancelled(self) -> None:
        """Raise ``OperationCancelledError`` when cancelled."""
        if self.cancelled:
            raise OperationCancelledError(self._reason, timed_out=self._timed_out)
