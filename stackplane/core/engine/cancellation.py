"""
Cooperative cancellation for deployment runs.

The executor checks the token between stacks; long-running provisioners
poll it while they wait on the backend. A honoured cancellation rolls
the run back exactly like a failed stack.
"""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe, one-way cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled by operator") -> None:
        """Request cancellation. Only the first reason is kept."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()
            logger.warning("Cancellation requested: %s", reason)
