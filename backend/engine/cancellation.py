"""
Cooperative cancellation for long-running walk-forward searches.
"""
from __future__ import annotations

import threading
from typing import Optional

from engine.errors import WalkForwardCancelledError


class CancellationToken:
    """Externally owned cancel flag, safe to set from any thread."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str = ""

    def cancel(self, reason: str = "Canceled by user") -> None:
        self.reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise WalkForwardCancelledError("Walk-forward analysis aborted")


def raise_if_cancelled(token: Optional[CancellationToken]) -> None:
    """No-op when no token was supplied."""
    if token is not None:
        token.raise_if_cancelled()
