"""
Cooperative cancellation for long-running sync operations.

Loops poll the token between files, never mid-transfer, so a blob that
has started uploading always finishes.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from .errors import OperationCancelled


class CancelToken:
    """Cancellation signal with an optional deadline.

    Args:
        deadline: Absolute ``time.monotonic()`` value after which the
            token counts as cancelled.
    """

    def __init__(self, deadline: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        """Token that expires ``seconds`` from now."""
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        """Request cancellation. Safe to call from a signal handler."""
        self._event.set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelled if the token has fired."""
        if self._event.is_set():
            raise OperationCancelled("Operation cancelled")
        if self.expired:
            raise OperationCancelled("Deadline exceeded")


def check(token: Optional[CancelToken]) -> None:
    """Poll an optional token."""
    if token is not None:
        token.raise_if_cancelled()
