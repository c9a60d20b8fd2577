"""
Cooperative cancellation signal.

The token is only consulted at safe points (before a stage, before a chunk),
so work already dispatched is allowed to settle.
"""
import threading
from typing import Optional

from trialscout.utils import PipelineCancelledError


class CancellationToken:
    """Thread-safe, one-way cancellation flag."""

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "Pipeline cancelled by user") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PipelineCancelledError(self._reason or "Pipeline cancelled by user")
