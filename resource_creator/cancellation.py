"""
Cancellation
============

Cooperative cancellation for a reconciliation cycle.
"""

from __future__ import annotations

import threading
import time
from typing import Optional


class CancellationToken:
    """
    Cancelled when ``cancel()`` is called, when a linked parent event is set,
    or once the deadline passes.
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        parent: Optional[threading.Event] = None,
    ):
        self._event = threading.Event()
        self._deadline = deadline
        self._parent = parent

    @classmethod
    def with_timeout(
        cls,
        timeout_sec: Optional[float],
        parent: Optional[threading.Event] = None,
    ) -> CancellationToken:
        deadline = time.monotonic() + timeout_sec if timeout_sec else None
        return cls(deadline=deadline, parent=parent)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._parent is not None and self._parent.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def reason(self) -> str:
        if self._event.is_set():
            return "cancelled"
        if self._parent is not None and self._parent.is_set():
            return "shutting down"
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return "deadline exceeded"
        return ""
