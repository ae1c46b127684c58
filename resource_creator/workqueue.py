"""
Work Queue
==========

Queue of parent keys feeding the reconcile workers.

Guarantees:
    - a key waiting in the queue is held once, however often it is added
    - a key is handed to at most one worker at a time; adds that arrive while
      it is being processed are replayed when the worker calls ``done``
    - failed keys are requeued with per-key exponential backoff
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
import logging
from collections import deque
from typing import Deque, Dict, Hashable, List, Optional, Set, Tuple, Any

logger = logging.getLogger(__name__)


class WorkQueue:
    """Coalescing, rate-limited work queue."""

    def __init__(
        self,
        backoff_base_sec: float = 0.005,
        backoff_max_sec: float = 300.0,
    ):
        self._cond = threading.Condition()

        # Configuration
        self._backoff_base = backoff_base_sec
        self._backoff_max = backoff_max_sec

        # State
        self._queue: Deque[Hashable] = deque()
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._waiting: List[Tuple[float, int, Hashable]] = []
        self._failures: Dict[Hashable, int] = {}
        self._seq = itertools.count()
        self._shutting_down = False

        # Stats
        self._adds = 0
        self._retries = 0

    def add(self, key: Hashable) -> None:
        """Enqueue a key unless it is already pending."""
        with self._cond:
            if self._shutting_down or key in self._dirty:
                return
            self._adds += 1
            self._dirty.add(key)
            if key in self._processing:
                return
            self._queue.append(key)
            self._cond.notify()

    def add_after(self, key: Hashable, delay_sec: float) -> None:
        """Enqueue a key once ``delay_sec`` has elapsed."""
        if delay_sec <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            heapq.heappush(self._waiting, (time.monotonic() + delay_sec, next(self._seq), key))
            self._cond.notify_all()

    def add_rate_limited(self, key: Hashable) -> float:
        """Requeue a failed key after its backoff; returns the delay used."""
        delay = self.when(key)
        with self._cond:
            self._retries += 1
        logger.debug(f"Requeue {key} in {delay:.3f}s")
        self.add_after(key, delay)
        return delay

    def when(self, key: Hashable) -> float:
        """Next backoff delay for ``key``; each call counts as one failure."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        return min(self._backoff_base * (2 ** failures), self._backoff_max)

    def forget(self, key: Hashable) -> None:
        """Reset the failure count of ``key``."""
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: Hashable) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def get(self, timeout: Optional[float] = None) -> Optional[Hashable]:
        """
        Block until a key is ready and mark it as processing.

        Returns None on timeout or once the queue is shut down.
        """
        deadline = time.monotonic() + timeout if timeout is not None else None

        with self._cond:
            while True:
                self._promote_waiting()

                if self._queue:
                    key = self._queue.popleft()
                    self._processing.add(key)
                    self._dirty.discard(key)
                    return key

                if self._shutting_down:
                    return None

                now = time.monotonic()
                wait: Optional[float] = None
                if self._waiting:
                    wait = max(self._waiting[0][0] - now, 0.0)
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key: Hashable) -> None:
        """Mark ``key`` as processed, replaying it if it was re-added meanwhile."""
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty and not self._shutting_down:
                self._queue.append(key)
                self._cond.notify()

    def _promote_waiting(self) -> None:
        now = time.monotonic()
        while self._waiting and self._waiting[0][0] <= now:
            _, _, key = heapq.heappop(self._waiting)
            self.add(key)

    def shutdown(self) -> None:
        """Stop handing out keys and wake every blocked getter."""
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def get_stats(self) -> Dict[str, Any]:
        """Get queue statistics."""
        with self._cond:
            return {
                "depth": len(self._queue),
                "processing": len(self._processing),
                "waiting": len(self._waiting),
                "adds": self._adds,
                "retries": self._retries,
            }
