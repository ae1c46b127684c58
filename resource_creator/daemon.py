"""
Controller Daemon
=================

Runs the watch multiplexer and a pool of reconcile workers over a store.
"""

from __future__ import annotations

import signal
import threading
import time
import logging
from typing import Dict, List, Optional, Any

from resource_creator.cancellation import CancellationToken
from resource_creator.config import OperatorConfig
from resource_creator.models.resource import ObjectKey
from resource_creator.reconciler import ReconcileResult, Reconciler
from resource_creator.store import ResourceStore
from resource_creator.watcher import WatchMultiplexer
from resource_creator.workqueue import WorkQueue

logger = logging.getLogger(__name__)


class ControllerDaemon:
    """
    Resource creator controller.

    Workers pull parent keys from the shared queue and reconcile each one to
    completion. Failed keys go back on the queue with backoff.
    """

    def __init__(
        self,
        store: ResourceStore,
        config: Optional[OperatorConfig] = None,
    ):
        self.config = config or OperatorConfig()
        self.store = store

        self.queue = self._build_queue()
        self.reconciler = Reconciler(store, parent_coordinate=self.config.parent)
        self.watcher = WatchMultiplexer(
            store,
            self.queue,
            parent_coordinate=self.config.parent,
            watched_types=self.config.watched_types,
        )

        # State
        self._lock = threading.Lock()
        self._workers: List[threading.Thread] = []
        self._stop = threading.Event()
        self._shutdown_event = threading.Event()
        self._running = False
        self._start_time: Optional[float] = None

        # Stats
        self._processed = 0
        self._requeued = 0

    def start(self) -> None:
        """Start workers, then subscribe to the store."""
        if self._running:
            logger.warning("Controller already running")
            return

        logger.info(f"Starting controller for {self.config.parent}...")
        self._stop.clear()

        if self.queue.shutting_down:
            # A shut down queue never hands out keys again.
            self.queue = self._build_queue()
            self.watcher.queue = self.queue

        for i in range(self.config.controller.workers):
            worker = threading.Thread(
                target=self._run_worker,
                args=(self.queue,),
                daemon=True,
                name=f"ReconcileWorker-{i}",
            )
            worker.start()
            self._workers.append(worker)

        self.watcher.start()

        self._running = True
        self._start_time = time.time()
        logger.info(f"Controller started ({len(self._workers)} workers)")

    def _build_queue(self) -> WorkQueue:
        settings = self.config.controller
        return WorkQueue(
            backoff_base_sec=settings.backoff_base_sec,
            backoff_max_sec=settings.backoff_max_sec,
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Stop watching, drain workers and shut the queue down."""
        if not self._running:
            return

        logger.info("Stopping controller...")
        self.watcher.stop()
        self._stop.set()
        self.queue.shutdown()

        for worker in self._workers:
            worker.join(timeout=timeout)
        self._workers = []

        self._running = False
        logger.info(f"Controller stopped ({self._processed} reconciles)")

    def run(self) -> None:
        """Run until SIGINT or SIGTERM."""
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        self.start()
        self._shutdown_event.wait()
        self.stop()

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, shutting down...")
        self._shutdown_event.set()

    def _run_worker(self, queue: WorkQueue) -> None:
        """Worker loop: one key at a time until the queue shuts down."""
        poll = self.config.controller.poll_interval_sec

        while not self._stop.is_set():
            key = queue.get(timeout=poll)
            if key is None:
                if queue.shutting_down:
                    return
                continue
            try:
                self.process(key)
            except Exception as e:
                logger.exception(f"Unexpected error reconciling {key}: {e}")
                queue.add_rate_limited(key)
            finally:
                queue.done(key)

    def process(self, key: ObjectKey) -> ReconcileResult:
        """Reconcile one key and schedule a retry when the cycle asks for one."""
        cancel = CancellationToken.with_timeout(
            self.config.controller.reconcile_timeout_sec,
            parent=self._stop,
        )
        result = self.reconciler.reconcile(key, cancel)

        with self._lock:
            self._processed += 1

        if result.requeue:
            delay = self.queue.add_rate_limited(key)
            with self._lock:
                self._requeued += 1
            logger.info(f"Retrying {key} in {delay:.2f}s")
        else:
            self.queue.forget(key)
        return result

    def wait_idle(self, timeout: float = 5.0, settle_sec: float = 0.05) -> bool:
        """Block until the queue has been empty and idle for ``settle_sec``."""
        deadline = time.monotonic() + timeout
        idle_since: Optional[float] = None
        while time.monotonic() < deadline:
            stats = self.queue.get_stats()
            if stats["depth"] == 0 and stats["processing"] == 0 and stats["waiting"] == 0:
                idle_since = idle_since or time.monotonic()
                if time.monotonic() - idle_since >= settle_sec:
                    return True
            else:
                idle_since = None
            time.sleep(0.01)
        return False

    def is_running(self) -> bool:
        return self._running

    def get_status(self) -> Dict[str, Any]:
        """Get controller status."""
        uptime = time.time() - self._start_time if self._start_time else 0

        with self._lock:
            processed, requeued = self._processed, self._requeued

        return {
            "running": self._running,
            "uptime_sec": uptime,
            "workers": len(self._workers),
            "processed": processed,
            "requeued": requeued,
            "queue": self.queue.get_stats(),
            "watcher": self.watcher.get_stats(),
            "reconciler": self.reconciler.get_stats(),
        }
