"""
Watch Multiplexer
=================

Subscribes to the parent type and to every watched child type, turning
change events into parent keys on the work queue.
"""

from __future__ import annotations

import threading
import logging
from typing import Callable, Dict, List, Optional, Any, Sequence

from resource_creator.models.resource import (
    EventType, ObjectKey, TypeCoordinate, WatchEvent,
)
from resource_creator.router import route_event
from resource_creator.store import ResourceStore
from resource_creator.workqueue import WorkQueue

logger = logging.getLogger(__name__)


def generation_changed(event: WatchEvent) -> bool:
    """False for updates that left the generation alone (status-only writes)."""
    if event.type != EventType.MODIFIED or event.old is None:
        return True
    return event.obj.metadata.generation != event.old.metadata.generation


class WatchMultiplexer:
    """
    Feeds the work queue from store subscriptions.

    Parent events enqueue the parent itself; child events go through the
    ownership router and enqueue the controlling parent, if any.
    """

    def __init__(
        self,
        store: ResourceStore,
        queue: WorkQueue,
        parent_coordinate: TypeCoordinate,
        watched_types: Sequence[TypeCoordinate],
    ):
        self._lock = threading.Lock()

        self.store = store
        self.queue = queue
        self.parent_coordinate = parent_coordinate
        self.watched_types = list(watched_types)

        self._unsubscribers: List[Callable[[], None]] = []
        self._starting = False

        # Stats
        self._parent_events = 0
        self._child_events = 0
        self._routed = 0
        self._ignored = 0

    def start(self) -> None:
        """Subscribe to the parent type and every watched child type."""
        with self._lock:
            if self._unsubscribers or self._starting:
                logger.warning("Watch multiplexer already running")
                return
            self._starting = True

        # Subscribing replays existing records into handlers that take the
        # lock, so it runs outside it while the starting flag is set.
        try:
            unsubscribers = [self.store.watch(self.parent_coordinate, self._on_parent_event)]
            for coordinate in self.watched_types:
                unsubscribers.append(self.store.watch(coordinate, self._on_child_event))
                logger.debug(f"Watching {coordinate}")
        except Exception:
            with self._lock:
                self._starting = False
            raise

        with self._lock:
            self._unsubscribers = unsubscribers
            self._starting = False
        logger.info(
            f"Watching {self.parent_coordinate} and {len(self.watched_types)} child types"
        )

    def stop(self) -> None:
        """Drop every subscription."""
        with self._lock:
            unsubscribers, self._unsubscribers = self._unsubscribers, []
        for unsubscribe in unsubscribers:
            unsubscribe()
        if unsubscribers:
            logger.info("Watch multiplexer stopped")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._unsubscribers)

    def _on_parent_event(self, event: WatchEvent) -> None:
        with self._lock:
            self._parent_events += 1
        if not generation_changed(event):
            logger.debug(f"Ignoring status update of {event.obj.key}")
            return
        self._enqueue(event.obj.key)

    def _on_child_event(self, event: WatchEvent) -> None:
        with self._lock:
            self._child_events += 1
        key = self.route(event)
        if key is None:
            with self._lock:
                self._ignored += 1
            return
        logger.debug(f"{event.type.value} {event.coordinate.kind} {event.obj.key} -> {key}")
        self._enqueue(key)

    def route(self, event: WatchEvent) -> Optional[ObjectKey]:
        """Parent key owning the child in ``event``, or None."""
        return route_event(
            event.obj,
            parent_kind=self.parent_coordinate.kind,
            parent_api_version=self.parent_coordinate.api_version,
        )

    def _enqueue(self, key: ObjectKey) -> None:
        with self._lock:
            self._routed += 1
        self.queue.add(key)

    def get_stats(self) -> Dict[str, Any]:
        """Get watcher statistics."""
        with self._lock:
            return {
                "running": bool(self._unsubscribers),
                "watched_types": [str(c) for c in self.watched_types],
                "parent_events": self._parent_events,
                "child_events": self._child_events,
                "enqueued": self._routed,
                "ignored": self._ignored,
            }
