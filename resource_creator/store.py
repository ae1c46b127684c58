"""
Resource Store
==============

Key-addressed store of typed records with change subscriptions.

``ResourceStore`` is the contract the engine talks to; ``InMemoryStore`` is
a thread-safe implementation with resource-version checks, generation
tracking and owner-reference garbage collection.
"""

from __future__ import annotations

import copy
import itertools
import threading
import uuid
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Any, Tuple

from resource_creator.errors import AlreadyExistsError, ConflictError, NotFoundError
from resource_creator.models.resource import (
    EventType, Resource, TypeCoordinate, WatchEvent,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[[WatchEvent], None]


class ResourceStore(ABC):
    """Contract of the backing store."""

    @abstractmethod
    def get(self, coordinate: TypeCoordinate, namespace: str, name: str) -> Resource:
        """Return a copy of the record or raise ``NotFoundError``."""

    @abstractmethod
    def list(self, coordinate: TypeCoordinate, namespace: Optional[str] = None) -> List[Resource]:
        """Return copies of every record of a type."""

    @abstractmethod
    def create(self, resource: Resource) -> Resource:
        """Create a record; raises ``AlreadyExistsError``."""

    @abstractmethod
    def update(self, resource: Resource) -> Resource:
        """Overwrite a record's content, labels, annotations and owners."""

    @abstractmethod
    def update_status(
        self,
        coordinate: TypeCoordinate,
        namespace: str,
        name: str,
        status: Dict[str, Any],
        resource_version: str = "",
    ) -> Resource:
        """Replace the status section only."""

    @abstractmethod
    def delete(self, coordinate: TypeCoordinate, namespace: str, name: str) -> None:
        """Delete a record and everything it owns."""

    @abstractmethod
    def watch(
        self,
        coordinate: TypeCoordinate,
        handler: EventHandler,
        replay: bool = True,
    ) -> Callable[[], None]:
        """Subscribe to changes of a type; returns an unsubscribe callable."""


def _type_key(coordinate: TypeCoordinate) -> Tuple[str, str]:
    # Records are shared across versions of the same group/kind.
    return (coordinate.group, coordinate.kind)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class InMemoryStore(ResourceStore):
    """
    Thread-safe in-process store.

    Handlers run synchronously on the writer's thread, after the store lock
    is released; handler errors are logged and never reach the writer.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._objects: Dict[Tuple[Tuple[str, str], str, str], Resource] = {}
        self._handlers: Dict[Tuple[str, str], List[EventHandler]] = {}
        self._versions = itertools.count(1)

        # Stats
        self._writes = 0

    def _next_version(self) -> str:
        return str(next(self._versions))

    def get(self, coordinate: TypeCoordinate, namespace: str, name: str) -> Resource:
        with self._lock:
            obj = self._objects.get((_type_key(coordinate), namespace, name))
            if obj is None:
                raise NotFoundError(f"{coordinate.kind} {namespace}/{name} not found")
            return obj.copy()

    def list(self, coordinate: TypeCoordinate, namespace: Optional[str] = None) -> List[Resource]:
        tkey = _type_key(coordinate)
        with self._lock:
            found = [
                obj.copy() for (t, ns, _), obj in self._objects.items()
                if t == tkey and (namespace is None or ns == namespace)
            ]
        return sorted(found, key=lambda o: (o.namespace, o.name))

    def create(self, resource: Resource) -> Resource:
        key = (_type_key(resource.coordinate), resource.namespace, resource.name)
        with self._lock:
            if key in self._objects:
                raise AlreadyExistsError(
                    f"{resource.coordinate.kind} {resource.key} already exists"
                )
            obj = resource.copy()
            obj.metadata.uid = str(uuid.uuid4())
            obj.metadata.resource_version = self._next_version()
            obj.metadata.generation = 1
            obj.metadata.creation_timestamp = _now()
            self._objects[key] = obj
            self._writes += 1
            created = obj.copy()

        self._dispatch([WatchEvent(EventType.ADDED, created.copy())])
        return created

    def update(self, resource: Resource) -> Resource:
        key = (_type_key(resource.coordinate), resource.namespace, resource.name)
        with self._lock:
            existing = self._objects.get(key)
            if existing is None:
                raise NotFoundError(f"{resource.coordinate.kind} {resource.key} not found")
            self._check_version(existing, resource.metadata.resource_version)

            obj = existing.copy()
            obj.coordinate = resource.coordinate
            obj.set_content(resource.content)
            obj.metadata.labels = dict(resource.metadata.labels)
            obj.metadata.annotations = dict(resource.metadata.annotations)
            obj.metadata.owner_references = copy.deepcopy(resource.metadata.owner_references)

            if obj == existing:
                # No-op writes neither bump the version nor notify watchers.
                return existing.copy()

            obj.metadata.resource_version = self._next_version()
            if obj.content != existing.content:
                obj.metadata.generation += 1
            self._objects[key] = obj
            self._writes += 1
            updated = obj.copy()
            old = existing.copy()

        self._dispatch([WatchEvent(EventType.MODIFIED, updated.copy(), old)])
        return updated

    def update_status(
        self,
        coordinate: TypeCoordinate,
        namespace: str,
        name: str,
        status: Dict[str, Any],
        resource_version: str = "",
    ) -> Resource:
        key = (_type_key(coordinate), namespace, name)
        with self._lock:
            existing = self._objects.get(key)
            if existing is None:
                raise NotFoundError(f"{coordinate.kind} {namespace}/{name} not found")
            self._check_version(existing, resource_version)

            obj = existing.copy()
            obj.status = dict(status)
            obj.metadata.resource_version = self._next_version()
            self._objects[key] = obj
            self._writes += 1
            updated = obj.copy()
            old = existing.copy()

        self._dispatch([WatchEvent(EventType.MODIFIED, updated.copy(), old)])
        return updated

    def delete(self, coordinate: TypeCoordinate, namespace: str, name: str) -> None:
        key = (_type_key(coordinate), namespace, name)
        with self._lock:
            if key not in self._objects:
                raise NotFoundError(f"{coordinate.kind} {namespace}/{name} not found")
            removed = self._delete_cascade(key)
            self._writes += len(removed)

        self._dispatch([WatchEvent(EventType.DELETED, obj) for obj in removed])

    def _delete_cascade(self, key: Tuple[Tuple[str, str], str, str]) -> List[Resource]:
        """Remove a record and, depth first, every record it owns."""
        obj = self._objects.pop(key)
        removed = [obj]
        dependents = [
            k for k, o in self._objects.items()
            if any(ref.uid == obj.metadata.uid for ref in o.metadata.owner_references)
        ]
        for dep in dependents:
            if dep in self._objects:
                removed.extend(self._delete_cascade(dep))
        if dependents:
            logger.debug(f"Garbage collected {len(dependents)} dependents of {obj.key}")
        return removed

    def _check_version(self, existing: Resource, resource_version: str) -> None:
        if resource_version and resource_version != existing.metadata.resource_version:
            raise ConflictError(
                f"{existing.coordinate.kind} {existing.key}: resource version "
                f"{resource_version} is stale (current {existing.metadata.resource_version})"
            )

    def watch(
        self,
        coordinate: TypeCoordinate,
        handler: EventHandler,
        replay: bool = True,
    ) -> Callable[[], None]:
        tkey = _type_key(coordinate)
        with self._lock:
            self._handlers.setdefault(tkey, []).append(handler)
            existing = self.list(coordinate) if replay else []

        for obj in existing:
            self._call(handler, WatchEvent(EventType.ADDED, obj))

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(tkey, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def _dispatch(self, events: List[WatchEvent]) -> None:
        for event in events:
            with self._lock:
                handlers = list(self._handlers.get(_type_key(event.coordinate), []))
            for handler in handlers:
                self._call(handler, event)

    def _call(self, handler: EventHandler, event: WatchEvent) -> None:
        try:
            handler(event)
        except Exception as e:
            logger.exception(f"Watch handler error for {event.coordinate}: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        with self._lock:
            return {
                "objects": len(self._objects),
                "writes": self._writes,
                "watched_types": sum(1 for h in self._handlers.values() if h),
            }
