"""
Resource Creator
================

Declarative controller for ResourceCreator records.

A ResourceCreator lists child resources (type, name, configuration). The
controller keeps every listed child present in the store with the given
configuration and an owner reference back to its parent, and re-runs
whenever the parent or one of its children changes.

Architecture:
    WatchMultiplexer - Turns parent and child events into parent keys
    WorkQueue        - Coalesces keys, one worker per key, retry backoff
    Reconciler       - Applies a parent's descriptors to the store
    ControllerDaemon - Worker pool tying the pieces together
"""

from resource_creator.models.resource import (
    TypeCoordinate, ObjectKey, OwnerReference, ObjectMeta,
    Resource, EventType, WatchEvent,
)
from resource_creator.models.creator import (
    ApplyStatus, ResourceSpec, ResourceCreatorSpec,
    ResourceCreatorStatus, ResourceCreator,
)
from resource_creator.errors import (
    StoreError, NotFoundError, AlreadyExistsError, ConflictError,
    ReconcileError, ParentFetchError, InvalidParentError, PayloadDecodeError,
    ChildApplyError, StatusUpdateError, ReconcileCancelled,
)
from resource_creator.store import ResourceStore, InMemoryStore
from resource_creator.materializer import extract_descriptors, decode_payload, materialize
from resource_creator.router import route_event
from resource_creator.cancellation import CancellationToken
from resource_creator.workqueue import WorkQueue
from resource_creator.reconciler import Reconciler, ReconcileResult, ReconcileOutcome
from resource_creator.watcher import WatchMultiplexer
from resource_creator.config import OperatorConfig, ControllerSettings, DEFAULT_WATCHED_TYPES
from resource_creator.daemon import ControllerDaemon

__all__ = [
    # Models
    "TypeCoordinate", "ObjectKey", "OwnerReference", "ObjectMeta",
    "Resource", "EventType", "WatchEvent",
    "ApplyStatus", "ResourceSpec", "ResourceCreatorSpec",
    "ResourceCreatorStatus", "ResourceCreator",
    # Errors
    "StoreError", "NotFoundError", "AlreadyExistsError", "ConflictError",
    "ReconcileError", "ParentFetchError", "InvalidParentError", "PayloadDecodeError",
    "ChildApplyError", "StatusUpdateError", "ReconcileCancelled",
    # Core
    "ResourceStore", "InMemoryStore",
    "extract_descriptors", "decode_payload", "materialize",
    "route_event",
    "CancellationToken",
    "WorkQueue",
    "Reconciler", "ReconcileResult", "ReconcileOutcome",
    "WatchMultiplexer",
    "OperatorConfig", "ControllerSettings", "DEFAULT_WATCHED_TYPES",
    "ControllerDaemon",
]

__version__ = "0.1.0"
