"""Data models for the resource creator."""

from resource_creator.models.resource import (
    TypeCoordinate, ObjectKey, OwnerReference, ObjectMeta,
    Resource, EventType, WatchEvent,
)
from resource_creator.models.creator import (
    ApplyStatus, ResourceSpec, ResourceCreatorSpec,
    ResourceCreatorStatus, ResourceCreator,
)

__all__ = [
    "TypeCoordinate", "ObjectKey", "OwnerReference", "ObjectMeta",
    "Resource", "EventType", "WatchEvent",
    "ApplyStatus", "ResourceSpec", "ResourceCreatorSpec",
    "ResourceCreatorStatus", "ResourceCreator",
]
