"""
Materializer
============

Turns a parent record's desired state into concrete child records.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from resource_creator.errors import PayloadDecodeError
from resource_creator.models.creator import COORDINATE, ResourceCreator, ResourceSpec
from resource_creator.models.resource import (
    ObjectMeta, OwnerReference, Resource, TypeCoordinate,
)

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY = "resource-creator"


def extract_descriptors(parent: ResourceCreator) -> List[ResourceSpec]:
    """Desired children, in the order the parent lists them."""
    return list(parent.spec.resources)


def decode_payload(descriptor: ResourceSpec) -> Dict[str, Any]:
    """
    Decode a descriptor's configuration payload.

    The payload may arrive as a mapping or as JSON text; either way it must
    end up a mapping.
    """
    payload = descriptor.spec
    if payload is None:
        return {}
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise PayloadDecodeError(
                f"unable to unmarshal spec of {descriptor.name}: {e}",
                resource=descriptor.name,
            ) from e
    if not isinstance(payload, dict):
        raise PayloadDecodeError(
            f"spec of {descriptor.name} must be an object, got {type(payload).__name__}",
            resource=descriptor.name,
        )
    return payload


def controller_reference(
    parent: ResourceCreator,
    parent_coordinate: TypeCoordinate = COORDINATE,
) -> OwnerReference:
    """Owner reference marking ``parent`` as the controlling owner."""
    return OwnerReference(
        api_version=parent_coordinate.api_version,
        kind=parent_coordinate.kind,
        name=parent.name,
        uid=parent.uid,
        controller=True,
        block_owner_deletion=True,
    )


def materialize(
    descriptor: ResourceSpec,
    parent: ResourceCreator,
    parent_coordinate: TypeCoordinate = COORDINATE,
) -> Resource:
    """Build the child record for one descriptor."""
    payload = decode_payload(descriptor)

    child = Resource(
        coordinate=descriptor.coordinate,
        metadata=ObjectMeta(
            name=descriptor.name,
            namespace=parent.namespace,
            labels={MANAGED_BY_LABEL: MANAGED_BY},
            owner_references=[controller_reference(parent, parent_coordinate)],
        ),
    )
    child.set_content({"spec": payload})
    return child
