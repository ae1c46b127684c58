"""
Ownership Router
================

Maps a changed child record back to the parent that controls it.
"""

from __future__ import annotations

from typing import Optional

from resource_creator.models.creator import KIND
from resource_creator.models.resource import ObjectKey, Resource


def route_event(
    child: Resource,
    parent_kind: str = KIND,
    parent_api_version: Optional[str] = None,
) -> Optional[ObjectKey]:
    """
    Return the key of the controlling parent, or None.

    Ownership is namespace scoped: the parent is looked up in the child's
    own namespace. Missing or foreign owners are normal and yield None.
    """
    ref = child.controller_ref()
    if ref is None or ref.kind != parent_kind:
        return None
    if parent_api_version is not None and ref.api_version != parent_api_version:
        return None
    return ObjectKey(namespace=child.namespace, name=ref.name)
