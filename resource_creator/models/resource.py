"""
Resource Models
===============

Generic records held by the resource store.

A record is a tagged variant: the type coordinate lives apart from the
metadata and from the free-form content, so writing content can never
overwrite the type identity.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum


@dataclass(frozen=True)
class TypeCoordinate:
    """Group / version / kind of a record type."""
    group: str
    version: str
    kind: str

    @property
    def api_version(self) -> str:
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"

    @classmethod
    def from_api_version(cls, api_version: str, kind: str) -> TypeCoordinate:
        """Parse ``apps/v1`` + ``Deployment`` style coordinates."""
        if "/" in api_version:
            group, version = api_version.split("/", 1)
        else:
            group, version = "", api_version
        return cls(group=group, version=version, kind=kind)

    def to_dict(self) -> Dict[str, str]:
        return {"group": self.group, "version": self.version, "kind": self.kind}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TypeCoordinate:
        return cls(
            group=data.get("group", ""),
            version=data["version"],
            kind=data["kind"],
        )

    def __str__(self) -> str:
        return f"{self.api_version}/{self.kind}"


@dataclass(frozen=True, order=True)
class ObjectKey:
    """Namespace + name; the identity of a record within its type."""
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class OwnerReference:
    """Back-reference from a record to the record that controls it."""
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool = False
    block_owner_deletion: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": self.controller,
            "blockOwnerDeletion": self.block_owner_deletion,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> OwnerReference:
        return cls(
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
            name=data.get("name", ""),
            uid=data.get("uid", ""),
            controller=data.get("controller", False),
            block_owner_deletion=data.get("blockOwnerDeletion", False),
        )


@dataclass
class ObjectMeta:
    """Record metadata."""
    name: str
    namespace: str = "default"
    uid: str = ""
    resource_version: str = ""
    generation: int = 0
    creation_timestamp: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    owner_references: List[OwnerReference] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "namespace": self.namespace,
        }
        if self.uid:
            data["uid"] = self.uid
        if self.resource_version:
            data["resourceVersion"] = self.resource_version
        if self.generation:
            data["generation"] = self.generation
        if self.creation_timestamp:
            data["creationTimestamp"] = self.creation_timestamp
        if self.labels:
            data["labels"] = dict(self.labels)
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        if self.owner_references:
            data["ownerReferences"] = [r.to_dict() for r in self.owner_references]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ObjectMeta:
        return cls(
            name=data["name"],
            namespace=data.get("namespace") or "default",
            uid=data.get("uid", ""),
            resource_version=str(data.get("resourceVersion", "")),
            generation=int(data.get("generation", 0)),
            creation_timestamp=data.get("creationTimestamp"),
            labels=dict(data.get("labels") or {}),
            annotations=dict(data.get("annotations") or {}),
            owner_references=[
                OwnerReference.from_dict(r) for r in data.get("ownerReferences") or []
            ],
        )


# Top-level keys that belong to the envelope rather than the content.
_ENVELOPE_KEYS = ("apiVersion", "kind", "metadata", "status")


@dataclass
class Resource:
    """A dynamically-typed record addressed by (coordinate, namespace, name)."""
    coordinate: TypeCoordinate
    metadata: ObjectMeta
    content: Dict[str, Any] = field(default_factory=dict)
    status: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.metadata.namespace, self.metadata.name)

    @property
    def spec(self) -> Dict[str, Any]:
        return self.content.get("spec", {})

    def set_content(self, content: Dict[str, Any]) -> None:
        """Replace the free-form content; type and metadata are untouched."""
        self.content = copy.deepcopy(content)

    def controller_ref(self) -> Optional[OwnerReference]:
        """Return the owner reference flagged as controller, if any."""
        for ref in self.metadata.owner_references:
            if ref.controller:
                return ref
        return None

    def copy(self) -> Resource:
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "apiVersion": self.coordinate.api_version,
            "kind": self.coordinate.kind,
            "metadata": self.metadata.to_dict(),
        }
        # Envelope keys in the content never override the type or metadata.
        data.update({
            k: copy.deepcopy(v) for k, v in self.content.items() if k not in _ENVELOPE_KEYS
        })
        if self.status:
            data["status"] = copy.deepcopy(self.status)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Resource:
        if "apiVersion" not in data or "kind" not in data:
            raise ValueError("record requires apiVersion and kind")
        if not isinstance(data.get("metadata"), dict) or "name" not in data["metadata"]:
            raise ValueError("record requires metadata.name")
        content = {
            k: copy.deepcopy(v) for k, v in data.items() if k not in _ENVELOPE_KEYS
        }
        return cls(
            coordinate=TypeCoordinate.from_api_version(data["apiVersion"], data["kind"]),
            metadata=ObjectMeta.from_dict(data["metadata"]),
            content=content,
            status=copy.deepcopy(data.get("status") or {}),
        )


class EventType(str, Enum):
    """Kinds of change notifications."""
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass
class WatchEvent:
    """A change notification delivered to store subscribers."""
    type: EventType
    obj: Resource
    old: Optional[Resource] = None

    @property
    def coordinate(self) -> TypeCoordinate:
        return self.obj.coordinate
