"""
ResourceCreator Models
======================

Schema of the parent record: a list of desired child resources plus the
observed-state summary written back after each reconciliation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from resource_creator.models.resource import Resource, TypeCoordinate

GROUP = "creator.m3.io"
VERSION = "v1"
KIND = "ResourceCreator"

COORDINATE = TypeCoordinate(group=GROUP, version=VERSION, kind=KIND)


class ApplyStatus(str, Enum):
    """Outcome tag recorded on the parent status."""
    CREATED = "created"
    UPDATED = "updated"
    ERROR = "error"


class ResourceSpec(BaseModel):
    """One desired child resource."""
    model_config = ConfigDict(extra="ignore")

    group: str = Field("", description="API group of the resource (empty for core)")
    version: str = Field(..., min_length=1, description="API version of the resource")
    kind: str = Field(..., min_length=1, description="Kind of the resource")
    name: str = Field(..., min_length=1, description="Name of the resource")
    spec: Any = Field(None, description="Opaque configuration payload")

    @property
    def coordinate(self) -> TypeCoordinate:
        return TypeCoordinate(group=self.group, version=self.version, kind=self.kind)


class ResourceCreatorSpec(BaseModel):
    """Desired state of a ResourceCreator."""
    resources: List[ResourceSpec] = Field(..., min_length=1)


class ResourceCreatorStatus(BaseModel):
    """Observed state of a ResourceCreator."""
    model_config = ConfigDict(populate_by_name=True)

    resource: Optional[ResourceSpec] = None
    status: ApplyStatus
    last_update_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        alias="lastUpdateTime",
    )
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        # The summary names the descriptor; its payload stays on the spec.
        data = self.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude={"resource": {"spec"}},
        )
        if not self.message:
            data.pop("message", None)
        return data


class ResourceCreator(BaseModel):
    """A parsed parent record."""
    name: str
    namespace: str
    uid: str = ""
    generation: int = 0
    spec: ResourceCreatorSpec
    status: Optional[ResourceCreatorStatus] = None

    @field_validator("status", mode="before")
    @classmethod
    def lenient_status(cls, value: Any) -> Any:
        # Status is observed state only; an empty or foreign summary is dropped.
        if not value:
            return None
        try:
            return ResourceCreatorStatus.model_validate(value)
        except ValidationError:
            return None

    @classmethod
    def from_resource(cls, resource: Resource) -> ResourceCreator:
        """Parse a store record; raises ``pydantic.ValidationError``."""
        return cls.model_validate({
            "name": resource.metadata.name,
            "namespace": resource.metadata.namespace,
            "uid": resource.metadata.uid,
            "generation": resource.metadata.generation,
            "spec": resource.content.get("spec"),
            "status": resource.status,
        })
