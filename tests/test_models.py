"""
Tests for record and ResourceCreator models
"""

import pytest
from pydantic import ValidationError

from resource_creator.models.creator import (
    ApplyStatus,
    ResourceCreator,
    ResourceCreatorStatus,
    ResourceSpec,
)
from resource_creator.models.resource import (
    ObjectMeta,
    OwnerReference,
    Resource,
    TypeCoordinate,
)

from conftest import descriptor, parent_record


class TestTypeCoordinate:
    """Test type coordinates."""

    def test_core_group_api_version(self):
        """Core types have a bare version as api version."""
        assert TypeCoordinate("", "v1", "Pod").api_version == "v1"

    def test_named_group_api_version(self):
        assert TypeCoordinate("apps", "v1", "Deployment").api_version == "apps/v1"

    def test_parse_api_version(self):
        coord = TypeCoordinate.from_api_version("batch/v1", "Job")
        assert coord == TypeCoordinate("batch", "v1", "Job")
        assert TypeCoordinate.from_api_version("v1", "Service").group == ""


class TestResource:
    """Test the generic record."""

    def test_from_dict_separates_envelope(self):
        """apiVersion, kind, metadata and status stay out of the content."""
        res = Resource.from_dict({
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": "web", "namespace": "prod", "labels": {"a": "b"}},
            "spec": {"replicas": 2},
            "status": {"ready": 1},
        })

        assert res.coordinate == TypeCoordinate("apps", "v1", "Deployment")
        assert res.key.namespace == "prod"
        assert res.content == {"spec": {"replicas": 2}}
        assert res.status == {"ready": 1}
        assert res.metadata.labels == {"a": "b"}

    def test_missing_namespace_defaults(self):
        res = Resource.from_dict({"apiVersion": "v1", "kind": "Pod", "metadata": {"name": "p"}})
        assert res.namespace == "default"

    def test_from_dict_requires_name(self):
        with pytest.raises(ValueError):
            Resource.from_dict({"apiVersion": "v1", "kind": "Pod", "metadata": {}})

    def test_set_content_keeps_type(self):
        """Content that looks like an envelope never changes the type."""
        res = Resource(
            coordinate=TypeCoordinate("apps", "v1", "Deployment"),
            metadata=ObjectMeta(name="web"),
        )
        res.set_content({"apiVersion": "v1", "kind": "Pod", "spec": {}})

        assert res.coordinate.kind == "Deployment"
        assert res.to_dict()["kind"] == "Deployment"
        assert res.to_dict()["apiVersion"] == "apps/v1"

    def test_content_metadata_does_not_override(self):
        res = Resource(
            coordinate=TypeCoordinate("apps", "v1", "Deployment"),
            metadata=ObjectMeta(name="web", namespace="shop"),
            content={"metadata": {"name": "other"}, "status": {"ready": 1}, "spec": {}},
        )
        data = res.to_dict()

        assert data["metadata"]["name"] == "web"
        assert data["metadata"]["namespace"] == "shop"
        assert "status" not in data
        assert data["spec"] == {}

    def test_controller_ref(self):
        res = Resource(
            coordinate=TypeCoordinate("", "v1", "Pod"),
            metadata=ObjectMeta(name="p", owner_references=[
                OwnerReference("v1", "Node", "n1", "u1"),
                OwnerReference("creator.m3.io/v1", "ResourceCreator", "demo", "u2", controller=True),
            ]),
        )
        assert res.controller_ref().name == "demo"

    def test_to_dict_owner_references(self):
        res = Resource(
            coordinate=TypeCoordinate("", "v1", "Pod"),
            metadata=ObjectMeta(name="p", owner_references=[
                OwnerReference("creator.m3.io/v1", "ResourceCreator", "demo", "u2", True, True),
            ]),
        )
        ref = res.to_dict()["metadata"]["ownerReferences"][0]
        assert ref["controller"] is True
        assert ref["blockOwnerDeletion"] is True
        assert ref["apiVersion"] == "creator.m3.io/v1"


class TestResourceCreator:
    """Test the parent schema."""

    def test_from_resource(self):
        parent = ResourceCreator.from_resource(parent_record())

        assert parent.name == "demo"
        assert len(parent.spec.resources) == 1
        assert parent.spec.resources[0].coordinate.kind == "Deployment"
        assert parent.status is None

    def test_empty_resources_rejected(self):
        """At least one descriptor is required."""
        with pytest.raises(ValidationError):
            ResourceCreator.from_resource(parent_record(resources=[]))

    def test_descriptor_requires_kind(self):
        bad = descriptor()
        del bad["kind"]
        with pytest.raises(ValidationError):
            ResourceCreator.from_resource(parent_record(resources=[bad]))

    def test_core_group_may_be_omitted(self):
        spec = ResourceSpec(version="v1", kind="Service", name="svc")
        assert spec.coordinate.api_version == "v1"

    def test_foreign_status_ignored(self):
        record = parent_record()
        record.status = {"phase": "Ready"}
        assert ResourceCreator.from_resource(record).status is None


class TestResourceCreatorStatus:
    """Test the observed-state summary."""

    def test_to_dict_uses_wire_names(self):
        status = ResourceCreatorStatus(
            resource=ResourceSpec(**descriptor()),
            status=ApplyStatus.CREATED,
        )
        data = status.to_dict()

        assert data["status"] == "created"
        assert "lastUpdateTime" in data
        assert data["resource"]["name"] == "web"
        assert "message" not in data

    def test_to_dict_omits_payload(self):
        status = ResourceCreatorStatus(
            resource=ResourceSpec(**descriptor(spec={"replicas": 2, "password": "x"})),
            status=ApplyStatus.UPDATED,
        )
        resource = status.to_dict()["resource"]

        assert resource == {"group": "apps", "version": "v1", "kind": "Deployment", "name": "web"}

    def test_round_trip_through_record(self):
        status = ResourceCreatorStatus(status=ApplyStatus.ERROR, message="boom")
        record = parent_record()
        record.status = status.to_dict()

        parsed = ResourceCreator.from_resource(record).status
        assert parsed.status == ApplyStatus.ERROR
        assert parsed.message == "boom"
