"""
Shared fixtures for the resource creator tests.
"""

import os
import sys

import pytest

# Add repository root for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from resource_creator.models.creator import COORDINATE
from resource_creator.models.resource import ObjectMeta, Resource, TypeCoordinate
from resource_creator.store import InMemoryStore

DEPLOYMENT = TypeCoordinate(group="apps", version="v1", kind="Deployment")
SERVICE = TypeCoordinate(group="", version="v1", kind="Service")
CONFIGMAP = TypeCoordinate(group="", version="v1", kind="ConfigMap")


def descriptor(kind="Deployment", name="web", spec=None, group="apps", version="v1"):
    """Descriptor mapping as it appears inside a parent record."""
    return {
        "group": group,
        "version": version,
        "kind": kind,
        "name": name,
        "spec": {"replicas": 2} if spec is None else spec,
    }


def parent_record(name="demo", resources=None, namespace="default"):
    """An unsaved ResourceCreator record."""
    return Resource(
        coordinate=COORDINATE,
        metadata=ObjectMeta(name=name, namespace=namespace),
        content={"spec": {"resources": resources if resources is not None else [descriptor()]}},
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def make_parent(store):
    """Create a parent in the store and return the stored copy."""
    def _make(name="demo", resources=None, namespace="default"):
        return store.create(parent_record(name, resources, namespace))
    return _make


@pytest.fixture
def set_resources(store):
    """Replace the desired resources of an existing parent."""
    def _set(parent, resources):
        current = store.get(COORDINATE, parent.namespace, parent.name)
        current.set_content({"spec": {"resources": resources}})
        return store.update(current)
    return _set
