"""
Tests for the reconciliation engine
"""

import pytest

from resource_creator.cancellation import CancellationToken
from resource_creator.errors import (
    ChildApplyError,
    InvalidParentError,
    NotFoundError,
    ParentFetchError,
    PayloadDecodeError,
    ReconcileCancelled,
    StatusUpdateError,
    StoreError,
)
from resource_creator.models.creator import COORDINATE
from resource_creator.models.resource import ObjectKey
from resource_creator.reconciler import Reconciler, ReconcileOutcome
from resource_creator.store import InMemoryStore

from conftest import CONFIGMAP, DEPLOYMENT, SERVICE, descriptor

KEY = ObjectKey("default", "demo")


class FlakyStore(InMemoryStore):
    """Store that fails selected operations."""

    def __init__(self):
        super().__init__()
        self.fail = {}
        self.calls = []

    def _maybe_fail(self, op, kind):
        self.calls.append((op, kind))
        if (op, kind) in self.fail:
            raise self.fail[(op, kind)]

    def get(self, coordinate, namespace, name):
        self._maybe_fail("get", coordinate.kind)
        return super().get(coordinate, namespace, name)

    def create(self, resource):
        self._maybe_fail("create", resource.coordinate.kind)
        return super().create(resource)

    def update(self, resource):
        self._maybe_fail("update", resource.coordinate.kind)
        return super().update(resource)

    def update_status(self, coordinate, namespace, name, status, resource_version=""):
        self._maybe_fail("update_status", coordinate.kind)
        return super().update_status(coordinate, namespace, name, status, resource_version)


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def reconciler(store):
    return Reconciler(store)


def parent_status(store):
    return store.get(COORDINATE, "default", "demo").status


class TestApply:
    """Test applying desired state."""

    def test_demo_scenario(self, store, reconciler, make_parent, set_resources):
        """Create web with 2 replicas, then update it in place to 3."""
        parent = make_parent(resources=[descriptor(spec={"replicas": 2})])

        result = reconciler.reconcile(KEY)
        assert result.success
        assert result.created == ["web"]

        web = store.get(DEPLOYMENT, "default", "web")
        assert web.spec == {"replicas": 2}
        ref = web.controller_ref()
        assert ref.name == "demo"
        assert ref.uid == parent.metadata.uid

        set_resources(parent, [descriptor(spec={"replicas": 3})])
        result = reconciler.reconcile(KEY)

        assert result.updated == ["web"]
        updated = store.get(DEPLOYMENT, "default", "web")
        assert updated.spec == {"replicas": 3}
        assert updated.metadata.uid == web.metadata.uid
        assert len(store.list(DEPLOYMENT)) == 1

    def test_all_descriptors_materialized(self, store, reconciler, make_parent):
        make_parent(resources=[
            descriptor(name="web"),
            descriptor(kind="Service", group="", name="web-svc", spec={"ports": [{"port": 80}]}),
            descriptor(kind="ConfigMap", group="", name="settings", spec={"debug": True}),
        ])

        result = reconciler.reconcile(KEY)

        assert result.outcome == ReconcileOutcome.SUCCESS
        assert result.created == ["web", "web-svc", "settings"]
        for coordinate, name, spec in [
            (DEPLOYMENT, "web", {"replicas": 2}),
            (SERVICE, "web-svc", {"ports": [{"port": 80}]}),
            (CONFIGMAP, "settings", {"debug": True}),
        ]:
            child = store.get(coordinate, "default", name)
            assert child.coordinate.kind == coordinate.kind
            assert child.spec == spec
            assert child.controller_ref().name == "demo"

    def test_idempotent(self, store, reconciler, make_parent):
        make_parent()
        reconciler.reconcile(KEY)
        first = store.get(DEPLOYMENT, "default", "web")

        result = reconciler.reconcile(KEY)

        assert result.success
        assert result.created == []
        assert result.updated == ["web"]
        second = store.get(DEPLOYMENT, "default", "web")
        assert second.metadata.resource_version == first.metadata.resource_version
        assert len(store.list(DEPLOYMENT)) == 1

    def test_removed_descriptor_keeps_child(self, store, reconciler, make_parent, set_resources):
        """Children dropped from desired state are left in place."""
        parent = make_parent(resources=[descriptor(name="web"), descriptor(name="api")])
        reconciler.reconcile(KEY)

        set_resources(parent, [descriptor(name="web")])
        assert reconciler.reconcile(KEY).success

        assert store.get(DEPLOYMENT, "default", "api").name == "api"

    def test_update_overwrites_spec(self, store, reconciler, make_parent):
        """An update replaces the whole spec rather than merging."""
        make_parent(resources=[descriptor(spec={"replicas": 2})])
        reconciler.reconcile(KEY)
        drifted = store.get(DEPLOYMENT, "default", "web")
        drifted.set_content({"spec": {"replicas": 9, "paused": True}})
        store.update(drifted)

        reconciler.reconcile(KEY)

        assert store.get(DEPLOYMENT, "default", "web").spec == {"replicas": 2}

    def test_update_keeps_foreign_labels(self, store, reconciler, make_parent):
        make_parent()
        reconciler.reconcile(KEY)
        child = store.get(DEPLOYMENT, "default", "web")
        child.metadata.labels["team"] = "a"
        store.update(child)

        reconciler.reconcile(KEY)

        labels = store.get(DEPLOYMENT, "default", "web").metadata.labels
        assert labels["team"] == "a"
        assert labels["app.kubernetes.io/managed-by"] == "resource-creator"

    def test_children_in_parent_namespace(self, store, reconciler, make_parent):
        make_parent(namespace="team-a")
        assert reconciler.reconcile(ObjectKey("team-a", "demo")).success
        assert store.get(DEPLOYMENT, "team-a", "web").namespace == "team-a"


class TestStatus:
    """Test the observed-state summary written to the parent."""

    def test_created_status(self, store, reconciler, make_parent):
        make_parent()
        reconciler.reconcile(KEY)

        status = parent_status(store)
        assert status["status"] == "created"
        assert status["resource"]["name"] == "web"
        assert status["lastUpdateTime"]

    def test_updated_status(self, store, reconciler, make_parent):
        make_parent()
        reconciler.reconcile(KEY)
        reconciler.reconcile(KEY)
        assert parent_status(store)["status"] == "updated"

    def test_status_names_descriptor_without_payload(self, store, reconciler, make_parent):
        make_parent(resources=[descriptor(spec={"replicas": 2, "token": "secret"})])
        reconciler.reconcile(KEY)

        resource = parent_status(store)["resource"]
        assert resource["kind"] == "Deployment"
        assert resource["name"] == "web"
        assert "spec" not in resource

    def test_status_write_does_not_bump_generation(self, store, reconciler, make_parent):
        parent = make_parent()
        reconciler.reconcile(KEY)
        current = store.get(COORDINATE, "default", "demo")
        assert current.metadata.generation == parent.metadata.generation


class TestFailures:
    """Test error kinds and fail-fast behavior."""

    def test_missing_parent_is_noop(self, store, reconciler):
        result = reconciler.reconcile(KEY)

        assert result.success
        assert result.outcome == ReconcileOutcome.DELETED
        assert not result.requeue
        assert store.calls == [("get", "ResourceCreator")]

    def test_parent_fetch_error_requeues(self, store, reconciler, make_parent):
        make_parent()
        store.fail[("get", "ResourceCreator")] = StoreError("connection refused")

        result = reconciler.reconcile(KEY)

        assert result.outcome == ReconcileOutcome.FAILED
        assert isinstance(result.error, ParentFetchError)
        assert result.requeue
        assert store.list(DEPLOYMENT) == []

    def test_bad_payload_fails_fast(self, store, reconciler, make_parent):
        """Descriptor i fails, descriptor i+1 is never applied."""
        make_parent(resources=[
            descriptor(name="first"),
            descriptor(name="broken", spec="{oops"),
            descriptor(name="third"),
        ])

        result = reconciler.reconcile(KEY)

        assert not result.success
        assert isinstance(result.error, PayloadDecodeError)
        assert not result.requeue
        assert result.created == ["first"]
        with pytest.raises(NotFoundError):
            store.get(DEPLOYMENT, "default", "third")

        status = parent_status(store)
        assert status["status"] == "error"
        assert status["resource"]["name"] == "broken"
        assert "broken" in status["message"]

    def test_non_mapping_payload(self, store, reconciler, make_parent):
        make_parent(resources=[descriptor(spec=[1, 2, 3])])

        result = reconciler.reconcile(KEY)

        assert isinstance(result.error, PayloadDecodeError)
        assert parent_status(store)["status"] == "error"

    def test_invalid_parent(self, store, reconciler, make_parent):
        make_parent(resources=[])

        result = reconciler.reconcile(KEY)

        assert isinstance(result.error, InvalidParentError)
        assert not result.requeue
        assert parent_status(store)["status"] == "error"

    @pytest.mark.parametrize("op", ["get", "create"])
    def test_child_errors_abort(self, store, reconciler, make_parent, op):
        make_parent(resources=[
            descriptor(kind="Service", group="", name="svc", spec={}),
            descriptor(name="web"),
        ])
        store.fail[(op, "Service")] = StoreError("apiserver unavailable")

        result = reconciler.reconcile(KEY)

        assert isinstance(result.error, ChildApplyError)
        assert result.requeue
        with pytest.raises(NotFoundError):
            store.get(DEPLOYMENT, "default", "web")
        assert parent_status(store)["status"] == "error"

    def test_update_error(self, store, reconciler, make_parent):
        make_parent()
        reconciler.reconcile(KEY)
        store.fail[("update", "Deployment")] = StoreError("conflict")

        result = reconciler.reconcile(KEY)

        assert isinstance(result.error, ChildApplyError)
        assert result.requeue

    def test_status_write_failure_requeues(self, store, reconciler, make_parent):
        make_parent()
        store.fail[("update_status", "ResourceCreator")] = StoreError("timeout")

        result = reconciler.reconcile(KEY)

        assert isinstance(result.error, StatusUpdateError)
        assert result.requeue
        assert store.get(DEPLOYMENT, "default", "web")

    def test_failed_status_record_forces_requeue(self, store, reconciler, make_parent):
        """A permanent error whose status cannot be written is retried."""
        make_parent(resources=[descriptor(spec="{oops")])
        store.fail[("update_status", "ResourceCreator")] = StoreError("timeout")

        result = reconciler.reconcile(KEY)

        assert isinstance(result.error, PayloadDecodeError)
        assert result.requeue

    def test_stats(self, reconciler, make_parent):
        make_parent(resources=[descriptor(spec="{oops")])
        reconciler.reconcile(KEY)
        stats = reconciler.get_stats()
        assert stats["cycle_count"] == 1
        assert stats["failure_count"] == 1


class TestCancellation:
    """Test cooperative cancellation."""

    def test_cancelled_before_start(self, store, reconciler, make_parent):
        make_parent()
        store.calls.clear()
        token = CancellationToken()
        token.cancel()

        result = reconciler.reconcile(KEY, token)

        assert isinstance(result.error, ReconcileCancelled)
        assert result.requeue
        assert store.calls == []

    def test_cancel_mid_cycle_keeps_applied_children(self, store, reconciler, make_parent):
        make_parent(resources=[descriptor(name="first"), descriptor(name="second")])
        token = CancellationToken()

        original_create = store.create

        def create_then_cancel(resource):
            created = original_create(resource)
            token.cancel()
            return created

        store.create = create_then_cancel
        result = reconciler.reconcile(KEY, token)

        assert isinstance(result.error, ReconcileCancelled)
        assert store.get(DEPLOYMENT, "default", "first")
        with pytest.raises(NotFoundError):
            store.get(DEPLOYMENT, "default", "second")
        assert parent_status(store) == {}

    def test_expired_deadline(self, store, reconciler, make_parent):
        make_parent()
        token = CancellationToken(deadline=0.0)

        result = reconciler.reconcile(KEY, token)

        assert isinstance(result.error, ReconcileCancelled)
        assert "deadline" in str(result.error)
