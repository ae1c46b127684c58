"""
Reconciler
==========

Drives the store toward the desired state of one ResourceCreator.

One call handles one parent key: fetch the parent, walk its descriptors in
order, create or overwrite each child, then record the outcome on the
parent's status. The first failing descriptor aborts the cycle.
"""

from __future__ import annotations

import threading
import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Any

from pydantic import ValidationError

from resource_creator.cancellation import CancellationToken
from resource_creator.errors import (
    ChildApplyError, InvalidParentError, NotFoundError, ParentFetchError,
    ReconcileCancelled, ReconcileError, StatusUpdateError, StoreError,
)
from resource_creator.materializer import extract_descriptors, materialize
from resource_creator.models.creator import (
    COORDINATE, ApplyStatus, ResourceCreator, ResourceCreatorStatus, ResourceSpec,
)
from resource_creator.models.resource import ObjectKey, Resource, TypeCoordinate
from resource_creator.store import ResourceStore

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    """How a cycle ended."""
    SUCCESS = "success"
    DELETED = "deleted"
    FAILED = "failed"


@dataclass
class ReconcileResult:
    """Result of a reconciliation cycle."""
    key: ObjectKey
    timestamp: float
    outcome: ReconcileOutcome = ReconcileOutcome.SUCCESS

    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)

    error: Optional[ReconcileError] = None
    requeue: bool = False

    cycle_time_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.outcome != ReconcileOutcome.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": str(self.key),
            "timestamp": self.timestamp,
            "outcome": self.outcome.value,
            "created": self.created,
            "updated": self.updated,
            "error": str(self.error) if self.error else None,
            "requeue": self.requeue,
            "cycle_time_ms": self.cycle_time_ms,
        }


class Reconciler:
    """
    Reconciles ResourceCreator records against the store.

    Holds no per-parent state, so different keys may be reconciled from
    different threads at once. The queue driver keeps a single key from
    running twice concurrently.
    """

    def __init__(
        self,
        store: ResourceStore,
        parent_coordinate: TypeCoordinate = COORDINATE,
    ):
        self._lock = threading.Lock()

        self.store = store
        self.parent_coordinate = parent_coordinate

        # Stats
        self._cycle_count = 0
        self._failure_count = 0
        self._last_reconcile = 0.0

    def reconcile(
        self,
        key: ObjectKey,
        cancel: Optional[CancellationToken] = None,
    ) -> ReconcileResult:
        """Perform one reconciliation cycle for ``key``."""
        start_time = time.time()
        result = ReconcileResult(key=key, timestamp=start_time)

        parent_res: Optional[Resource] = None
        current: Optional[ResourceSpec] = None

        try:
            self._check_cancelled(cancel)
            try:
                parent_res = self.store.get(self.parent_coordinate, key.namespace, key.name)
            except NotFoundError:
                # Children are collected by the store through their owner references.
                logger.debug(f"{self.parent_coordinate.kind} {key} not found, nothing to do")
                result.outcome = ReconcileOutcome.DELETED
                return result
            except StoreError as e:
                raise ParentFetchError(f"unable to fetch {self.parent_coordinate.kind} {key}: {e}") from e

            try:
                parent = ResourceCreator.from_resource(parent_res)
            except ValidationError as e:
                raise InvalidParentError(f"invalid {self.parent_coordinate.kind} {key}: {e}") from e

            last_status = ApplyStatus.UPDATED
            for descriptor in extract_descriptors(parent):
                current = descriptor
                logger.info(f"Reconciling resource {descriptor.kind} {key.namespace}/{descriptor.name}")

                child = materialize(descriptor, parent, self.parent_coordinate)
                last_status = self._apply_child(child, cancel)

                if last_status == ApplyStatus.CREATED:
                    result.created.append(descriptor.name)
                else:
                    result.updated.append(descriptor.name)

            applied = len(result.created) + len(result.updated)
            self._write_status(parent_res, ResourceCreatorStatus(
                resource=current,
                status=last_status,
                message=f"applied {applied} resource(s)",
            ), cancel)

        except ReconcileError as e:
            result.outcome = ReconcileOutcome.FAILED
            result.error = e
            result.requeue = e.retryable
            logger.error(f"Reconcile {key} failed: {e}")
            self._report_failure(parent_res, current, e, result, cancel)

        finally:
            result.cycle_time_ms = (time.time() - start_time) * 1000
            with self._lock:
                self._cycle_count += 1
                self._last_reconcile = start_time
                if result.outcome == ReconcileOutcome.FAILED:
                    self._failure_count += 1

        if result.created or result.updated:
            logger.info(
                f"Reconcile {key}: {len(result.created)} created, "
                f"{len(result.updated)} updated ({result.cycle_time_ms:.1f}ms)"
            )
        return result

    def _apply_child(
        self,
        child: Resource,
        cancel: Optional[CancellationToken],
    ) -> ApplyStatus:
        """Create the child, or overwrite it when it already exists."""
        label = f"{child.coordinate.kind} {child.key}"

        self._check_cancelled(cancel)
        try:
            existing: Optional[Resource] = self.store.get(
                child.coordinate, child.namespace, child.name
            )
        except NotFoundError:
            existing = None
        except StoreError as e:
            raise ChildApplyError(f"unable to fetch resource {label}: {e}", child.name) from e

        self._check_cancelled(cancel)
        if existing is None:
            child.metadata.resource_version = ""
            try:
                self.store.create(child)
            except StoreError as e:
                raise ChildApplyError(f"unable to create resource {label}: {e}", child.name) from e
            logger.info(f"Created resource {label}")
            return ApplyStatus.CREATED

        owner = existing.controller_ref()
        desired_owner = child.controller_ref()
        if owner is not None and desired_owner is not None and owner.uid != desired_owner.uid:
            logger.warning(f"Taking over {label} from {owner.kind} {owner.name}")

        child.metadata.resource_version = existing.metadata.resource_version
        child.metadata.labels = {**existing.metadata.labels, **child.metadata.labels}
        child.metadata.annotations = dict(existing.metadata.annotations)
        try:
            self.store.update(child)
        except StoreError as e:
            raise ChildApplyError(f"unable to update resource {label}: {e}", child.name) from e
        logger.info(f"Updated resource {label}")
        return ApplyStatus.UPDATED

    def _write_status(
        self,
        parent_res: Resource,
        status: ResourceCreatorStatus,
        cancel: Optional[CancellationToken],
    ) -> None:
        """Record the observed-state summary on the parent."""
        self._check_cancelled(cancel)
        try:
            self.store.update_status(
                self.parent_coordinate,
                parent_res.namespace,
                parent_res.name,
                status.to_dict(),
            )
        except NotFoundError:
            logger.debug(f"{self.parent_coordinate.kind} {parent_res.key} deleted before status update")
        except StoreError as e:
            raise StatusUpdateError(
                f"unable to update status of {self.parent_coordinate.kind} {parent_res.key}: {e}"
            ) from e

    def _report_failure(
        self,
        parent_res: Optional[Resource],
        current: Optional[ResourceSpec],
        error: ReconcileError,
        result: ReconcileResult,
        cancel: Optional[CancellationToken],
    ) -> None:
        """Surface a failed cycle on the parent's status where possible."""
        if parent_res is None or isinstance(error, (ReconcileCancelled, StatusUpdateError)):
            return
        try:
            self._write_status(parent_res, ResourceCreatorStatus(
                resource=current,
                status=ApplyStatus.ERROR,
                message=str(error),
            ), cancel)
        except ReconcileError as e:
            logger.error(f"Unable to record failure of {result.key}: {e}")
            result.requeue = True

    def _check_cancelled(self, cancel: Optional[CancellationToken]) -> None:
        if cancel is not None and cancel.cancelled:
            raise ReconcileCancelled(f"reconcile cancelled: {cancel.reason}")

    def get_stats(self) -> Dict[str, Any]:
        """Get reconciler statistics."""
        with self._lock:
            return {
                "cycle_count": self._cycle_count,
                "failure_count": self._failure_count,
                "last_reconcile": self._last_reconcile,
                "last_reconcile_age_sec": time.time() - self._last_reconcile,
            }
