"""
Errors
======

Exceptions raised by the store and the reconciliation engine.

Every engine error carries a ``retryable`` flag: transient failures are
requeued with backoff, permanent ones wait for the parent record to change.
"""

from __future__ import annotations

from typing import Optional


class StoreError(Exception):
    """Base class for resource store failures."""


class NotFoundError(StoreError):
    """The addressed record does not exist."""


class AlreadyExistsError(StoreError):
    """A record with the same type, namespace and name already exists."""


class ConflictError(StoreError):
    """The caller's resource version is stale."""


class ReconcileError(Exception):
    """Base class for reconciliation failures."""

    retryable = True

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(message)
        self.resource = resource


class ParentFetchError(ReconcileError):
    """The parent record could not be read."""


class InvalidParentError(ReconcileError):
    """The parent record does not match the ResourceCreator schema."""

    retryable = False


class PayloadDecodeError(ReconcileError):
    """A descriptor payload is not a mapping."""

    retryable = False


class ChildApplyError(ReconcileError):
    """Reading, creating or updating a child record failed."""


class StatusUpdateError(ReconcileError):
    """Writing the observed-state summary failed."""


class ReconcileCancelled(ReconcileError):
    """The cycle was cancelled before the next store operation."""
