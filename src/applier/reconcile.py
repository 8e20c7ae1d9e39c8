"""Get-or-create-or-update for a single resource.

Failures are isolated: every error ends up in the returned outcome and the
log, never raised, so callers move on to the next resource.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from kubernetes.client.exceptions import ApiException

from .errors import ErrorClass, StoreError, classify
from .kinds import ResourceOps, ops_for
from .models import (
    Identity,
    ManagedResource,
    Outcome,
    ReconciliationOutcome,
    ResourceKind,
)
from .retry import PersistController, RetryPolicy
from .store import ResourceStore

logger = logging.getLogger(__name__)

Recorder = Callable[[ManagedResource], None]


class ResourceReconciler:
    """Converges one (kind, namespace, name) toward its desired state."""

    def __init__(
        self,
        store: ResourceStore,
        policy: RetryPolicy | None = None,
        recorder: Recorder | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            store: Control-plane store.
            policy: Retry budget for persisting updates.
            recorder: Called with every object the store returns after a
                successful write, so the caller can keep identities current.
        """
        self._store = store
        self._persist = PersistController(store, policy)
        self._recorder = recorder

    def reconcile(self, desired: ManagedResource) -> ReconciliationOutcome:
        ops = ops_for(desired.kind)

        try:
            existing = ops.get(self._store, desired.namespace, desired.name)
        except (StoreError, ApiException) as e:
            if classify(e) == ErrorClass.NOT_FOUND:
                return self._create(ops, desired)
            logger.error(
                "Error getting object",
                extra={"resource": str(desired), "error": str(e)},
            )
            return ReconciliationOutcome.for_resource(desired, Outcome.FAILED, error=e)

        if ops.is_equivalent(existing, desired):
            logger.debug("Objects are equal, skipping update", extra={"resource": str(desired)})
            return ReconciliationOutcome.for_resource(desired, Outcome.UNCHANGED)

        updated = ops.merge(existing, desired)
        try:
            stored = self._persist.persist(updated)
        except (StoreError, ApiException) as e:
            logger.warning(
                "Error updating object",
                extra={"resource": str(desired), "error": str(e)},
            )
            return ReconciliationOutcome.for_resource(desired, Outcome.FAILED, error=e)

        if stored is None:
            return ReconciliationOutcome.for_resource(
                desired, Outcome.SKIPPED, reason="deleted concurrently"
            )

        self._record(stored)
        logger.info("Updated object", extra={"resource": str(desired)})
        return ReconciliationOutcome.for_resource(desired, Outcome.UPDATED)

    def _create(self, ops: ResourceOps, desired: ManagedResource) -> ReconciliationOutcome:
        # A new object must not carry a resourceVersion
        fresh = desired.with_identity(Identity())
        try:
            created = ops.create(self._store, fresh)
        except (StoreError, ApiException) as e:
            match classify(e):
                case ErrorClass.ALREADY_EXISTS:
                    logger.debug(
                        "Object created concurrently",
                        extra={"resource": str(desired)},
                    )
                    return ReconciliationOutcome.for_resource(
                        desired, Outcome.SKIPPED, reason="already exists"
                    )
                case ErrorClass.FORBIDDEN:
                    # Mostly a terminating namespace; a broken policy would
                    # show up everywhere, so this stays below warning.
                    logger.info(
                        "Forbidden from creating object",
                        extra={"resource": str(desired), "error": str(e)},
                    )
                case _:
                    logger.warning(
                        "Error creating object",
                        extra={"resource": str(desired), "error": str(e)},
                    )
            return ReconciliationOutcome.for_resource(desired, Outcome.FAILED, error=e)

        self._record(created)
        logger.info("Created object", extra={"resource": str(desired)})
        return ReconciliationOutcome.for_resource(desired, Outcome.CREATED)

    def _record(self, resource: ManagedResource) -> None:
        if self._recorder is not None:
            self._recorder(resource)


def reconcile_resource(
    store: ResourceStore,
    desired: ManagedResource,
    *,
    policy: RetryPolicy | None = None,
    recorder: Recorder | None = None,
) -> ReconciliationOutcome:
    """Reconcile one resource of any kind."""
    return ResourceReconciler(store, policy, recorder).reconcile(desired)


def _check_kind(desired: ManagedResource, kind: ResourceKind) -> None:
    if desired.kind != kind:
        raise ValueError(f"expected a {kind.value}, got {desired.kind.value}")


def ensure_service(
    store: ResourceStore,
    service: ManagedResource,
    *,
    policy: RetryPolicy | None = None,
    recorder: Recorder | None = None,
) -> ReconciliationOutcome:
    """Create or update a service."""
    _check_kind(service, ResourceKind.SERVICE)
    return reconcile_resource(store, service, policy=policy, recorder=recorder)


def ensure_secret(
    store: ResourceStore,
    secret: ManagedResource,
    *,
    policy: RetryPolicy | None = None,
    recorder: Recorder | None = None,
) -> ReconciliationOutcome:
    _check_kind(secret, ResourceKind.SECRET)
    return reconcile_resource(store, secret, policy=policy, recorder=recorder)


def ensure_ingress(
    store: ResourceStore,
    ingress: ManagedResource,
    *,
    policy: RetryPolicy | None = None,
    recorder: Recorder | None = None,
) -> ReconciliationOutcome:
    _check_kind(ingress, ResourceKind.INGRESS)
    return reconcile_resource(store, ingress, policy=policy, recorder=recorder)


def ensure_endpoints(
    store: ResourceStore,
    endpoints: ManagedResource,
    *,
    policy: RetryPolicy | None = None,
    recorder: Recorder | None = None,
) -> ReconciliationOutcome:
    """Create or update endpoints.

    The write is skipped when subsets and labels already match, which keeps
    repeated passes from touching endpoints that have not changed.
    """
    _check_kind(endpoints, ResourceKind.ENDPOINT)
    return reconcile_resource(store, endpoints, policy=policy, recorder=recorder)


def ensure_hpa(
    store: ResourceStore,
    hpa: ManagedResource,
    *,
    policy: RetryPolicy | None = None,
    recorder: Recorder | None = None,
) -> ReconciliationOutcome:
    """Create or update a horizontal pod autoscaler."""
    _check_kind(hpa, ResourceKind.AUTOSCALER)
    return reconcile_resource(store, hpa, policy=policy, recorder=recorder)
