"""Keyed-list reconciliation: diff old and new collections by name.

For every entry of the new list:
- a same-named old entry exists: carry its identity onto the new entry and
  update; the old entry is claimed and will not be deleted
- no old entry exists: create

Old entries left unclaimed afterwards are deleted. Every failure is passed
to an error policy which either continues with the next entry or aborts
the whole reconciliation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from kubernetes.client.exceptions import ApiException

from .errors import ErrorClass, ReconciliationAborted, StoreError, classify
from .kinds import ops_for
from .models import (
    DesiredResourceSet,
    Identity,
    ManagedResource,
    Outcome,
    ReconciliationOutcome,
    ResourceKind,
)
from .store import ResourceStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decision:
    """What an error policy wants done after a failed entry."""

    abort_error: Exception | None = None

    @property
    def aborts(self) -> bool:
        return self.abort_error is not None


CONTINUE = Decision()


def abort(error: Exception) -> Decision:
    return Decision(abort_error=error)


ErrorPolicy = Callable[[str, Exception], Decision]


def continue_on_error(message: str, error: Exception) -> Decision:
    """Log the failure and move on to the next entry."""
    logger.warning(message, extra={"error": str(error)})
    return CONTINUE


def abort_on_error(message: str, error: Exception) -> Decision:
    """Stop at the first failure."""
    logger.error(message, extra={"error": str(error)})
    return abort(error)


def _handle(on_error: ErrorPolicy, message: str, error: Exception) -> None:
    decision = on_error(message, error)
    if decision.aborts:
        raise ReconciliationAborted(message) from decision.abort_error


def reconcile_list(
    store: ResourceStore,
    old: list[ManagedResource],
    new: list[ManagedResource],
    on_error: ErrorPolicy,
    *,
    recorder: Callable[[ManagedResource], None] | None = None,
    owner: str = "",
) -> list[ReconciliationOutcome]:
    """Converge the store from the old collection to the new one.

    Entries are matched strictly by name within a namespace. A delete that
    finds the entry already gone counts as done (Skipped) and is not passed
    to on_error.

    Args:
        store: Control-plane store.
        old: Entries as previously observed, carrying identity tokens.
        new: Desired entries.
        on_error: Policy consulted for every failed create or update, and for
            every failed delete other than NotFound.
        recorder: Called with each object the store returns after a write.
        owner: Application id used for log context.

    Returns:
        One outcome per touched entry.

    Raises:
        ReconciliationAborted: If the policy asked to abort.
    """
    unclaimed: dict[tuple[str, str], ManagedResource] = {
        (item.namespace, item.name): item for item in old
    }
    outcomes: list[ReconciliationOutcome] = []

    for entry in new:
        ops = ops_for(entry.kind)
        previous = unclaimed.pop((entry.namespace, entry.name), None)

        if previous is not None:
            if ops.is_equivalent(previous, entry):
                outcomes.append(ReconciliationOutcome.for_resource(entry, Outcome.UNCHANGED))
                continue
            desired = ops.copy_identity(previous, entry)
            try:
                stored = ops.update(store, desired)
            except (StoreError, ApiException) as e:
                _handle(on_error, f"error updating {desired}: {e}", e)
                outcomes.append(
                    ReconciliationOutcome.for_resource(entry, Outcome.FAILED, error=e)
                )
                continue
            if recorder is not None:
                recorder(stored)
            logger.debug("Successfully updated", extra={"owner": owner, "resource": str(entry)})
            outcomes.append(ReconciliationOutcome.for_resource(entry, Outcome.UPDATED))
        else:
            try:
                stored = ops.create(store, entry.with_identity(Identity()))
            except (StoreError, ApiException) as e:
                _handle(on_error, f"error creating {entry}: {e}", e)
                outcomes.append(
                    ReconciliationOutcome.for_resource(entry, Outcome.FAILED, error=e)
                )
                continue
            if recorder is not None:
                recorder(stored)
            logger.debug("Successfully created", extra={"owner": owner, "resource": str(entry)})
            outcomes.append(ReconciliationOutcome.for_resource(entry, Outcome.CREATED))

    for item in unclaimed.values():
        ops = ops_for(item.kind)
        try:
            ops.delete(store, item.namespace, item.name)
        except (StoreError, ApiException) as e:
            if classify(e) == ErrorClass.NOT_FOUND:
                outcomes.append(
                    ReconciliationOutcome.for_resource(item, Outcome.SKIPPED, reason="already gone")
                )
                continue
            _handle(on_error, f"error deleting {item}: {e}", e)
            outcomes.append(ReconciliationOutcome.for_resource(item, Outcome.FAILED, error=e))
            continue
        logger.debug("Successfully deleted", extra={"owner": owner, "resource": str(item)})
        outcomes.append(ReconciliationOutcome.for_resource(item, Outcome.DELETED))

    return outcomes


def _check_kinds(entries: list[ManagedResource], kind: ResourceKind) -> None:
    for entry in entries:
        if entry.kind != kind:
            raise ValueError(f"expected only {kind.value} entries, got {entry}")


def upgrade_ingress(
    store: ResourceStore,
    app: DesiredResourceSet,
    old: list[ManagedResource],
    new: list[ManagedResource],
    on_error: ErrorPolicy,
) -> list[ReconciliationOutcome]:
    """Move an application's ingresses from old to new.

    Stored ingresses are recorded back onto the application.
    """
    _check_kinds(old, ResourceKind.INGRESS)
    _check_kinds(new, ResourceKind.INGRESS)
    return reconcile_list(store, old, new, on_error, recorder=app.record, owner=app.service_id)


def upgrade_secrets(
    store: ResourceStore,
    app: DesiredResourceSet,
    old: list[ManagedResource],
    new: list[ManagedResource],
    on_error: ErrorPolicy,
) -> list[ReconciliationOutcome]:
    """Move an application's secrets from old to new.

    Stored secrets are recorded back onto the application.
    """
    _check_kinds(old, ResourceKind.SECRET)
    _check_kinds(new, ResourceKind.SECRET)
    return reconcile_list(store, old, new, on_error, recorder=app.record, owner=app.service_id)
