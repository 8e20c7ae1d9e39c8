"""Best-effort removal of resources that are no longer desired."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from kubernetes.client.exceptions import ApiException

from .errors import ErrorClass, StoreError, classify
from .kinds import ops_for
from .models import Outcome, ReconciliationOutcome, ResourceRef
from .store import ResourceStore

logger = logging.getLogger(__name__)


def sweep(store: ResourceStore, refs: Iterable[ResourceRef]) -> list[ReconciliationOutcome]:
    """Delete every referenced resource.

    An object that is already gone counts as deleted. Any other failure is
    logged and the sweep moves on; the next pass retries it.
    """
    outcomes: list[ReconciliationOutcome] = []
    for ref in refs:
        try:
            ops_for(ref.kind).delete(store, ref.namespace, ref.name)
        except (StoreError, ApiException) as e:
            if classify(e) == ErrorClass.NOT_FOUND:
                logger.info("Object already deleted", extra={"resource": str(ref)})
                outcomes.append(
                    ReconciliationOutcome.for_resource(ref, Outcome.SKIPPED, reason="already gone")
                )
                continue
            logger.warning(
                "Error deleting object",
                extra={"resource": str(ref), "error": str(e)},
            )
            outcomes.append(ReconciliationOutcome.for_resource(ref, Outcome.FAILED, error=e))
            continue
        logger.debug("Successfully deleted", extra={"resource": str(ref)})
        outcomes.append(ReconciliationOutcome.for_resource(ref, Outcome.DELETED))
    return outcomes
