"""Conflict-aware retry for persisting updates.

A persist call is retried a fixed number of times with a fixed pause in
between; there is no backoff because the failures worth retrying are
short API unavailability, not load. Error classes short-circuit:

- NotFound: the object was deleted concurrently. Nothing is persisted and
  the call succeeds; the deletion is reconciled on its own.
- Conflict: our copy is stale. Retrying the same object cannot succeed,
  so the conflict is raised at once and the caller re-fetches next pass.
- Forbidden: rejected by policy or lifecycle. Raised at once.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kubernetes.client.exceptions import ApiException

from .errors import ConflictError, ErrorClass, StoreError, classify
from .models import ManagedResource

if TYPE_CHECKING:
    from .store import ResourceStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval retry budget."""

    attempts: int = 5
    interval_seconds: float = 5.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)


class PersistController:
    """Persists updated objects through a ResourceStore under a RetryPolicy."""

    def __init__(self, store: ResourceStore, policy: RetryPolicy | None = None) -> None:
        self._store = store
        self._policy = policy or RetryPolicy()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def persist(self, resource: ManagedResource) -> ManagedResource | None:
        """Persist an update.

        Args:
            resource: Object to write, carrying the identity it was read with.

        Returns:
            The stored object, or None if it no longer exists.

        Raises:
            ConflictError: If the object changed since it was read.
            StoreError: Forbidden, or the last error once attempts run out.
        """
        last_error: StoreError | ApiException | None = None

        for attempt in range(1, self._policy.attempts + 1):
            try:
                return self._store.update(resource)
            except (StoreError, ApiException) as e:
                last_error = e
                error_class = classify(e)

                if error_class == ErrorClass.NOT_FOUND:
                    logger.info(
                        "Not persisting update to object that no longer exists",
                        extra={"resource": str(resource), "error": str(e)},
                    )
                    return None

                if error_class == ErrorClass.CONFLICT:
                    raise ConflictError(
                        f"not persisting update to {resource} that has been changed "
                        f"since we received it: {e}",
                        status=getattr(e, "status", None),
                    ) from e

                if error_class == ErrorClass.FORBIDDEN:
                    logger.info(
                        "Forbidden from updating object",
                        extra={"resource": str(resource), "error": str(e)},
                    )
                    raise

                logger.warning(
                    "Failed to update object",
                    extra={
                        "resource": str(resource),
                        "attempt": attempt,
                        "max_attempts": self._policy.attempts,
                        "error": str(e),
                    },
                )
                if attempt < self._policy.attempts:
                    self._policy.sleep(self._policy.interval_seconds)

        # SAFETY: attempts >= 1, so the loop ran and set last_error
        assert last_error is not None, "Retry loop completed without setting last_error"
        raise last_error
