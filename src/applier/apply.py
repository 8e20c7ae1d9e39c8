"""Apply one application's desired state to the control plane.

A pass runs in a fixed order:
1. Ensure the tenant namespace exists (the only fatal step)
2. Reconcile desired resources, either the full set or, when the custom
   params name a single domain or TCP address, only the matching ingresses
   and the secrets they reference
3. Sweep the explicit delete lists

Every resource-level failure is logged and recorded in the result, then
bypassed: the pass is best-effort and safe to run again, and the next run
repairs whatever this one could not.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from kubernetes.client.exceptions import ApiException

from .config import Config
from .errors import ErrorClass, NamespaceProvisioningError, StoreError, classify
from .models import (
    DELETE_FIELDS,
    DESIRED_FIELDS,
    DesiredResourceSet,
    ManagedResource,
    Outcome,
    ReconciliationOutcome,
)
from .reconcile import ResourceReconciler
from .retry import RetryPolicy
from .store import ResourceStore
from .sweep import sweep

logger = logging.getLogger(__name__)

# Custom params selecting a narrow update
DOMAIN_PARAM = "domain"
TCP_ADDRESS_PARAM = "tcp-address"


@dataclass
class ApplyResult:
    """Result of one apply pass."""

    tenant_id: str
    service_id: str
    narrow: bool = False
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    outcomes: list[ReconciliationOutcome] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def failures(self) -> list[ReconciliationOutcome]:
        return [o for o in self.outcomes if o.outcome == Outcome.FAILED]

    def count(self, outcome: Outcome) -> int:
        return sum(1 for o in self.outcomes if o.outcome == outcome)

    def counts(self) -> dict[str, int]:
        return {outcome.value: self.count(outcome) for outcome in Outcome}


def ensure_namespace(store: ResourceStore, name: str) -> None:
    """Get-or-create the tenant namespace.

    Raises:
        NamespaceProvisioningError: If the namespace can neither be read
            nor created.
    """
    try:
        store.get_namespace(name)
        return
    except (StoreError, ApiException) as e:
        if classify(e) != ErrorClass.NOT_FOUND:
            raise NamespaceProvisioningError(f"error checking namespace {name}: {e}") from e

    try:
        store.create_namespace(name)
    except (StoreError, ApiException) as e:
        if classify(e) == ErrorClass.ALREADY_EXISTS:
            return
        raise NamespaceProvisioningError(f"error creating namespace {name}: {e}") from e
    logger.info("Created namespace", extra={"namespace": name})


def _ingress_spec(ingress: ManagedResource) -> dict[str, Any]:
    spec = ingress.payload.get("spec")
    return spec if isinstance(spec, dict) else {}


def ingress_host(ingress: ManagedResource) -> str | None:
    """Host of the first rule, if any."""
    rules = _ingress_spec(ingress).get("rules") or []
    if not rules or not isinstance(rules[0], dict):
        return None
    return rules[0].get("host")


def tls_secret_name(ingress: ManagedResource) -> str | None:
    """Secret named by the first TLS entry, if any."""
    tls = _ingress_spec(ingress).get("tls") or []
    if not tls or not isinstance(tls[0], dict):
        return None
    return tls[0].get("secretName")


def l4_address(ingress: ManagedResource, cfg: Config) -> str | None:
    """Return "host:port" of an L4 ingress, or None without an l4-host annotation."""
    host = ingress.annotations.get(cfg.annotation("l4-host"))
    if host is None:
        return None
    port = ingress.annotations.get(cfg.annotation("l4-port"), "")
    return f"{host}:{port}"


def select_for_domain(
    app: DesiredResourceSet, domain: str
) -> list[ManagedResource]:
    """Ingresses whose first rule serves domain, each preceded by its TLS secret."""
    selected: list[ManagedResource] = []
    for ingress in app.ingresses:
        if ingress_host(ingress) != domain:
            continue
        secret_name = tls_secret_name(ingress)
        if secret_name:
            selected.extend(s for s in app.secrets if s.name == secret_name)
        selected.append(ingress)
    return selected


def select_for_tcp_address(
    app: DesiredResourceSet, address: str, cfg: Config
) -> list[ManagedResource]:
    """Ingresses bound to the given "host:port"."""
    return [ing for ing in app.ingresses if l4_address(ing, cfg) == address]


class ApplyOrchestrator:
    """Runs apply passes against one store."""

    def __init__(
        self,
        store: ResourceStore,
        config: Config | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        self._store = store
        self._config = config or Config()
        self._policy = policy or self._config.retry_policy()

    def apply(self, app: DesiredResourceSet) -> ApplyResult:
        """Run one pass for an application.

        Returns:
            ApplyResult with one outcome per touched resource.

        Raises:
            NamespaceProvisioningError: If the tenant namespace is unusable.
        """
        result = ApplyResult(
            tenant_id=app.tenant_id,
            service_id=app.service_id,
            narrow=app.is_narrow_update,
        )

        try:
            ensure_namespace(self._store, app.tenant_id)
        except NamespaceProvisioningError as e:
            logger.error(
                "Namespace provisioning failed",
                extra={"tenant_id": app.tenant_id, "error": str(e)},
            )
            raise

        reconciler = ResourceReconciler(self._store, self._policy, recorder=app.record)
        for resource in self._select(app):
            result.outcomes.append(reconciler.reconcile(resource))

        for kind in DELETE_FIELDS:
            result.outcomes.extend(sweep(self._store, app.deletes(kind)))

        result.end_time = datetime.now(UTC)
        self._log_result(result)
        return result

    def _select(self, app: DesiredResourceSet) -> list[ManagedResource]:
        """Resources to reconcile this pass, in order."""
        if not app.is_narrow_update:
            # Secrets precede ingresses that may reference them
            return [r for kind in DESIRED_FIELDS for r in list(app.desired(kind))]

        selected: list[ManagedResource] = []
        params = app.custom_params or {}
        if DOMAIN_PARAM in params:
            selected.extend(select_for_domain(app, params[DOMAIN_PARAM]))
        if TCP_ADDRESS_PARAM in params:
            selected.extend(
                select_for_tcp_address(app, params[TCP_ADDRESS_PARAM], self._config)
            )
        logger.info(
            "Narrow update requested",
            extra={
                "service_id": app.service_id,
                "params": dict(params),
                "selected": len(selected),
            },
        )
        return selected

    def _log_result(self, result: ApplyResult) -> None:
        """Log the pass result with structured data."""
        extra: dict[str, Any] = {
            "tenant_id": result.tenant_id,
            "service_id": result.service_id,
            "narrow": result.narrow,
            "duration_seconds": result.duration_seconds,
            **{f"{k.lower()}_count": v for k, v in result.counts().items()},
        }
        if result.failures:
            extra["failed"] = [str(o) for o in result.failures]
            logger.warning("Apply finished with failures", extra=extra)
        else:
            logger.info("Apply finished", extra=extra)


def apply_one(
    store: ResourceStore,
    app: DesiredResourceSet,
    *,
    config: Config | None = None,
    policy: RetryPolicy | None = None,
) -> ApplyResult:
    """Apply one application's desired state. See ApplyOrchestrator.apply."""
    return ApplyOrchestrator(store, config, policy).apply(app)
