"""Per-kind capabilities shared by every reconciler.

Each managed kind is described by a ResourceOps value bundling the store
calls for that kind with two pure helpers:

- merge: build the object to persist from the observed object and the
  desired one. Identity and version always come from the observed object.
- is_equivalent: the equality gate. True when a write would not change
  anything that matters, in which case the update is skipped.

Only endpoints are gated; they are re-derived on every pass but rarely
change, so skipping identical writes avoids needless churn.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .models import Identity, ManagedResource, ResourceKind
from .store import ResourceStore

MergeFn = Callable[[ManagedResource, ManagedResource], ManagedResource]
EquivalenceFn = Callable[[ManagedResource, ManagedResource], bool]


def carry_identity(existing: ManagedResource, desired: ManagedResource) -> ManagedResource:
    """Return desired with the identity token of existing."""
    return desired.with_identity(Identity(
        uid=existing.identity.uid,
        resource_version=existing.identity.resource_version,
    ))


def merge_mutable(existing: ManagedResource, desired: ManagedResource) -> ManagedResource:
    """Existing object with labels, annotations and payload taken from desired."""
    return existing.model_copy(
        update={
            "labels": dict(desired.labels),
            "annotations": dict(desired.annotations),
            "payload": desired.model_copy(deep=True).payload,
        },
        deep=True,
    )


def merge_endpoints(existing: ManagedResource, desired: ManagedResource) -> ManagedResource:
    """Existing endpoints with subsets and labels taken from desired.

    Annotations on the observed object are left alone.
    """
    payload = dict(existing.payload)
    payload["subsets"] = desired.model_copy(deep=True).payload.get("subsets")
    return existing.model_copy(
        update={"labels": dict(desired.labels), "payload": payload},
        deep=True,
    )


def _normalize(value: Any) -> Any:
    """Collapse empty containers to None so [] == {} == None == missing."""
    if isinstance(value, dict):
        normalized = {k: _normalize(v) for k, v in value.items()}
        normalized = {k: v for k, v in normalized.items() if v is not None}
        return normalized or None
    if isinstance(value, list):
        items = [_normalize(v) for v in value]
        return items or None
    return value


def semantically_equal(a: Any, b: Any) -> bool:
    """Deep equality treating empty and missing values as the same."""
    return _normalize(a) == _normalize(b)


def endpoints_equivalent(existing: ManagedResource, desired: ManagedResource) -> bool:
    return semantically_equal(
        existing.payload.get("subsets"), desired.payload.get("subsets")
    ) and semantically_equal(existing.labels, desired.labels)


def never_equivalent(existing: ManagedResource, desired: ManagedResource) -> bool:
    return False


@dataclass(frozen=True)
class ResourceOps:
    """Capability set for one kind."""

    kind: ResourceKind
    merge: MergeFn = merge_mutable
    is_equivalent: EquivalenceFn = never_equivalent

    def get(self, store: ResourceStore, namespace: str, name: str) -> ManagedResource:
        return store.get(self.kind, namespace, name)

    def create(self, store: ResourceStore, resource: ManagedResource) -> ManagedResource:
        return store.create(resource)

    def update(self, store: ResourceStore, resource: ManagedResource) -> ManagedResource:
        return store.update(resource)

    def delete(self, store: ResourceStore, namespace: str, name: str) -> None:
        store.delete(self.kind, namespace, name)

    def copy_identity(
        self, existing: ManagedResource, desired: ManagedResource
    ) -> ManagedResource:
        return carry_identity(existing, desired)


KIND_OPS: dict[ResourceKind, ResourceOps] = {
    ResourceKind.SERVICE: ResourceOps(ResourceKind.SERVICE),
    ResourceKind.SECRET: ResourceOps(ResourceKind.SECRET),
    ResourceKind.INGRESS: ResourceOps(ResourceKind.INGRESS),
    ResourceKind.AUTOSCALER: ResourceOps(ResourceKind.AUTOSCALER),
    ResourceKind.ENDPOINT: ResourceOps(
        ResourceKind.ENDPOINT,
        merge=merge_endpoints,
        is_equivalent=endpoints_equivalent,
    ),
}


def ops_for(kind: ResourceKind) -> ResourceOps:
    return KIND_OPS[kind]
