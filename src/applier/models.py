"""Pydantic models for managed resources and desired-state sets.

These models provide:
1. A single resource shape shared by every managed kind
2. Validation of desired-state documents at the boundary
3. Outcome records for one reconciliation pass
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Metadata keys lifted out of a manifest; everything else is payload.
_METADATA_KEYS = ("name", "namespace", "labels", "annotations")
_IGNORED_KEYS = ("apiVersion", "kind", "status", "metadata")


class ResourceKind(str, Enum):
    """Managed resource kinds."""

    SERVICE = "Service"
    INGRESS = "Ingress"
    SECRET = "Secret"
    ENDPOINT = "Endpoints"
    AUTOSCALER = "HorizontalPodAutoscaler"


class Identity(BaseModel):
    """Server-assigned identity echoed back on every update."""

    model_config = ConfigDict(frozen=True)

    uid: str = ""
    resource_version: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.uid and not self.resource_version


class ManagedResource(BaseModel):
    """One object of a managed kind, keyed by (kind, namespace, name).

    The payload holds the kind-specific mutable fields exactly as they
    appear at the top level of the manifest (``spec`` for services,
    ingresses and autoscalers, ``data``/``type`` for secrets, ``subsets``
    for endpoints).
    """

    model_config = ConfigDict(extra="ignore")

    kind: ResourceKind
    namespace: str = ""
    name: str = Field(min_length=1, max_length=253)
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    payload: dict[str, Any] = Field(default_factory=dict)
    identity: Identity = Field(default_factory=Identity)

    @model_validator(mode="before")
    @classmethod
    def _from_manifest(cls, data: Any) -> Any:
        """Accept manifest-shaped input (metadata block, payload at top level)."""
        if not isinstance(data, dict) or "payload" in data:
            return data

        result: dict[str, Any] = {}
        metadata = data.get("metadata")
        if isinstance(metadata, dict):
            for key in _METADATA_KEYS:
                if key in metadata:
                    result[key] = metadata[key]
            uid = metadata.get("uid")
            version = metadata.get("resourceVersion")
            if uid or version:
                result["identity"] = {"uid": uid or "", "resource_version": version or ""}

        payload: dict[str, Any] = {}
        for key, value in data.items():
            if key in _METADATA_KEYS:
                result.setdefault(key, value)
            elif key == "identity":
                result["identity"] = value
            elif key not in _IGNORED_KEYS:
                payload[key] = value
        if "kind" in data:
            result["kind"] = data["kind"]
        result["payload"] = payload
        return result

    @field_validator("labels", "annotations", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def key(self) -> tuple[ResourceKind, str, str]:
        return (self.kind, self.namespace, self.name)

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(kind=self.kind, namespace=self.namespace, name=self.name)

    def with_identity(self, identity: Identity) -> ManagedResource:
        """Return a copy carrying the given identity."""
        return self.model_copy(update={"identity": identity}, deep=True)

    def to_manifest(self) -> dict[str, Any]:
        """Render the resource as a Kubernetes object body."""
        metadata: dict[str, Any] = {"name": self.name, "namespace": self.namespace}
        if self.labels:
            metadata["labels"] = dict(self.labels)
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        if self.identity.uid:
            metadata["uid"] = self.identity.uid
        if self.identity.resource_version:
            metadata["resourceVersion"] = self.identity.resource_version
        body: dict[str, Any] = {"kind": self.kind.value, "metadata": metadata}
        body.update(copy.deepcopy(self.payload))
        return body

    def __str__(self) -> str:
        return f"{self.kind.value} {self.namespace}/{self.name}"


class ResourceRef(BaseModel):
    """Reference to a resource that must be removed."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: ResourceKind
    namespace: str = ""
    name: str = Field(min_length=1)

    @property
    def key(self) -> tuple[ResourceKind, str, str]:
        return (self.kind, self.namespace, self.name)

    def __str__(self) -> str:
        return f"{self.kind.value} {self.namespace}/{self.name}"


# Field name on DesiredResourceSet holding the desired list of each kind,
# in full-pass reconciliation order.
DESIRED_FIELDS: dict[ResourceKind, str] = {
    ResourceKind.SERVICE: "services",
    ResourceKind.SECRET: "secrets",
    ResourceKind.ENDPOINT: "endpoints",
    ResourceKind.INGRESS: "ingresses",
    ResourceKind.AUTOSCALER: "autoscalers",
}

# Field name holding the explicit delete list of each kind, in sweep order.
DELETE_FIELDS: dict[ResourceKind, str] = {
    ResourceKind.INGRESS: "delete_ingresses",
    ResourceKind.SECRET: "delete_secrets",
    ResourceKind.SERVICE: "delete_services",
    ResourceKind.ENDPOINT: "delete_endpoints",
    ResourceKind.AUTOSCALER: "delete_autoscalers",
}


class DesiredResourceSet(BaseModel):
    """Desired state of one application instance for a single pass.

    Entries in the per-kind lists have their kind and (when omitted) their
    namespace filled in from the list they appear in and the tenant id.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    tenant_id: str = Field(min_length=1, max_length=63, alias="tenantId")
    service_id: str = Field(min_length=1, alias="serviceId")
    custom_params: dict[str, str] | None = Field(None, alias="customParams")

    services: list[ManagedResource] = Field(default_factory=list)
    secrets: list[ManagedResource] = Field(default_factory=list)
    endpoints: list[ManagedResource] = Field(default_factory=list)
    ingresses: list[ManagedResource] = Field(default_factory=list)
    autoscalers: list[ManagedResource] = Field(default_factory=list)

    delete_ingresses: list[ResourceRef] = Field(default_factory=list, alias="deleteIngresses")
    delete_secrets: list[ResourceRef] = Field(default_factory=list, alias="deleteSecrets")
    delete_services: list[ResourceRef] = Field(default_factory=list, alias="deleteServices")
    delete_endpoints: list[ResourceRef] = Field(default_factory=list, alias="deleteEndpoints")
    delete_autoscalers: list[ResourceRef] = Field(
        default_factory=list, alias="deleteAutoscalers"
    )

    @model_validator(mode="before")
    @classmethod
    def _fill_kinds(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        tenant = data.get("tenantId", data.get("tenant_id", ""))
        for kind, field_name in DESIRED_FIELDS.items():
            _fill_entries(data, field_name, kind, tenant)
        for kind, field_name in DELETE_FIELDS.items():
            _fill_entries(data, field_name, kind, tenant)
            alias = cls.model_fields[field_name].alias
            if alias:
                _fill_entries(data, alias, kind, tenant)
        return data

    @model_validator(mode="after")
    def _check_disjoint(self) -> DesiredResourceSet:
        """A key must never be both desired and scheduled for deletion."""
        desired = {r.key for r in self.all_desired()}
        doomed = [ref for ref in self.all_deletes() if ref.key in desired]
        if doomed:
            names = ", ".join(str(ref) for ref in doomed)
            raise ValueError(f"resources both desired and deleted: {names}")
        return self

    @property
    def is_narrow_update(self) -> bool:
        """Whether custom params request a single-binding update."""
        # Only a domain or tcp-address key narrows the pass; other params
        # (or none at all) leave it a full pass.
        return bool(self.custom_params) and (
            "domain" in self.custom_params or "tcp-address" in self.custom_params
        )

    def desired(self, kind: ResourceKind) -> list[ManagedResource]:
        return getattr(self, DESIRED_FIELDS[kind])

    def deletes(self, kind: ResourceKind) -> list[ResourceRef]:
        return getattr(self, DELETE_FIELDS[kind])

    def all_desired(self) -> list[ManagedResource]:
        return [r for kind in DESIRED_FIELDS for r in self.desired(kind)]

    def all_deletes(self) -> list[ResourceRef]:
        return [ref for kind in DELETE_FIELDS for ref in self.deletes(kind)]

    def record(self, resource: ManagedResource) -> None:
        """Record a server-returned object so later passes see its identity.

        Replaces the same-named entry of the same kind, or appends it.
        """
        entries = self.desired(resource.kind)
        for i, entry in enumerate(entries):
            if entry.namespace == resource.namespace and entry.name == resource.name:
                entries[i] = resource
                return
        entries.append(resource)


def _fill_entries(data: dict[str, Any], field_name: str, kind: ResourceKind, tenant: str) -> None:
    entries = data.get(field_name)
    if not isinstance(entries, list):
        return
    filled = []
    for entry in entries:
        if isinstance(entry, dict):
            entry = dict(entry)
            entry["kind"] = kind
            metadata = entry.get("metadata")
            has_namespace = entry.get("namespace") or (
                isinstance(metadata, dict) and metadata.get("namespace")
            )
            if not has_namespace:
                entry["namespace"] = tenant
        filled.append(entry)
    data[field_name] = filled


class Outcome(str, Enum):
    """Result of reconciling one resource."""

    CREATED = "Created"
    UPDATED = "Updated"
    UNCHANGED = "Unchanged"
    DELETED = "Deleted"
    SKIPPED = "Skipped"
    FAILED = "Failed"


@dataclass
class ReconciliationOutcome:
    """Outcome for one resource, kept for reporting only."""

    kind: ResourceKind
    namespace: str
    name: str
    outcome: Outcome
    reason: str = ""
    error: Exception | None = None

    @classmethod
    def for_resource(
        cls,
        resource: ManagedResource | ResourceRef,
        outcome: Outcome,
        reason: str = "",
        error: Exception | None = None,
    ) -> ReconciliationOutcome:
        return cls(
            kind=resource.kind,
            namespace=resource.namespace,
            name=resource.name,
            outcome=outcome,
            reason=reason,
            error=error,
        )

    @property
    def success(self) -> bool:
        return self.outcome != Outcome.FAILED

    def __str__(self) -> str:
        text = f"{self.outcome.value} {self.kind.value} {self.namespace}/{self.name}"
        if self.reason:
            text += f" ({self.reason})"
        return text
