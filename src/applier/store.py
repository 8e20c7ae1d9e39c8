"""Control-plane store interface and its Kubernetes implementation.

The reconciliation core only ever talks to a ResourceStore. Every call is
a single atomic per-object operation; failures are raised as StoreError
subclasses so callers can branch on errors.classify(). Connection-level
failures, which the Kubernetes client raises as urllib3 errors without an
HTTP status, become TransientStoreError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from .config import Config
from .errors import from_api_exception, from_transport_error
from .models import ManagedResource, ResourceKind

logger = logging.getLogger(__name__)


class ResourceStore(Protocol):
    """Opaque store of managed resources keyed by kind, namespace and name."""

    def get(self, kind: ResourceKind, namespace: str, name: str) -> ManagedResource:
        """Fetch one object. Raises NotFoundError if absent."""
        ...

    def create(self, resource: ManagedResource) -> ManagedResource:
        """Create an object and return it with its server-assigned identity."""
        ...

    def update(self, resource: ManagedResource) -> ManagedResource:
        """Replace an object. Raises ConflictError on a stale resourceVersion."""
        ...

    def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        """Delete an object by name."""
        ...

    def get_namespace(self, name: str) -> None:
        """Raise NotFoundError unless the namespace exists."""
        ...

    def create_namespace(self, name: str) -> None:
        """Create a namespace. Raises AlreadyExistsError if it exists."""
        ...


@dataclass(frozen=True)
class _KindApi:
    """Where a kind lives in the Kubernetes client."""

    api_version: str
    api_class: type
    suffix: str


_KIND_APIS: dict[ResourceKind, _KindApi] = {
    ResourceKind.SERVICE: _KindApi("v1", client.CoreV1Api, "namespaced_service"),
    ResourceKind.SECRET: _KindApi("v1", client.CoreV1Api, "namespaced_secret"),
    ResourceKind.ENDPOINT: _KindApi("v1", client.CoreV1Api, "namespaced_endpoints"),
    ResourceKind.INGRESS: _KindApi(
        "networking.k8s.io/v1", client.NetworkingV1Api, "namespaced_ingress"
    ),
    ResourceKind.AUTOSCALER: _KindApi(
        "autoscaling/v2", client.AutoscalingV2Api, "namespaced_horizontal_pod_autoscaler"
    ),
}


class KubernetesStore:
    """ResourceStore backed by the official Kubernetes Python client."""

    def __init__(self, api_client: client.ApiClient) -> None:
        self._api_client = api_client
        self._apis: dict[type, Any] = {}

    @classmethod
    def from_config(cls, cfg: Config) -> KubernetesStore:
        """Load cluster credentials and build a store.

        Uses the in-cluster service account when configured, otherwise the
        local kubeconfig (optionally a specific context).
        """
        if cfg.in_cluster:
            config.load_incluster_config()
        else:
            config.load_kube_config(context=cfg.kube_context)
        logger.info(
            "Kubernetes client configured",
            extra={"in_cluster": cfg.in_cluster, "context": cfg.kube_context},
        )
        return cls(client.ApiClient())

    def _api(self, api_class: type) -> Any:
        api = self._apis.get(api_class)
        if api is None:
            api = api_class(self._api_client)
            self._apis[api_class] = api
        return api

    def _call(self, kind: ResourceKind, verb: str) -> Any:
        kind_api = _KIND_APIS[kind]
        return getattr(self._api(kind_api.api_class), f"{verb}_{kind_api.suffix}")

    def _to_resource(self, kind: ResourceKind, obj: Any) -> ManagedResource:
        data = self._api_client.sanitize_for_serialization(obj)
        if not isinstance(data, dict):
            data = {}
        data["kind"] = kind
        return ManagedResource.model_validate(data)

    def _to_body(self, resource: ManagedResource) -> dict[str, Any]:
        body = resource.to_manifest()
        body["apiVersion"] = _KIND_APIS[resource.kind].api_version
        return body

    def get(self, kind: ResourceKind, namespace: str, name: str) -> ManagedResource:
        try:
            obj = self._call(kind, "read")(name=name, namespace=namespace)
        except ApiException as e:
            raise from_api_exception(e) from e
        except (HTTPError, OSError) as e:
            raise from_transport_error(e) from e
        return self._to_resource(kind, obj)

    def create(self, resource: ManagedResource) -> ManagedResource:
        try:
            obj = self._call(resource.kind, "create")(
                namespace=resource.namespace, body=self._to_body(resource)
            )
        except ApiException as e:
            raise from_api_exception(e, creating=True) from e
        except (HTTPError, OSError) as e:
            raise from_transport_error(e) from e
        return self._to_resource(resource.kind, obj)

    def update(self, resource: ManagedResource) -> ManagedResource:
        try:
            obj = self._call(resource.kind, "replace")(
                name=resource.name,
                namespace=resource.namespace,
                body=self._to_body(resource),
            )
        except ApiException as e:
            raise from_api_exception(e) from e
        except (HTTPError, OSError) as e:
            raise from_transport_error(e) from e
        return self._to_resource(resource.kind, obj)

    def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        try:
            self._call(kind, "delete")(name=name, namespace=namespace)
        except ApiException as e:
            raise from_api_exception(e) from e
        except (HTTPError, OSError) as e:
            raise from_transport_error(e) from e

    def get_namespace(self, name: str) -> None:
        try:
            self._api(client.CoreV1Api).read_namespace(name=name)
        except ApiException as e:
            raise from_api_exception(e) from e
        except (HTTPError, OSError) as e:
            raise from_transport_error(e) from e

    def create_namespace(self, name: str) -> None:
        body = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}
        try:
            self._api(client.CoreV1Api).create_namespace(body=body)
        except ApiException as e:
            raise from_api_exception(e, creating=True) from e
        except (HTTPError, OSError) as e:
            raise from_transport_error(e) from e
