"""Builders for managed resources used across tests."""

from __future__ import annotations

from typing import Any

from applier.models import ManagedResource, ResourceKind


def service(name: str, namespace: str = "t1", port: int = 80, **labels: str) -> ManagedResource:
    return ManagedResource(
        kind=ResourceKind.SERVICE,
        namespace=namespace,
        name=name,
        labels=labels,
        payload={"spec": {"ports": [{"port": port, "protocol": "TCP"}]}},
    )


def secret(name: str, namespace: str = "t1", cert: str = "Y2VydA==") -> ManagedResource:
    return ManagedResource(
        kind=ResourceKind.SECRET,
        namespace=namespace,
        name=name,
        payload={"type": "kubernetes.io/tls", "data": {"tls.crt": cert}},
    )


def ingress(
    name: str,
    host: str | None = None,
    *,
    namespace: str = "t1",
    tls_secret: str | None = None,
    annotations: dict[str, str] | None = None,
    backend: str = "web",
) -> ManagedResource:
    spec: dict[str, Any] = {}
    if host is not None:
        spec["rules"] = [{
            "host": host,
            "http": {"paths": [{
                "path": "/",
                "pathType": "Prefix",
                "backend": {"service": {"name": backend, "port": {"number": 80}}},
            }]},
        }]
    if tls_secret is not None:
        spec["tls"] = [{"hosts": [host] if host else [], "secretName": tls_secret}]
    return ManagedResource(
        kind=ResourceKind.INGRESS,
        namespace=namespace,
        name=name,
        annotations=annotations or {},
        payload={"spec": spec},
    )


def endpoints(
    name: str, *ips: str, namespace: str = "t1", port: int = 8080, **labels: str
) -> ManagedResource:
    subsets = []
    if ips:
        subsets.append({
            "addresses": [{"ip": ip} for ip in ips],
            "ports": [{"port": port, "protocol": "TCP"}],
        })
    return ManagedResource(
        kind=ResourceKind.ENDPOINT,
        namespace=namespace,
        name=name,
        labels=labels,
        payload={"subsets": subsets},
    )


def hpa(name: str, namespace: str = "t1", max_replicas: int = 3) -> ManagedResource:
    return ManagedResource(
        kind=ResourceKind.AUTOSCALER,
        namespace=namespace,
        name=name,
        payload={"spec": {
            "scaleTargetRef": {"apiVersion": "apps/v1", "kind": "Deployment", "name": name},
            "minReplicas": 1,
            "maxReplicas": max_replicas,
        }},
    )
