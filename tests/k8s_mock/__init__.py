"""Kubernetes API Mock for Testing.

This module provides an in-memory ResourceStore that enables reconciliation
tests without a cluster.

Key Features:
- In-memory objects keyed by kind, namespace and name
- Server-assigned uid and resourceVersion with optimistic concurrency
- Error injection per operation, kind and name
- Call log for asserting which writes happened
- Builders for the managed kinds

Usage:
    from k8s_mock import MockResourceStore, builders

    store = MockResourceStore()
    store.fail("update", TransientStoreError("unavailable"), times=2)
    outcome = reconcile_resource(store, builders.service("web"))
    assert len(store.calls_for("create")) == 1
"""

from . import builders
from .store import Call, FailureRule, MockResourceStore, RecordingSleep

__all__ = [
    "Call",
    "FailureRule",
    "MockResourceStore",
    "RecordingSleep",
    "builders",
]
