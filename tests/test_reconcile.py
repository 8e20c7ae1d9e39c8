"""Tests for single-resource get-or-create-or-update."""

import pytest

from applier.errors import (
    AlreadyExistsError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    TransientStoreError,
)
from applier.models import Identity, ManagedResource, Outcome, ResourceKind
from applier.reconcile import (
    ResourceReconciler,
    ensure_endpoints,
    ensure_hpa,
    ensure_ingress,
    ensure_secret,
    ensure_service,
    reconcile_resource,
)
from applier.retry import RetryPolicy
from k8s_mock import MockResourceStore, builders


class TestCreate:
    """Tests for the create path."""

    def test_creates_missing_service(
        self, store: MockResourceStore, policy: RetryPolicy
    ) -> None:
        """Test that an absent service is created exactly once."""
        recorded: list[ManagedResource] = []

        outcome = ensure_service(
            store, builders.service("web"), policy=policy, recorder=recorded.append
        )

        assert outcome.outcome == Outcome.CREATED
        assert len(store.calls_for("create")) == 1
        assert store.lookup(ResourceKind.SERVICE, "t1", "web") is not None
        assert len(recorded) == 1
        assert recorded[0].identity.uid

    def test_create_strips_identity(
        self, store: MockResourceStore, policy: RetryPolicy
    ) -> None:
        """Test that a stale identity on the desired object is not sent on create."""
        desired = builders.secret("web-tls").with_identity(
            Identity(uid="u-old", resource_version="42")
        )

        outcome = ensure_secret(store, desired, policy=policy)

        assert outcome.outcome == Outcome.CREATED
        stored = store.lookup(ResourceKind.SECRET, "t1", "web-tls")
        assert stored is not None
        assert stored.identity.uid != "u-old"

    def test_already_exists_race(self, store: MockResourceStore, policy: RetryPolicy) -> None:
        """Test that losing a create race is not a failure."""
        store.fail("create", AlreadyExistsError("services \"web\" already exists"))

        outcome = ensure_service(store, builders.service("web"), policy=policy)

        assert outcome.outcome == Outcome.SKIPPED
        assert outcome.reason == "already exists"
        assert outcome.success

    def test_forbidden_create(self, store: MockResourceStore, policy: RetryPolicy) -> None:
        store.fail("create", ForbiddenError("namespace t1 is being terminated"))

        outcome = ensure_ingress(store, builders.ingress("web-ing"), policy=policy)

        assert outcome.outcome == Outcome.FAILED
        assert isinstance(outcome.error, ForbiddenError)

    def test_create_error(self, store: MockResourceStore, policy: RetryPolicy) -> None:
        """Test that create failures are reported, not raised."""
        store.fail("create", TransientStoreError("unavailable"))

        outcome = ensure_hpa(store, builders.hpa("web"), policy=policy)

        assert outcome.outcome == Outcome.FAILED
        assert len(store.calls_for("create")) == 1

    def test_get_error_skips_write(self, store: MockResourceStore, policy: RetryPolicy) -> None:
        store.fail("get", TransientStoreError("unavailable"))

        outcome = ensure_service(store, builders.service("web"), policy=policy)

        assert outcome.outcome == Outcome.FAILED
        assert store.writes == []


class TestUpdate:
    """Tests for the update path."""

    def test_updates_with_observed_identity(
        self, store: MockResourceStore, policy: RetryPolicy
    ) -> None:
        """Test that the update carries the uid of the observed object."""
        existing = store.seed(builders.service("web", port=80))
        recorded: list[ManagedResource] = []

        outcome = ensure_service(
            store, builders.service("web", port=8080), policy=policy, recorder=recorded.append
        )

        assert outcome.outcome == Outcome.UPDATED
        stored = store.lookup(ResourceKind.SERVICE, "t1", "web")
        assert stored is not None
        assert stored.identity.uid == existing.identity.uid
        assert stored.payload["spec"]["ports"][0]["port"] == 8080
        assert recorded[0].identity == stored.identity

    def test_services_always_written(
        self, store: MockResourceStore, policy: RetryPolicy
    ) -> None:
        """Test that non-endpoint kinds are updated even when unchanged."""
        store.seed(builders.service("web"))

        outcome = ensure_service(store, builders.service("web"), policy=policy)

        assert outcome.outcome == Outcome.UPDATED
        assert len(store.calls_for("update")) == 1

    def test_conflict_reported(self, store: MockResourceStore, policy: RetryPolicy) -> None:
        store.seed(builders.secret("web-tls"))
        store.fail("update", ConflictError("the object has been modified"))

        outcome = ensure_secret(store, builders.secret("web-tls", cert="bmV3"), policy=policy)

        assert outcome.outcome == Outcome.FAILED
        assert isinstance(outcome.error, ConflictError)
        assert len(store.calls_for("update")) == 1

    def test_deleted_between_get_and_update(
        self, store: MockResourceStore, policy: RetryPolicy
    ) -> None:
        """Test that a concurrent delete is skipped without recreating."""
        store.seed(builders.service("web"))
        store.fail("update", NotFoundError("gone"))
        recorded: list[ManagedResource] = []

        outcome = ensure_service(
            store, builders.service("web"), policy=policy, recorder=recorded.append
        )

        assert outcome.outcome == Outcome.SKIPPED
        assert outcome.reason == "deleted concurrently"
        assert store.calls_for("create") == []
        assert recorded == []

    def test_retries_exhausted(
        self, store: MockResourceStore, policy: RetryPolicy
    ) -> None:
        store.seed(builders.service("web"))
        store.fail("update", TransientStoreError("unavailable"), times=None)

        outcome = ensure_service(store, builders.service("web"), policy=policy)

        assert outcome.outcome == Outcome.FAILED
        assert len(store.calls_for("update")) == 5


class TestEndpoints:
    """Tests for the endpoints equality gate."""

    def test_second_pass_writes_nothing(
        self, store: MockResourceStore, policy: RetryPolicy
    ) -> None:
        """Test that reapplying identical endpoints performs no write."""
        desired = builders.endpoints("web", "10.0.0.5", "10.0.0.6", app="web")

        first = ensure_endpoints(store, desired, policy=policy)
        second = ensure_endpoints(store, desired, policy=policy)

        assert first.outcome == Outcome.CREATED
        assert second.outcome == Outcome.UNCHANGED
        assert len(store.writes) == 1

    def test_changed_subsets_written(
        self, store: MockResourceStore, policy: RetryPolicy
    ) -> None:
        existing = builders.endpoints("web", "10.0.0.5").model_copy(
            update={"annotations": {"endpoints.kubernetes.io/last-change": "x"}}
        )
        store.seed(existing)

        outcome = ensure_endpoints(store, builders.endpoints("web", "10.0.0.7"), policy=policy)

        assert outcome.outcome == Outcome.UPDATED
        stored = store.lookup(ResourceKind.ENDPOINT, "t1", "web")
        assert stored is not None
        assert stored.payload["subsets"][0]["addresses"] == [{"ip": "10.0.0.7"}]
        assert stored.annotations == {"endpoints.kubernetes.io/last-change": "x"}


class TestKindChecks:
    """Tests for the per-kind entry points."""

    def test_wrong_kind_rejected(self, store: MockResourceStore) -> None:
        with pytest.raises(ValueError, match="expected a Service"):
            ensure_service(store, builders.secret("web-tls"))

    def test_reconcile_resource_any_kind(
        self, store: MockResourceStore, policy: RetryPolicy
    ) -> None:
        outcome = reconcile_resource(store, builders.hpa("web"), policy=policy)
        assert outcome.outcome == Outcome.CREATED

    def test_reconciler_without_recorder(
        self, store: MockResourceStore, policy: RetryPolicy
    ) -> None:
        reconciler = ResourceReconciler(store, policy)

        assert reconciler.reconcile(builders.service("web")).outcome == Outcome.CREATED
        assert reconciler.reconcile(builders.service("web")).outcome == Outcome.UPDATED
