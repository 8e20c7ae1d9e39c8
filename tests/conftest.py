"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from kubernetes import client

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for k8s_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from applier.retry import RetryPolicy  # noqa: E402
from applier.store import KubernetesStore  # noqa: E402
from k8s_mock import MockResourceStore, RecordingSleep  # noqa: E402


@pytest.fixture
def store() -> MockResourceStore:
    """Empty in-memory store with the tenant namespace "t1" present."""
    mock = MockResourceStore()
    mock.namespaces.add("t1")
    return mock


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def policy(sleeper: RecordingSleep) -> RetryPolicy:
    """Default retry budget that records pauses instead of sleeping."""
    return RetryPolicy(attempts=5, interval_seconds=5.0, sleep=sleeper)


@pytest.fixture
def apis() -> dict[type, MagicMock]:
    """Typed Kubernetes API mocks, keyed by API class."""
    return {
        client.CoreV1Api: MagicMock(),
        client.NetworkingV1Api: MagicMock(),
        client.AutoscalingV2Api: MagicMock(),
    }


@pytest.fixture
def kube(apis: dict[type, MagicMock]) -> KubernetesStore:
    """KubernetesStore whose typed APIs are mocks returning plain dicts."""
    api_client = MagicMock()
    api_client.sanitize_for_serialization.side_effect = lambda obj: obj
    store = KubernetesStore(api_client)
    store._apis.update(apis)
    return store
