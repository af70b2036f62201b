"""Shared fixtures for KubeFoundry tests."""

from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock

import pytest

import kubefoundry.config as config_module
from kubefoundry.providers.kaito.provider import reset_version_cache
from kubefoundry.providers.registry import reset_registry


@pytest.fixture(autouse=True)
def reset_globals() -> Generator[None, None, None]:
    """Give every test a fresh config, provider registry and version cache."""
    config_module._config = None
    reset_registry()
    reset_version_cache()
    yield
    config_module._config = None
    reset_registry()
    reset_version_cache()


def make_node(name: str, gpus: str | None) -> MagicMock:
    """Build a node object shaped like kubernetes.client.V1Node."""
    node = MagicMock()
    node.metadata.name = name
    node.status.allocatable = {"cpu": "8"} if gpus is None else {"cpu": "8", "nvidia.com/gpu": gpus}
    return node


def make_pod(
    node_name: str | None,
    phase: str = "Running",
    requests: list[dict[str, Any] | None] | None = None,
    limits: list[dict[str, Any] | None] | None = None,
) -> MagicMock:
    """Build a pod object shaped like kubernetes.client.V1Pod.

    ``requests`` and ``limits`` hold one resource dict per container.
    """
    pod = MagicMock()
    pod.status.phase = phase
    pod.spec.node_name = node_name
    count = max(len(requests or []), len(limits or []))
    containers = []
    for i in range(count):
        container = MagicMock()
        container.resources.requests = (requests or [None] * count)[i]
        container.resources.limits = (limits or [None] * count)[i]
        containers.append(container)
    pod.spec.containers = containers
    return pod


@pytest.fixture
def mock_k8s() -> MagicMock:
    """Create a mock K8sClient."""
    return MagicMock()


@pytest.fixture
def vllm_request_data() -> dict[str, Any]:
    """A minimal valid vLLM request in camelCase."""
    return {
        "name": "qwen-chat",
        "namespace": "inference",
        "modelSource": "vllm-hf",
        "modelId": "Qwen/Qwen2.5-7B-Instruct",
    }


@pytest.fixture
def node_factory() -> Any:
    return make_node


@pytest.fixture
def pod_factory() -> Any:
    return make_pod
