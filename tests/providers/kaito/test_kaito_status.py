"""Tests for KAITO status normalization."""

import copy
from typing import Any

import pytest

from kubefoundry.domains.deployments import DeploymentPhase, Engine, KaitoDeploymentRequest
from kubefoundry.providers.kaito.manifest import generate_manifest
from kubefoundry.providers.kaito.status import (
    MODEL_IDENTITY_STRATEGIES,
    WorkloadView,
    extract_model_identity,
    map_phase,
    parse_status,
    reduce_phase,
)

READY_CONDITIONS = [
    {"type": "WorkspaceSucceeded", "status": "True"},
    {"type": "InferenceReady", "status": "True", "reason": "Ready"},
]


def live_object(request_fields: dict[str, Any], status: dict[str, Any] | None = None) -> dict[str, Any]:
    """A compiled manifest as it would come back from the cluster."""
    request = KaitoDeploymentRequest.model_validate(
        {"name": "demo", "namespace": "models", **request_fields}
    )
    obj = generate_manifest(request)
    obj["metadata"]["creationTimestamp"] = "2025-01-01T00:00:00Z"
    if status is not None:
        obj["status"] = status
    return obj


class TestPhase:
    """Test phase mapping and the condition override."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Running", DeploymentPhase.RUNNING),
            ("ready", DeploymentPhase.RUNNING),
            ("Provisioning", DeploymentPhase.DEPLOYING),
            ("Error", DeploymentPhase.FAILED),
            ("Deleting", DeploymentPhase.TERMINATING),
            ("Something", DeploymentPhase.PENDING),
            (None, DeploymentPhase.PENDING),
        ],
    )
    def test_map_phase(self, raw: Any, expected: DeploymentPhase) -> None:
        """Raw phases map case-insensitively, unknown values are Pending."""
        assert map_phase(raw) == expected

    def test_ready_conditions_override(self) -> None:
        """Both ready conditions mean Running even without a phase."""
        assert reduce_phase({"conditions": READY_CONDITIONS}) == DeploymentPhase.RUNNING

    def test_ready_conditions_override_failed_phase(self) -> None:
        """The override applies whatever the raw phase says."""
        status = {"phase": "Failed", "conditions": READY_CONDITIONS}

        assert reduce_phase(status) == DeploymentPhase.RUNNING

    def test_partial_conditions_do_not_override(self) -> None:
        """One ready condition alone is not enough."""
        status = {"phase": "Pending", "conditions": READY_CONDITIONS[:1]}

        assert reduce_phase(status) == DeploymentPhase.PENDING


class TestModelIdentity:
    """Test the ordered model identity strategies."""

    def test_strategy_order(self) -> None:
        """Direct GGUF is tried before vLLM, then premade."""
        assert [s.name for s in MODEL_IDENTITY_STRATEGIES] == ["direct-gguf", "vllm", "premade"]

    def test_falls_back_to_image(self) -> None:
        """Without a matching strategy the image is the identity."""
        view = WorkloadView(labels={}, image="registry.local/custom:1", args=["run"])

        assert extract_model_identity(view) == "registry.local/custom:1"

    def test_vllm_equals_form(self) -> None:
        """--model=<id> is recognized too."""
        view = WorkloadView(
            labels={"kubefoundry.io/model-source": "vllm-hf"},
            image="x",
            args=["--model=org/model"],
        )

        assert extract_model_identity(view) == "org/model"


class TestParseStatus:
    """Test canonical status reduction."""

    def test_premade_running(self) -> None:
        """A running premade workspace reports its catalog model name."""
        obj = live_object(
            {"modelSource": "premade", "premadeModel": "llama3.2:3b", "replicas": 2},
            {"conditions": READY_CONDITIONS, "workerNodes": ["node-a", "node-b", "node-c"]},
        )

        status = parse_status(obj)

        assert status.name == "demo"
        assert status.namespace == "models"
        assert status.provider == "kaito"
        assert status.model_id == "llama-3.2-3b-instruct"
        assert status.served_model_name == "demo"
        assert status.engine == Engine.LLAMACPP
        assert status.phase == DeploymentPhase.RUNNING
        assert status.replicas.desired == 2
        assert status.replicas.ready == 2
        assert status.replicas.available == 2
        assert status.frontend_service_ref == "demo:80"
        assert status.created_at == "2025-01-01T00:00:00Z"
        assert [c.type for c in status.conditions] == ["WorkspaceSucceeded", "InferenceReady"]
        assert status.conditions[1].reason == "Ready"

    def test_not_running_has_no_ready_replicas(self) -> None:
        """Ready replicas are zero unless the phase is Running."""
        obj = live_object(
            {"modelSource": "premade", "premadeModel": "llama3.2:3b"},
            {"phase": "Pending", "workerNodes": ["node-a"]},
        )

        status = parse_status(obj)

        assert status.phase == DeploymentPhase.PENDING
        assert status.replicas.ready == 0

    def test_reduction_is_repeatable(self) -> None:
        """Reducing the same Pending object with ready conditions twice gives the same Running status."""
        obj = live_object(
            {"modelSource": "premade", "premadeModel": "llama3.2:3b", "replicas": 2},
            {"phase": "Pending", "conditions": READY_CONDITIONS, "workerNodes": ["node-a", "node-b"]},
        )
        before = copy.deepcopy(obj)

        first = parse_status(obj)
        second = parse_status(obj)

        assert first == second
        assert first.phase == DeploymentPhase.RUNNING
        assert first.replicas.ready == 2
        assert obj == before

    def test_direct_gguf_reports_file(self) -> None:
        """Direct GGUF deployments report the GGUF file name."""
        obj = live_object(
            {
                "modelSource": "huggingface-gguf",
                "modelId": "TheBloke/Llama-2-7B-Chat-GGUF",
                "ggufFile": "llama-2-7b-chat.Q4_K_M.gguf",
            }
        )

        assert parse_status(obj).model_id == "llama-2-7b-chat.Q4_K_M.gguf"

    def test_vllm(self) -> None:
        """vLLM deployments report the model id and the vLLM service."""
        obj = live_object(
            {"modelSource": "vllm-hf", "modelId": "org/model", "computeType": "gpu"},
            {"phase": "Running"},
        )

        status = parse_status(obj)

        assert status.engine == Engine.VLLM
        assert status.model_id == "org/model"
        assert status.frontend_service_ref == "demo-vllm:8000"

    def test_nested_layout(self) -> None:
        """InferenceSet objects read replicas from spec.replicas."""
        obj = live_object(
            {
                "modelSource": "premade",
                "premadeModel": "phi4:14b",
                "replicas": 3,
                "resourceVariant": "nested",
            },
            {"phase": "Running", "workerNodes": ["a"]},
        )

        status = parse_status(obj)

        assert status.replicas.desired == 3
        assert status.replicas.ready == 1
        assert status.model_id == "phi-4-14b-instruct"

    def test_minimal_object(self) -> None:
        """Missing fields fall back to defaults instead of failing."""
        status = parse_status({})

        assert status.name == "unknown"
        assert status.namespace == "default"
        assert status.phase == DeploymentPhase.PENDING
        assert status.replicas.desired == 1
        assert status.model_id == ""
        assert status.created_at is None
