"""Tests for the engine facade."""

from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from kubefoundry import engine
from kubefoundry.config import configure
from kubefoundry.domains.capacity import ClusterGpuSnapshot
from kubefoundry.domains.deployments import (
    DeploymentPhase,
    DynamoDeploymentRequest,
    KaitoDeploymentRequest,
)
from kubefoundry.utils.errors import UnknownProviderError


class TestValidate:
    """Test provider routing for validation."""

    def test_routes_to_named_provider(self, vllm_request_data: dict[str, Any]) -> None:
        """The request's provider decides the request model."""
        result = engine.validate({**vllm_request_data, "provider": "dynamo"})

        assert result.valid is True
        assert isinstance(result.normalized, DynamoDeploymentRequest)

    def test_default_provider(self, vllm_request_data: dict[str, Any]) -> None:
        """Requests without a provider use the configured default."""
        result = engine.validate(vllm_request_data)

        assert isinstance(result.normalized, KaitoDeploymentRequest)
        assert result.normalized.provider == "kaito"

    def test_configured_default_provider(self, vllm_request_data: dict[str, Any]) -> None:
        """The default provider can be changed through configuration."""
        configure(default_provider="kuberay")

        result = engine.validate(vllm_request_data)

        assert result.normalized.provider == "kuberay"

    def test_unknown_provider(self, vllm_request_data: dict[str, Any]) -> None:
        """An unknown provider is a validation error, not an exception."""
        result = engine.validate({**vllm_request_data, "provider": "triton"})

        assert result.valid is False
        assert result.errors == [
            "provider: Provider 'triton' not found. Available providers: kaito, dynamo, kuberay"
        ]

    def test_non_object(self) -> None:
        """Non-mapping input is reported, not raised."""
        result = engine.validate("name: x")

        assert result.errors == ["request: Expected an object, got str"]


class TestCompileAndStatus:
    """Test manifest compilation and status reduction through the facade."""

    def test_compile_manifest(self, vllm_request_data: dict[str, Any]) -> None:
        """A validated request compiles with its provider."""
        request = engine.validate(vllm_request_data).normalized

        manifest = engine.compile_manifest("kaito", request)

        assert manifest["kind"] == "Workspace"
        assert engine.compile is engine.compile_manifest

    def test_compile_is_deterministic(self, vllm_request_data: dict[str, Any]) -> None:
        """Compiling the same request twice gives equal documents."""
        request = engine.validate({**vllm_request_data, "provider": "kuberay"}).normalized

        assert engine.compile("kuberay", request) == engine.compile("kuberay", request)

    def test_compile_unknown_provider(self, vllm_request_data: dict[str, Any]) -> None:
        """Compiling for an unknown provider raises."""
        request = engine.validate(vllm_request_data).normalized

        with pytest.raises(UnknownProviderError):
            engine.compile_manifest("triton", request)

    def test_reduce_status(self) -> None:
        """Status reduction dispatches by provider id."""
        status = engine.reduce_status(
            "kaito", {"metadata": {"name": "demo"}, "status": {"phase": "Running"}}
        )

        assert status.provider == "kaito"
        assert status.phase == DeploymentPhase.RUNNING


class TestCapacity:
    """Test capacity helpers on the facade."""

    def test_check_fit_default_minimum(self, vllm_request_data: dict[str, Any]) -> None:
        """Without a model minimum one GPU per worker is assumed."""
        request = engine.validate(vllm_request_data).normalized
        snapshot = ClusterGpuSnapshot(total_gpus=1, available_gpus=1, max_contiguous_available=1)

        assert engine.check_fit(request, snapshot).fits is True
        assert engine.check_fit(request, snapshot, model_minimum=2).fits is False

    def test_check_fit_explicit_zero_minimum(self, vllm_request_data: dict[str, Any]) -> None:
        """An explicit minimum of zero is passed through, not replaced by the default."""
        request = engine.validate(vllm_request_data).normalized
        snapshot = ClusterGpuSnapshot(total_gpus=1, available_gpus=1, max_contiguous_available=1)

        with patch("kubefoundry.engine.fit.check_fit") as mock_check_fit:
            engine.check_fit(request, snapshot, model_minimum=0)
            engine.check_fit(request, snapshot)

        assert mock_check_fit.call_args_list[0].kwargs["model_min_gpus"] == 0
        assert mock_check_fit.call_args_list[1].kwargs["model_min_gpus"] == 1

    def test_build_snapshot_degrades(self, mock_k8s: MagicMock) -> None:
        """Snapshot failures surface as an empty snapshot."""
        from kubefoundry.utils.errors import ClusterUnavailableError

        mock_k8s.list_nodes.side_effect = ClusterUnavailableError("down")

        assert engine.build_snapshot(mock_k8s) == ClusterGpuSnapshot.empty()
