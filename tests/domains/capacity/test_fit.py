"""Tests for advisory GPU fit checks."""

from typing import Any

import pytest

from kubefoundry.domains.capacity import (
    ClusterGpuSnapshot,
    GpuWarningKind,
    calculate_required_gpus,
    check_fit,
    format_warnings,
)
from kubefoundry.domains.deployments import DeploymentRequest


def snapshot(available: int, contiguous: int) -> ClusterGpuSnapshot:
    return ClusterGpuSnapshot(
        total_gpus=available,
        available_gpus=available,
        max_contiguous_available=contiguous,
        max_node_gpu_capacity=contiguous,
        gpu_node_count=1,
    )


@pytest.fixture
def make_request(vllm_request_data: dict[str, Any]) -> Any:
    def _make(**overrides: Any) -> DeploymentRequest:
        return DeploymentRequest.model_validate({**vllm_request_data, **overrides})

    return _make


class TestCalculateRequiredGpus:
    """Test GPU requirement arithmetic."""

    def test_aggregated(self, make_request: Any) -> None:
        """Aggregated total is replicas times GPUs per replica."""
        required = calculate_required_gpus(make_request(replicas=3, resources={"gpu": 2}))

        assert required.total == 6
        assert required.max_per_worker == 2

    def test_disaggregated(self, make_request: Any) -> None:
        """Disaggregated total sums prefill and decode pools."""
        required = calculate_required_gpus(
            make_request(
                mode="disaggregated",
                prefillReplicas=2,
                prefillGpus=1,
                decodeReplicas=1,
                decodeGpus=4,
            )
        )

        assert required.total == 6
        assert required.max_per_worker == 4
        assert required.prefill_per_worker == 1
        assert required.decode_per_worker == 4

    def test_disaggregated_defaults(self, make_request: Any) -> None:
        """Missing pool sizes default to one replica with GPUs per replica."""
        required = calculate_required_gpus(make_request(mode="disaggregated", resources={"gpu": 2}))

        assert required.total == 4
        assert required.max_per_worker == 2


class TestCheckFit:
    """Test the three fit checks."""

    def test_fits(self, make_request: Any) -> None:
        """Enough GPUs everywhere gives no warnings."""
        result = check_fit(make_request(replicas=2), snapshot(available=4, contiguous=2))

        assert result.fits is True
        assert result.warnings == []

    def test_total_insufficient(self, make_request: Any) -> None:
        """Too few GPUs cluster-wide is reported."""
        result = check_fit(make_request(replicas=4), snapshot(available=2, contiguous=2))

        assert result.fits is False
        assert [w.kind for w in result.warnings] == [GpuWarningKind.TOTAL_INSUFFICIENT]
        assert result.warnings[0].required == 4
        assert result.warnings[0].available == 2

    def test_contiguous_insufficient(self, make_request: Any) -> None:
        """A worker larger than any node's free block is reported."""
        result = check_fit(make_request(resources={"gpu": 4}), snapshot(available=8, contiguous=2))

        assert [w.kind for w in result.warnings] == [GpuWarningKind.CONTIGUOUS_INSUFFICIENT]
        assert "largest available block on any node is 2 GPU(s)" in result.warnings[0].message

    def test_model_minimum(self, make_request: Any) -> None:
        """Fewer GPUs per worker than the model needs is reported."""
        result = check_fit(make_request(), snapshot(available=8, contiguous=8), model_min_gpus=2)

        assert [w.kind for w in result.warnings] == [GpuWarningKind.MODEL_MINIMUM]
        assert result.warnings[0].message == (
            "Model requires at least 2 GPU(s) per worker but configuration specifies 1"
        )

    def test_disaggregated_model_minimum_uses_smaller_pool(self, make_request: Any) -> None:
        """In disaggregated mode the smaller pool is compared with the minimum."""
        request = make_request(mode="disaggregated", prefillGpus=1, decodeGpus=4)

        result = check_fit(request, snapshot(available=8, contiguous=8), model_min_gpus=2)

        assert [w.kind for w in result.warnings] == [GpuWarningKind.MODEL_MINIMUM]
        assert result.warnings[0].available == 1

    def test_all_checks_reported(self, make_request: Any) -> None:
        """Every failed check produces its own warning."""
        result = check_fit(
            make_request(replicas=2, resources={"gpu": 2}),
            snapshot(available=1, contiguous=1),
            model_min_gpus=4,
        )

        assert [w.kind for w in result.warnings] == [
            GpuWarningKind.TOTAL_INSUFFICIENT,
            GpuWarningKind.CONTIGUOUS_INSUFFICIENT,
            GpuWarningKind.MODEL_MINIMUM,
        ]

    def test_empty_snapshot(self, make_request: Any) -> None:
        """Against an empty cluster a GPU request never fits."""
        result = check_fit(make_request(), ClusterGpuSnapshot.empty())

        assert result.fits is False
        assert len(result.warnings) == 2

    def test_format_warnings(self, make_request: Any) -> None:
        """Warnings render with a category prefix."""
        result = check_fit(make_request(replicas=4), snapshot(available=2, contiguous=2))

        assert format_warnings(result) == [
            "Insufficient cluster GPUs: Deployment requires 4 GPU(s) but only 2 are available in the cluster"
        ]
