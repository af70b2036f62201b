"""Advisory GPU fit checks for deployment requests."""

from kubefoundry.domains.capacity.models import (
    ClusterGpuSnapshot,
    FitResult,
    GpuRequirement,
    GpuWarning,
    GpuWarningKind,
)
from kubefoundry.domains.deployments.models import DeploymentMode, DeploymentRequest

WARNING_PREFIXES = {
    GpuWarningKind.TOTAL_INSUFFICIENT: "Insufficient cluster GPUs",
    GpuWarningKind.CONTIGUOUS_INSUFFICIENT: "Scheduling constraint",
    GpuWarningKind.MODEL_MINIMUM: "Model requirement",
}


def calculate_required_gpus(request: DeploymentRequest) -> GpuRequirement:
    """Compute total and per-worker GPUs for a request."""
    gpus_per_replica = request.gpus_per_replica

    if request.mode == DeploymentMode.DISAGGREGATED:
        prefill_replicas = request.prefill_replicas or 1
        decode_replicas = request.decode_replicas or 1
        prefill_gpus = request.prefill_gpus or gpus_per_replica
        decode_gpus = request.decode_gpus or gpus_per_replica
        return GpuRequirement(
            total=prefill_replicas * prefill_gpus + decode_replicas * decode_gpus,
            max_per_worker=max(prefill_gpus, decode_gpus),
            prefill_per_worker=prefill_gpus,
            decode_per_worker=decode_gpus,
        )

    return GpuRequirement(
        total=request.replicas * gpus_per_replica,
        max_per_worker=gpus_per_replica,
        prefill_per_worker=gpus_per_replica,
        decode_per_worker=gpus_per_replica,
    )


def check_fit(
    request: DeploymentRequest,
    snapshot: ClusterGpuSnapshot,
    model_min_gpus: int = 1,
) -> FitResult:
    """Check a request against a capacity snapshot.

    All three checks always run so the caller sees every problem at once.
    The result is advisory; it never prevents a manifest from compiling.

    Args:
        request: Validated deployment request.
        snapshot: Current cluster capacity.
        model_min_gpus: Minimum GPUs per worker the model needs.

    Returns:
        FitResult with one warning per failed check.
    """
    required = calculate_required_gpus(request)
    warnings: list[GpuWarning] = []

    if required.total > snapshot.available_gpus:
        warnings.append(
            GpuWarning(
                kind=GpuWarningKind.TOTAL_INSUFFICIENT,
                message=(
                    f"Deployment requires {required.total} GPU(s) but only "
                    f"{snapshot.available_gpus} are available in the cluster"
                ),
                required=required.total,
                available=snapshot.available_gpus,
            )
        )

    # A worker is scheduled on a single node
    if required.max_per_worker > snapshot.max_contiguous_available:
        warnings.append(
            GpuWarning(
                kind=GpuWarningKind.CONTIGUOUS_INSUFFICIENT,
                message=(
                    f"Each worker requires {required.max_per_worker} GPU(s) but the largest "
                    f"available block on any node is {snapshot.max_contiguous_available} GPU(s)"
                ),
                required=required.max_per_worker,
                available=snapshot.max_contiguous_available,
            )
        )

    if request.mode == DeploymentMode.DISAGGREGATED:
        per_worker = min(required.prefill_per_worker, required.decode_per_worker)
    else:
        per_worker = required.max_per_worker
    if per_worker < model_min_gpus:
        warnings.append(
            GpuWarning(
                kind=GpuWarningKind.MODEL_MINIMUM,
                message=(
                    f"Model requires at least {model_min_gpus} GPU(s) per worker "
                    f"but configuration specifies {per_worker}"
                ),
                required=model_min_gpus,
                available=per_worker,
            )
        )

    return FitResult(fits=not warnings, warnings=warnings)


def format_warnings(result: FitResult) -> list[str]:
    """Render warnings as user-facing lines."""
    return [f"{WARNING_PREFIXES[w.kind]}: {w.message}" for w in result.warnings]
