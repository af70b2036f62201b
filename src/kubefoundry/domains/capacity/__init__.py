"""Cluster GPU capacity accounting and advisory fit checks."""

from kubefoundry.domains.capacity.accountant import build_snapshot
from kubefoundry.domains.capacity.fit import calculate_required_gpus, check_fit, format_warnings
from kubefoundry.domains.capacity.models import (
    ClusterGpuSnapshot,
    FitResult,
    GpuRequirement,
    GpuWarning,
    GpuWarningKind,
    NodeGpuInfo,
)

__all__ = [
    "ClusterGpuSnapshot",
    "FitResult",
    "GpuRequirement",
    "GpuWarning",
    "GpuWarningKind",
    "NodeGpuInfo",
    "build_snapshot",
    "calculate_required_gpus",
    "check_fit",
    "format_warnings",
]
