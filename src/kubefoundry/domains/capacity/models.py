"""Pydantic models for cluster GPU capacity and admission results."""

from enum import Enum

from pydantic import Field

from kubefoundry.domains.deployments.models import CamelModel


class NodeGpuInfo(CamelModel):
    """GPU accounting for one node."""

    node_name: str
    total_gpus: int = 0
    allocated_gpus: int = 0
    available_gpus: int = 0


class ClusterGpuSnapshot(CamelModel):
    """Point-in-time GPU accounting for the whole cluster.

    ``max_contiguous_available`` is the largest free block on a single node;
    one worker cannot span nodes, so this bounds the per-worker GPU count.
    """

    total_gpus: int = 0
    allocated_gpus: int = 0
    available_gpus: int = 0
    max_contiguous_available: int = 0
    max_node_gpu_capacity: int = 0
    gpu_node_count: int = 0
    per_node: list[NodeGpuInfo] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "ClusterGpuSnapshot":
        return cls()


class GpuWarningKind(str, Enum):
    TOTAL_INSUFFICIENT = "total_insufficient"
    CONTIGUOUS_INSUFFICIENT = "contiguous_insufficient"
    MODEL_MINIMUM = "model_minimum"


class GpuWarning(CamelModel):
    kind: GpuWarningKind
    message: str
    required: int
    available: int


class GpuRequirement(CamelModel):
    """GPUs a request needs, cluster-wide and per worker."""

    total: int
    max_per_worker: int
    prefill_per_worker: int
    decode_per_worker: int


class FitResult(CamelModel):
    """Advisory admission result. ``fits`` is true iff there are no warnings."""

    fits: bool
    warnings: list[GpuWarning] = Field(default_factory=list)
