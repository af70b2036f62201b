"""Cluster GPU capacity accounting.

Two bulk reads: nodes (allocatable GPUs) then pods (GPU requests of live
pods). Any cluster failure degrades to an all-zero snapshot.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from kubernetes.utils import parse_quantity

from kubefoundry.domains.capacity.models import ClusterGpuSnapshot, NodeGpuInfo
from kubefoundry.utils.errors import KubeFoundryError

if TYPE_CHECKING:
    from kubefoundry.clients.base import K8sClient

logger = logging.getLogger(__name__)

GPU_RESOURCE = "nvidia.com/gpu"

# Completed and failed pods hold no reservation
LIVE_POD_PHASES = frozenset({"Running", "Pending"})


def _gpu_quantity(resources: dict[str, Any] | None) -> int:
    if not resources:
        return 0
    value = resources.get(GPU_RESOURCE)
    if value is None:
        return 0
    try:
        return int(parse_quantity(value))
    except ValueError:
        logger.warning(f"Ignoring unparseable GPU quantity: {value!r}")
        return 0


def _node_gpu_totals(nodes: list[Any]) -> dict[str, int]:
    totals: dict[str, int] = {}
    for node in nodes:
        name = node.metadata.name if node.metadata and node.metadata.name else "unknown"
        allocatable = node.status.allocatable if node.status else None
        gpus = _gpu_quantity(allocatable)
        if gpus > 0:
            totals[name] = gpus
    return totals


def _container_gpus(container: Any) -> int:
    resources = container.resources
    if resources is None:
        return 0
    requested = _gpu_quantity(resources.requests)
    if requested:
        return requested
    return _gpu_quantity(resources.limits)


def _allocated_by_node(pods: list[Any], node_names: set[str]) -> dict[str, int]:
    allocated = dict.fromkeys(node_names, 0)
    for pod in pods:
        phase = pod.status.phase if pod.status else None
        if phase not in LIVE_POD_PHASES:
            continue
        node_name = pod.spec.node_name if pod.spec else None
        if node_name not in allocated:
            continue
        allocated[node_name] += sum(_container_gpus(c) for c in pod.spec.containers or [])
    return allocated


def build_snapshot(k8s: K8sClient) -> ClusterGpuSnapshot:
    """Build a GPU capacity snapshot of the cluster.

    Args:
        k8s: Connected client exposing ``list_nodes`` and
            ``list_pods_for_all_namespaces``.

    Returns:
        The snapshot; all zeros when either read fails.
    """
    try:
        totals = _node_gpu_totals(k8s.list_nodes())
        allocated = _allocated_by_node(k8s.list_pods_for_all_namespaces(), set(totals))
    except KubeFoundryError as e:
        logger.error(f"Error getting cluster GPU capacity: {e}")
        return ClusterGpuSnapshot.empty()
    except Exception:
        logger.exception("Unexpected error getting cluster GPU capacity")
        return ClusterGpuSnapshot.empty()

    per_node = []
    for node_name, total in totals.items():
        used = allocated[node_name]
        per_node.append(
            NodeGpuInfo(
                node_name=node_name,
                total_gpus=total,
                allocated_gpus=used,
                available_gpus=max(0, total - used),
            )
        )

    total_gpus = sum(n.total_gpus for n in per_node)
    allocated_gpus = sum(n.allocated_gpus for n in per_node)
    snapshot = ClusterGpuSnapshot(
        total_gpus=total_gpus,
        allocated_gpus=allocated_gpus,
        available_gpus=total_gpus - allocated_gpus,
        max_contiguous_available=max((n.available_gpus for n in per_node), default=0),
        max_node_gpu_capacity=max((n.total_gpus for n in per_node), default=0),
        gpu_node_count=len(per_node),
        per_node=per_node,
    )
    logger.debug(
        f"GPU snapshot: {snapshot.available_gpus}/{snapshot.total_gpus} available "
        f"across {snapshot.gpu_node_count} node(s)"
    )
    return snapshot
