"""Reduce live KAITO Workspace / InferenceSet objects to a canonical status."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from kubefoundry.domains.deployments.models import (
    CanonicalStatus,
    DeploymentMode,
    DeploymentPhase,
    Engine,
    ModelSource,
    ReplicaStatus,
    parse_conditions,
)
from kubefoundry.providers.kaito.catalog import GGUF_RUNNER_IMAGE, find_by_image
from kubefoundry.providers.kaito.manifest import (
    HF_URI_SCHEME,
    LABEL_MODEL_SOURCE,
    LABEL_RUN_MODE,
    VLLM_ENTRYPOINT,
    VLLM_PORT,
)

PHASE_TABLE = {
    "running": DeploymentPhase.RUNNING,
    "ready": DeploymentPhase.RUNNING,
    "pending": DeploymentPhase.PENDING,
    "waiting": DeploymentPhase.PENDING,
    "creating": DeploymentPhase.PENDING,
    "deploying": DeploymentPhase.DEPLOYING,
    "provisioning": DeploymentPhase.DEPLOYING,
    "failed": DeploymentPhase.FAILED,
    "error": DeploymentPhase.FAILED,
    "terminating": DeploymentPhase.TERMINATING,
    "deleting": DeploymentPhase.TERMINATING,
}

# KAITO does not always set a phase; these two conditions together mean Running
READY_CONDITIONS = ("WorkspaceSucceeded", "InferenceReady")


def map_phase(raw_phase: Any) -> DeploymentPhase:
    if not isinstance(raw_phase, str):
        return DeploymentPhase.PENDING
    return PHASE_TABLE.get(raw_phase.lower(), DeploymentPhase.PENDING)


def conditions_report_ready(conditions: list[dict[str, Any]]) -> bool:
    status_by_type = {c.get("type"): c.get("status") for c in conditions if isinstance(c, dict)}
    return all(status_by_type.get(t) == "True" for t in READY_CONDITIONS)


def reduce_phase(status: dict[str, Any]) -> DeploymentPhase:
    """Phase table first, then the condition override (upgrade only)."""
    phase = map_phase(status.get("phase"))
    if conditions_report_ready(status.get("conditions") or []):
        return DeploymentPhase.RUNNING
    return phase


@dataclass
class WorkloadView:
    """The parts of a KAITO object the model extractors look at."""

    labels: dict[str, str]
    image: str
    args: list[str]

    @property
    def is_vllm(self) -> bool:
        return (
            self.labels.get(LABEL_MODEL_SOURCE) == ModelSource.VLLM_HF.value
            or VLLM_ENTRYPOINT in self.args
        )


@dataclass(frozen=True)
class ModelIdentityStrategy:
    """One way of recovering model identity, guarded by a precondition."""

    name: str
    applies: Callable[[WorkloadView], bool]
    extract: Callable[[WorkloadView], str | None]


def _is_direct_gguf(view: WorkloadView) -> bool:
    return view.labels.get(LABEL_RUN_MODE) == "direct" or view.image == GGUF_RUNNER_IMAGE


def _gguf_filename(view: WorkloadView) -> str | None:
    for arg in view.args:
        if arg.startswith(HF_URI_SCHEME):
            return arg[len(HF_URI_SCHEME):].split("/")[-1] or None
    return None


def _vllm_model(view: WorkloadView) -> str | None:
    args = view.args
    for i, arg in enumerate(args):
        if arg == "--model" and i + 1 < len(args):
            return args[i + 1]
        if arg.startswith("--model="):
            return arg.split("=", 1)[1]
    return None


def _is_premade(view: WorkloadView) -> bool:
    return view.labels.get(LABEL_MODEL_SOURCE) == ModelSource.PREMADE.value


def _premade_model_name(view: WorkloadView) -> str | None:
    model = find_by_image(view.image)
    return model.model_name if model else None


# Tried in order; the first strategy that applies and yields a value wins
MODEL_IDENTITY_STRATEGIES = [
    ModelIdentityStrategy("direct-gguf", _is_direct_gguf, _gguf_filename),
    ModelIdentityStrategy("vllm", lambda v: v.is_vllm, _vllm_model),
    ModelIdentityStrategy("premade", _is_premade, _premade_model_name),
]


def extract_model_identity(view: WorkloadView) -> str:
    for strategy in MODEL_IDENTITY_STRATEGIES:
        if strategy.applies(view):
            value = strategy.extract(view)
            if value:
                return value
    return view.image


def _dig(obj: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _workload_blocks(raw: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any], int | None]:
    """Return (resource, inference, replicas) for either layout."""
    template = _dig(raw, "spec", "template")
    if isinstance(template, dict):
        resource = template.get("resource") or {}
        replicas = _dig(raw, "spec", "replicas") or resource.get("count")
        return resource, template.get("inference") or {}, replicas
    resource = raw.get("resource") or {}
    return resource, raw.get("inference") or {}, resource.get("count")


def _first_container(inference: dict[str, Any]) -> dict[str, Any]:
    containers = _dig(inference, "template", "spec", "containers") or []
    if containers and isinstance(containers[0], dict):
        return containers[0]
    return {}


def parse_status(raw: dict[str, Any], provider_id: str = "kaito") -> CanonicalStatus:
    """Reduce a Workspace (flat) or InferenceSet (nested) to a CanonicalStatus."""
    metadata = raw.get("metadata") or {}
    status = raw.get("status") or {}
    labels = metadata.get("labels") or {}
    name = metadata.get("name") or "unknown"

    _, inference, replicas = _workload_blocks(raw)
    container = _first_container(inference)
    view = WorkloadView(
        labels=labels,
        image=container.get("image") or "",
        args=[str(a) for a in container.get("args") or []],
    )

    phase = reduce_phase(status)
    desired = replicas if isinstance(replicas, int) and replicas > 0 else 1
    worker_nodes = status.get("workerNodes") or []
    ready = min(len(worker_nodes), desired) if phase == DeploymentPhase.RUNNING else 0

    if view.is_vllm:
        engine = Engine.VLLM
        frontend = f"{name}-vllm:{VLLM_PORT}"
    else:
        engine = Engine.LLAMACPP
        frontend = f"{name}:80"

    return CanonicalStatus(
        name=name,
        namespace=metadata.get("namespace") or "default",
        provider=provider_id,
        model_id=extract_model_identity(view),
        served_model_name=name,
        engine=engine,
        mode=DeploymentMode.AGGREGATED,
        phase=phase,
        replicas=ReplicaStatus(desired=desired, ready=ready, available=ready),
        conditions=parse_conditions(status.get("conditions")),
        frontend_service_ref=frontend,
        created_at=metadata.get("creationTimestamp"),
    )
