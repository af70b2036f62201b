"""KAITO manifest compilation.

A request compiles to one of two layouts, chosen by ``resource_variant``:

- flat: a Workspace with ``resource`` and ``inference`` next to ``metadata``
- nested: an InferenceSet with ``spec.replicas`` and
  ``spec.template.{resource, inference}``

Both builders share the label, container and resource sub-builders. Nothing
here talks to the cluster.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from kubefoundry.domains.deployments.models import (
    ComputeType,
    DeploymentRequest,
    GgufRunMode,
    ModelSource,
    ResourceVariant,
)
from kubefoundry.providers.base import managed_labels
from kubefoundry.providers.kaito.catalog import (
    GGUF_RUNNER_IMAGE,
    build_image_ref,
    require_premade_model,
)
from kubefoundry.providers.kaito.crds import KaitoCRDs

logger = logging.getLogger(__name__)

VLLM_IMAGE = "mcr.microsoft.com/aks/kaito/kaito-base:0.1.1"
VLLM_ENTRYPOINT = "vllm.entrypoints.openai.api_server"
VLLM_PORT = 8000
GGUF_PORT = 5000
HF_URI_SCHEME = "huggingface://"

GPU_RESOURCE = "nvidia.com/gpu"
CPU_NODE_SELECTOR = {"kubernetes.io/os": "linux"}
GPU_NODE_SELECTOR = {"nvidia.com/gpu.present": "true"}

LABEL_COMPUTE_TYPE = "kubefoundry.io/compute-type"
LABEL_MODEL_SOURCE = "kubefoundry.io/model-source"
LABEL_RUN_MODE = "kubefoundry.io/run-mode"
LABEL_RESOURCE_VARIANT = "kubefoundry.io/resource-variant"


@dataclass
class ContainerPlan:
    """Image, entrypoint and port resolved from the model source."""

    image: str
    args: list[str]
    port: int
    command: list[str] | None = None
    is_vllm: bool = False


def resolve_container(request: DeploymentRequest) -> ContainerPlan:
    """Pick image, command and args for the request's model source.

    Raises:
        UnknownCatalogEntryError: premade key missing from the catalog.
    """
    source = request.model_source

    if source == ModelSource.VLLM_HF:
        args = [
            "-m",
            VLLM_ENTRYPOINT,
            "--model",
            request.model_id or "",
            "--tensor-parallel-size",
            str(request.gpus_per_replica),
        ]
        if request.max_model_len:
            args += ["--max-model-len", str(request.max_model_len)]
        args += ["--trust-remote-code", "--host", "0.0.0.0", "--port", str(VLLM_PORT)]
        return ContainerPlan(
            image=VLLM_IMAGE,
            command=["python"],
            args=args,
            port=VLLM_PORT,
            is_vllm=True,
        )

    if source == ModelSource.HUGGINGFACE_GGUF and request.gguf_run_mode == GgufRunMode.DIRECT:
        uri = f"{HF_URI_SCHEME}{request.model_id}/{request.gguf_file}"
        return ContainerPlan(
            image=GGUF_RUNNER_IMAGE,
            args=[uri, f"--address=:{GGUF_PORT}"],
            port=GGUF_PORT,
        )

    run_args = ["run", f"--address=:{GGUF_PORT}"]

    # Build mode and premade: a pre-resolved image wins
    if request.image_ref:
        return ContainerPlan(image=request.image_ref, args=run_args, port=GGUF_PORT)

    if source == ModelSource.HUGGINGFACE_GGUF:
        image = build_image_ref(request.model_id or "", request.gguf_file or "")
        return ContainerPlan(image=image, args=run_args, port=GGUF_PORT)

    premade = require_premade_model(request.premade_model or "")
    return ContainerPlan(image=premade.image, args=run_args, port=GGUF_PORT)


def build_labels(request: DeploymentRequest, provider_id: str = "kaito") -> dict[str, str]:
    labels = managed_labels(request.name, provider_id)
    labels.update(
        {
            LABEL_COMPUTE_TYPE: request.compute_type.value,
            LABEL_MODEL_SOURCE: request.model_source.value,
            LABEL_RESOURCE_VARIANT: request.resource_variant.value,
        }
    )
    if request.model_source == ModelSource.HUGGINGFACE_GGUF:
        labels[LABEL_RUN_MODE] = request.gguf_run_mode.value
    return labels


def _uses_gpu(request: DeploymentRequest) -> bool:
    return request.compute_type == ComputeType.GPU or request.model_source == ModelSource.VLLM_HF


def build_resource_spec(request: DeploymentRequest, include_count: bool = True) -> dict[str, Any]:
    """Node targeting block. An explicit label selector replaces the default."""
    spec: dict[str, Any] = {}
    if include_count:
        spec["count"] = request.replicas

    if request.label_selector:
        match_labels = dict(request.label_selector)
    elif _uses_gpu(request):
        match_labels = dict(GPU_NODE_SELECTOR)
    else:
        match_labels = dict(CPU_NODE_SELECTOR)
    spec["labelSelector"] = {"matchLabels": match_labels}

    if request.preferred_nodes:
        spec["preferredNodes"] = list(request.preferred_nodes)
    if request.instance_type:
        spec["instanceType"] = request.instance_type
    return spec


def _container_resources(request: DeploymentRequest) -> dict[str, dict[str, Any]]:
    resources: dict[str, dict[str, Any]] = {}
    shape = request.resources

    if shape and shape.memory:
        resources.setdefault("requests", {})["memory"] = shape.memory
    if shape and shape.cpu:
        resources.setdefault("requests", {})["cpu"] = shape.cpu
    if _uses_gpu(request):
        gpus = request.gpus_per_replica
        resources.setdefault("requests", {})[GPU_RESOURCE] = gpus
        resources.setdefault("limits", {})[GPU_RESOURCE] = gpus
    return resources


def build_container(request: DeploymentRequest, plan: ContainerPlan) -> dict[str, Any]:
    container: dict[str, Any] = {"name": "model", "image": plan.image}
    if plan.command:
        container["command"] = list(plan.command)
    container["args"] = list(plan.args)
    container["ports"] = [{"containerPort": plan.port, "protocol": "TCP"}]

    resources = _container_resources(request)
    if resources:
        container["resources"] = resources

    if request.hf_token_secret:
        container["env"] = [
            {
                "name": "HF_TOKEN",
                "valueFrom": {
                    "secretKeyRef": {"name": request.hf_token_secret, "key": "HF_TOKEN"}
                },
            }
        ]

    if plan.is_vllm:
        container["volumeMounts"] = [{"name": "dshm", "mountPath": "/dev/shm"}]
        probe = {"httpGet": {"path": "/health", "port": VLLM_PORT}}
        container["livenessProbe"] = {**probe, "initialDelaySeconds": 600, "periodSeconds": 10}
        container["readinessProbe"] = {**probe, "initialDelaySeconds": 30, "periodSeconds": 10}
    return container


def build_inference_spec(request: DeploymentRequest) -> dict[str, Any]:
    plan = resolve_container(request)
    pod_spec: dict[str, Any] = {"containers": [build_container(request, plan)]}
    if plan.is_vllm:
        pod_spec["volumes"] = [{"name": "dshm", "emptyDir": {"medium": "Memory"}}]
    return {"template": {"spec": pod_spec}}


def _metadata(request: DeploymentRequest, provider_id: str) -> dict[str, Any]:
    return {
        "name": request.name,
        "namespace": request.namespace,
        "labels": build_labels(request, provider_id),
    }


def build_workspace(request: DeploymentRequest, provider_id: str = "kaito") -> dict[str, Any]:
    """Flat layout: Workspace with top-level resource and inference."""
    crd = KaitoCRDs.WORKSPACE
    return {
        "apiVersion": crd.api_version_string,
        "kind": crd.kind,
        "metadata": _metadata(request, provider_id),
        "resource": build_resource_spec(request),
        "inference": build_inference_spec(request),
    }


def build_inference_set(request: DeploymentRequest, provider_id: str = "kaito") -> dict[str, Any]:
    """Nested layout: InferenceSet with replicas and a per-instance template."""
    crd = KaitoCRDs.INFERENCE_SET
    return {
        "apiVersion": crd.api_version_string,
        "kind": crd.kind,
        "metadata": _metadata(request, provider_id),
        "spec": {
            "replicas": request.replicas,
            "template": {
                "resource": build_resource_spec(request, include_count=False),
                "inference": build_inference_spec(request),
            },
        },
    }


def generate_manifest(request: DeploymentRequest, provider_id: str = "kaito") -> dict[str, Any]:
    logger.debug(
        f"Generating KAITO manifest for '{request.name}' "
        f"(source={request.model_source.value}, variant={request.resource_variant.value})"
    )
    if request.resource_variant == ResourceVariant.NESTED:
        return build_inference_set(request, provider_id)
    return build_workspace(request, provider_id)
