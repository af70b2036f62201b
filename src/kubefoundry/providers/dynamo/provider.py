"""NVIDIA Dynamo provider (DynamoGraphDeployment)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, cast

from kubefoundry.domains.deployments.models import (
    CanonicalStatus,
    DeploymentMode,
    DeploymentPhase,
    DeploymentRequest,
    DynamoDeploymentRequest,
    Engine,
    ReplicaStatus,
    ResourceVariant,
    RouterMode,
    parse_conditions,
)
from kubefoundry.providers.base import (
    BaseProvider,
    CRDConfig,
    HelmChart,
    HelmRepo,
    InstallationStep,
    MetricDefinition,
    MetricsEndpoint,
    UninstallResources,
    managed_labels,
)
from kubefoundry.providers.dynamo.crds import DynamoCRDs

logger = logging.getLogger(__name__)

FRONTEND_PORT = 8000
RUNTIME_VERSION = "0.7.1"


@dataclass(frozen=True)
class EngineProfile:
    """How one backend engine is launched inside a Dynamo worker."""

    worker_key: str
    prefill_key: str
    decode_key: str
    module: str
    image: str
    model_flag: str
    context_flag: str
    prefill_flags: tuple[str, ...]
    decode_flags: tuple[str, ...]


ENGINE_PROFILES = {
    Engine.VLLM: EngineProfile(
        worker_key="VllmWorker",
        prefill_key="VllmPrefillWorker",
        decode_key="VllmDecodeWorker",
        module="dynamo.vllm",
        image=f"nvcr.io/nvidia/ai-dynamo/vllm-runtime:{RUNTIME_VERSION}",
        model_flag="--model",
        context_flag="--max-model-len",
        prefill_flags=("--is-prefill-worker",),
        decode_flags=(),
    ),
    Engine.SGLANG: EngineProfile(
        worker_key="SglangWorker",
        prefill_key="SglangPrefillWorker",
        decode_key="SglangDecodeWorker",
        module="dynamo.sglang",
        image=f"nvcr.io/nvidia/ai-dynamo/sglang-runtime:{RUNTIME_VERSION}",
        model_flag="--model-path",
        context_flag="--context-length",
        prefill_flags=("--disaggregation-mode", "prefill"),
        decode_flags=("--disaggregation-mode", "decode"),
    ),
    Engine.TRTLLM: EngineProfile(
        worker_key="TrtllmWorker",
        prefill_key="TrtllmPrefillWorker",
        decode_key="TrtllmDecodeWorker",
        module="dynamo.trtllm",
        image=f"nvcr.io/nvidia/ai-dynamo/tensorrtllm-runtime:{RUNTIME_VERSION}",
        model_flag="--model-path",
        context_flag="--max-seq-len",
        prefill_flags=("--disaggregation-mode", "prefill"),
        decode_flags=("--disaggregation-mode", "decode"),
    ),
}

PHASE_TABLE = {
    "successful": DeploymentPhase.RUNNING,
    "ready": DeploymentPhase.RUNNING,
    "running": DeploymentPhase.RUNNING,
    "failed": DeploymentPhase.FAILED,
    "error": DeploymentPhase.FAILED,
    "deploying": DeploymentPhase.DEPLOYING,
    "progressing": DeploymentPhase.DEPLOYING,
    "terminating": DeploymentPhase.TERMINATING,
    "deleting": DeploymentPhase.TERMINATING,
}


def _engine_arg_flags(engine_args: dict[str, Any]) -> list[str]:
    flags: list[str] = []
    for key, value in engine_args.items():
        flag = key if key.startswith("--") else f"--{key}"
        if value is True:
            flags.append(flag)
        elif value is False or value is None:
            continue
        else:
            flags += [flag, str(value)]
    return flags


def _worker_args(request: DynamoDeploymentRequest, profile: EngineProfile) -> list[str]:
    args = [
        profile.model_flag,
        request.model_id or "",
        "--served-model-name",
        request.served_model_name or request.model_id or request.name,
    ]
    context_length = request.context_length or request.max_model_len
    if context_length:
        args += [profile.context_flag, str(context_length)]
    if request.engine == Engine.VLLM:
        if request.enforce_eager:
            args.append("--enforce-eager")
        if request.enable_prefix_caching:
            args.append("--enable-prefix-caching")
    if request.trust_remote_code:
        args.append("--trust-remote-code")
    return args + _engine_arg_flags(request.engine_args)


def _worker_service(
    request: DynamoDeploymentRequest,
    profile: EngineProfile,
    replicas: int,
    gpus: int,
    extra_flags: tuple[str, ...] = (),
    sub_component: str | None = None,
) -> dict[str, Any]:
    limits: dict[str, str] = {"gpu": str(gpus)}
    if request.resources and request.resources.memory:
        limits["memory"] = request.resources.memory

    service: dict[str, Any] = {
        "componentType": "worker",
        "dynamoNamespace": request.name,
        "replicas": replicas,
        "resources": {"requests": {"gpu": str(gpus)}, "limits": limits},
        "extraPodSpec": {
            "mainContainer": {
                "image": request.image or profile.image,
                "workingDir": "/workspace",
                "command": ["python3", "-m", profile.module],
                "args": _worker_args(request, profile) + list(extra_flags),
            }
        },
    }
    if sub_component:
        service["subComponentType"] = sub_component
    if request.hf_token_secret:
        service["envFromSecret"] = request.hf_token_secret
    return service


def _frontend_service(request: DynamoDeploymentRequest, profile: EngineProfile) -> dict[str, Any]:
    args = ["--http-port", str(FRONTEND_PORT)]
    if request.router_mode != RouterMode.NONE:
        args += ["--router-mode", request.router_mode.value]
    service: dict[str, Any] = {
        "componentType": "frontend",
        "dynamoNamespace": request.name,
        "replicas": 1,
        "extraPodSpec": {
            "mainContainer": {
                "image": request.image or profile.image,
                "command": ["python3", "-m", "dynamo.frontend"],
                "args": args,
            }
        },
    }
    if request.hf_token_secret:
        service["envFromSecret"] = request.hf_token_secret
    return service


def build_graph_deployment(request: DynamoDeploymentRequest, provider_id: str = "dynamo") -> dict[str, Any]:
    """Compile a request into a DynamoGraphDeployment document."""
    profile = ENGINE_PROFILES[request.engine]
    services: dict[str, Any] = {"Frontend": _frontend_service(request, profile)}

    if request.mode == DeploymentMode.DISAGGREGATED:
        gpus = request.gpus_per_replica
        services[profile.prefill_key] = _worker_service(
            request,
            profile,
            replicas=request.prefill_replicas or 1,
            gpus=request.prefill_gpus or gpus,
            extra_flags=profile.prefill_flags,
            sub_component="prefill",
        )
        services[profile.decode_key] = _worker_service(
            request,
            profile,
            replicas=request.decode_replicas or 1,
            gpus=request.decode_gpus or gpus,
            extra_flags=profile.decode_flags,
            sub_component="decode",
        )
    else:
        services[profile.worker_key] = _worker_service(
            request, profile, replicas=request.replicas, gpus=request.gpus_per_replica
        )

    crd = DynamoCRDs.GRAPH_DEPLOYMENT
    return {
        "apiVersion": crd.api_version_string,
        "kind": crd.kind,
        "metadata": {
            "name": request.name,
            "namespace": request.namespace,
            "labels": managed_labels(request.name, provider_id),
        },
        "spec": {
            "backendFramework": request.engine.value,
            "services": services,
        },
    }


def _find_workers(services: dict[str, Any]) -> tuple[Engine, DeploymentMode, list[dict[str, Any]]]:
    for engine, profile in ENGINE_PROFILES.items():
        split = [services.get(profile.prefill_key), services.get(profile.decode_key)]
        if any(isinstance(s, dict) for s in split):
            return engine, DeploymentMode.DISAGGREGATED, [s for s in split if isinstance(s, dict)]
        worker = services.get(profile.worker_key)
        if isinstance(worker, dict):
            return engine, DeploymentMode.AGGREGATED, [worker]
    return Engine.VLLM, DeploymentMode.AGGREGATED, []


def _flag_value(args: list[str], flag: str) -> str | None:
    for i, arg in enumerate(args):
        if arg == flag and i + 1 < len(args):
            return args[i + 1]
        if arg.startswith(f"{flag}="):
            return arg.split("=", 1)[1]
    return None


def _worker_args_of(worker: dict[str, Any]) -> list[str]:
    container = (worker.get("extraPodSpec") or {}).get("mainContainer") or {}
    return [str(a) for a in container.get("args") or []]


def _worker_model(worker: dict[str, Any]) -> str:
    args = _worker_args_of(worker)
    model = _flag_value(args, "--model") or _flag_value(args, "--model-path")
    return model or worker.get("model-path") or ""


def parse_graph_deployment_status(raw: dict[str, Any], provider_id: str = "dynamo") -> CanonicalStatus:
    metadata = raw.get("metadata") or {}
    spec = raw.get("spec") or {}
    status = raw.get("status") or {}
    name = metadata.get("name") or "unknown"

    # Older documents put services directly under spec
    services = spec.get("services") if isinstance(spec.get("services"), dict) else spec
    engine, mode, workers = _find_workers(services)

    raw_phase = status.get("state") or status.get("phase")
    phase = DeploymentPhase.PENDING
    if isinstance(raw_phase, str):
        phase = PHASE_TABLE.get(raw_phase.lower(), DeploymentPhase.PENDING)

    spec_replicas = sum(w.get("replicas") or 1 for w in workers) or 1
    replica_status = status.get("replicas") if isinstance(status.get("replicas"), dict) else {}

    model_id = ""
    served = None
    if workers:
        model_id = _worker_model(workers[0])
        served = _flag_value(_worker_args_of(workers[0]), "--served-model-name")

    return CanonicalStatus(
        name=name,
        namespace=metadata.get("namespace") or "default",
        provider=provider_id,
        model_id=model_id,
        served_model_name=served,
        engine=engine,
        mode=mode,
        phase=phase,
        replicas=ReplicaStatus(
            desired=replica_status.get("desired") or spec_replicas,
            ready=replica_status.get("ready") or 0,
            available=replica_status.get("available") or 0,
        ),
        conditions=parse_conditions(status.get("conditions")),
        frontend_service_ref=f"{name}-frontend",
        created_at=metadata.get("creationTimestamp"),
    )


class DynamoProvider(BaseProvider):
    """NVIDIA Dynamo inference platform."""

    id = "dynamo"
    name = "NVIDIA Dynamo"
    description = (
        "NVIDIA Dynamo is a high-performance inference serving platform for LLMs "
        "with support for KV cache routing and disaggregated serving."
    )
    default_namespace = "dynamo-system"

    request_model = DynamoDeploymentRequest
    operator_label_selectors = ("app.kubernetes.io/name=dynamo-operator",)

    def crd_config(self, resource_variant: ResourceVariant | None = None) -> CRDConfig:
        return DynamoCRDs.GRAPH_DEPLOYMENT

    def generate_manifest(self, request: DeploymentRequest) -> dict[str, Any]:
        dynamo_request = cast(DynamoDeploymentRequest, self.coerce_request(request))
        logger.debug(
            f"Generating DynamoGraphDeployment for '{request.name}' "
            f"(engine={dynamo_request.engine.value}, mode={dynamo_request.mode.value})"
        )
        return build_graph_deployment(dynamo_request, self.id)

    def parse_status(self, raw: dict[str, Any]) -> CanonicalStatus:
        return parse_graph_deployment_status(raw, self.id)

    def installation_steps(self) -> list[InstallationStep]:
        return [
            InstallationStep(
                title="Add NVIDIA Helm Repository",
                command="helm repo add nvidia https://helm.ngc.nvidia.com/nvidia",
                description="Add the NVIDIA NGC Helm repository to access Dynamo charts.",
            ),
            InstallationStep(
                title="Update Helm Repositories",
                command="helm repo update",
                description="Update local Helm repository cache.",
            ),
            InstallationStep(
                title="Create Namespace",
                command=f"kubectl create namespace {self.default_namespace}",
                description="Create the namespace for Dynamo components.",
            ),
            InstallationStep(
                title="Install Dynamo Operator",
                command=(
                    "helm install dynamo-operator nvidia/dynamo-operator "
                    f"-n {self.default_namespace}"
                ),
                description="Install the Dynamo operator which manages inference deployments.",
            ),
        ]

    def helm_repos(self) -> list[HelmRepo]:
        return [HelmRepo(name="nvidia", url="https://helm.ngc.nvidia.com/nvidia")]

    def helm_charts(self) -> list[HelmChart]:
        return [
            HelmChart(
                name="dynamo-operator",
                chart="nvidia/dynamo-operator",
                namespace=self.default_namespace,
                create_namespace=True,
            )
        ]

    def uninstall_resources(self) -> UninstallResources:
        return UninstallResources(
            crds=[
                DynamoCRDs.GRAPH_DEPLOYMENT.crd_name,
                DynamoCRDs.COMPONENT_DEPLOYMENT_CRD_NAME,
            ],
            namespaces=[self.default_namespace],
        )

    def metrics_endpoint(self) -> MetricsEndpoint:
        return MetricsEndpoint(
            endpoint_path="/metrics",
            port=FRONTEND_PORT,
            service_name_pattern="{name}-frontend",
        )

    def key_metrics(self) -> list[MetricDefinition]:
        return [
            MetricDefinition(
                name="dynamo_frontend_inflight_requests",
                display_name="In-flight Requests",
                description="Requests currently being served by the frontend",
                unit="requests",
                type="gauge",
                category="queue",
            ),
            MetricDefinition(
                name="dynamo_frontend_requests_total",
                display_name="Requests",
                description="Total requests handled by the frontend",
                unit="requests/s",
                type="counter",
                category="throughput",
            ),
            MetricDefinition(
                name="dynamo_frontend_time_to_first_token_seconds",
                display_name="Time to First Token",
                description="Latency until the first generated token",
                unit="s",
                type="histogram",
                category="latency",
            ),
            MetricDefinition(
                name="dynamo_frontend_inter_token_latency_seconds",
                display_name="Inter-token Latency",
                description="Latency between generated tokens",
                unit="s",
                type="histogram",
                category="latency",
            ),
        ]
