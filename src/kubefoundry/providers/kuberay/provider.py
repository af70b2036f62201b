"""KubeRay provider: Ray Serve LLM applications on a RayService."""

from __future__ import annotations

import logging
from typing import Any, cast

import yaml

from kubefoundry.domains.deployments.models import (
    CanonicalStatus,
    DeploymentMode,
    DeploymentPhase,
    DeploymentRequest,
    Engine,
    KubeRayDeploymentRequest,
    ReplicaStatus,
    ResourceVariant,
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
from kubefoundry.providers.kuberay.crds import KubeRayCRDs

logger = logging.getLogger(__name__)

KUBERAY_HELM_REPO_URL = "https://ray-project.github.io/kuberay-helm/"
KUBERAY_OPERATOR_VERSION = "1.5.1"
DEFAULT_CONTEXT_LENGTH = 16384
SERVE_PORT = 8000

AGGREGATED_APP = "llm_app"
AGGREGATED_IMPORT_PATH = "ray.serve.llm:build_openai_app"
DISAGGREGATED_APP = "pd-disaggregation"
DISAGGREGATED_IMPORT_PATH = "ray.serve.llm:build_pd_openai_app"

GPU_TOLERATION = {"key": "nvidia.com/gpu", "operator": "Exists", "effect": "NoSchedule"}


def _engine_kwargs(request: KubeRayDeploymentRequest, include_pipeline: bool = True) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"tensor_parallel_size": request.tensor_parallel_size}
    if include_pipeline:
        kwargs["pipeline_parallel_size"] = request.pipeline_parallel_size
    kwargs.update(
        gpu_memory_utilization=request.gpu_memory_utilization,
        dtype="auto",
        max_num_seqs=request.max_num_seqs,
        max_model_len=request.context_length or request.max_model_len or DEFAULT_CONTEXT_LENGTH,
        enable_chunked_prefill=request.enable_chunked_prefill,
        enable_prefix_caching=request.enable_prefix_caching,
        enforce_eager=request.enforce_eager,
    )
    if request.trust_remote_code:
        kwargs["trust_remote_code"] = True
    return kwargs


def _model_loading_config(request: KubeRayDeploymentRequest, with_accelerator: bool = False) -> dict[str, Any]:
    config: dict[str, Any] = {
        "model_id": request.served_model_name or request.name,
        "model_source": request.model_id,
    }
    if with_accelerator and request.accelerator_type:
        config["accelerator_type"] = request.accelerator_type
    return config


def _autoscaling(request: KubeRayDeploymentRequest) -> dict[str, Any]:
    return {
        "autoscaling_config": {
            "min_replicas": request.min_replicas,
            "max_replicas": request.max_replicas,
        }
    }


def _disaggregated_role(request: KubeRayDeploymentRequest, node_resource: str, kv_role: str) -> dict[str, Any]:
    deployment_config = _autoscaling(request)
    deployment_config["ray_actor_options"] = {"resources": {node_resource: 1}}
    return {
        "model_loading_config": _model_loading_config(request),
        "deployment_config": deployment_config,
        "engine_kwargs": _engine_kwargs(request, include_pipeline=False),
        "kv_transfer_config": {
            "kv_connector": request.kv_connector.value,
            "kv_role": kv_role,
        },
    }


def build_serve_config(request: KubeRayDeploymentRequest) -> dict[str, Any]:
    """Ray Serve application config embedded as serveConfigV2."""
    if request.mode == DeploymentMode.DISAGGREGATED:
        app = {
            "name": DISAGGREGATED_APP,
            "import_path": DISAGGREGATED_IMPORT_PATH,
            "route_prefix": "/",
            "args": {
                "prefill_config": _disaggregated_role(request, "prefill_node", "kv_producer"),
                "decode_config": _disaggregated_role(request, "decode_node", "kv_consumer"),
            },
        }
    else:
        app = {
            "name": AGGREGATED_APP,
            "import_path": AGGREGATED_IMPORT_PATH,
            "route_prefix": "/",
            "runtime_env": {"env_vars": {"VLLM_USE_V1": "1"}},
            "args": {
                "llm_configs": [
                    {
                        "model_loading_config": _model_loading_config(request, with_accelerator=True),
                        "deployment_config": _autoscaling(request),
                        "engine_kwargs": _engine_kwargs(request),
                    }
                ]
            },
        }
    return {"applications": [app]}


def build_head_group(request: KubeRayDeploymentRequest) -> dict[str, Any]:
    shape = {"cpu": request.head_cpu, "memory": request.head_memory}
    return {
        "rayStartParams": {"num-gpus": "0"},
        "template": {
            "spec": {
                "containers": [
                    {
                        "name": "ray-head",
                        "image": request.ray_image,
                        "resources": {"limits": dict(shape), "requests": dict(shape)},
                        "ports": [
                            {"containerPort": 6379, "name": "gcs-server"},
                            {"containerPort": 8265, "name": "dashboard"},
                            {"containerPort": 10001, "name": "client"},
                            {"containerPort": SERVE_PORT, "name": "serve"},
                        ],
                    }
                ]
            }
        },
    }


def build_worker_group(
    request: KubeRayDeploymentRequest,
    group_name: str,
    replicas: int | None = None,
    gpus: int | None = None,
    node_resource: str | None = None,
) -> dict[str, Any]:
    gpu_count = str(gpus or request.gpus_per_replica)
    shape = {
        "cpu": request.worker_cpu,
        "memory": request.worker_memory,
        "nvidia.com/gpu": gpu_count,
    }
    container: dict[str, Any] = {
        "name": "ray-worker",
        "image": request.ray_image,
        "resources": {"limits": dict(shape), "requests": dict(shape)},
    }
    if request.hf_token_secret:
        container["env"] = [
            {
                "name": "HF_TOKEN",
                "valueFrom": {"secretKeyRef": {"name": request.hf_token_secret, "key": "HF_TOKEN"}},
            }
        ]

    ray_start_params: dict[str, str] = {}
    if node_resource:
        # Custom Ray resource pinning prefill or decode actors to this group
        ray_start_params["resources"] = f'"{{\\"{node_resource}\\": 1}}"'

    return {
        "groupName": group_name,
        "replicas": replicas or request.replicas,
        "minReplicas": request.min_replicas,
        "maxReplicas": request.max_replicas,
        "rayStartParams": ray_start_params,
        "template": {
            "spec": {
                "containers": [container],
                "tolerations": [dict(GPU_TOLERATION)],
            }
        },
    }


def build_ray_service(request: KubeRayDeploymentRequest, provider_id: str = "kuberay") -> dict[str, Any]:
    """Compile a request into a RayService document."""
    if request.mode == DeploymentMode.DISAGGREGATED:
        worker_groups = [
            build_worker_group(
                request,
                "prefill-group",
                replicas=request.prefill_replicas,
                gpus=request.prefill_gpus,
                node_resource="prefill_node",
            ),
            build_worker_group(
                request,
                "decode-group",
                replicas=request.decode_replicas,
                gpus=request.decode_gpus,
                node_resource="decode_node",
            ),
        ]
    else:
        worker_groups = [build_worker_group(request, "gpu-group")]

    crd = KubeRayCRDs.RAY_SERVICE
    return {
        "apiVersion": crd.api_version_string,
        "kind": crd.kind,
        "metadata": {
            "name": request.name,
            "namespace": request.namespace,
            "labels": managed_labels(request.name, provider_id),
        },
        "spec": {
            "serveConfigV2": yaml.safe_dump(build_serve_config(request), sort_keys=False),
            "rayClusterConfig": {
                "headGroupSpec": build_head_group(request),
                "workerGroupSpecs": worker_groups,
            },
        },
    }


def _load_serve_config(serve_config: Any) -> dict[str, Any]:
    if not isinstance(serve_config, str):
        return {}
    try:
        loaded = yaml.safe_load(serve_config)
    except yaml.YAMLError as e:
        logger.warning(f"Could not parse serveConfigV2: {e}")
        return {}
    return loaded if isinstance(loaded, dict) else {}


def _serve_model(app: dict[str, Any]) -> tuple[str, str | None]:
    args = app.get("args") or {}
    llm_config: dict[str, Any] = {}
    if args.get("llm_configs"):
        llm_config = args["llm_configs"][0] or {}
    elif args.get("prefill_config"):
        llm_config = args["prefill_config"] or {}
    loading = llm_config.get("model_loading_config") or {}
    return str(loading.get("model_source") or ""), loading.get("model_id")


def _map_service_status(service_status: str) -> DeploymentPhase:
    value = service_status.lower()
    if value in ("running", "ready"):
        return DeploymentPhase.RUNNING
    if value in ("failed", "unhealthy"):
        return DeploymentPhase.FAILED
    if "deploy" in value or "pending" in value:
        return DeploymentPhase.DEPLOYING
    return DeploymentPhase.PENDING


def parse_ray_service_status(raw: dict[str, Any], provider_id: str = "kuberay") -> CanonicalStatus:
    metadata = raw.get("metadata") or {}
    spec = raw.get("spec") or {}
    status = raw.get("status") or {}
    name = metadata.get("name") or "unknown"

    mode = DeploymentMode.AGGREGATED
    model_id, served = "", None
    applications = _load_serve_config(spec.get("serveConfigV2")).get("applications") or []
    if applications and isinstance(applications[0], dict):
        app = applications[0]
        if app.get("import_path") == DISAGGREGATED_IMPORT_PATH or app.get("name") == DISAGGREGATED_APP:
            mode = DeploymentMode.DISAGGREGATED
        model_id, served = _serve_model(app)

    worker_groups = (spec.get("rayClusterConfig") or {}).get("workerGroupSpecs") or []
    spec_replicas = sum(g.get("replicas") or 0 for g in worker_groups if isinstance(g, dict))
    cluster_status = (status.get("activeServiceStatus") or {}).get("rayClusterStatus") or {}
    available = cluster_status.get("availableWorkerReplicas") or 0

    return CanonicalStatus(
        name=name,
        namespace=metadata.get("namespace") or "default",
        provider=provider_id,
        model_id=model_id,
        served_model_name=served,
        engine=Engine.VLLM,
        mode=mode,
        phase=_map_service_status(status.get("serviceStatus") or ""),
        replicas=ReplicaStatus(
            desired=cluster_status.get("desiredWorkerReplicas") or spec_replicas or 1,
            ready=available,
            available=available,
        ),
        conditions=parse_conditions(status.get("conditions")),
        frontend_service_ref=f"{name}-serve-svc",
        created_at=metadata.get("creationTimestamp"),
    )


class KubeRayProvider(BaseProvider):
    """Ray Serve on Kubernetes via the KubeRay operator."""

    id = "kuberay"
    name = "KubeRay"
    description = (
        "KubeRay enables Ray Serve on Kubernetes for scalable LLM inference with vLLM backend, "
        "supporting both aggregated and disaggregated (P/D) serving modes."
    )
    default_namespace = "kuberay-system"

    request_model = KubeRayDeploymentRequest
    # The operator chart installs into the default namespace
    operator_namespace = "default"
    operator_label_selectors = (
        "app.kubernetes.io/name=kuberay-operator",
        "app=kuberay-operator",
    )

    def crd_config(self, resource_variant: ResourceVariant | None = None) -> CRDConfig:
        return KubeRayCRDs.RAY_SERVICE

    def generate_manifest(self, request: DeploymentRequest) -> dict[str, Any]:
        ray_request = cast(KubeRayDeploymentRequest, self.coerce_request(request))
        return build_ray_service(ray_request, self.id)

    def parse_status(self, raw: dict[str, Any]) -> CanonicalStatus:
        return parse_ray_service_status(raw, self.id)

    def installation_steps(self) -> list[InstallationStep]:
        return [
            InstallationStep(
                title="Add KubeRay Helm Repository",
                command=f"helm repo add kuberay {KUBERAY_HELM_REPO_URL}",
                description="Add the KubeRay Helm repository to access Ray operator charts.",
            ),
            InstallationStep(
                title="Update Helm Repositories",
                command="helm repo update",
                description="Update local Helm repository cache.",
            ),
            InstallationStep(
                title="Install KubeRay Operator",
                command=(
                    "helm install kuberay-operator kuberay/kuberay-operator "
                    f"--version {KUBERAY_OPERATOR_VERSION}"
                ),
                description="Install the KubeRay operator which manages RayService and RayCluster resources.",
            ),
        ]

    def helm_repos(self) -> list[HelmRepo]:
        return [HelmRepo(name="kuberay", url=KUBERAY_HELM_REPO_URL)]

    def helm_charts(self) -> list[HelmChart]:
        return [
            HelmChart(
                name="kuberay-operator",
                chart="kuberay/kuberay-operator",
                version=KUBERAY_OPERATOR_VERSION,
                namespace="default",
            )
        ]

    def uninstall_resources(self) -> UninstallResources:
        return UninstallResources(
            crds=[
                KubeRayCRDs.RAY_SERVICE.crd_name,
                KubeRayCRDs.RAY_CLUSTER_CRD_NAME,
                KubeRayCRDs.RAY_JOB_CRD_NAME,
            ],
        )

    def metrics_endpoint(self) -> MetricsEndpoint:
        return MetricsEndpoint(
            endpoint_path="/metrics",
            port=8080,
            service_name_pattern="{name}-head-svc",
        )

    def key_metrics(self) -> list[MetricDefinition]:
        return [
            MetricDefinition(
                name="ray_serve_num_ongoing_http_requests",
                display_name="Ongoing Requests",
                description="Requests currently being handled by Ray Serve",
                unit="requests",
                type="gauge",
                category="queue",
            ),
            MetricDefinition(
                name="ray_serve_num_http_requests_total",
                display_name="HTTP Requests",
                description="Total HTTP requests served",
                unit="requests/s",
                type="counter",
                category="throughput",
            ),
            MetricDefinition(
                name="ray_vllm_gpu_cache_usage_perc",
                display_name="KV Cache Usage",
                description="vLLM GPU KV cache usage",
                unit="%",
                type="gauge",
                category="cache",
            ),
        ]
