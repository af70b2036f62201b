"""KAITO provider: GGUF models through AIKit on CPU or GPU, or vLLM on GPU."""

from __future__ import annotations

from collections.abc import Container
from typing import Any

from kubefoundry.config import get_config
from kubefoundry.domains.deployments.models import (
    CanonicalStatus,
    DeploymentRequest,
    KaitoDeploymentRequest,
    ResourceVariant,
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
)
from kubefoundry.providers.kaito import manifest, status
from kubefoundry.providers.kaito.catalog import PREMADE_MODELS
from kubefoundry.providers.kaito.crds import OPERATOR_NAMESPACE, KaitoCRDs
from kubefoundry.providers.version_cache import VersionCache

DEFAULT_KAITO_VERSION = "0.8.0"
KAITO_GITHUB_RELEASES_URL = "https://api.github.com/repos/kaito-project/kaito/releases/latest"
KAITO_HELM_REPO_URL = "https://kaito-project.github.io/kaito/charts/kaito"

_version_cache: VersionCache | None = None


def get_version_cache() -> VersionCache:
    """Process-wide KAITO version cache, created from config on first use."""
    global _version_cache
    if _version_cache is None:
        config = get_config()
        _version_cache = VersionCache(
            releases_url=KAITO_GITHUB_RELEASES_URL,
            default_version=DEFAULT_KAITO_VERSION,
            ttl_seconds=config.version_cache_ttl_seconds,
            override=config.kaito_version,
            timeout=config.github_timeout,
        )
    return _version_cache


def reset_version_cache() -> None:
    global _version_cache
    _version_cache = None


class KaitoProvider(BaseProvider):
    """KAITO (Kubernetes AI Toolchain Operator).

    Its distinguishing feature is CPU inference with GGUF quantized models
    built by AIKit, so models can run without GPU nodes.
    """

    id = "kaito"
    name = "KAITO"
    description = (
        "KAITO (Kubernetes AI Toolchain Operator) enables CPU and GPU inference "
        "using GGUF quantized models. Deploy models without GPU nodes using AIKit."
    )
    default_namespace = "kaito-workspace"

    request_model = KaitoDeploymentRequest
    operator_namespace = OPERATOR_NAMESPACE
    operator_label_selectors = ("app.kubernetes.io/name=kaito-workspace",)
    operator_pod_name_hints = ("kaito", "workspace")

    def crd_config(self, resource_variant: ResourceVariant | None = None) -> CRDConfig:
        if resource_variant == ResourceVariant.NESTED:
            return KaitoCRDs.INFERENCE_SET
        return KaitoCRDs.WORKSPACE

    def crd_configs(self) -> list[CRDConfig]:
        return [KaitoCRDs.WORKSPACE, KaitoCRDs.INFERENCE_SET]

    def catalog_keys(self) -> Container[str]:
        return PREMADE_MODELS

    def generate_manifest(self, request: DeploymentRequest) -> dict[str, Any]:
        return manifest.generate_manifest(request, self.id)

    def parse_status(self, raw: dict[str, Any]) -> CanonicalStatus:
        return status.parse_status(raw, self.id)

    def refresh_version(self) -> str:
        """Fetch the latest KAITO release if the cached one is stale."""
        return get_version_cache().refresh()

    def installation_steps(self) -> list[InstallationStep]:
        version = get_version_cache().current()
        return [
            InstallationStep(
                title="Add KAITO Helm Repository",
                command=f"helm repo add kaito {KAITO_HELM_REPO_URL}",
                description="Add the KAITO Helm repository.",
            ),
            InstallationStep(
                title="Update Helm Repositories",
                command="helm repo update",
                description="Update local Helm repository cache.",
            ),
            InstallationStep(
                title="Install KAITO Workspace Operator",
                command=(
                    f"helm upgrade --install kaito-workspace kaito/workspace --version {version} "
                    f"-n {OPERATOR_NAMESPACE} --create-namespace --wait"
                ),
                description=f"Install the KAITO workspace operator v{version} which manages AI workloads.",
            ),
        ]

    def helm_repos(self) -> list[HelmRepo]:
        return [HelmRepo(name="kaito", url=KAITO_HELM_REPO_URL)]

    def helm_charts(self) -> list[HelmChart]:
        return [
            HelmChart(
                name="kaito-workspace",
                chart="kaito/workspace",
                version=get_version_cache().current(),
                namespace=OPERATOR_NAMESPACE,
                create_namespace=True,
            )
        ]

    def uninstall_resources(self) -> UninstallResources:
        return UninstallResources(
            crds=[
                KaitoCRDs.WORKSPACE.crd_name,
                KaitoCRDs.INFERENCE_SET.crd_name,
                KaitoCRDs.RAG_ENGINE_CRD_NAME,
            ],
            namespaces=[OPERATOR_NAMESPACE],
        )

    def metrics_endpoint(self) -> MetricsEndpoint:
        # llama.cpp serves metrics on the inference port
        return MetricsEndpoint(endpoint_path="/metrics", port=5000, service_name_pattern="{name}")

    def key_metrics(self) -> list[MetricDefinition]:
        return [
            MetricDefinition(
                name="llamacpp_requests_processing",
                display_name="Processing Requests",
                description="Number of requests currently being processed",
                unit="requests",
                type="gauge",
                category="queue",
            ),
            MetricDefinition(
                name="llamacpp_requests_pending",
                display_name="Pending Requests",
                description="Number of requests waiting in queue",
                unit="requests",
                type="gauge",
                category="queue",
            ),
            MetricDefinition(
                name="llamacpp_kv_cache_usage_ratio",
                display_name="KV Cache Usage",
                description="KV cache usage ratio",
                unit="%",
                type="gauge",
                category="cache",
            ),
            MetricDefinition(
                name="llamacpp_tokens_predicted_total",
                display_name="Tokens Generated",
                description="Total tokens generated",
                unit="tokens/s",
                type="counter",
                category="throughput",
            ),
            MetricDefinition(
                name="llamacpp_prompt_tokens_processed_total",
                display_name="Prompt Tokens",
                description="Total prompt tokens processed",
                unit="tokens/s",
                type="counter",
                category="throughput",
            ),
        ]
