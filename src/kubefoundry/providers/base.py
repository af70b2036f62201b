"""Provider capability contract shared by every inference runtime adapter."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Container
from typing import TYPE_CHECKING, Any

from pydantic import Field

from kubefoundry.clients.base import CRDConfig
from kubefoundry.domains.deployments.models import (
    CamelModel,
    CanonicalStatus,
    DeploymentRequest,
    ResourceVariant,
    ValidationResult,
)
from kubefoundry.domains.deployments.validation import validate_request
from kubefoundry.utils.errors import ClusterUnavailableError, ResourceNotFoundError

if TYPE_CHECKING:
    from kubefoundry.clients.base import K8sClient

logger = logging.getLogger(__name__)

__all__ = [
    "BaseProvider",
    "CRDConfig",
    "HelmChart",
    "HelmRepo",
    "InstallationStatus",
    "InstallationStep",
    "MetricDefinition",
    "MetricsEndpoint",
    "ProviderInfo",
    "UninstallResources",
]


class InstallationStatus(CamelModel):
    installed: bool
    crd_found: bool | None = None
    operator_running: bool | None = None
    message: str | None = None
    version: str | None = None


class InstallationStep(CamelModel):
    title: str
    command: str | None = None
    description: str


class HelmRepo(CamelModel):
    name: str
    url: str


class HelmChart(CamelModel):
    name: str
    chart: str
    version: str | None = None
    namespace: str
    values: dict[str, Any] | None = None
    create_namespace: bool = False


class UninstallResources(CamelModel):
    """CRD names (e.g. workspaces.kaito.sh) and namespaces to remove."""

    crds: list[str] = Field(default_factory=list)
    namespaces: list[str] = Field(default_factory=list)


class MetricsEndpoint(CamelModel):
    """Where a deployment exposes Prometheus metrics.

    ``service_name_pattern`` uses ``{name}`` for the deployment name.
    """

    endpoint_path: str = "/metrics"
    port: int
    service_name_pattern: str


class MetricDefinition(CamelModel):
    name: str
    display_name: str
    description: str
    unit: str
    type: str = Field(..., description="gauge, counter or histogram")
    category: str


class ProviderInfo(CamelModel):
    id: str
    name: str
    description: str
    default_namespace: str
    version: str


class BaseProvider(ABC):
    """Adapter for one Kubernetes-native inference runtime.

    Subclasses set the descriptive class attributes and implement manifest
    generation, status parsing and installation metadata. Callers never
    branch on provider identity; they look providers up in the registry.
    """

    id: str
    name: str
    description: str
    default_namespace: str
    version: str = "0.1.0"

    request_model: type[DeploymentRequest] = DeploymentRequest

    # Where the operator runs and how to recognize its pods
    operator_namespace: str | None = None
    operator_label_selectors: tuple[str, ...] = ()
    operator_pod_name_hints: tuple[str, ...] = ()

    @abstractmethod
    def crd_config(self, resource_variant: ResourceVariant | None = None) -> CRDConfig:
        """Custom resource type targeted for the given layout."""

    def crd_configs(self) -> list[CRDConfig]:
        """All custom resource types this provider manages."""
        return [self.crd_config()]

    @abstractmethod
    def generate_manifest(self, request: DeploymentRequest) -> dict[str, Any]:
        """Compile a validated request into a custom resource document."""

    @abstractmethod
    def parse_status(self, raw: dict[str, Any]) -> CanonicalStatus:
        """Reduce a live custom resource to the canonical status."""

    def coerce_request(self, request: DeploymentRequest) -> DeploymentRequest:
        """Re-read a generic request as this provider's request model."""
        if isinstance(request, self.request_model):
            return request
        return self.request_model.model_validate(request.model_dump())

    def catalog_keys(self) -> Container[str] | None:
        """Premade model keys, for providers with a curated catalog."""
        return None

    def validate_config(self, raw: Any) -> ValidationResult:
        """Validate a raw request against this provider's request model."""
        if isinstance(raw, dict):
            requested = raw.get("provider")
            if requested is not None and requested != self.id:
                return ValidationResult(
                    valid=False,
                    errors=[f"provider: Expected '{self.id}', got '{requested}'"],
                )
            raw = {**raw, "provider": self.id}
        return validate_request(raw, self.request_model, self.catalog_keys())

    def check_installation(self, k8s: K8sClient) -> InstallationStatus:
        """Check whether the runtime's CRD and operator are present.

        A missing resource type means "not installed". A 403 propagates as
        PermissionDeniedError. Transient failures degrade to installed=False.
        """
        crd = self.crd_config()
        logger.debug(f"Checking {self.name} installation status")

        try:
            k8s.list_custom_objects(crd, self.default_namespace)
            crd_found = True
        except ResourceNotFoundError:
            crd_found = False
        except ClusterUnavailableError as e:
            logger.error(f"Error checking {self.name} installation: {e}")
            return InstallationStatus(
                installed=False,
                message=f"Error checking installation: {e}",
            )

        operator_running = self._operator_running(k8s)
        installed = crd_found and operator_running
        logger.info(
            f"{self.name} installation check: installed={installed}, "
            f"crd_found={crd_found}, operator_running={operator_running}"
        )

        if installed:
            message = f"{self.name} is installed and running"
        elif not crd_found:
            message = f"{self.name} CRD not found. Please install the {self.name} operator."
        else:
            message = f"{self.name} operator is not running"

        return InstallationStatus(
            installed=installed,
            crd_found=crd_found,
            operator_running=operator_running,
            message=message,
        )

    def _operator_running(self, k8s: K8sClient) -> bool:
        namespace = self.operator_namespace or self.default_namespace
        try:
            for selector in self.operator_label_selectors:
                pods = k8s.list_namespaced_pods(namespace, label_selector=selector)
                if any(_pod_phase(p) == "Running" for p in pods):
                    return True
            if self.operator_pod_name_hints:
                pods = k8s.list_namespaced_pods(namespace)
                return any(
                    _pod_phase(p) == "Running"
                    and any(hint in _pod_name(p) for hint in self.operator_pod_name_hints)
                    for p in pods
                )
        except (ResourceNotFoundError, ClusterUnavailableError) as e:
            logger.debug(f"Could not list {self.name} operator pods: {e}")
        return False

    @abstractmethod
    def installation_steps(self) -> list[InstallationStep]:
        """Human-readable installation steps."""

    @abstractmethod
    def helm_repos(self) -> list[HelmRepo]:
        """Helm repositories the installation needs."""

    @abstractmethod
    def helm_charts(self) -> list[HelmChart]:
        """Helm charts the installation needs."""

    @abstractmethod
    def uninstall_resources(self) -> UninstallResources:
        """CRDs and namespaces to remove on uninstall."""

    def metrics_endpoint(self) -> MetricsEndpoint | None:
        return None

    def key_metrics(self) -> list[MetricDefinition]:
        return []

    def refresh_version(self) -> str | None:
        """Refresh externally sourced version information, if any."""
        return None

    def info(self) -> ProviderInfo:
        return ProviderInfo(
            id=self.id,
            name=self.name,
            description=self.description,
            default_namespace=self.default_namespace,
            version=self.version,
        )


def _pod_phase(pod: Any) -> str | None:
    return pod.status.phase if pod.status else None


def _pod_name(pod: Any) -> str:
    return (pod.metadata.name if pod.metadata else None) or ""


def managed_labels(name: str, provider_id: str) -> dict[str, str]:
    """Labels every KubeFoundry-managed custom resource carries."""
    return {
        "app.kubernetes.io/name": "kubefoundry",
        "app.kubernetes.io/instance": name,
        "app.kubernetes.io/managed-by": "kubefoundry",
        "kubefoundry.io/provider": provider_id,
    }
