"""Engine facade: the entry points callers use without touching providers directly.

Every operation dispatches through the provider registry by id, so callers
never branch on which runtime a deployment targets.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from kubefoundry.config import get_config
from kubefoundry.domains.capacity import accountant, fit
from kubefoundry.domains.capacity.models import ClusterGpuSnapshot, FitResult
from kubefoundry.domains.deployments.models import (
    CanonicalStatus,
    DeploymentRequest,
    ValidationResult,
)
from kubefoundry.providers import registry
from kubefoundry.utils.errors import UnknownProviderError

if TYPE_CHECKING:
    from kubefoundry.clients.base import K8sClient
    from kubefoundry.providers.base import BaseProvider

logger = logging.getLogger(__name__)

__all__ = [
    "build_snapshot",
    "check_fit",
    "compile",
    "compile_manifest",
    "get_provider",
    "reduce_status",
    "validate",
]


def get_provider(provider_id: str) -> BaseProvider:
    """Look up a registered provider.

    Raises:
        UnknownProviderError: If no provider has the given id.
    """
    return registry.get_provider(provider_id)


def validate(raw: Any) -> ValidationResult:
    """Validate a raw request with the rules of the provider it names.

    Requests without a ``provider`` key go to the configured default provider.
    """
    provider_id = get_config().default_provider
    if isinstance(raw, dict) and raw.get("provider") is not None:
        provider_id = raw["provider"]

    try:
        provider = get_provider(provider_id)
    except UnknownProviderError as e:
        return ValidationResult(valid=False, errors=[f"provider: {e}"])
    return provider.validate_config(raw)


def check_fit(
    request: DeploymentRequest,
    snapshot: ClusterGpuSnapshot,
    model_minimum: int | None = None,
) -> FitResult:
    """Advisory GPU fit check. ``model_minimum`` defaults to one GPU per worker."""
    min_gpus = 1 if model_minimum is None else model_minimum
    return fit.check_fit(request, snapshot, model_min_gpus=min_gpus)


def build_snapshot(k8s: K8sClient) -> ClusterGpuSnapshot:
    """Read nodes and pods and tally GPU capacity. Degrades to an empty snapshot."""
    return accountant.build_snapshot(k8s)


def compile_manifest(provider_id: str, request: DeploymentRequest) -> dict[str, Any]:
    """Compile a validated request into the provider's custom resource document.

    Raises:
        UnknownProviderError: If no provider has the given id.
    """
    provider = get_provider(provider_id)
    manifest = provider.generate_manifest(request)
    logger.info(f"Compiled {manifest.get('kind')} '{request.name}' for provider '{provider_id}'")
    return manifest


compile = compile_manifest


def reduce_status(provider_id: str, raw: dict[str, Any]) -> CanonicalStatus:
    """Reduce a live custom resource to the canonical status.

    Raises:
        UnknownProviderError: If no provider has the given id.
    """
    return get_provider(provider_id).parse_status(raw)
