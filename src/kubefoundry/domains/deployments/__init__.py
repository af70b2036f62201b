"""Deployment request schema, validation and canonical status."""

from kubefoundry.domains.deployments.models import (
    CanonicalStatus,
    ComputeType,
    DeploymentMode,
    DeploymentPhase,
    DeploymentRequest,
    DynamoDeploymentRequest,
    Engine,
    KaitoDeploymentRequest,
    KubeRayDeploymentRequest,
    ModelSource,
    ResourceVariant,
    ValidationResult,
)
from kubefoundry.domains.deployments.validation import validate_request

__all__ = [
    "CanonicalStatus",
    "ComputeType",
    "DeploymentMode",
    "DeploymentPhase",
    "DeploymentRequest",
    "DynamoDeploymentRequest",
    "Engine",
    "KaitoDeploymentRequest",
    "KubeRayDeploymentRequest",
    "ModelSource",
    "ResourceVariant",
    "ValidationResult",
    "validate_request",
]
