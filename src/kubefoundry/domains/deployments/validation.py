"""Structural and cross-field validation of deployment requests."""

from __future__ import annotations

import logging
from collections.abc import Container
from typing import Any

from pydantic import ValidationError

from kubefoundry.domains.deployments.models import (
    ComputeType,
    DeploymentRequest,
    ModelSource,
    ValidationResult,
)

logger = logging.getLogger(__name__)


def _format_pydantic_errors(exc: ValidationError) -> list[str]:
    errors = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err["loc"]) or "request"
        message = err["msg"].removeprefix("Value error, ")
        errors.append(f"{path}: {message}")
    return errors


def _model_source_errors(
    request: DeploymentRequest,
    catalog: Container[str] | None,
) -> list[str]:
    """Required fields per model source. Every missing field is reported."""
    errors = []
    source = request.model_source

    if source == ModelSource.PREMADE:
        if not request.premade_model:
            errors.append("premadeModel: premadeModel is required when modelSource is premade")
        elif catalog is not None and request.premade_model not in catalog:
            errors.append(f"premadeModel: Unknown premade model: {request.premade_model}")
    elif source == ModelSource.HUGGINGFACE_GGUF:
        if not request.model_id:
            errors.append("modelId: modelId is required when modelSource is huggingface-gguf")
        if not request.gguf_file:
            errors.append("ggufFile: ggufFile is required when modelSource is huggingface-gguf")
    elif source == ModelSource.VLLM_HF:
        if not request.model_id:
            errors.append("modelId: modelId is required when modelSource is vllm-hf")

    return errors


def validate_request(
    raw: Any,
    request_model: type[DeploymentRequest] = DeploymentRequest,
    catalog: Container[str] | None = None,
) -> ValidationResult:
    """Validate and normalize a raw deployment request.

    Never raises for invalid input: problems come back as field-qualified
    messages in the result.

    Args:
        raw: Request mapping, camelCase or snake_case keys.
        request_model: DeploymentRequest subclass to parse into.
        catalog: Premade model keys; when given, premade keys must be members.

    Returns:
        ValidationResult with the frozen, normalized request when valid.
    """
    if not isinstance(raw, dict):
        return ValidationResult(
            valid=False,
            errors=[f"request: Expected an object, got {type(raw).__name__}"],
        )

    try:
        request = request_model.model_validate(raw)
    except ValidationError as e:
        errors = _format_pydantic_errors(e)
        logger.warning(f"Deployment request validation failed: {errors}")
        return ValidationResult(valid=False, errors=errors)

    errors = _model_source_errors(request, catalog)
    if errors:
        logger.warning(f"Deployment request validation failed: {errors}")
        return ValidationResult(valid=False, errors=errors)

    # vLLM always runs on GPUs
    if request.model_source == ModelSource.VLLM_HF and request.compute_type != ComputeType.GPU:
        request = request.model_copy(update={"compute_type": ComputeType.GPU})

    logger.debug(f"Deployment request '{request.name}' validated")
    return ValidationResult(valid=True, errors=[], normalized=request)
