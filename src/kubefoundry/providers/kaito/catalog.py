"""Curated AIKit model catalog used by KAITO premade deployments.

Premade models are GGUF models packaged by AIKit into ready-to-run images.
Deployments reference them by catalog key (e.g. ``llama3.2:3b``).
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from kubefoundry.domains.deployments.models import ComputeType
from kubefoundry.utils.errors import UnknownCatalogEntryError

# Runner image used for GGUF models downloaded at start-up ("direct" run mode)
GGUF_RUNNER_IMAGE = "ghcr.io/kaito-project/aikit/runners/llama-cpp-cpu:latest"

# In-cluster registry the image builder pushes "build" run mode images to
BUILD_REGISTRY = "kubefoundry-registry.kubefoundry-system.svc:5000"

_AIKIT_IMAGE_PREFIX = "ghcr.io/kaito-project/aikit"


class PremadeModel(BaseModel):
    """Model entry in the AIKit catalog."""

    model_config = {"protected_namespaces": ()}

    id: str = Field(..., description="Catalog key (e.g. 'llama3.2:3b')")
    name: str = Field(..., description="Display name")
    size: str = Field(..., description="Parameter count (e.g. '3B')")
    image: str = Field(..., description="Full container image reference")
    model_name: str = Field(..., description="Model name served by the OpenAI-compatible API")
    license: str
    description: str | None = None
    compute_type: ComputeType = ComputeType.CPU


def _premade(
    key: str,
    name: str,
    size: str,
    model_name: str,
    license: str,
    description: str,
    compute_type: ComputeType = ComputeType.CPU,
) -> PremadeModel:
    return PremadeModel(
        id=key,
        name=name,
        size=size,
        image=f"{_AIKIT_IMAGE_PREFIX}/{key}",
        model_name=model_name,
        license=license,
        description=description,
        compute_type=compute_type,
    )


PREMADE_MODELS: dict[str, PremadeModel] = {
    m.id: m
    for m in [
        _premade(
            "llama3.2:1b",
            "Llama 3.2",
            "1B",
            "llama-3.2-1b-instruct",
            "Llama",
            "Small Llama 3.2 instruct model, fits comfortably on CPU nodes",
        ),
        _premade(
            "llama3.2:3b",
            "Llama 3.2",
            "3B",
            "llama-3.2-3b-instruct",
            "Llama",
            "Llama 3.2 instruct model for general chat",
        ),
        _premade(
            "llama3.1:8b",
            "Llama 3.1",
            "8B",
            "llama-3.1-8b-instruct",
            "Llama",
            "Llama 3.1 instruct model",
        ),
        _premade(
            "llama3.3:70b",
            "Llama 3.3",
            "70B",
            "llama-3.3-70b-instruct",
            "Llama",
            "Large Llama 3.3 instruct model",
            ComputeType.GPU,
        ),
        _premade(
            "gemma2:2b",
            "Gemma 2",
            "2B",
            "gemma-2-2b-instruct",
            "Gemma",
            "Lightweight Gemma 2 instruct model",
        ),
        _premade(
            "phi3.5:3.8b",
            "Phi 3.5",
            "3.8B",
            "phi-3.5-3.8b-instruct",
            "MIT",
            "Phi 3.5 mini instruct model",
        ),
        _premade(
            "phi4:14b",
            "Phi 4",
            "14B",
            "phi-4-14b-instruct",
            "MIT",
            "Phi 4 reasoning-focused model",
        ),
        _premade(
            "mixtral:8x7b",
            "Mixtral",
            "8x7B",
            "mixtral-8x7b-instruct",
            "Apache-2.0",
            "Sparse mixture-of-experts model",
            ComputeType.GPU,
        ),
        _premade(
            "qwq:32b",
            "QwQ",
            "32B",
            "qwq-32b",
            "Apache-2.0",
            "Qwen reasoning model",
            ComputeType.GPU,
        ),
    ]
}


def get_premade_model(key: str) -> PremadeModel | None:
    return PREMADE_MODELS.get(key)


def require_premade_model(key: str) -> PremadeModel:
    """Look up a catalog entry, raising UnknownCatalogEntryError if absent."""
    model = PREMADE_MODELS.get(key)
    if model is None:
        raise UnknownCatalogEntryError(key)
    return model


def find_by_image(image: str) -> PremadeModel | None:
    """Reverse lookup: the catalog entry packaged in the given image."""
    for model in PREMADE_MODELS.values():
        if model.image == image:
            return model
    return None


def build_image_ref(model_id: str, gguf_file: str) -> str:
    """Image reference the in-cluster builder produces for a GGUF file.

    ``TheBloke/Llama-2-7B-Chat-GGUF`` + ``llama-2-7b-chat.Q4_K_M.gguf`` gives
    ``<registry>/thebloke-llama-2-7b-chat-gguf:q4-k-m``.
    """
    repository = re.sub(r"[^a-z0-9.-]+", "-", model_id.lower()).strip("-")
    match = re.search(r"\.(q\d[a-z0-9_]*|f16|f32|bf16)\.gguf$", gguf_file.lower())
    tag = match.group(1).replace("_", "-") if match else "latest"
    return f"{BUILD_REGISTRY}/{repository}:{tag}"
