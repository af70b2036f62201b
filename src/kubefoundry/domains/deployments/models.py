"""Pydantic models for deployment requests and canonical deployment status."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny, field_validator
from pydantic.alias_generators import to_camel

from kubefoundry.config import get_config

NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
MAX_NAME_LENGTH = 63
MAX_REPLICAS = 10


class ModelSource(str, Enum):
    """Where the model weights come from."""

    PREMADE = "premade"
    HUGGINGFACE_GGUF = "huggingface-gguf"
    VLLM_HF = "vllm-hf"


class GgufRunMode(str, Enum):
    """How a GGUF model reaches the container.

    - DIRECT: runner image downloads the file at start-up
    - BUILD: the file is baked into a dedicated image
    """

    DIRECT = "direct"
    BUILD = "build"


class ComputeType(str, Enum):
    CPU = "cpu"
    GPU = "gpu"


class ResourceVariant(str, Enum):
    """Manifest layout: top-level blocks (flat) or under spec.template (nested)."""

    FLAT = "flat"
    NESTED = "nested"


class Engine(str, Enum):
    VLLM = "vllm"
    SGLANG = "sglang"
    TRTLLM = "trtllm"
    LLAMACPP = "llamacpp"


class DeploymentMode(str, Enum):
    """Single worker pool, or separate prefill and decode pools."""

    AGGREGATED = "aggregated"
    DISAGGREGATED = "disaggregated"


class RouterMode(str, Enum):
    NONE = "none"
    KV = "kv"
    ROUND_ROBIN = "round-robin"


class KvConnector(str, Enum):
    NIXL = "NixlConnector"
    SIMPLE = "SimpleConnector"


class DeploymentPhase(str, Enum):
    """Canonical lifecycle phase shared by every provider."""

    PENDING = "Pending"
    DEPLOYING = "Deploying"
    RUNNING = "Running"
    FAILED = "Failed"
    TERMINATING = "Terminating"


class CamelModel(BaseModel):
    """Base model accepting both camelCase and snake_case field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class ResourceShape(CamelModel):
    """Per-replica compute shape."""

    model_config = ConfigDict(frozen=True)

    memory: str | None = Field(None, description="Memory request (e.g. '8Gi')")
    cpu: str | None = Field(None, description="CPU request (e.g. '4' or '4000m')")
    gpu: int | None = Field(None, ge=1, description="GPUs per replica")


class DeploymentRequest(CamelModel):
    """Operator-facing description of an inference workload.

    The request is provider-agnostic; provider subclasses add tuning fields.
    Cross-field rules (required fields per model source, catalog membership)
    are applied by ``validate_request``, not by the model itself.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    namespace: str = Field(..., min_length=1)
    provider: str = Field(default_factory=lambda: get_config().default_provider)

    model_source: ModelSource = ModelSource.VLLM_HF
    premade_model: str | None = None
    model_id: str | None = None
    gguf_file: str | None = None
    gguf_run_mode: GgufRunMode = GgufRunMode.DIRECT

    compute_type: ComputeType = ComputeType.CPU
    replicas: int = Field(1, ge=1, le=MAX_REPLICAS)
    resources: ResourceShape | None = None

    # Placement
    label_selector: dict[str, str] | None = None
    preferred_nodes: list[str] | None = None
    instance_type: str | None = None

    image_ref: str | None = Field(None, description="Pre-resolved container image")
    max_model_len: int | None = Field(None, ge=1)
    hf_token_secret: str | None = Field(None, description="Secret holding HF_TOKEN")

    resource_variant: ResourceVariant = ResourceVariant.FLAT
    engine: Engine = Engine.VLLM
    mode: DeploymentMode = DeploymentMode.AGGREGATED

    # Disaggregated topology
    prefill_replicas: int | None = Field(None, ge=1, le=MAX_REPLICAS)
    decode_replicas: int | None = Field(None, ge=1, le=MAX_REPLICAS)
    prefill_gpus: int | None = Field(None, ge=1)
    decode_gpus: int | None = Field(None, ge=1)

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        if not NAME_PATTERN.match(v):
            raise ValueError(
                "Name must be a valid Kubernetes resource name "
                "(lowercase alphanumeric and hyphens)"
            )
        return v

    @field_validator("namespace")
    @classmethod
    def check_namespace(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Namespace must not be empty")
        return v

    @property
    def gpus_per_replica(self) -> int:
        """GPU count for one replica, defaulting to 1."""
        if self.resources and self.resources.gpu:
            return self.resources.gpu
        return 1


class KaitoDeploymentRequest(DeploymentRequest):
    """KAITO request. Premade model keys resolve against the AIKit catalog."""


class DynamoDeploymentRequest(DeploymentRequest):
    """NVIDIA Dynamo request."""

    served_model_name: str | None = None
    router_mode: RouterMode = RouterMode.NONE
    context_length: int | None = Field(None, ge=1)
    enforce_eager: bool = True
    enable_prefix_caching: bool = False
    trust_remote_code: bool = False
    engine_args: dict[str, Any] = Field(default_factory=dict)
    image: str | None = Field(None, description="Override for the runtime image")

    @field_validator("engine")
    @classmethod
    def check_engine(cls, v: Engine) -> Engine:
        if v == Engine.LLAMACPP:
            raise ValueError("Dynamo supports the vllm, sglang and trtllm engines")
        return v

    @field_validator("model_source")
    @classmethod
    def check_model_source(cls, v: ModelSource) -> ModelSource:
        if v != ModelSource.VLLM_HF:
            raise ValueError("Dynamo serves Hugging Face models only (vllm-hf)")
        return v


class KubeRayDeploymentRequest(DeploymentRequest):
    """Ray Serve (KubeRay) request. The engine is always vLLM."""

    served_model_name: str | None = None
    accelerator_type: str | None = Field(None, description="GPU type, e.g. A100 or H100")
    tensor_parallel_size: int = Field(1, ge=1)
    pipeline_parallel_size: int = Field(1, ge=1)
    gpu_memory_utilization: float = Field(0.9, ge=0.1, le=1.0)
    max_num_seqs: int = Field(40, ge=1)
    context_length: int | None = Field(None, ge=1)
    enable_chunked_prefill: bool = True
    enable_prefix_caching: bool = True
    enforce_eager: bool = True
    trust_remote_code: bool = False

    ray_image: str = "rayproject/ray-llm:2.52.0-py311-cu128"
    head_cpu: str = "4"
    head_memory: str = "32Gi"
    worker_cpu: str = "8"
    worker_memory: str = "64Gi"

    min_replicas: int = Field(1, ge=1)
    max_replicas: int = Field(2, ge=1)
    kv_connector: KvConnector = KvConnector.NIXL

    @field_validator("engine")
    @classmethod
    def check_engine(cls, v: Engine) -> Engine:
        if v != Engine.VLLM:
            raise ValueError("KubeRay serves models with the vllm engine only")
        return v

    @field_validator("model_source")
    @classmethod
    def check_model_source(cls, v: ModelSource) -> ModelSource:
        if v != ModelSource.VLLM_HF:
            raise ValueError("KubeRay serves Hugging Face models only (vllm-hf)")
        return v


class ValidationResult(CamelModel):
    """Outcome of request validation. Errors read '<field>: <message>'."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    normalized: SerializeAsAny[DeploymentRequest] | None = None


class Condition(CamelModel):
    type: str
    status: str = "Unknown"
    reason: str | None = None
    message: str | None = None
    last_transition_time: str | None = None


class ReplicaStatus(CamelModel):
    desired: int = 1
    ready: int = 0
    available: int = 0


class CanonicalStatus(CamelModel):
    """Provider-independent view of a live deployment."""

    name: str
    namespace: str
    provider: str
    model_id: str = ""
    served_model_name: str | None = None
    engine: Engine = Engine.VLLM
    mode: DeploymentMode = DeploymentMode.AGGREGATED
    phase: DeploymentPhase = DeploymentPhase.PENDING
    replicas: ReplicaStatus = Field(default_factory=ReplicaStatus)
    conditions: list[Condition] = Field(default_factory=list)
    frontend_service_ref: str = ""
    created_at: str | None = None


def parse_conditions(raw_conditions: Any) -> list[Condition]:
    """Convert raw Kubernetes condition dicts into Condition models."""
    conditions: list[Condition] = []
    for c in raw_conditions or []:
        if not isinstance(c, dict):
            continue
        conditions.append(
            Condition(
                type=c.get("type") or "",
                status=c.get("status") or "Unknown",
                reason=c.get("reason"),
                message=c.get("message"),
                last_transition_time=c.get("lastTransitionTime"),
            )
        )
    return conditions
