"""CRD definitions for KAITO."""

from kubefoundry.clients.base import CRDConfig

# Operator namespace used by the kaito-workspace Helm chart
OPERATOR_NAMESPACE = "kaito-workspace"


class KaitoCRDs:
    """KAITO CRD definitions."""

    # Flat layout: resource and inference are top-level siblings of metadata
    WORKSPACE = CRDConfig(
        api_group="kaito.sh",
        api_version="v1beta1",
        plural="workspaces",
        kind="Workspace",
    )

    # Nested layout: replicas plus spec.template.{resource, inference}
    INFERENCE_SET = CRDConfig(
        api_group="kaito.sh",
        api_version="v1alpha1",
        plural="inferencesets",
        kind="InferenceSet",
    )

    RAG_ENGINE_CRD_NAME = "ragengines.kaito.sh"
