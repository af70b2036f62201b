"""CRD definitions for NVIDIA Dynamo."""

from kubefoundry.clients.base import CRDConfig


class DynamoCRDs:
    """Dynamo CRD definitions."""

    GRAPH_DEPLOYMENT = CRDConfig(
        api_group="nvidia.com",
        api_version="v1alpha1",
        plural="dynamographdeployments",
        kind="DynamoGraphDeployment",
    )

    # Created by the operator per service; only listed for uninstall
    COMPONENT_DEPLOYMENT_CRD_NAME = "dynamocomponentdeployments.nvidia.com"
