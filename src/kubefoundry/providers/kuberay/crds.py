"""CRD definitions for KubeRay."""

from kubefoundry.clients.base import CRDConfig


class KubeRayCRDs:
    """KubeRay CRD definitions."""

    RAY_SERVICE = CRDConfig(
        api_group="ray.io",
        api_version="v1",
        plural="rayservices",
        kind="RayService",
    )

    # Managed by the operator; removed on uninstall
    RAY_CLUSTER_CRD_NAME = "rayclusters.ray.io"
    RAY_JOB_CRD_NAME = "rayjobs.ray.io"
