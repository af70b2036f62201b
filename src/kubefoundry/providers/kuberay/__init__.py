"""KubeRay provider (Ray Serve through the RayService custom resource)."""

from kubefoundry.providers.kuberay.provider import KubeRayProvider

__all__ = ["KubeRayProvider"]
