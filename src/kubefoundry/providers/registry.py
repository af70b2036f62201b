"""Provider registry and the core provider plugins.

This module provides a plugin class for each built-in inference runtime and
the registry that maps provider ids to provider instances. The default
registry is built once per process from the core plugins plus any plugins
advertised through entry points.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from kubefoundry.config import get_config
from kubefoundry.hooks import hookimpl
from kubefoundry.plugin import BasePlugin, PluginMetadata
from kubefoundry.utils.errors import UnknownProviderError

if TYPE_CHECKING:
    from kubefoundry.clients.base import CRDConfig
    from kubefoundry.plugin_manager import PluginManager
    from kubefoundry.providers.base import BaseProvider, ProviderInfo

logger = logging.getLogger(__name__)


class KaitoPlugin(BasePlugin):
    """Plugin contributing the KAITO provider."""

    def __init__(self) -> None:
        super().__init__(
            PluginMetadata(
                name="kaito",
                version="0.1.0",
                description="KAITO Workspace and InferenceSet deployments",
                maintainer="kubefoundry",
                requires_crds=["Workspace", "InferenceSet"],
            )
        )

    @hookimpl
    def kubefoundry_get_provider(self) -> BaseProvider:
        from kubefoundry.providers.kaito import KaitoProvider

        return KaitoProvider()

    @hookimpl
    def kubefoundry_get_crd_definitions(self) -> list[CRDConfig]:
        from kubefoundry.providers.kaito.crds import KaitoCRDs

        return [KaitoCRDs.WORKSPACE, KaitoCRDs.INFERENCE_SET]


class DynamoPlugin(BasePlugin):
    """Plugin contributing the NVIDIA Dynamo provider."""

    def __init__(self) -> None:
        super().__init__(
            PluginMetadata(
                name="dynamo",
                version="0.1.0",
                description="NVIDIA Dynamo graph deployments",
                maintainer="kubefoundry",
                requires_crds=["DynamoGraphDeployment"],
            )
        )

    @hookimpl
    def kubefoundry_get_provider(self) -> BaseProvider:
        from kubefoundry.providers.dynamo import DynamoProvider

        return DynamoProvider()

    @hookimpl
    def kubefoundry_get_crd_definitions(self) -> list[CRDConfig]:
        from kubefoundry.providers.dynamo.crds import DynamoCRDs

        return [DynamoCRDs.GRAPH_DEPLOYMENT]


class KubeRayPlugin(BasePlugin):
    """Plugin contributing the KubeRay (Ray Serve) provider."""

    def __init__(self) -> None:
        super().__init__(
            PluginMetadata(
                name="kuberay",
                version="0.1.0",
                description="Ray Serve LLM applications on RayService",
                maintainer="kubefoundry",
                requires_crds=["RayService"],
            )
        )

    @hookimpl
    def kubefoundry_get_provider(self) -> BaseProvider:
        from kubefoundry.providers.kuberay import KubeRayProvider

        return KubeRayProvider()

    @hookimpl
    def kubefoundry_get_crd_definitions(self) -> list[CRDConfig]:
        from kubefoundry.providers.kuberay.crds import KubeRayCRDs

        return [KubeRayCRDs.RAY_SERVICE]


def get_core_plugins() -> list[BasePlugin]:
    """Return all core provider plugin instances.

    Returns:
        List of plugin instances for the built-in providers.
    """
    return [
        KaitoPlugin(),
        DynamoPlugin(),
        KubeRayPlugin(),
    ]


class ProviderRegistry:
    """Maps provider ids to provider implementations."""

    def __init__(self) -> None:
        self._providers: dict[str, BaseProvider] = {}

    def register(self, provider: BaseProvider) -> None:
        if provider.id in self._providers:
            logger.warning(f"Provider '{provider.id}' is already registered, overwriting")
        self._providers[provider.id] = provider
        logger.debug(f"Registered provider: {provider.id}")

    def get_provider(self, provider_id: str) -> BaseProvider:
        """Look up a provider.

        Raises:
            UnknownProviderError: If no provider has the given id.
        """
        provider = self._providers.get(provider_id)
        if provider is None:
            raise UnknownProviderError(provider_id, self.list_provider_ids())
        return provider

    def get_provider_or_none(self, provider_id: str) -> BaseProvider | None:
        return self._providers.get(provider_id)

    def has_provider(self, provider_id: str) -> bool:
        return provider_id in self._providers

    def list_providers(self) -> list[BaseProvider]:
        return list(self._providers.values())

    def list_provider_ids(self) -> list[str]:
        return list(self._providers)

    def list_provider_info(self) -> list[ProviderInfo]:
        return [p.info() for p in self._providers.values()]

    def default_provider_id(self) -> str:
        return get_config().default_provider

    @classmethod
    def from_plugin_manager(cls, plugin_manager: PluginManager) -> ProviderRegistry:
        registry = cls()
        for provider in plugin_manager.get_all_providers():
            registry.register(provider)
        return registry


_registry: ProviderRegistry | None = None


def get_registry() -> ProviderRegistry:
    """Get the process-wide provider registry, building it on first use."""
    global _registry
    if _registry is None:
        from kubefoundry.plugin_manager import PluginManager

        plugin_manager = PluginManager()
        plugin_manager.load_core_plugins()
        plugin_manager.load_entrypoint_plugins()
        _registry = ProviderRegistry.from_plugin_manager(plugin_manager)
        logger.info(f"Provider registry ready: {', '.join(_registry.list_provider_ids())}")
    return _registry


def reset_registry() -> None:
    """Drop the process-wide registry so the next lookup rebuilds it."""
    global _registry
    _registry = None


def get_provider(provider_id: str) -> BaseProvider:
    return get_registry().get_provider(provider_id)


def list_providers() -> list[BaseProvider]:
    return get_registry().list_providers()


def list_provider_info() -> list[ProviderInfo]:
    return get_registry().list_provider_info()
