"""Plugin manager wrapping pluggy for provider discovery."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import pluggy

from kubefoundry.hooks import PROJECT_NAME, KubeFoundryHookSpec

if TYPE_CHECKING:
    from kubefoundry.clients.base import CRDConfig
    from kubefoundry.plugin import PluginMetadata
    from kubefoundry.providers.base import BaseProvider

logger = logging.getLogger(__name__)

ENTRYPOINT_GROUP = "kubefoundry.plugins"


class PluginManager:
    """Registers plugins and collects what they contribute.

    Core plugins ship with the package; external plugins are discovered
    through the ``kubefoundry.plugins`` entry-point group.
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(KubeFoundryHookSpec)
        self._plugins: dict[str, Any] = {}

    @property
    def hook(self) -> Any:
        return self._pm.hook

    @property
    def registered_plugins(self) -> dict[str, Any]:
        return dict(self._plugins)

    def register_plugin(self, plugin: Any, name: str | None = None) -> str:
        """Register a plugin object.

        Args:
            plugin: Object implementing one or more hooks.
            name: Registration name. Defaults to the plugin's metadata name,
                then to its class name.

        Returns:
            The name the plugin was registered under.
        """
        if name is None:
            get_metadata = getattr(plugin, "kubefoundry_get_plugin_metadata", None)
            name = get_metadata().name if callable(get_metadata) else type(plugin).__name__

        self._pm.register(plugin, name=name)
        self._plugins[name] = plugin
        logger.debug(f"Registered plugin: {name}")
        return name

    def unregister_plugin(self, name: str) -> None:
        plugin = self._plugins.pop(name, None)
        if plugin is not None:
            self._pm.unregister(plugin)
            logger.debug(f"Unregistered plugin: {name}")

    def load_core_plugins(self) -> int:
        """Register the built-in provider plugins.

        Returns:
            Number of plugins registered.
        """
        from kubefoundry.providers.registry import get_core_plugins

        count = 0
        for plugin in get_core_plugins():
            self.register_plugin(plugin)
            count += 1
        return count

    def load_entrypoint_plugins(self, group: str = ENTRYPOINT_GROUP) -> int:
        """Discover and register plugins advertised through entry points.

        Returns:
            Number of plugins loaded.
        """
        count = self._pm.load_setuptools_entrypoints(group)
        for name, plugin in self._pm.list_name_plugin():
            if name not in self._plugins:
                self._plugins[name] = plugin
                logger.info(f"Loaded external plugin: {name}")
        return count

    def get_all_metadata(self) -> list[PluginMetadata]:
        return list(self.hook.kubefoundry_get_plugin_metadata())

    def get_all_providers(self) -> list[BaseProvider]:
        """Collect providers from all plugins, in registration order."""
        # pluggy returns results in reverse registration order
        return list(reversed(self.hook.kubefoundry_get_provider()))

    def get_all_crd_definitions(self) -> list[CRDConfig]:
        crds: list[CRDConfig] = []
        for plugin_crds in self.hook.kubefoundry_get_crd_definitions():
            crds.extend(plugin_crds)
        return crds
