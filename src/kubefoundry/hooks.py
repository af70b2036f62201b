"""Pluggy hook specifications for KubeFoundry provider plugins.

This module defines the hook interface that plugins implement to contribute
inference providers to the engine's registry.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from kubefoundry.clients.base import CRDConfig
    from kubefoundry.plugin import PluginMetadata
    from kubefoundry.providers.base import BaseProvider

# Project name used for pluggy hook registration
PROJECT_NAME = "kubefoundry"

# Create hook specification marker
hookspec = pluggy.HookspecMarker(PROJECT_NAME)

# Create hook implementation marker (exported for plugins to use)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class KubeFoundryHookSpec:
    """Hook specifications for KubeFoundry plugins.

    Hooks are called in plugin registration order.
    """

    @hookspec
    def kubefoundry_get_plugin_metadata(self) -> PluginMetadata:
        """Return plugin metadata.

        Returns:
            PluginMetadata instance for this plugin.
        """
        raise NotImplementedError

    @hookspec
    def kubefoundry_get_provider(self) -> BaseProvider:
        """Return the inference provider contributed by this plugin.

        The registry keys providers by their ``id`` attribute. A plugin that
        returns a provider whose id is already taken overwrites the earlier
        one.

        Returns:
            A BaseProvider instance.
        """
        raise NotImplementedError

    @hookspec
    def kubefoundry_get_crd_definitions(self) -> list[CRDConfig]:
        """Return the custom resource types this plugin manages.

        Returns:
            List of CRDConfig objects.
        """
        raise NotImplementedError
