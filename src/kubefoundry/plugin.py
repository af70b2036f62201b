"""Plugin base classes for KubeFoundry provider plugins."""

from __future__ import annotations

from dataclasses import dataclass, field

from kubefoundry.hooks import hookimpl


@dataclass
class PluginMetadata:
    """Descriptive information about a plugin."""

    name: str
    version: str
    description: str
    maintainer: str
    requires_crds: list[str] = field(default_factory=list)


class BasePlugin:
    """Base class for plugins that carry static metadata.

    Subclasses pass a PluginMetadata to ``__init__`` and implement the
    remaining hooks they need.
    """

    def __init__(self, metadata: PluginMetadata) -> None:
        self._metadata = metadata

    @property
    def metadata(self) -> PluginMetadata:
        return self._metadata

    @hookimpl
    def kubefoundry_get_plugin_metadata(self) -> PluginMetadata:
        return self._metadata
