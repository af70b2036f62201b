"""Tests for the provider registry."""

from unittest.mock import MagicMock, patch

import pytest

from kubefoundry.config import configure
from kubefoundry.providers import registry
from kubefoundry.providers.dynamo import DynamoProvider
from kubefoundry.providers.kaito import KaitoProvider
from kubefoundry.providers.registry import ProviderRegistry
from kubefoundry.utils.errors import UnknownProviderError


class TestProviderRegistry:
    """Test id to provider lookups."""

    @pytest.fixture
    def providers(self) -> ProviderRegistry:
        reg = ProviderRegistry()
        reg.register(KaitoProvider())
        reg.register(DynamoProvider())
        return reg

    def test_get_provider(self, providers: ProviderRegistry) -> None:
        """Registered providers are found by id."""
        assert isinstance(providers.get_provider("kaito"), KaitoProvider)
        assert providers.has_provider("dynamo") is True

    def test_unknown_provider(self, providers: ProviderRegistry) -> None:
        """Unknown ids raise with the list of available providers."""
        with pytest.raises(UnknownProviderError) as exc_info:
            providers.get_provider("vllm-stack")

        assert str(exc_info.value) == (
            "Provider 'vllm-stack' not found. Available providers: kaito, dynamo"
        )
        assert exc_info.value.available == ["kaito", "dynamo"]

    def test_get_provider_or_none(self, providers: ProviderRegistry) -> None:
        """The lenient lookup returns None for unknown ids."""
        assert providers.get_provider_or_none("missing") is None

    def test_register_overwrites(self, providers: ProviderRegistry) -> None:
        """Registering the same id again replaces the provider."""
        replacement = KaitoProvider()
        providers.register(replacement)

        assert providers.get_provider("kaito") is replacement
        assert providers.list_provider_ids() == ["kaito", "dynamo"]

    def test_list_provider_info(self, providers: ProviderRegistry) -> None:
        """Provider info carries the descriptive fields."""
        info = providers.list_provider_info()

        assert [i.id for i in info] == ["kaito", "dynamo"]
        assert info[0].name == "KAITO"
        assert info[0].default_namespace == "kaito-workspace"

    def test_default_provider_id(self, providers: ProviderRegistry) -> None:
        """The default provider comes from configuration."""
        configure(default_provider="dynamo")

        assert providers.default_provider_id() == "dynamo"


class TestDefaultRegistry:
    """Test the process-wide registry."""

    def test_contains_core_providers(self) -> None:
        """The default registry holds all built-in providers."""
        assert registry.get_registry().list_provider_ids() == ["kaito", "dynamo", "kuberay"]

    def test_built_once(self) -> None:
        """The registry is built on first use and then reused."""
        assert registry.get_registry() is registry.get_registry()

    def test_module_lookups(self) -> None:
        """Module-level helpers delegate to the default registry."""
        assert registry.get_provider("kuberay").id == "kuberay"
        assert len(registry.list_providers()) == 3
        assert [i.id for i in registry.list_provider_info()] == ["kaito", "dynamo", "kuberay"]

    def test_entrypoint_plugins_are_loaded(self) -> None:
        """External plugins advertised through entry points are consulted."""
        with patch(
            "kubefoundry.plugin_manager.PluginManager.load_entrypoint_plugins",
            MagicMock(return_value=0),
        ) as load:
            registry.get_registry()

        load.assert_called_once_with()
