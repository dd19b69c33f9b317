"""Unit tests for the provider registry."""

import pytest

from integrations.provider_registry import (
    ALL_PROVIDER_KEYS,
    PROVIDER_DEFINITIONS,
    ProviderRegistry,
    get_provider_registry,
)
from integrations.simplefin_client import SimpleFINClient
from tests.fixtures.mocks import MockProviderClient


class TestProviderRegistry:
    """Tests for ProviderRegistry."""

    def test_empty_registry(self):
        """A new registry has no providers."""
        registry = ProviderRegistry()
        assert registry.list_providers() == []

    def test_register_provider_by_key(self):
        registry = ProviderRegistry()
        provider = MockProviderClient(key="snaptrade")

        registry.register_provider(provider)

        assert registry.is_registered("snaptrade")
        assert registry.get_provider("snaptrade") is provider
        assert registry.list_providers() == ["snaptrade"]

    def test_register_replaces_same_key(self):
        registry = ProviderRegistry()
        first = MockProviderClient(key="simplefin")
        second = MockProviderClient(key="simplefin")

        registry.register_provider(first)
        registry.register_provider(second)

        assert registry.get_provider("simplefin") is second

    def test_get_unknown_provider_raises(self):
        registry = ProviderRegistry()
        with pytest.raises(ValueError, match="not registered"):
            registry.get_provider("nope")


class TestDefaultProviders:
    def test_definitions_keys(self):
        assert ALL_PROVIDER_KEYS == [key for key, _, _ in PROVIDER_DEFINITIONS]
        assert "simplefin" in ALL_PROVIDER_KEYS

    def test_default_registry_has_simplefin(self):
        registry = get_provider_registry()
        assert isinstance(registry.get_provider("simplefin"), SimpleFINClient)

    def test_snaptrade_client_comes_from_host(self):
        assert ALL_PROVIDER_KEYS == ["simplefin"]
        registry = ProviderRegistry()
        registry.initialize_default_providers()
        assert not registry.is_registered("snaptrade")

        registry.register_provider(MockProviderClient(key="snaptrade"))

        assert registry.get_provider("snaptrade").provider_key == "snaptrade"
