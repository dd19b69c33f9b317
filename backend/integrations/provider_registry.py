"""Provider registry for managing data aggregation provider clients.

The registry is responsible for:
- Initializing and tracking available provider clients
- Providing access to a client by provider key
- Listing all registered provider keys
"""

import importlib
import logging

from integrations.provider_protocol import ProviderClient

logger = logging.getLogger(__name__)

# Each tuple is (provider_key, module_path, class_name).
# Adding a new provider only requires appending one entry here.
# Only SimpleFIN ships a client. The snaptrade syncer variant needs the host
# application to register its own client under "snaptrade".
PROVIDER_DEFINITIONS: list[tuple[str, str, str]] = [
    ("simplefin", "integrations.simplefin_client", "SimpleFINClient"),
]

ALL_PROVIDER_KEYS: list[str] = [key for key, _, _ in PROVIDER_DEFINITIONS]


class ProviderRegistry:
    """Registry for provider clients, keyed by provider key.

    Credentials live on each Connection, so clients are registered
    regardless of configuration; ``is_configured`` is asked per connection.

    Example:
        registry = get_provider_registry()
        client = registry.get_provider(connection.provider_key)
        for payload in client.stream_accounts(connection, start, end):
            ...
    """

    def __init__(self):
        """Initialize the registry with no providers.

        Call register_provider() to add providers, or use
        initialize_default_providers() to load the built-in clients.
        """
        self._providers: dict[str, ProviderClient] = {}

    def register_provider(self, provider: ProviderClient) -> None:
        """Register a provider client under its provider key."""
        self._providers[provider.provider_key] = provider

    def get_provider(self, key: str) -> ProviderClient:
        """Get a provider client by key.

        Raises:
            ValueError: If no client is registered for the key.
        """
        if key not in self._providers:
            raise ValueError(f"Provider '{key}' is not registered")
        return self._providers[key]

    def list_providers(self) -> list[str]:
        """List all registered provider keys."""
        return list(self._providers.keys())

    def is_registered(self, key: str) -> bool:
        """Check if a client is registered for the key."""
        return key in self._providers

    def initialize_default_providers(self) -> None:
        """Import and register every built-in provider client.

        Each import is wrapped in try/except so a missing dependency for
        one provider never prevents the rest from initializing.
        """
        for key, module_path, class_name in PROVIDER_DEFINITIONS:
            try:
                module = importlib.import_module(module_path)
            except ImportError:
                logger.debug("Provider skipped (not installed): %s", key)
                continue
            cls = getattr(module, class_name)
            self.register_provider(cls())
            logger.info("Provider registered: %s", key)


def get_provider_registry() -> ProviderRegistry:
    """Create and return a provider registry with the built-in clients."""
    registry = ProviderRegistry()
    registry.initialize_default_providers()
    return registry
