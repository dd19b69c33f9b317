"""External API integrations.

This package contains:
- Provider protocol: typed records and the client interface
- Provider registry: provider clients keyed by provider key
- SimpleFIN client: integration with the SimpleFIN Bridge API
"""

from integrations.provider_protocol import (
    ExternalAccountRecord,
    ExternalHoldingRecord,
    ExternalTradeRecord,
    ExternalTransactionRecord,
    ProviderClient,
    RawAccountPayload,
    SecurityRef,
)
from integrations.provider_registry import ProviderRegistry, get_provider_registry

__all__ = [
    "ExternalAccountRecord",
    "ExternalHoldingRecord",
    "ExternalTradeRecord",
    "ExternalTransactionRecord",
    "ProviderClient",
    "ProviderRegistry",
    "RawAccountPayload",
    "SecurityRef",
    "get_provider_registry",
]
