"""Provider protocol definitions for multi-provider support.

This module defines the typed records that every provider client maps its
native payloads to, and the interface those clients implement. The sync
core only ever reads these records, never provider field names.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol

from models import Connection


@dataclass
class RawAccountPayload:
    """One account's raw data as streamed by a provider.

    Persisted verbatim on the ExternalAccount so processing can be
    replayed without another fetch.
    """

    account: dict
    transactions: list[dict] = field(default_factory=list)
    holdings: list[dict] = field(default_factory=list)
    trades: list[dict] = field(default_factory=list)


@dataclass
class ExternalAccountRecord:
    """Normalized account snapshot from any provider."""

    provider_account_id: str
    name: str | None
    currency: str
    balance: Decimal | None = None
    available_balance: Decimal | None = None
    account_type: str | None = None
    last4: str | None = None
    raw: dict | None = None


@dataclass
class ExternalTransactionRecord:
    """Normalized cash transaction from any provider."""

    id: str
    amount: Decimal
    currency: str
    date: date
    description: str
    merchant_name: str | None = None
    merchant_id: str | None = None
    pending: bool = False
    raw: dict | None = None


@dataclass(frozen=True)
class SecurityRef:
    """Provider-neutral reference to a security."""

    ticker: str
    exchange: str = ""
    name: str | None = None


@dataclass
class ExternalHoldingRecord:
    """Normalized position snapshot from any provider."""

    security_ref: SecurityRef
    quantity: Decimal
    price: Decimal
    currency: str
    as_of_date: date
    amount: Decimal | None = None  # Provider market value, if reported
    raw: dict | None = None

    @property
    def market_value(self) -> Decimal:
        """Provider-reported value, falling back to quantity * price."""
        if self.amount is not None:
            return self.amount
        return self.quantity * self.price


@dataclass
class ExternalTradeRecord:
    """Normalized trade (signed quantity: negative for sells)."""

    id: str
    security_ref: SecurityRef
    quantity: Decimal
    price: Decimal
    amount: Decimal
    currency: str
    date: date
    raw: dict | None = None


class ProviderClient(Protocol):
    """Protocol that all provider clients must implement.

    Fetching and mapping are separate so raw payloads can be stored
    before any mapping happens. Mappers raise ProviderDataError for
    records they cannot interpret.
    """

    @property
    def provider_key(self) -> str:
        """Return the provider key stored on connections (e.g. 'simplefin')."""
        ...

    def is_configured(self, connection: Connection) -> bool:
        """Check whether the connection carries usable credentials."""
        ...

    def stream_accounts(
        self,
        connection: Connection,
        window_start: date | None,
        window_end: date | None,
    ) -> Iterator[RawAccountPayload]:
        """Yield raw account payloads one at a time.

        Raises:
            ProviderAuthError: If credentials are rejected.
            ProviderConnectionError: On network failures.
            ProviderAPIError: On non-auth HTTP errors.
        """
        ...

    def map_account(self, raw: dict) -> ExternalAccountRecord:
        ...

    def map_transaction(self, raw: dict, currency: str) -> ExternalTransactionRecord:
        ...

    def map_holding(self, raw: dict, currency: str) -> ExternalHoldingRecord:
        ...

    def map_trade(self, raw: dict, currency: str) -> ExternalTradeRecord:
        ...
