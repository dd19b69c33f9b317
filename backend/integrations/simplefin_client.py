"""SimpleFIN API client wrapper.

This module implements the ProviderClient protocol for SimpleFIN integration.
SimpleFIN is a protocol for sharing read-only financial data, and SimpleFIN Bridge
is a service that connects to banks and brokerages.
"""

import hashlib
import logging
from collections.abc import Iterator
from datetime import date, datetime, time, timezone
from decimal import Decimal

import httpx

from config import settings
from integrations.exceptions import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
)
from integrations.parsing_utils import parse_date, parse_decimal
from integrations.provider_protocol import (
    ExternalAccountRecord,
    ExternalHoldingRecord,
    ExternalTradeRecord,
    ExternalTransactionRecord,
    RawAccountPayload,
    SecurityRef,
)
from models import Connection

logger = logging.getLogger(__name__)

PROVIDER_KEY = "simplefin"

# Raw keys some bridges use for the masked account number.
_LAST4_KEYS = ("mask", "last4", "last-4", "account_number_last4")


def _generate_synthetic_symbol(holding_id: str) -> str:
    """Generate stable synthetic symbol for holdings without tickers.

    Args:
        holding_id: The SimpleFIN holding ID

    Returns:
        A synthetic symbol in format _SF:{8-char-hash}
    """
    hash_hex = hashlib.sha256(holding_id.encode()).hexdigest()
    return f"_SF:{hash_hex[:8]}"


def _to_unix(d: date) -> str:
    return str(int(datetime.combine(d, time.min, tzinfo=timezone.utc).timestamp()))


class SimpleFINClient:
    """Wrapper around the SimpleFIN Bridge ``/accounts`` endpoint.

    Implements the ProviderClient protocol. The access URL comes from the
    connection credentials (``{"access_url": ...}``), falling back to
    ``settings.SIMPLEFIN_ACCESS_URL``.
    """

    def __init__(self, timeout: float = 30.0, transport: httpx.BaseTransport | None = None):
        """Initialize the client.

        Args:
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        """
        self._timeout = timeout
        self._transport = transport

    @property
    def provider_key(self) -> str:
        """Return the provider key stored on connections."""
        return PROVIDER_KEY

    @staticmethod
    def _access_url(connection: Connection) -> str:
        credentials = connection.credentials or {}
        return credentials.get("access_url") or settings.SIMPLEFIN_ACCESS_URL

    def is_configured(self, connection: Connection) -> bool:
        """Check if the connection has a usable access URL.

        A base64 setup token is not an access URL and is rejected.
        """
        access_url = self._access_url(connection)
        return bool(access_url) and access_url.startswith(("http://", "https://"))

    def _fetch_accounts(
        self,
        connection: Connection,
        window_start: date | None,
        window_end: date | None,
    ) -> dict:
        """GET /accounts for the window and translate HTTP failures."""
        if not self.is_configured(connection):
            raise ProviderAuthError(
                "SimpleFIN access URL is missing or is a setup token",
                provider_name=PROVIDER_KEY,
            )

        params = {}
        if window_start:
            params["start-date"] = _to_unix(window_start)
        if window_end:
            params["end-date"] = _to_unix(window_end)

        try:
            with httpx.Client(
                base_url=self._access_url(connection),
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = client.get("/accounts", params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise ProviderAuthError(
                    f"SimpleFIN authentication failed (HTTP {status})",
                    provider_name=PROVIDER_KEY,
                ) from exc
            raise ProviderAPIError(
                f"SimpleFIN API error (HTTP {status})",
                provider_name=PROVIDER_KEY,
                status_code=status,
            ) from exc
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderConnectionError(
                f"SimpleFIN connection failed: {exc}",
                provider_name=PROVIDER_KEY,
            ) from exc
        except ValueError as exc:
            raise ProviderDataError(
                "SimpleFIN returned a non-JSON response",
                provider_name=PROVIDER_KEY,
            ) from exc

        for message in data.get("errors") or []:
            logger.warning("SimpleFIN: provider reported error: %s", message)
        logger.info(
            "SimpleFIN: data fetched (%d accounts)", len(data.get("accounts") or [])
        )
        return data

    def stream_accounts(
        self,
        connection: Connection,
        window_start: date | None,
        window_end: date | None,
    ) -> Iterator[RawAccountPayload]:
        """Yield one raw payload per SimpleFIN account."""
        data = self._fetch_accounts(connection, window_start, window_end)
        for sf_account in data.get("accounts") or []:
            account = {
                k: v for k, v in sf_account.items()
                if k not in ("transactions", "holdings")
            }
            yield RawAccountPayload(
                account=account,
                transactions=list(sf_account.get("transactions") or []),
                holdings=list(sf_account.get("holdings") or []),
            )

    def map_account(self, raw: dict) -> ExternalAccountRecord:
        """Map a SimpleFIN account dict to ExternalAccountRecord."""
        account_id = raw.get("id")
        if not account_id:
            raise ProviderDataError("SimpleFIN account without id", provider_name=PROVIDER_KEY)

        last4 = None
        for key in _LAST4_KEYS:
            value = raw.get(key)
            if value:
                last4 = str(value).strip()[-4:]
                break

        return ExternalAccountRecord(
            provider_account_id=str(account_id),
            name=raw.get("name"),
            currency=(raw.get("currency") or "USD").upper()[:3],
            balance=parse_decimal(raw.get("balance")),
            available_balance=parse_decimal(raw.get("available-balance")),
            account_type=raw.get("type"),
            last4=last4,
            raw=raw,
        )

    def map_transaction(self, raw: dict, currency: str) -> ExternalTransactionRecord:
        """Map a SimpleFIN transaction dict to ExternalTransactionRecord.

        SimpleFIN reports pending transactions with ``posted == 0``; those use
        ``transacted_at`` as their date.
        """
        txn_id = raw.get("id")
        if not txn_id:
            raise ProviderDataError("SimpleFIN transaction without id", provider_name=PROVIDER_KEY)

        amount = parse_decimal(raw.get("amount"))
        if amount is None:
            raise ProviderDataError(
                f"SimpleFIN transaction {txn_id}: unparseable amount {raw.get('amount')!r}",
                provider_name=PROVIDER_KEY,
            )

        posted = raw.get("posted")
        pending = bool(raw.get("pending")) or posted in (0, "0")
        txn_date = None if posted in (0, "0") else parse_date(posted)
        if txn_date is None:
            txn_date = parse_date(raw.get("transacted_at"))
        if txn_date is None:
            raise ProviderDataError(
                f"SimpleFIN transaction {txn_id}: no usable date",
                provider_name=PROVIDER_KEY,
            )

        payee = raw.get("payee") or None
        description = raw.get("description") or payee or raw.get("memo") or "Unknown"

        return ExternalTransactionRecord(
            id=str(txn_id),
            amount=amount,
            currency=currency,
            date=txn_date,
            description=description,
            merchant_name=payee,
            merchant_id=payee,
            pending=pending,
            raw=raw,
        )

    def map_holding(self, raw: dict, currency: str) -> ExternalHoldingRecord:
        """Map a SimpleFIN holding dict to ExternalHoldingRecord."""
        symbol = raw.get("symbol")
        if not symbol:
            holding_id = raw.get("id")
            if not holding_id:
                raise ProviderDataError(
                    "SimpleFIN holding without symbol or id", provider_name=PROVIDER_KEY
                )
            symbol = _generate_synthetic_symbol(str(holding_id))

        quantity = parse_decimal(raw.get("shares"))
        if quantity is None:
            raise ProviderDataError(
                f"SimpleFIN holding {symbol}: unparseable shares {raw.get('shares')!r}",
                provider_name=PROVIDER_KEY,
            )
        market_value = parse_decimal(raw.get("market_value"))

        # SimpleFIN has no current price field; derive it from market value
        price = Decimal("0")
        if quantity and market_value is not None:
            price = market_value / quantity
        elif parse_decimal(raw.get("purchase_price")) is not None:
            price = parse_decimal(raw.get("purchase_price"))

        return ExternalHoldingRecord(
            security_ref=SecurityRef(ticker=str(symbol).upper(), name=raw.get("description")),
            quantity=quantity,
            price=price,
            currency=(raw.get("currency") or currency).upper()[:3],
            as_of_date=date.today(),  # snapshot as of the fetch
            amount=market_value,
            raw=raw,
        )

    def map_trade(self, raw: dict, currency: str) -> ExternalTradeRecord:
        """SimpleFIN does not report trades."""
        raise ProviderDataError("SimpleFIN does not report trades", provider_name=PROVIDER_KEY)
