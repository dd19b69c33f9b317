"""Import adapter - idempotent conversion of provider data into ledger rows."""

import logging
from datetime import date as date_type
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from integrations.parsing_utils import parse_date, parse_decimal
from models import Account, Entry, Holding, ProviderMerchant, Security
from services.exceptions import ValidationError

logger = logging.getLogger(__name__)


def _require(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value)


def _decimal(value: Any, field_name: str) -> Decimal:
    parsed = parse_decimal(value)
    if parsed is None:
        raise ValidationError(f"{field_name} is not a number: {value!r}")
    return parsed


def _date(value: Any) -> date_type:
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"date is not a valid date: {value!r}")
    return parsed


def _format_qty(qty: Decimal) -> str:
    return format(qty.normalize(), "f")


def build_trade_name(quantity: Decimal, ticker: str) -> str:
    """Default display name for a trade, e.g. ``"Buy 5 shares of AAPL"``."""
    verb = "Sell" if quantity < 0 else "Buy"
    return f"{verb} {_format_qty(abs(quantity))} shares of {ticker}"


class ImportAdapter:
    """Writes provider records for one account into the ledger.

    Transactions (and trades with an external id) are keyed by
    ``(external_id, source)`` across the whole ledger, so re-importing an
    upstream record updates the existing Entry instead of duplicating it.
    The adapter only flushes; callers own the transaction and are expected
    to wrap each record in its own savepoint.
    """

    def __init__(self, db: Session, account: Account):
        self.db = db
        self.account = account

    # -- lookups ---------------------------------------------------------

    def _find_entry(self, external_id: str, source: str) -> Optional[Entry]:
        return (
            self.db.query(Entry)
            .filter(Entry.external_id == external_id, Entry.source == source)
            .first()
        )

    def _claim(self, entry: Entry) -> None:
        """Attach an existing entry to this adapter's account."""
        if entry.account_id != self.account.id:
            logger.info(
                "Moving entry %s/%s from account %s to %s",
                entry.source, entry.external_id, entry.account_id, self.account.id,
            )
            entry.account_id = self.account.id

    def _insert_or_refetch(self, entry: Entry, external_id: str, source: str) -> Entry:
        """Insert a new keyed entry, tolerating a concurrent insert of the same key."""
        try:
            with self.db.begin_nested():
                self.db.add(entry)
                self.db.flush()
            return entry
        except IntegrityError:
            existing = self._find_entry(external_id, source)
            if existing is None:
                raise
            logger.info("Entry %s/%s inserted concurrently; updating it", source, external_id)
            return existing

    # -- transactions ----------------------------------------------------

    def import_transaction(
        self,
        *,
        external_id: str,
        amount: Any,
        currency: str,
        date: Any,
        name: str,
        source: str,
        category: Optional[str] = None,
        merchant: Optional[ProviderMerchant] = None,
        notes: Optional[str] = None,
        extra: Optional[dict] = None,
        pending: bool = False,
    ) -> Entry:
        """Create or update the transaction Entry for an upstream record.

        Raises:
            ValidationError: If external_id or source is blank, or amount/date
                cannot be parsed.
        """
        external_id = _require(external_id, "external_id")
        source = _require(source, "source")
        amount = _decimal(amount, "amount")
        entry_date = _date(date)

        entry = self._find_entry(external_id, source)
        if entry is None:
            entry = self._insert_or_refetch(
                Entry(
                    account_id=self.account.id,
                    kind="transaction",
                    external_id=external_id,
                    source=source,
                    name=name or "Unknown",
                    date=entry_date,
                    amount=amount,
                    currency=currency,
                ),
                external_id,
                source,
            )
            created = True
        else:
            created = False
        self._claim(entry)

        entry.amount = amount
        entry.currency = currency
        entry.date = entry_date
        entry.pending = bool(pending)
        if notes is not None:
            entry.notes = notes
        if extra is not None:
            entry.extra = {**(entry.extra or {}), **extra}

        # User edits win over provider enrichment
        if not entry.user_modified:
            entry.name = name or entry.name or "Unknown"
            if category is not None:
                entry.category = category
            if merchant is not None:
                entry.merchant_id = merchant.id

        self.db.flush()
        logger.debug(
            "%s transaction %s/%s for account %s",
            "Created" if created else "Updated", source, external_id, self.account.id,
        )
        return entry

    # -- merchants -------------------------------------------------------

    def find_or_create_merchant(
        self,
        *,
        provider_merchant_id: Optional[str],
        name: Optional[str],
        source: str,
        website_url: Optional[str] = None,
        logo_url: Optional[str] = None,
    ) -> Optional[ProviderMerchant]:
        """Resolve a provider merchant, or None when the data is insufficient.

        Merchant enrichment is optional, so missing ids or names never raise.
        """
        if not (provider_merchant_id and str(provider_merchant_id).strip()):
            return None
        if not (name and name.strip()):
            return None
        name = name.strip()

        merchant = (
            self.db.query(ProviderMerchant)
            .filter_by(source=source, name=name)
            .first()
        )
        if merchant:
            return merchant

        merchant = ProviderMerchant(
            source=source,
            name=name,
            provider_merchant_id=str(provider_merchant_id),
            website_url=website_url,
            logo_url=logo_url,
        )
        try:
            with self.db.begin_nested():
                self.db.add(merchant)
                self.db.flush()
        except IntegrityError:
            return (
                self.db.query(ProviderMerchant)
                .filter_by(source=source, name=name)
                .first()
            )
        return merchant

    # -- balances --------------------------------------------------------

    def update_balance(
        self,
        *,
        balance: Any,
        cash_balance: Any = None,
        source: Optional[str] = None,
    ) -> Account:
        """Write the current (and cash) balance onto the account.

        Cash balance defaults to the balance for non-investment accounts;
        investment accounts keep their previous cash balance.
        """
        balance = _decimal(balance, "balance")
        if cash_balance is not None:
            cash = _decimal(cash_balance, "cash_balance")
        elif self.account.is_investment:
            cash = self.account.cash_balance if self.account.cash_balance is not None else Decimal("0")
        else:
            cash = balance

        self.account.balance = balance
        self.account.cash_balance = cash
        self.db.flush()
        logger.debug(
            "Balance for account %s set to %s (cash %s) from %s",
            self.account.id, balance, cash, source or "unknown source",
        )
        return self.account

    # -- investments -----------------------------------------------------

    def _current_link_id(self) -> Optional[str]:
        link = self.account.account_provider
        return link.id if link else None

    def import_holding(
        self,
        *,
        security: Optional[Security],
        quantity: Any,
        amount: Any,
        currency: str,
        date: Any,
        price: Any = None,
        source: str,
        delete_future_holdings: bool = False,
    ) -> Holding:
        """Upsert the holding for (account, security, date).

        With ``delete_future_holdings`` the provider is treated as sending a
        complete forward snapshot: every holding of the account dated after
        ``date`` is removed first so corrected positions do not linger.
        """
        if security is None:
            raise ValidationError("security is required")
        source = _require(source, "source")
        holding_date = _date(date)
        quantity = _decimal(quantity, "quantity")
        amount = _decimal(amount, "amount")
        price = parse_decimal(price)

        if delete_future_holdings:
            deleted = (
                self.db.query(Holding)
                .filter(
                    Holding.account_id == self.account.id,
                    Holding.date > holding_date,
                )
                .delete(synchronize_session="fetch")
            )
            if deleted:
                logger.info(
                    "Deleted %d future holdings for account %s after %s",
                    deleted, self.account.id, holding_date,
                )

        holding = (
            self.db.query(Holding)
            .filter_by(
                account_id=self.account.id,
                security_id=security.id,
                date=holding_date,
            )
            .first()
        )
        if holding is None:
            holding = Holding(
                account_id=self.account.id,
                security_id=security.id,
                date=holding_date,
            )
            self.db.add(holding)

        holding.qty = quantity
        holding.amount = amount
        holding.price = price
        holding.currency = currency
        holding.source = source
        holding.account_provider_id = self._current_link_id()
        self.db.flush()
        return holding

    def import_trade(
        self,
        *,
        security: Optional[Security],
        quantity: Any,
        price: Any,
        amount: Any,
        currency: str,
        date: Any,
        source: str,
        name: Optional[str] = None,
        external_id: Optional[str] = None,
    ) -> Entry:
        """Record a trade (negative quantity for sells) in the trade log.

        Trades with an ``external_id`` are deduplicated on
        ``(external_id, source)`` like transactions.
        """
        if security is None:
            raise ValidationError("security is required")
        source = _require(source, "source")
        quantity = _decimal(quantity, "quantity")
        price = _decimal(price, "price")
        amount = _decimal(amount, "amount")
        trade_date = _date(date)
        trade_name = name.strip() if name and name.strip() else build_trade_name(quantity, security.ticker)

        entry = None
        if external_id is not None:
            external_id = _require(external_id, "external_id")
            entry = self._find_entry(external_id, source)

        if entry is None:
            entry = Entry(
                account_id=self.account.id,
                kind="trade",
                external_id=external_id,
                source=source,
                name=trade_name,
                date=trade_date,
                amount=amount,
                currency=currency,
                security_id=security.id,
                qty=quantity,
                price=price,
            )
            if external_id is not None:
                entry = self._insert_or_refetch(entry, external_id, source)
            else:
                self.db.add(entry)
        self._claim(entry)

        entry.security_id = security.id
        entry.qty = quantity
        entry.price = price
        entry.amount = amount
        entry.currency = currency
        entry.date = trade_date
        if not entry.user_modified:
            entry.name = trade_name

        self.db.flush()
        return entry
