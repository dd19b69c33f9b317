"""Provider syncers - turn stored raw payloads into ledger events.

Each provider variant implements the same two entry points,
``perform_sync(sync)`` and ``perform_post_sync()``, and is selected from
``SYNCER_CLASSES`` by the connection's provider key.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from decimal import InvalidOperation
from typing import Callable, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from integrations.exceptions import ProviderDataError
from integrations.provider_protocol import ProviderClient
from models import Account, Connection, ExternalAccount, Sync
from services.exceptions import LinkIntegrityError, ValidationError
from services.import_adapter import ImportAdapter
from services.results import BatchSummary, Err, Ok, Result
from services.security_service import SecurityService

logger = logging.getLogger(__name__)


@dataclass
class ProcessingReport:
    """What one processing phase did across all sub-accounts."""

    summary: BatchSummary = field(default_factory=BatchSummary)
    processed_account_ids: list[str] = field(default_factory=list)
    skipped_sub_account_ids: list[str] = field(default_factory=list)
    imported_by_kind: Counter = field(default_factory=Counter)

    def as_stats(self) -> dict:
        return {
            **self.summary.as_stats(),
            "accounts_processed": len(self.processed_account_ids),
            "accounts_skipped": len(self.skipped_sub_account_ids),
            "transactions_imported": self.imported_by_kind["transaction"],
            "holdings_imported": self.imported_by_kind["holding"],
            "trades_imported": self.imported_by_kind["trade"],
        }


class Syncer:
    """Shared processing for every provider variant.

    Records are imported one at a time, each inside its own savepoint, and
    committed as soon as they land. A bad record rolls back alone and shows
    up as an ``Err`` in the batch summary; a fault that aborts the pass
    leaves the records imported before it in place.
    """

    provider_key: str = ""
    delete_future_holdings: bool = False
    process_trades: bool = False

    def __init__(self, db: Session, connection: Connection, client: ProviderClient):
        self.db = db
        self.connection = connection
        self.client = client
        self.report = ProcessingReport()

    # -- entry points ----------------------------------------------------

    def perform_sync(self, sync: Sync) -> ProcessingReport:
        sub_accounts = (
            self.db.query(ExternalAccount)
            .filter(ExternalAccount.connection_id == self.connection.id)
            .order_by(ExternalAccount.created_at, ExternalAccount.id)
            .all()
        )
        for external_account in sub_accounts:
            account = external_account.linked_account
            if account is None:
                error = LinkIntegrityError(
                    f"Sub-account {external_account.id} reached processing without a link"
                )
                logger.error("%s: %s", self.provider_key, error)
                self.report.skipped_sub_account_ids.append(external_account.id)
                self.report.summary.add(Err("integrity", str(error), external_account.id))
                continue
            self.process_account(external_account, account)
            self.report.processed_account_ids.append(account.id)
        return self.report

    def perform_post_sync(self) -> None:
        logger.info(
            "%s sync for connection %s: %d accounts, %d records imported, %d errors",
            self.provider_key, self.connection.id,
            len(self.report.processed_account_ids),
            self.report.summary.imported, self.report.summary.error_count,
        )

    # -- per account -----------------------------------------------------

    def process_account(self, external_account: ExternalAccount, account: Account) -> None:
        adapter = ImportAdapter(self.db, account)
        currency = external_account.currency or account.currency

        self._record(
            "balance", external_account.provider_account_id,
            lambda: self._import_balance(adapter, external_account),
        )
        for raw in external_account.raw_transactions_payload or []:
            self._record_raw(
                "transaction", raw, lambda raw: self._import_transaction(adapter, raw, currency)
            )
        for raw in external_account.raw_holdings_payload or []:
            self._record_raw(
                "holding", raw, lambda raw: self._import_holding(adapter, raw, currency)
            )
        if self.process_trades:
            for raw in external_account.raw_trades_payload or []:
                self._record_raw(
                    "trade", raw, lambda raw: self._import_trade(adapter, raw, currency)
                )

    def _record_raw(self, kind: str, raw, importer: Callable[[dict], object]) -> Result:
        """Import one raw payload element; anything but a dict is a data error."""
        if not isinstance(raw, dict):
            return self._fold(kind, None, Err("data", f"malformed {kind} record: {raw!r}"))
        return self._record(kind, raw.get("id"), lambda: importer(raw))

    def _record(self, kind: str, record_id, action: Callable) -> Result:
        """Run one record import in a savepoint and commit it on success.

        Each imported record is committed on its own, so a later failure in
        the pass never discards records already written.
        """
        record_id = str(record_id) if record_id is not None else None
        try:
            with self.db.begin_nested():
                result: Result = Ok(action())
            self.db.commit()
        except ValidationError as e:
            result = Err("validation", str(e), record_id)
        except (ProviderDataError, KeyError, TypeError, ValueError, InvalidOperation) as e:
            result = Err("data", str(e), record_id)
        except IntegrityError as e:
            result = Err("integrity", str(e.orig), record_id)
        return self._fold(kind, record_id, result)

    def _fold(self, kind: str, record_id: str | None, result: Result) -> Result:
        if result.ok:
            if kind != "balance":
                self.report.imported_by_kind[kind] += 1
                self.report.summary.add(result)
        else:
            if result.record_id is None and record_id is not None:
                result = Err(result.kind, result.message, record_id)
            logger.warning(
                "%s: skipped %s %s on connection %s: %s",
                self.provider_key, kind, record_id, self.connection.id, result.message,
            )
            self.report.summary.add(result)
        return result

    # -- record importers ------------------------------------------------

    def _import_balance(self, adapter: ImportAdapter, external_account: ExternalAccount):
        record = self.client.map_account(external_account.raw_payload or {})
        balance = record.balance if record.balance is not None else record.available_balance
        if balance is None:
            return None
        return adapter.update_balance(balance=balance, source=self.provider_key)

    def _import_transaction(self, adapter: ImportAdapter, raw: dict, currency: str):
        record = self.client.map_transaction(raw, currency)
        merchant = adapter.find_or_create_merchant(
            provider_merchant_id=record.merchant_id,
            name=record.merchant_name,
            source=self.provider_key,
        )
        return adapter.import_transaction(
            external_id=record.id,
            amount=record.amount,
            currency=record.currency,
            date=record.date,
            name=record.description,
            source=self.provider_key,
            merchant=merchant,
            pending=record.pending,
        )

    def _import_holding(self, adapter: ImportAdapter, raw: dict, currency: str):
        record = self.client.map_holding(raw, currency)
        security = SecurityService.from_ref(self.db, record.security_ref)
        return adapter.import_holding(
            security=security,
            quantity=record.quantity,
            amount=record.market_value,
            currency=record.currency,
            date=record.as_of_date,
            price=record.price,
            source=self.provider_key,
            delete_future_holdings=self.delete_future_holdings,
        )

    def _import_trade(self, adapter: ImportAdapter, raw: dict, currency: str):
        record = self.client.map_trade(raw, currency)
        security = SecurityService.from_ref(self.db, record.security_ref)
        return adapter.import_trade(
            security=security,
            quantity=record.quantity,
            price=record.price,
            amount=record.amount,
            currency=record.currency,
            date=record.date,
            source=self.provider_key,
            external_id=record.id,
        )


class SimpleFINSyncer(Syncer):
    """Bank and brokerage snapshots.

    Holdings arrive as a complete snapshot as of the fetch date, so any
    later holdings are stale and removed on import.
    """

    provider_key = "simplefin"
    delete_future_holdings = True
    process_trades = False


class SnapTradeSyncer(Syncer):
    """Brokerage activity: trades feed the trade log, holdings are incremental.

    No SnapTrade client ships with the project; the variant runs against any
    ProviderClient registered under ``snaptrade`` by the host application.
    """

    provider_key = "snaptrade"
    delete_future_holdings = False
    process_trades = True

    def perform_post_sync(self) -> None:
        super().perform_post_sync()
        if self.report.imported_by_kind["trade"]:
            logger.info(
                "snaptrade: %d trades imported; holdings will be recalculated for %d accounts",
                self.report.imported_by_kind["trade"], len(self.report.processed_account_ids),
            )


SYNCER_CLASSES: dict[str, type[Syncer]] = {
    SimpleFINSyncer.provider_key: SimpleFINSyncer,
    SnapTradeSyncer.provider_key: SnapTradeSyncer,
}


def get_syncer_class(
    provider_key: str, syncer_classes: Optional[Mapping[str, type[Syncer]]] = None
) -> type[Syncer]:
    """Look up the syncer variant for a provider key.

    ``syncer_classes`` replaces the built-in registry when given.

    Raises:
        ValueError: If the provider has no syncer.
    """
    try:
        return (SYNCER_CLASSES if syncer_classes is None else syncer_classes)[provider_key]
    except KeyError:
        raise ValueError(f"No syncer registered for provider '{provider_key}'") from None
