"""Tests for ImportAdapter."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from models import Account, Entry, Holding, ProviderMerchant, Security
from services.exceptions import ValidationError
from services.import_adapter import ImportAdapter, build_trade_name
from tests.fixtures import get_or_create_security, link


def _txn(adapter: ImportAdapter, **overrides) -> Entry:
    values = {
        "external_id": "T1",
        "amount": "100",
        "currency": "USD",
        "date": date(2024, 3, 1),
        "name": "Grocery Store",
        "source": "plaid",
    }
    values.update(overrides)
    return adapter.import_transaction(**values)


class TestImportTransaction:
    def test_reimport_updates_in_place(self, db: Session, account: Account):
        adapter = ImportAdapter(db, account)

        first = _txn(adapter, amount="100")
        second = _txn(adapter, amount="150")
        db.commit()

        assert first.id == second.id
        entries = db.query(Entry).all()
        assert len(entries) == 1
        assert entries[0].amount == Decimal("150")

    def test_same_external_id_different_source_is_distinct(self, db: Session, account: Account):
        adapter = ImportAdapter(db, account)

        _txn(adapter, source="simplefin")
        _txn(adapter, source="plaid")
        db.commit()

        assert db.query(Entry).count() == 2

    def test_reimport_is_idempotent(self, db: Session, account: Account):
        adapter = ImportAdapter(db, account)
        _txn(adapter)
        _txn(adapter)
        _txn(adapter)
        assert db.query(Entry).count() == 1

    @pytest.mark.parametrize("external_id", ["", "   ", None])
    def test_blank_external_id_rejected(self, db: Session, account: Account, external_id):
        with pytest.raises(ValidationError, match="external_id"):
            _txn(ImportAdapter(db, account), external_id=external_id)

    @pytest.mark.parametrize("source", ["", "  "])
    def test_blank_source_rejected(self, db: Session, account: Account, source):
        with pytest.raises(ValidationError, match="source"):
            _txn(ImportAdapter(db, account), source=source)

    def test_unparseable_amount_rejected(self, db: Session, account: Account):
        with pytest.raises(ValidationError, match="amount"):
            _txn(ImportAdapter(db, account), amount="lots")

    def test_user_modified_protects_enrichment(self, db: Session, account: Account):
        adapter = ImportAdapter(db, account)
        entry = _txn(adapter, category="Food")
        entry.name = "My groceries"
        entry.user_modified = True
        db.flush()

        merchant = adapter.find_or_create_merchant(
            provider_merchant_id="m1", name="Grocer", source="plaid"
        )
        updated = _txn(adapter, amount="120", name="GROCERY #123", category="Shopping", merchant=merchant)

        assert updated.name == "My groceries"
        assert updated.category == "Food"
        assert updated.merchant_id is None
        assert updated.amount == Decimal("120")

    def test_updates_notes_extra_and_pending(self, db: Session, account: Account):
        adapter = ImportAdapter(db, account)
        _txn(adapter, pending=True, extra={"a": 1})
        entry = _txn(adapter, pending=False, notes="settled", extra={"b": 2})

        assert entry.pending is False
        assert entry.notes == "settled"
        assert entry.extra == {"a": 1, "b": 2}

    def test_moves_entry_to_adapter_account(self, db: Session, account: Account):
        other = Account(name="Provider Created", currency="USD")
        db.add(other)
        db.flush()
        _txn(ImportAdapter(db, other))

        entry = _txn(ImportAdapter(db, account))

        assert entry.account_id == account.id
        assert db.query(Entry).count() == 1


class TestMerchants:
    def test_blank_id_or_name_returns_none(self, db: Session, account: Account):
        adapter = ImportAdapter(db, account)
        assert adapter.find_or_create_merchant(provider_merchant_id="", name="Shop", source="plaid") is None
        assert adapter.find_or_create_merchant(provider_merchant_id="m1", name="  ", source="plaid") is None
        assert db.query(ProviderMerchant).count() == 0

    def test_find_or_create_by_source_and_name(self, db: Session, account: Account):
        adapter = ImportAdapter(db, account)
        first = adapter.find_or_create_merchant(provider_merchant_id="m1", name="Shop", source="plaid")
        again = adapter.find_or_create_merchant(provider_merchant_id="m2", name="Shop", source="plaid")
        other = adapter.find_or_create_merchant(provider_merchant_id="m1", name="Shop", source="simplefin")

        assert first.id == again.id
        assert other.id != first.id
        assert db.query(ProviderMerchant).count() == 2


class TestUpdateBalance:
    def test_cash_defaults_to_balance_for_depository(self, db: Session, account: Account):
        ImportAdapter(db, account).update_balance(balance="1500.25", source="simplefin")
        assert account.balance == Decimal("1500.25")
        assert account.cash_balance == Decimal("1500.25")

    def test_investment_keeps_existing_cash(self, db: Session, investment_account: Account):
        ImportAdapter(db, investment_account).update_balance(balance="10000")
        assert investment_account.balance == Decimal("10000")
        assert investment_account.cash_balance == Decimal("250.00")

    def test_explicit_cash_balance(self, db: Session, investment_account: Account):
        ImportAdapter(db, investment_account).update_balance(balance="10000", cash_balance="500")
        assert investment_account.cash_balance == Decimal("500")


class TestImportHolding:
    def _holding(self, adapter, security, on, qty="10", delete_future=False):
        return adapter.import_holding(
            security=security,
            quantity=qty,
            amount=Decimal(qty) * 100,
            currency="USD",
            date=on,
            price="100",
            source="simplefin",
            delete_future_holdings=delete_future,
        )

    def test_upserts_on_account_security_date(self, db: Session, investment_account: Account, security: Security):
        adapter = ImportAdapter(db, investment_account)
        self._holding(adapter, security, date(2024, 3, 1), qty="10")
        self._holding(adapter, security, date(2024, 3, 1), qty="12")

        holdings = db.query(Holding).all()
        assert len(holdings) == 1
        assert holdings[0].qty == Decimal("12")

    def test_delete_future_holdings(self, db: Session, investment_account: Account, security: Security):
        adapter = ImportAdapter(db, investment_account)
        msft = get_or_create_security(db, "MSFT")
        self._holding(adapter, security, date(2024, 3, 10))
        self._holding(adapter, msft, date(2024, 3, 12))

        self._holding(adapter, security, date(2024, 3, 5), delete_future=True)

        dates = sorted(h.date for h in db.query(Holding).all())
        assert dates == [date(2024, 3, 5)]

    def test_incremental_keeps_future_holdings(self, db: Session, investment_account: Account, security: Security):
        adapter = ImportAdapter(db, investment_account)
        self._holding(adapter, security, date(2024, 3, 10))
        self._holding(adapter, security, date(2024, 3, 5))

        assert db.query(Holding).count() == 2

    def test_records_current_link(self, db: Session, connection, external_account, investment_account, security):
        provider_link = link(db, external_account, investment_account)
        holding = self._holding(ImportAdapter(db, investment_account), security, date(2024, 3, 1))
        assert holding.account_provider_id == provider_link.id

    def test_missing_security_rejected(self, db: Session, investment_account: Account):
        with pytest.raises(ValidationError, match="security"):
            self._holding(ImportAdapter(db, investment_account), None, date(2024, 3, 1))

    def test_blank_source_rejected(self, db: Session, investment_account: Account, security: Security):
        with pytest.raises(ValidationError, match="source"):
            ImportAdapter(db, investment_account).import_holding(
                security=security, quantity="1", amount="1", currency="USD",
                date=date(2024, 3, 1), source=" ",
            )


class TestImportTrade:
    def test_generates_buy_and_sell_names(self, db: Session, investment_account: Account, security: Security):
        adapter = ImportAdapter(db, investment_account)
        buy = adapter.import_trade(
            security=security, quantity="5", price="100", amount="500",
            currency="USD", date=date(2024, 3, 1), source="snaptrade",
        )
        sell = adapter.import_trade(
            security=security, quantity="-5", price="110", amount="-550",
            currency="USD", date=date(2024, 3, 2), source="snaptrade",
        )

        assert buy.name == "Buy 5 shares of AAPL"
        assert sell.name == "Sell 5 shares of AAPL"
        assert buy.kind == "trade"
        assert sell.qty == Decimal("-5")

    def test_dedup_by_external_id(self, db: Session, investment_account: Account, security: Security):
        adapter = ImportAdapter(db, investment_account)
        for price in ("100", "101"):
            adapter.import_trade(
                security=security, quantity="5", price=price, amount="500",
                currency="USD", date=date(2024, 3, 1), source="snaptrade", external_id="tr-1",
            )
        trades = db.query(Entry).filter_by(kind="trade").all()
        assert len(trades) == 1
        assert trades[0].price == Decimal("101")

    def test_explicit_name_kept(self, db: Session, investment_account: Account, security: Security):
        entry = ImportAdapter(db, investment_account).import_trade(
            security=security, quantity="1", price="1", amount="1", currency="USD",
            date=date(2024, 3, 1), source="snaptrade", name="Dividend reinvestment",
        )
        assert entry.name == "Dividend reinvestment"

    def test_missing_security_rejected(self, db: Session, investment_account: Account):
        with pytest.raises(ValidationError, match="security"):
            ImportAdapter(db, investment_account).import_trade(
                security=None, quantity="1", price="1", amount="1", currency="USD",
                date=date(2024, 3, 1), source="snaptrade",
            )


class TestBuildTradeName:
    def test_fractional_quantity(self):
        assert build_trade_name(Decimal("0.50000"), "VTI") == "Buy 0.5 shares of VTI"

    def test_whole_quantity_trailing_zeros(self):
        assert build_trade_name(Decimal("-10.000"), "VTI") == "Sell 10 shares of VTI"
