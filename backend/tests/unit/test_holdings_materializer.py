"""Tests for HoldingsMaterializer."""

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from models import Account, Holding, Security
from services.holdings_materializer import CALCULATED_SOURCE, HoldingsMaterializer
from services.import_adapter import ImportAdapter
from tests.fixtures import add_trade, link

D1 = date(2024, 3, 1)


def day(n: int) -> date:
    return D1 + timedelta(days=n - 1)


class TestHoldingsMaterializer:
    def test_writes_dense_series(self, db: Session, investment_account: Account, security: Security):
        add_trade(db, investment_account, security, day(1), "10", "100")
        add_trade(db, investment_account, security, day(5), "-10", "120")

        result = HoldingsMaterializer(db, investment_account, end_date=day(7)).materialize()
        db.commit()

        holdings = db.query(Holding).order_by(Holding.date).all()
        assert result.sparse_count == 2
        assert result.written_count == 5
        assert [h.date for h in holdings] == [day(n) for n in range(1, 6)]
        assert [h.qty for h in holdings[:4]] == [Decimal("10")] * 4
        assert holdings[4].qty == Decimal("0")
        assert all(h.source == CALCULATED_SOURCE for h in holdings)

    def test_regenerates_wholesale(self, db: Session, investment_account: Account, security: Security):
        add_trade(db, investment_account, security, day(1), "10", "100")
        stale = Holding(
            account_id=investment_account.id, security_id=security.id, date=day(20),
            qty=Decimal("99"), amount=Decimal("1"), currency="USD",
        )
        db.add(stale)
        db.flush()

        HoldingsMaterializer(db, investment_account, end_date=day(2)).materialize()

        assert sorted(h.date for h in db.query(Holding).all()) == [day(1), day(2)]

    def test_running_twice_is_stable(self, db: Session, investment_account: Account, security: Security):
        add_trade(db, investment_account, security, day(1), "3", "10")
        HoldingsMaterializer(db, investment_account, end_date=day(3)).materialize()
        HoldingsMaterializer(db, investment_account, end_date=day(3)).materialize()
        assert db.query(Holding).count() == 3

    def test_snapshot_only_account_untouched(self, db: Session, investment_account: Account, security: Security):
        ImportAdapter(db, investment_account).import_holding(
            security=security, quantity="5", amount="500", currency="USD",
            date=day(1), price="100", source="simplefin",
        )

        result = HoldingsMaterializer(db, investment_account, end_date=day(3)).materialize()

        assert result.skipped is True
        assert db.query(Holding).count() == 1

    def test_holdings_keep_current_link(self, db: Session, external_account, investment_account: Account, security: Security):
        provider_link = link(db, external_account, investment_account)
        add_trade(db, investment_account, security, day(1), "1", "10")

        HoldingsMaterializer(db, investment_account, end_date=day(1)).materialize()

        assert db.query(Holding).one().account_provider_id == provider_link.id
