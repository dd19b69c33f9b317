"""Forward portfolio calculator - rebuilds daily holdings from the trade log.

Every run recomputes from the account start date; nothing from a previous
run is trusted. The core (``calculate_holdings``) is a pure function so it
can be exercised without a database.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from config import settings
from models import Account, Entry, Security, SecurityPrice
from services.plan_restriction_tracker import PlanRestrictionTracker

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class TradeDelta:
    """Signed quantity change of one security from one trade."""

    security_id: str
    qty: Decimal
    price: Optional[Decimal] = None
    currency: Optional[str] = None


@dataclass(frozen=True)
class PricePoint:
    price: Decimal
    currency: str


@dataclass(frozen=True)
class HoldingRow:
    """A computed (not yet persisted) holding."""

    account_id: str
    security_id: str
    date: date
    qty: Decimal
    price: Decimal
    amount: Decimal
    currency: str
    cost_basis: Optional[Decimal] = None


PriceLookup = Callable[[str, date], Optional[PricePoint]]


def apply_trades(
    portfolio: Mapping[str, Decimal],
    trades: Iterable[TradeDelta],
    direction: str = "forward",
) -> dict[str, Decimal]:
    """Return a new quantity map with the day's trade deltas applied.

    ``direction="reverse"`` negates each delta, which walks a known current
    portfolio backwards in time.
    """
    if direction not in ("forward", "reverse"):
        raise ValueError(f"direction must be 'forward' or 'reverse', got {direction!r}")
    result = dict(portfolio)
    for trade in trades:
        change = -trade.qty if direction == "reverse" else trade.qty
        result[trade.security_id] = result.get(trade.security_id, ZERO) + change
    return result


class CostBasisTracker:
    """Weighted-average cost of buys per security."""

    def __init__(self):
        self._total_cost: dict[str, Decimal] = defaultdict(lambda: ZERO)
        self._total_qty: dict[str, Decimal] = defaultdict(lambda: ZERO)

    def record(self, trades: Iterable[TradeDelta]) -> None:
        for trade in trades:
            if trade.qty <= 0 or trade.price is None:
                continue
            self._total_cost[trade.security_id] += trade.price * trade.qty
            self._total_qty[trade.security_id] += trade.qty

    def cost_basis(self, security_id: str) -> Optional[Decimal]:
        qty = self._total_qty.get(security_id, ZERO)
        if qty == 0:
            return None
        return self._total_cost[security_id] / qty


def retain_active_positions(rows: Iterable[HoldingRow]) -> list[HoldingRow]:
    """Keep open positions plus the first zero row that closes a position.

    A row is kept when ``qty > 0 and amount > 0``, or when ``qty == 0`` and
    the previous row of the same security had ``qty > 0``. A security that
    was never held yields nothing.
    """
    by_security: dict[str, list[HoldingRow]] = defaultdict(list)
    for row in rows:
        by_security[row.security_id].append(row)

    kept: list[HoldingRow] = []
    for security_id in by_security:
        prev_qty: Optional[Decimal] = None
        for row in sorted(by_security[security_id], key=lambda r: r.date):
            if row.qty > 0 and row.amount > 0:
                kept.append(row)
            elif row.qty == 0 and prev_qty is not None and prev_qty > 0:
                kept.append(row)
            prev_qty = row.qty
    kept.sort(key=lambda r: (r.date, r.security_id))
    return kept


def calculate_holdings(
    account_id: str,
    start_date: date,
    end_date: date,
    security_ids: Iterable[str],
    trades_by_date: Mapping[date, list[TradeDelta]],
    price_lookup: PriceLookup,
) -> list[HoldingRow]:
    """Walk each day from start to end and emit the sparse holdings truth."""
    portfolio: dict[str, Decimal] = {sid: ZERO for sid in security_ids}
    cost_basis = CostBasisTracker()
    candidates: list[HoldingRow] = []

    # Trades before the start date make up the opening positions
    for trade_date in sorted(d for d in trades_by_date if d < start_date):
        cost_basis.record(trades_by_date[trade_date])
        portfolio = apply_trades(portfolio, trades_by_date[trade_date])

    current = start_date
    while current <= end_date:
        trades = trades_by_date.get(current, [])
        if trades:
            cost_basis.record(trades)
            portfolio = apply_trades(portfolio, trades)

        for security_id, qty in portfolio.items():
            point = price_lookup(security_id, current)
            if point is None:
                continue
            candidates.append(
                HoldingRow(
                    account_id=account_id,
                    security_id=security_id,
                    date=current,
                    qty=qty,
                    price=point.price,
                    amount=qty * point.price,
                    currency=point.currency,
                    cost_basis=cost_basis.cost_basis(security_id),
                )
            )
        current += timedelta(days=1)

    return retain_active_positions(candidates)


class PortfolioCache:
    """Trades and prices of one account, loaded once per calculation."""

    def __init__(self, db: Session, account: Account, start_date: date, end_date: date):
        trades = (
            db.query(Entry)
            .filter(
                Entry.account_id == account.id,
                Entry.kind == "trade",
                Entry.security_id.isnot(None),
                Entry.date <= end_date,
            )
            .order_by(Entry.date, Entry.created_at)
            .all()
        )

        self.trades_by_date: dict[date, list[TradeDelta]] = defaultdict(list)
        self._trade_prices: dict[tuple[str, date], PricePoint] = {}
        for entry in trades:
            qty = Decimal(entry.qty or 0)
            price = Decimal(entry.price) if entry.price is not None else None
            self.trades_by_date[entry.date].append(
                TradeDelta(entry.security_id, qty, price, entry.currency)
            )
            if price is not None:
                self._trade_prices[(entry.security_id, entry.date)] = PricePoint(
                    price, entry.currency
                )

        self.security_ids: list[str] = sorted({e.security_id for e in trades})

        self._prices: dict[tuple[str, date], PricePoint] = {}
        if self.security_ids:
            rows = (
                db.query(SecurityPrice)
                .filter(
                    SecurityPrice.security_id.in_(self.security_ids),
                    SecurityPrice.date >= start_date,
                    SecurityPrice.date <= end_date,
                )
                .all()
            )
            for row in rows:
                self._prices[(row.security_id, row.date)] = PricePoint(
                    Decimal(row.price), row.currency
                )

    def get_trades(self, on: date) -> list[TradeDelta]:
        return self.trades_by_date.get(on, [])

    def get_price(self, security_id: str, on: date) -> Optional[PricePoint]:
        """Market price for the day, else the price of a trade that day."""
        return self._prices.get((security_id, on)) or self._trade_prices.get((security_id, on))


class ForwardCalculator:
    """Reconstructs an account's sparse holdings history from its trades."""

    def __init__(
        self,
        db: Session,
        account: Account,
        end_date: Optional[date] = None,
        plan_restrictions: Optional[PlanRestrictionTracker] = None,
    ):
        self.db = db
        self.account = account
        self.end_date = end_date or date.today()
        self.plan_restrictions = plan_restrictions
        self._cache: Optional[PortfolioCache] = None

    def start_date(self) -> date:
        """Explicit account start date, else the earliest entry, else today."""
        if self.account.start_date:
            return self.account.start_date
        earliest = (
            self.db.query(func.min(Entry.date))
            .filter(Entry.account_id == self.account.id)
            .scalar()
        )
        return earliest or self.end_date

    @property
    def portfolio_cache(self) -> PortfolioCache:
        if self._cache is None:
            self._cache = PortfolioCache(
                self.db, self.account, self.start_date(), self.end_date
            )
        return self._cache

    def has_trades(self) -> bool:
        return bool(self.portfolio_cache.security_ids)

    def calculate(self) -> list[HoldingRow]:
        """Return the sparse holdings truth for the account."""
        start = self.start_date()
        cache = self.portfolio_cache
        rows = calculate_holdings(
            self.account.id,
            start,
            self.end_date,
            cache.security_ids,
            cache.trades_by_date,
            cache.get_price,
        )
        self._log_unpriced(cache.security_ids, rows)
        logger.info(
            "Forward calculation for account %s: %d securities, %s..%s, %d holdings",
            self.account.id, len(cache.security_ids), start, self.end_date, len(rows),
        )
        return rows

    def _log_unpriced(self, security_ids: list[str], rows: list[HoldingRow]) -> None:
        """Log securities that produced no rows because no price was ever found."""
        priced = {r.security_id for r in rows}
        for security_id in security_ids:
            if security_id in priced:
                continue
            if any(
                self.portfolio_cache.get_price(security_id, d) is not None
                for d in self._trade_dates(security_id)
            ):
                # Priced at some point, just never held with a positive value
                continue
            ticker = self.db.get(Security, security_id)
            restriction = None
            if self.plan_restrictions:
                restriction = self.plan_restrictions.restriction_for(
                    security_id, settings.MARKET_DATA_PROVIDER
                )
            if restriction:
                logger.warning(
                    "No prices for %s in account %s; requires %s plan on %s",
                    ticker.ticker if ticker else security_id, self.account.id,
                    restriction["required_plan"], restriction["provider"],
                )
            else:
                logger.warning(
                    "No prices for %s in account %s; security omitted from holdings",
                    ticker.ticker if ticker else security_id, self.account.id,
                )

    def _trade_dates(self, security_id: str) -> list[date]:
        return [
            d for d, trades in self.portfolio_cache.trades_by_date.items()
            if any(t.security_id == security_id for t in trades)
        ]
