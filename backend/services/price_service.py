"""Price ingestion from market-data collaborators.

The external price job posts each security's daily closes, or the error the
market-data provider returned instead. Errors that name a required plan are
kept in the plan-restriction tracker so missing prices can be explained
when holdings are recalculated.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from models import Security, SecurityPrice
from services.plan_restriction_tracker import PlanRestrictionTracker, extract_required_plan

logger = logging.getLogger(__name__)


class PriceService:
    """Writes SecurityPrice rows and records price-fetch failures."""

    def __init__(self, db: Session, plan_restrictions: PlanRestrictionTracker):
        self.db = db
        self.plan_restrictions = plan_restrictions

    def record_prices(
        self,
        security: Security,
        prices: Iterable[tuple[date, Decimal, str]],
        provider: str,
    ) -> int:
        """Upsert one price per (security, date) and lift any plan restriction.

        Returns:
            Number of price rows written.
        """
        existing = {
            row.date: row
            for row in self.db.query(SecurityPrice).filter(SecurityPrice.security_id == security.id)
        }
        written = 0
        for price_date, price, currency in prices:
            row = existing.get(price_date)
            if row is None:
                row = SecurityPrice(security_id=security.id, date=price_date)
                self.db.add(row)
                existing[price_date] = row
            row.price = Decimal(price)
            row.currency = currency
            written += 1
        self.db.flush()

        if written:
            self.plan_restrictions.clear(security.id, provider)
        logger.info("Stored %d prices for %s from %s", written, security.ticker, provider)
        return written

    def record_price_error(
        self, security: Security, error_message: str, provider: str
    ) -> Optional[str]:
        """Record a failed price fetch.

        Returns:
            The required plan when the error is a plan restriction, else None.
        """
        if self.plan_restrictions.record(security.id, error_message, provider):
            return extract_required_plan(error_message)
        logger.warning(
            "Price fetch for %s from %s failed: %s", security.ticker, provider, error_message
        )
        return None
