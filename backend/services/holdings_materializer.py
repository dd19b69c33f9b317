"""Persists calculated holdings for an account."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from models import Account, Holding
from services.forward_calculator import ForwardCalculator
from services.holdings_gapfill import gapfill
from services.plan_restriction_tracker import PlanRestrictionTracker

logger = logging.getLogger(__name__)

CALCULATED_SOURCE = "calculated"


@dataclass
class MaterializeResult:
    account_id: str
    sparse_count: int = 0
    written_count: int = 0
    skipped: bool = False


class HoldingsMaterializer:
    """Regenerates an account's whole Holding set from its trade log.

    Holdings are never patched: every run deletes the account's rows and
    writes the dense series again.
    """

    def __init__(
        self,
        db: Session,
        account: Account,
        end_date: Optional[date] = None,
        plan_restrictions: Optional[PlanRestrictionTracker] = None,
    ):
        self.db = db
        self.account = account
        self.calculator = ForwardCalculator(
            db, account, end_date=end_date, plan_restrictions=plan_restrictions
        )

    def materialize(self) -> MaterializeResult:
        result = MaterializeResult(account_id=self.account.id)
        if not self.calculator.has_trades():
            # Snapshot-only accounts keep the provider's holdings
            logger.debug("Account %s has no trades; holdings left as imported", self.account.id)
            result.skipped = True
            return result

        sparse = self.calculator.calculate()
        dense = gapfill(sparse, self.calculator.end_date)
        link = self.account.account_provider
        link_id = link.id if link else None

        with self.db.begin_nested():
            self.db.query(Holding).filter(
                Holding.account_id == self.account.id
            ).delete(synchronize_session="fetch")
            self.db.add_all(
                Holding(
                    account_id=row.account_id,
                    security_id=row.security_id,
                    date=row.date,
                    qty=row.qty,
                    price=row.price,
                    amount=row.amount,
                    currency=row.currency,
                    cost_basis=row.cost_basis,
                    account_provider_id=link_id,
                    source=CALCULATED_SOURCE,
                )
                for row in dense
            )
            self.db.flush()

        result.sparse_count = len(sparse)
        result.written_count = len(dense)
        logger.info(
            "Materialized %d holdings (%d sparse) for account %s",
            result.written_count, result.sparse_count, self.account.id,
        )
        return result
