"""Holdings API endpoints."""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload

from api.helpers import get_or_404
from database import get_db
from models import Account, Holding
from schemas import HoldingResponse, MaterializeResponse
from services.holdings_materializer import HoldingsMaterializer
from services.plan_restriction_tracker import get_plan_restriction_tracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["holdings"])


def _holding_response_dict(holding: Holding) -> dict:
    return {
        "id": holding.id,
        "account_id": holding.account_id,
        "security_id": holding.security_id,
        "ticker": holding.security.ticker if holding.security else None,
        "date": holding.date,
        "qty": holding.qty,
        "price": holding.price,
        "amount": holding.amount,
        "currency": holding.currency,
        "cost_basis": holding.cost_basis,
        "source": holding.source,
    }


@router.get("/{account_id}/holdings", response_model=list[HoldingResponse])
def list_holdings(
    account_id: str,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    """List persisted holdings for an account, oldest first."""
    get_or_404(db, Account, account_id, "Account not found")
    query = (
        db.query(Holding)
        .options(joinedload(Holding.security))
        .filter(Holding.account_id == account_id)
    )
    if start_date:
        query = query.filter(Holding.date >= start_date)
    if end_date:
        query = query.filter(Holding.date <= end_date)
    holdings = query.order_by(Holding.date, Holding.security_id).all()
    return [_holding_response_dict(h) for h in holdings]


@router.post("/{account_id}/holdings/recalculate", response_model=MaterializeResponse)
def recalculate_holdings(account_id: str, db: Session = Depends(get_db)):
    """Regenerate the account's holdings from its trade log."""
    account = get_or_404(db, Account, account_id, "Account not found")
    result = HoldingsMaterializer(
        db, account, plan_restrictions=get_plan_restriction_tracker()
    ).materialize()
    db.commit()
    return result
