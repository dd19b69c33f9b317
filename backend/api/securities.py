"""Security price endpoints, fed by the external market-data job."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.helpers import get_or_404
from database import get_db
from models import Security
from schemas import PriceBatchRequest, PriceBatchResponse, PriceErrorRequest, PriceErrorResponse
from services.plan_restriction_tracker import PlanRestrictionTracker, get_plan_restriction_tracker
from services.price_service import PriceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/securities", tags=["securities"])


def get_plan_restrictions() -> PlanRestrictionTracker:
    """Get the plan-restriction tracker (dependency for injection in tests)."""
    return get_plan_restriction_tracker()


@router.post("/{security_id}/prices", response_model=PriceBatchResponse)
def store_prices(
    security_id: str,
    body: PriceBatchRequest,
    db: Session = Depends(get_db),
    plan_restrictions: PlanRestrictionTracker = Depends(get_plan_restrictions),
):
    """Store daily closes for a security."""
    security = get_or_404(db, Security, security_id, "Security not found")
    written = PriceService(db, plan_restrictions).record_prices(
        security, [(p.date, p.price, p.currency) for p in body.prices], body.provider
    )
    db.commit()
    return PriceBatchResponse(security_id=security.id, written=written)


@router.post("/{security_id}/price-errors", response_model=PriceErrorResponse)
def report_price_error(
    security_id: str,
    body: PriceErrorRequest,
    db: Session = Depends(get_db),
    plan_restrictions: PlanRestrictionTracker = Depends(get_plan_restrictions),
):
    """Record a failed price fetch; plan restrictions are remembered."""
    security = get_or_404(db, Security, security_id, "Security not found")
    required_plan = PriceService(db, plan_restrictions).record_price_error(
        security, body.message, body.provider
    )
    return PriceErrorResponse(security_id=security.id, required_plan=required_plan)
