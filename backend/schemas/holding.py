"""Pydantic schemas for holdings."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class HoldingResponse(BaseModel):
    """Response schema for one persisted holding."""

    id: str
    account_id: str
    security_id: str
    ticker: Optional[str] = None
    date: date
    qty: Decimal
    price: Optional[Decimal] = None
    amount: Decimal
    currency: str
    cost_basis: Optional[Decimal] = None
    source: Optional[str] = None

    model_config = {"from_attributes": True}


class MaterializeResponse(BaseModel):
    account_id: str
    sparse_count: int
    written_count: int
    skipped: bool

    model_config = {"from_attributes": True}
