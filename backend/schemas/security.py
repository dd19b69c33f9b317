"""Pydantic schemas for security price ingestion."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class PricePoint(BaseModel):
    date: date
    price: Decimal = Field(gt=0)
    currency: str = "USD"


class PriceBatchRequest(BaseModel):
    """Daily closes for one security from one market-data provider."""

    provider: str
    prices: list[PricePoint] = Field(min_length=1)


class PriceBatchResponse(BaseModel):
    security_id: str
    written: int


class PriceErrorRequest(BaseModel):
    """The error a market-data provider returned instead of prices."""

    provider: str
    message: str


class PriceErrorResponse(BaseModel):
    security_id: str
    required_plan: Optional[str] = None
