"""Pydantic schemas for API request/response validation."""

from .holding import HoldingResponse, MaterializeResponse
from .relink import (
    RelinkCandidateResponse,
    RelinkPair,
    RelinkPairResponse,
    RelinkRequest,
    RelinkResponse,
)
from .security import (
    PriceBatchRequest,
    PriceBatchResponse,
    PriceErrorRequest,
    PriceErrorResponse,
    PricePoint,
)
from .sync import SyncRequest, SyncResponse

__all__ = [
    "HoldingResponse",
    "MaterializeResponse",
    "PriceBatchRequest",
    "PriceBatchResponse",
    "PriceErrorRequest",
    "PriceErrorResponse",
    "PricePoint",
    "RelinkCandidateResponse",
    "RelinkPair",
    "RelinkPairResponse",
    "RelinkRequest",
    "RelinkResponse",
    "SyncRequest",
    "SyncResponse",
]
