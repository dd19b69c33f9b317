"""Pydantic schemas for sync passes."""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel


class SyncRequest(BaseModel):
    """Optional window for a sync pass; defaults to the configured window."""

    window_start: Optional[date] = None
    window_end: Optional[date] = None


class SyncResponse(BaseModel):
    """Response schema for a sync pass."""

    id: str
    connection_id: str
    window_start_date: Optional[date] = None
    window_end_date: Optional[date] = None
    status: str
    phase: str
    status_text: Optional[str] = None
    sync_stats: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    attempts: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
