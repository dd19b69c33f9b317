"""Pydantic schemas for relinking sub-accounts to accounts."""

from typing import Optional

from pydantic import BaseModel, Field


class RelinkCandidateResponse(BaseModel):
    sub_account_id: str
    sub_account_name: str
    manual_account_id: str
    manual_account_name: str
    match_reason: str

    model_config = {"from_attributes": True}


class RelinkPair(BaseModel):
    sub_account_id: str
    account_id: str


class RelinkRequest(BaseModel):
    """User-confirmed pairs to link."""

    pairs: list[RelinkPair] = Field(min_length=1)


class RelinkPairResponse(BaseModel):
    sub_account_id: str
    account_id: str
    status: str
    moved_entries: int
    moved_holdings: int
    deleted_holdings: int
    deleted_account_id: Optional[str] = None

    model_config = {"from_attributes": True}


class RelinkResponse(BaseModel):
    results: list[RelinkPairResponse]
    unlinked_count: int
    pending_account_setup: bool

    model_config = {"from_attributes": True}
