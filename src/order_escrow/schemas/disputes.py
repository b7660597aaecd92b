"""Pydantic schemas for disputes."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from order_escrow.domain.enums import DisputeOutcome


class RaiseDisputeRequest(BaseModel):
    """Request body for raising a dispute. The respondent is derived, never sent."""

    reason: str = Field(..., min_length=5, max_length=100)
    description: str = Field(..., min_length=50, max_length=2000)
    evidence: list[HttpUrl] = Field(default_factory=list, max_length=10)


class ResolveDisputeRequest(BaseModel):
    outcome: DisputeOutcome
    notes: str | None = Field(default=None, max_length=2000)
    resolved_by: str = Field(default="admin", min_length=1, max_length=64)


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    raised_by: uuid.UUID
    respondent_id: uuid.UUID
    reason: str
    description: str
    evidence: list[str] | None
    status: str
    resolution_notes: str | None
    resolved_by: str | None
    resolved_at: datetime | None
    created_at: datetime


class DisputeResolutionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    dispute_id: uuid.UUID
    order_id: uuid.UUID
    dispute_status: str
    order_status: str
    escrow_status: str | None
    winner_id: uuid.UUID
    loser_id: uuid.UUID
