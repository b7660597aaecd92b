"""Pydantic schemas for trust scores."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from order_escrow.domain.enums import TrustLevel


class TrustEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_type: str
    delta: int
    previous_score: int
    new_score: int
    related_entity_type: str | None
    related_entity_id: str
    notes: str | None
    created_at: datetime


class TrustSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subject_id: uuid.UUID
    score: int
    level: TrustLevel
    history: list[TrustEventResponse] = Field(default_factory=list)
