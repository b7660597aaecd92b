"""Schemas for health and administrative endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from order_escrow.domain.enums import TrustLevel


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"


class SweepReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lock_acquired: bool
    scanned: int
    approved: int
    skipped: int
    failed: int


class TrustRecomputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subject_id: str
    score: int
    level: TrustLevel
