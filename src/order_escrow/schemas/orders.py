"""Pydantic schemas for the order API.

Request bounds are enforced here, so malformed input is rejected before any
state is read. Response schemas read straight from ORM rows and service
result dataclasses (from_attributes).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateOrderRequest(BaseModel):
    """Request body for creating an order (client is the caller)."""

    provider_id: uuid.UUID = Field(..., description="Party that will deliver the work")
    title: str = Field(..., min_length=10, max_length=200)
    description: str = Field(..., min_length=20, max_length=2000)
    amount: Decimal = Field(
        ...,
        ge=1000,
        le=10_000_000,
        decimal_places=2,
        description="Gross amount charged to the client",
        examples=["50000.00"],
    )
    delivery_days: int = Field(..., ge=1, le=90)
    max_revisions: int | None = Field(
        default=None,
        ge=0,
        le=10,
        description="Revision allowance (server default applies when omitted)",
    )
    service_id: uuid.UUID | None = None
    job_id: uuid.UUID | None = None
    proposal_id: uuid.UUID | None = None


class InitiatePaymentRequest(BaseModel):
    redirect_url: HttpUrl | None = Field(
        default=None, description="Where the gateway sends the client after checkout"
    )


class DeliverRequest(BaseModel):
    """Request body for a provider delivery."""

    delivery_note: str = Field(..., min_length=20, max_length=1000)
    delivery_files: list[HttpUrl] = Field(
        ..., min_length=1, max_length=10, description="URLs of the delivered artifacts"
    )


class ApproveRequest(BaseModel):
    """Request body for the client approving a delivery."""

    rating: int = Field(..., ge=1, le=5)
    review_text: str | None = Field(default=None, min_length=10, max_length=500)
    communication_rating: int | None = Field(default=None, ge=1, le=5)
    quality_rating: int | None = Field(default=None, ge=1, le=5)
    professionalism_rating: int | None = Field(default=None, ge=1, le=5)


class RevisionRequest(BaseModel):
    revision_note: str = Field(..., min_length=20, max_length=500)


class CancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class VerifyPaymentRequest(BaseModel):
    """Gateway transaction id from the checkout redirect, used when no callback arrived."""

    transaction_id: str = Field(..., min_length=1, max_length=64)
    tx_ref: str | None = Field(
        default=None, max_length=64, description="Defaults to the order's latest transaction"
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class OrderResponse(BaseModel):
    """Response schema for an order."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    client_id: uuid.UUID
    provider_id: uuid.UUID
    service_id: uuid.UUID | None
    job_id: uuid.UUID | None
    proposal_id: uuid.UUID | None
    title: str
    description: str
    amount: Decimal
    platform_fee: Decimal
    provider_earnings: Decimal
    currency: str
    status: str
    delivery_deadline: datetime
    max_revisions: int
    revision_count: int
    delivery_note: str | None
    delivery_files: list[str] | None
    delivered_at: datetime | None
    revision_note: str | None
    client_rating: int | None
    client_review: str | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime
    escrow_status: str | None = None


class OrderEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    event_type: str
    old_status: str | None
    new_status: str
    actor: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class PaymentInitiationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tx_ref: str = Field(validation_alias="reference")
    payment_link: str
    amount: Decimal
    currency: str


class PaymentVerificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    outcome: str
    tx_ref: str
    order_status: str


class OrderListResponse(BaseModel):
    """One page of the caller's orders, newest first."""

    items: list[OrderResponse]
    page: int
    per_page: int
    total: int
    total_pages: int


class SettlementResponse(BaseModel):
    """Outcome of an approval (manual or automatic)."""

    model_config = ConfigDict(from_attributes=True)

    order_id: uuid.UUID
    status: str
    escrow_status: str | None
    amount: Decimal
    platform_fee: Decimal
    provider_earnings: Decimal
    provider_trust_delta: int
    client_trust_delta: int
    auto_approved: bool


class RevisionResponse(BaseModel):
    order_id: uuid.UUID
    status: str
    revision_count: int
    max_revisions: int
