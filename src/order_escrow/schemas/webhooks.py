"""Gateway callback payloads (Flutterwave shape).

Only the fields the engine acts on are declared; everything else is kept
(extra="allow") so the raw payload survives into the transaction record.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ChargeData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int | str | None = Field(default=None, description="Gateway transaction id")
    tx_ref: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    status: str | None = None


class GatewayWebhook(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: str | None = None
    data: ChargeData = Field(default_factory=ChargeData)


class WebhookAckResponse(BaseModel):
    """Every authentic callback is acknowledged with 200 so the gateway stops retrying."""

    model_config = ConfigDict(from_attributes=True)

    status: str = "received"
    outcome: str
    tx_ref: str | None = None
