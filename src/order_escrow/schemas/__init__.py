"""Pydantic API schemas."""

from order_escrow.schemas.admin import (
    HealthResponse,
    SweepReportResponse,
    TrustRecomputeResponse,
)
from order_escrow.schemas.disputes import (
    DisputeResolutionResponse,
    DisputeResponse,
    RaiseDisputeRequest,
    ResolveDisputeRequest,
)
from order_escrow.schemas.orders import (
    ApproveRequest,
    CancelRequest,
    CreateOrderRequest,
    DeliverRequest,
    InitiatePaymentRequest,
    OrderEventResponse,
    OrderListResponse,
    OrderResponse,
    PaymentInitiationResponse,
    PaymentVerificationResponse,
    RevisionRequest,
    RevisionResponse,
    SettlementResponse,
    VerifyPaymentRequest,
)
from order_escrow.schemas.trust import TrustEventResponse, TrustSummaryResponse
from order_escrow.schemas.webhooks import ChargeData, GatewayWebhook, WebhookAckResponse

__all__ = [
    "ApproveRequest",
    "CancelRequest",
    "ChargeData",
    "CreateOrderRequest",
    "DeliverRequest",
    "DisputeResolutionResponse",
    "DisputeResponse",
    "GatewayWebhook",
    "HealthResponse",
    "InitiatePaymentRequest",
    "OrderEventResponse",
    "OrderListResponse",
    "OrderResponse",
    "PaymentInitiationResponse",
    "PaymentVerificationResponse",
    "RaiseDisputeRequest",
    "ResolveDisputeRequest",
    "RevisionRequest",
    "RevisionResponse",
    "SettlementResponse",
    "SweepReportResponse",
    "TrustEventResponse",
    "TrustRecomputeResponse",
    "TrustSummaryResponse",
    "VerifyPaymentRequest",
    "WebhookAckResponse",
]
