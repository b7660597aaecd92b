"""Order lifecycle REST API routes.

The caller is identified by the X-Party-ID header; every action checks that
the caller holds the right role on the order.

Routes:
    POST   /api/v1/orders                    Create an order (caller = client)
    GET    /api/v1/orders                    Caller's orders (role, status filters)
    GET    /api/v1/orders/{id}               Order details incl. escrow status
    GET    /api/v1/orders/{id}/events        Audit trail
    POST   /api/v1/orders/{id}/payments      Start checkout (tx_ref + link)
    POST   /api/v1/orders/{id}/payments/verify  Confirm a charge by asking the gateway
    POST   /api/v1/orders/{id}/deliver       Provider delivers
    POST   /api/v1/orders/{id}/approve       Client approves (atomic settlement)
    PATCH  /api/v1/orders/{id}/revision      Client requests a revision
    POST   /api/v1/orders/{id}/dispute       Either party raises a dispute
    GET    /api/v1/orders/{id}/dispute       Latest dispute on the order
    POST   /api/v1/orders/{id}/cancel        Client cancels before delivery
"""

from __future__ import annotations

import math
import uuid

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from order_escrow.api.deps import get_app_settings, get_db_session, get_notifier, get_party_id
from order_escrow.config import Settings
from order_escrow.domain.enums import OrderStatus, PartyRole
from order_escrow.domain.notifier_protocol import Notifier
from order_escrow.logging_config import bind_order_context
from order_escrow.schemas.disputes import DisputeResponse, RaiseDisputeRequest
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
from order_escrow.services.dispute_service import DisputeService
from order_escrow.services.order_service import MAX_PAGE_SIZE, OrderService

router = APIRouter(prefix="/api/v1/orders", tags=["Orders"])


def _order_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    notifier: Notifier = Depends(get_notifier),
) -> OrderService:
    return OrderService(session, settings=settings, notifier=notifier)


def _dispute_service(
    session: AsyncSession = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
) -> DisputeService:
    return DisputeService(session, notifier=notifier)


async def _order_response(svc: OrderService, order: object) -> OrderResponse:
    response = OrderResponse.model_validate(order)
    escrow_status = await svc.get_escrow_status(response.id)
    return response.model_copy(update={"escrow_status": escrow_status})


# ---------------------------------------------------------------------------
# Create / Read
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=OrderResponse,
    status_code=201,
    summary="Create an order",
)
async def create_order(
    request: CreateOrderRequest,
    party_id: uuid.UUID = Depends(get_party_id),
    svc: OrderService = Depends(_order_service),
) -> OrderResponse:
    """Create an order in pending_payment. The caller becomes the client."""
    order = await svc.create_order(
        client_id=party_id,
        provider_id=request.provider_id,
        title=request.title,
        description=request.description,
        amount=request.amount,
        delivery_days=request.delivery_days,
        max_revisions=request.max_revisions,
        service_id=request.service_id,
        job_id=request.job_id,
        proposal_id=request.proposal_id,
    )
    return await _order_response(svc, order)


@router.get("", response_model=OrderListResponse, summary="List the caller's orders")
async def list_orders(
    status: OrderStatus | None = Query(default=None),
    role: PartyRole | None = Query(default=None, description="Only orders where I am this side"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    party_id: uuid.UUID = Depends(get_party_id),
    svc: OrderService = Depends(_order_service),
) -> OrderListResponse:
    result = await svc.list_orders(
        party_id, role=role, status=status, page=page, per_page=per_page
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in result.items],
        page=result.page,
        per_page=result.per_page,
        total=result.total,
        total_pages=math.ceil(result.total / result.per_page),
    )


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order details")
async def get_order(
    order_id: uuid.UUID,
    party_id: uuid.UUID = Depends(get_party_id),
    svc: OrderService = Depends(_order_service),
) -> OrderResponse:
    order = await svc.get_order_for_party(order_id, party_id)
    return await _order_response(svc, order)


@router.get(
    "/{order_id}/events",
    response_model=list[OrderEventResponse],
    summary="Get the order audit trail",
)
async def get_order_events(
    order_id: uuid.UUID,
    party_id: uuid.UUID = Depends(get_party_id),
    svc: OrderService = Depends(_order_service),
) -> list[OrderEventResponse]:
    events = await svc.get_events(order_id, party_id)
    return [OrderEventResponse.model_validate(e) for e in events]


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------


@router.post(
    "/{order_id}/payments",
    response_model=PaymentInitiationResponse,
    status_code=201,
    summary="Start checkout for a pending order",
)
async def initiate_payment(
    order_id: uuid.UUID,
    request: InitiatePaymentRequest | None = Body(default=None),
    party_id: uuid.UUID = Depends(get_party_id),
    svc: OrderService = Depends(_order_service),
) -> PaymentInitiationResponse:
    redirect_url = str(request.redirect_url) if request and request.redirect_url else None
    initiation = await svc.initiate_payment(order_id, party_id, redirect_url=redirect_url)
    return PaymentInitiationResponse.model_validate(initiation)


@router.post(
    "/{order_id}/payments/verify",
    response_model=PaymentVerificationResponse,
    summary="Confirm a payment with the gateway when the callback is missing",
)
async def verify_payment(
    order_id: uuid.UUID,
    request: VerifyPaymentRequest,
    party_id: uuid.UUID = Depends(get_party_id),
    svc: OrderService = Depends(_order_service),
) -> PaymentVerificationResponse:
    bind_order_context(order_id, party_id)
    verification = await svc.verify_payment(
        order_id, party_id, gateway_tx_id=request.transaction_id, tx_ref=request.tx_ref
    )
    return PaymentVerificationResponse.model_validate(verification)


# ---------------------------------------------------------------------------
# Delivery / Revision / Approval
# ---------------------------------------------------------------------------


@router.post("/{order_id}/deliver", response_model=OrderResponse, summary="Deliver work")
async def deliver_order(
    order_id: uuid.UUID,
    request: DeliverRequest,
    party_id: uuid.UUID = Depends(get_party_id),
    svc: OrderService = Depends(_order_service),
) -> OrderResponse:
    bind_order_context(order_id, party_id)
    order = await svc.deliver(
        order_id,
        party_id,
        note=request.delivery_note,
        file_refs=[str(url) for url in request.delivery_files],
    )
    return await _order_response(svc, order)


@router.patch(
    "/{order_id}/revision",
    response_model=RevisionResponse,
    summary="Request a revision of a delivered order",
)
async def request_revision(
    order_id: uuid.UUID,
    request: RevisionRequest,
    party_id: uuid.UUID = Depends(get_party_id),
    svc: OrderService = Depends(_order_service),
) -> RevisionResponse:
    bind_order_context(order_id, party_id)
    order = await svc.request_revision(order_id, party_id, note=request.revision_note)
    return RevisionResponse(
        order_id=order.id,
        status=order.status,
        revision_count=order.revision_count,
        max_revisions=order.max_revisions,
    )


@router.post(
    "/{order_id}/approve",
    response_model=SettlementResponse,
    summary="Approve delivery and release escrow",
)
async def approve_order(
    order_id: uuid.UUID,
    request: ApproveRequest,
    party_id: uuid.UUID = Depends(get_party_id),
    svc: OrderService = Depends(_order_service),
) -> SettlementResponse:
    bind_order_context(order_id, party_id)
    summary = await svc.approve(
        order_id,
        party_id,
        rating=request.rating,
        review_text=request.review_text,
        communication_rating=request.communication_rating,
        quality_rating=request.quality_rating,
        professionalism_rating=request.professionalism_rating,
    )
    return SettlementResponse.model_validate(summary)


# ---------------------------------------------------------------------------
# Disputes
# ---------------------------------------------------------------------------


@router.post(
    "/{order_id}/dispute",
    response_model=DisputeResponse,
    status_code=201,
    summary="Raise a dispute",
)
async def raise_dispute(
    order_id: uuid.UUID,
    request: RaiseDisputeRequest,
    party_id: uuid.UUID = Depends(get_party_id),
    svc: DisputeService = Depends(_dispute_service),
) -> DisputeResponse:
    bind_order_context(order_id, party_id)
    dispute = await svc.raise_dispute(
        order_id,
        party_id,
        reason=request.reason,
        description=request.description,
        evidence=[str(url) for url in request.evidence],
    )
    return DisputeResponse.model_validate(dispute)


@router.get("/{order_id}/dispute", response_model=DisputeResponse, summary="Get the dispute")
async def get_dispute(
    order_id: uuid.UUID,
    party_id: uuid.UUID = Depends(get_party_id),
    svc: DisputeService = Depends(_dispute_service),
) -> DisputeResponse:
    dispute = await svc.get_for_order(order_id, party_id)
    return DisputeResponse.model_validate(dispute)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


@router.post("/{order_id}/cancel", response_model=OrderResponse, summary="Cancel an order")
async def cancel_order(
    order_id: uuid.UUID,
    request: CancelRequest | None = Body(default=None),
    party_id: uuid.UUID = Depends(get_party_id),
    svc: OrderService = Depends(_order_service),
) -> OrderResponse:
    bind_order_context(order_id, party_id)
    order = await svc.cancel(order_id, party_id, reason=request.reason if request else None)
    return await _order_response(svc, order)
