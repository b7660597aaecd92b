"""Payment gateway callback endpoint.

The body is read raw: the audit log stores exactly what arrived, and the
signature header is checked before the payload is trusted.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_escrow.api.deps import (
    get_app_settings,
    get_audit_session_factory,
    get_db_session,
    get_notifier,
)
from order_escrow.config import Settings
from order_escrow.domain.notifier_protocol import Notifier
from order_escrow.schemas.webhooks import WebhookAckResponse
from order_escrow.services.webhook_service import WebhookService

router = APIRouter(prefix="/api/v1/webhooks", tags=["Webhooks"])


@router.post(
    "/flutterwave",
    response_model=WebhookAckResponse,
    summary="Flutterwave payment callback",
)
async def flutterwave_webhook(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
    audit_factory: async_sessionmaker[AsyncSession] = Depends(get_audit_session_factory),
    settings: Settings = Depends(get_app_settings),
    notifier: Notifier = Depends(get_notifier),
) -> WebhookAckResponse:
    """401 on a bad signature; 200 for every authentic callback once handled."""
    svc = WebhookService(session, audit_factory, settings=settings, notifier=notifier)
    ack = await svc.handle(
        raw_body=await request.body(),
        signature=request.headers.get(settings.gateway_signature_header),
        ip_address=request.client.host if request.client else None,
    )
    return WebhookAckResponse.model_validate(ack)
