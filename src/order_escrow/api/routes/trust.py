"""Trust score read endpoint."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from order_escrow.api.deps import get_db_session
from order_escrow.schemas.trust import TrustSummaryResponse
from order_escrow.services.trust_service import TrustService

router = APIRouter(prefix="/api/v1/parties", tags=["Trust"])


@router.get(
    "/{party_id}/trust",
    response_model=TrustSummaryResponse,
    summary="Trust score, level and recent history",
)
async def get_trust(
    party_id: uuid.UUID,
    limit: int = Query(default=20, ge=1, le=100),
    session: AsyncSession = Depends(get_db_session),
) -> TrustSummaryResponse:
    summary = await TrustService(session).summary(party_id, limit=limit)
    return TrustSummaryResponse.model_validate(summary)
