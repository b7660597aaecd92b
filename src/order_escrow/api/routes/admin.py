"""Administrative routes (X-Admin-Key).

Routes:
    POST /api/v1/admin/disputes/{id}/resolve          Arbitrate a dispute
    POST /api/v1/admin/parties/{id}/trust/recompute   Rebuild cached trust
    POST /api/v1/admin/sweeps/auto-approval           Run the sweep now
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_escrow.api.deps import (
    get_app_settings,
    get_audit_session_factory,
    get_db_session,
    get_notifier,
    get_redis_client,
    require_admin,
)
from order_escrow.config import Settings
from order_escrow.domain.notifier_protocol import Notifier
from order_escrow.jobs.auto_approval import run_auto_approval_sweep
from order_escrow.schemas.admin import SweepReportResponse, TrustRecomputeResponse
from order_escrow.schemas.disputes import DisputeResolutionResponse, ResolveDisputeRequest
from order_escrow.services.dispute_service import DisputeService
from order_escrow.services.trust_service import TrustService

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.post(
    "/disputes/{dispute_id}/resolve",
    response_model=DisputeResolutionResponse,
    summary="Resolve an open dispute",
)
async def resolve_dispute(
    dispute_id: uuid.UUID,
    request: ResolveDisputeRequest,
    admin: str = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
) -> DisputeResolutionResponse:
    resolution = await DisputeService(session, notifier=notifier).resolve(
        dispute_id,
        request.outcome,
        resolved_by=request.resolved_by or admin,
        notes=request.notes,
    )
    return DisputeResolutionResponse.model_validate(resolution)


@router.post(
    "/parties/{party_id}/trust/recompute",
    response_model=TrustRecomputeResponse,
    summary="Rebuild a party's cached trust score from its event log",
)
async def recompute_trust(
    party_id: uuid.UUID,
    admin: str = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
) -> TrustRecomputeResponse:
    summary = await TrustService(session).recompute(party_id)
    return TrustRecomputeResponse.model_validate(summary)


@router.post(
    "/sweeps/auto-approval",
    response_model=SweepReportResponse,
    summary="Run the auto-approval sweep",
)
async def trigger_auto_approval_sweep(
    admin: str = Depends(require_admin),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_audit_session_factory),
    redis: aioredis.Redis = Depends(get_redis_client),
    settings: Settings = Depends(get_app_settings),
    notifier: Notifier = Depends(get_notifier),
) -> SweepReportResponse:
    """Runs in its own sessions; the request transaction is not involved."""
    report = await run_auto_approval_sweep(
        session_factory, redis=redis, settings=settings, notifier=notifier
    )
    return SweepReportResponse.model_validate(report)
