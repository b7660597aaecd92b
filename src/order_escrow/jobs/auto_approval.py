"""Auto-approval sweep.

Completes delivered orders whose latest delivery is older than the review
window (settings.auto_approval_days). Each order settles and commits in its
own session, so one bad order never blocks the rest of the batch, and the
provider is only notified once the settlement is committed. A Redis
lock keeps concurrent instances from sweeping at the same time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from order_escrow.config import Settings, get_settings
from order_escrow.domain.exceptions import (
    ConcurrentModificationError,
    InvalidStateTransitionError,
    OrderNotFoundError,
    SettlementError,
)
from order_escrow.infrastructure.database.repositories import OrderRepository
from order_escrow.infrastructure.redis_client import (
    acquire_job_lock,
    get_redis,
    release_job_lock,
)
from order_escrow.logging_config import get_logger
from order_escrow.services.notifications import LoggingNotifier, dispatch
from order_escrow.services.order_service import OrderService, auto_approval_notice

if TYPE_CHECKING:
    import uuid

    import redis.asyncio as aioredis
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from order_escrow.domain.notifier_protocol import Notifier
    from order_escrow.services.order_service import SettlementSummary

logger = get_logger(__name__)

LOCK_NAME = "auto-approval-sweep"
DEFAULT_BATCH_SIZE = 200


@dataclass
class SweepReport:
    lock_acquired: bool = True
    scanned: int = 0
    approved: int = 0
    skipped: int = 0
    failed: int = 0


async def run_auto_approval_sweep(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
    use_lock: bool = True,
    redis: aioredis.Redis | None = None,
    settings: Settings | None = None,
    notifier: Notifier | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> SweepReport:
    """Auto-approve every delivered order past its review window.

    Returns a SweepReport; ``lock_acquired`` is False when another instance
    holds the sweep lock and nothing was done.
    """
    settings = settings or get_settings()
    now = now or datetime.now(UTC)

    token = None
    if use_lock:
        redis = redis or get_redis()
        token = await acquire_job_lock(redis, LOCK_NAME, settings.sweep_lock_ttl_seconds)
        if token is None:
            return SweepReport(lock_acquired=False)

    report = SweepReport()
    cutoff = now - timedelta(days=settings.auto_approval_days)
    notifier = notifier or LoggingNotifier()
    try:
        async with session_factory() as session:
            order_ids = await OrderRepository(session).due_for_auto_approval(cutoff, batch_size)
        report.scanned = len(order_ids)

        for order_id in order_ids:
            summary = await _settle_one(session_factory, order_id, now, settings, report)
            if summary is not None:
                report.approved += 1
                await dispatch(notifier, auto_approval_notice(summary))
    finally:
        if token is not None:
            await release_job_lock(redis, LOCK_NAME, token)

    logger.info(
        "sweep.completed",
        cutoff=cutoff.isoformat(),
        scanned=report.scanned,
        approved=report.approved,
        skipped=report.skipped,
        failed=report.failed,
    )
    return report


async def _settle_one(
    session_factory: async_sessionmaker[AsyncSession],
    order_id: uuid.UUID,
    now: datetime,
    settings: Settings,
    report: SweepReport,
) -> SettlementSummary | None:
    """Auto-approve one order in its own session and commit it.

    Returns None when the order was skipped or failed; the counts go on the
    report.
    """
    async with session_factory() as session:
        service = OrderService(session, settings=settings)
        try:
            summary = await service.auto_approve(order_id, now=now, notify=False)
            await session.commit()
        except (
            ConcurrentModificationError,
            InvalidStateTransitionError,
            OrderNotFoundError,
        ) as exc:
            # Order moved on (revision, dispute) after it was selected.
            report.skipped += 1
            logger.info("sweep.order_skipped", order_id=str(order_id), reason=exc.code)
            return None
        except SettlementError as exc:
            report.failed += 1
            logger.error("sweep.order_failed", order_id=str(order_id), error=exc.message)
            return None
        except SQLAlchemyError as exc:
            await session.rollback()
            report.failed += 1
            logger.exception("sweep.commit_failed", order_id=str(order_id), error=str(exc))
            return None
    return summary
