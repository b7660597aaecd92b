"""Webhook audit log, written outside the request's unit of work.

Each entry gets its own short session and commit, so the record of an
inbound callback survives even when processing it fails and rolls back.
Failures to write are logged and never interrupt the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from order_escrow.infrastructure.database.orm_models import WebhookLog
from order_escrow.infrastructure.database.repositories import WebhookLogRepository
from order_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)


class WebhookAuditLog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        provider: str,
        event: str | None,
        verified: bool,
        payload: dict[str, Any] | None,
        notes: str | None = None,
        ip_address: str | None = None,
    ) -> bool:
        """Persist one callback. Returns False if the write failed."""
        try:
            async with self._session_factory() as session:
                await WebhookLogRepository(session).add(
                    WebhookLog(
                        provider=provider,
                        event=event,
                        verified=verified,
                        payload=payload,
                        notes=notes,
                        ip_address=ip_address,
                    )
                )
                await session.commit()
        except Exception as exc:
            logger.warning("webhook_log.write_failed", provider=provider, error=str(exc))
            return False
        return True
