"""FastAPI dependency injection providers.

Used with Depends() in route handlers to inject the database session,
settings, the caller's identity and the admin guard.

Authentication happens upstream: the gateway in front of this service
resolves the caller and forwards the party id in X-Party-ID.
"""

from __future__ import annotations

import hmac
import uuid
from collections.abc import AsyncGenerator

import redis.asyncio as aioredis
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_escrow.config import Settings, get_settings
from order_escrow.domain.exceptions import ForbiddenActionError, InvalidInputError
from order_escrow.domain.notifier_protocol import Notifier
from order_escrow.infrastructure.database.engine import get_async_session, get_session_factory
from order_escrow.infrastructure.redis_client import get_redis
from order_escrow.services.notifications import LoggingNotifier


class MissingIdentityError(ForbiddenActionError):
    """No (or an unusable) X-Party-ID header. Mapped to 401."""

    def __init__(self) -> None:
        super().__init__("X-Party-ID header is required")
        self.code = "UNAUTHENTICATED"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_audit_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for writes that must outlive the request transaction."""
    return get_session_factory()


def get_redis_client() -> aioredis.Redis:
    """Provide the Redis client."""
    return get_redis()


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_party_id(x_party_id: str | None = Header(default=None)) -> uuid.UUID:
    """The calling party, as resolved by the upstream auth layer."""
    if not x_party_id:
        raise MissingIdentityError()
    try:
        return uuid.UUID(x_party_id)
    except ValueError as err:
        raise InvalidInputError("X-Party-ID must be a UUID", "X-Party-ID") from err


def require_admin(
    x_admin_key: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> str:
    """Guard for /admin routes; returns the actor label for the audit log."""
    expected = settings.admin_api_key
    if not expected or not x_admin_key or not hmac.compare_digest(
        x_admin_key.encode(), expected.encode()
    ):
        raise ForbiddenActionError("Administrator credentials required")
    return "admin"


def get_notifier() -> Notifier:
    """Notification fan-out used by the services."""
    return LoggingNotifier()
