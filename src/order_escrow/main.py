"""FastAPI application entry point for the order escrow engine.

Lifecycle:
    1. Startup: initialize logging, database (tables in dev), Redis.
    2. Running: serve the REST API at /api/v1/* and /health.
    3. Shutdown: close database and Redis connections gracefully.

Run with:
    uvicorn order_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from order_escrow import __version__
from order_escrow.config import get_settings
from order_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info("app.starting", env=settings.app_env, debug=settings.app_debug)

    from order_escrow.infrastructure.database.engine import close_db, init_db

    await init_db()

    from order_escrow.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except Exception as exc:
        # Only the sweep lock needs Redis; the API serves without it.
        logger.warning("app.redis_unavailable", error=str(exc))

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    logger.info("app.shutting_down")
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory: creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Order Escrow Engine",
        description=(
            "Order lifecycle, escrow custody, disputes and trust scoring "
            "for a two-sided services marketplace."
        ),
        version=__version__,
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    from order_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    from order_escrow.api.routes.admin import router as admin_router
    from order_escrow.api.routes.health import router as health_router
    from order_escrow.api.routes.orders import router as orders_router
    from order_escrow.api.routes.trust import router as trust_router
    from order_escrow.api.routes.webhooks import router as webhooks_router

    app.include_router(health_router)
    app.include_router(orders_router)
    app.include_router(webhooks_router)
    app.include_router(trust_router)
    app.include_router(admin_router)

    return app


# The app instance used by Uvicorn
app = create_app()
