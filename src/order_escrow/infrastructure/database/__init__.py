"""Database infrastructure: engine, ORM models, and repositories."""

from order_escrow.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    close_db,
    create_tables,
    get_async_session,
    get_session_factory,
    init_db,
)
from order_escrow.infrastructure.database.orm_models import (
    Base,
    Dispute,
    EscrowBalance,
    Order,
    OrderEvent,
    Party,
    PaymentTransaction,
    Review,
    TrustScoreEvent,
    WebhookLog,
)

__all__ = [
    "Base",
    "Dispute",
    "EscrowBalance",
    "Order",
    "OrderEvent",
    "Party",
    "PaymentTransaction",
    "Review",
    "TrustScoreEvent",
    "WebhookLog",
    "build_engine",
    "build_session_factory",
    "close_db",
    "create_tables",
    "get_async_session",
    "get_session_factory",
    "init_db",
]
