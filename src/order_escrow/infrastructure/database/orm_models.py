"""SQLAlchemy 2.0 ORM models for the order escrow engine.

Tables:
    1. parties              Clients and providers with cached trust and wallet.
    2. orders               The order lifecycle record (never deleted).
    3. escrow_balances      One held balance per paid order.
    4. disputes             At most one open per order (partial unique index).
    5. trust_score_events   Append-only score deltas per party.
    6. payment_transactions Gateway payment intents keyed by tx reference.
    7. reviews              One client review per completed order.
    8. webhook_logs         Raw inbound gateway callbacks, valid or not.
    9. order_events         Append-only audit log of every order transition.

Design decisions:
    - UUIDs as primary keys.
    - Numeric(14, 2) for money, never floats.
    - Status columns are strings guarded by CHECK constraints and by the
      state machines in domain/state_machine.py.
    - Uniqueness is enforced by the database wherever a race is possible:
      one escrow per order, one open dispute per order, one trust event per
      (subject, type, related entity), one transaction per reference.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

MONEY = Numeric(14, 2)


def utcnow() -> datetime:
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always comes back in UTC.

    SQLite drops the offset on storage; this restores it on load so
    comparisons against datetime.now(UTC) work on every backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _status_check(column: str, values: list[str], name: str) -> CheckConstraint:
    quoted = ", ".join(f"'{v}'" for v in values)
    return CheckConstraint(f"{column} IN ({quoted})", name=name)


# ---------------------------------------------------------------------------
# 1. parties
# ---------------------------------------------------------------------------
class Party(Base):
    """A client or provider. Roles are per order, not per party."""

    __tablename__ = "parties"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    display_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    account_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active", comment="active | suspended"
    )

    # --- Cached trust (rebuilt from trust_score_events on recompute) ---
    trust_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trust_level: Mapped[str] = mapped_column(String(20), nullable=False, default="new")

    # --- Wallet ---
    available_balance: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0"), comment="Withdrawable funds"
    )
    pending_clearance: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
        default=Decimal("0"),
        comment="Provider earnings held in escrow, not yet released",
    )
    total_earned: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        _status_check("account_status", ["active", "suspended"], "ck_party_account_status"),
        CheckConstraint("trust_score >= 0", name="ck_party_trust_floor"),
    )

    def __repr__(self) -> str:
        return f"<Party id={self.id} score={self.trust_score} level={self.trust_level}>"


# ---------------------------------------------------------------------------
# 2. orders
# ---------------------------------------------------------------------------
ORDER_STATUSES = [
    "pending_payment",
    "awaiting_delivery",
    "delivered",
    "revision_requested",
    "completed",
    "disputed",
    "cancelled",
    "refunded",
]


class Order(Base):
    """A unit of paid work between a client and a provider."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(
        String(32), nullable=False, unique=True, comment="Human-readable ORD-<ms>-<suffix>"
    )

    # --- Participants ---
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("parties.id"), nullable=False
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("parties.id"), nullable=False
    )
    service_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    job_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    proposal_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    # --- Terms ---
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, comment="Gross amount")
    platform_fee: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    provider_earnings: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="NGN")
    delivery_deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    max_revisions: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    revision_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # --- Status (guarded by OrderStateMachine) ---
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="pending_payment")

    # --- Delivery ---
    delivery_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_files: Mapped[list | None] = mapped_column(
        JSONB, nullable=True, comment="URLs of delivered artifacts"
    )
    delivered_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="Latest delivery; starts the auto-approval window"
    )
    revision_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Settlement ---
    client_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    client_review: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        _status_check("status", ORDER_STATUSES, "ck_order_valid_status"),
        CheckConstraint("amount > 0", name="ck_order_positive_amount"),
        CheckConstraint(
            "platform_fee + provider_earnings = amount", name="ck_order_fee_split"
        ),
        CheckConstraint(
            "revision_count >= 0 AND revision_count <= max_revisions",
            name="ck_order_revision_bounds",
        ),
        CheckConstraint("client_id <> provider_id", name="ck_order_distinct_parties"),
        Index("idx_order_status", "status"),
        Index("idx_order_client", "client_id"),
        Index("idx_order_provider", "provider_id"),
        Index("idx_order_status_delivered_at", "status", "delivered_at"),
    )

    def __repr__(self) -> str:
        return f"<Order {self.order_number} status={self.status} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 3. escrow_balances
# ---------------------------------------------------------------------------
class EscrowBalance(Base):
    """Funds held on behalf of exactly one order."""

    __tablename__ = "escrow_balances"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False, unique=True
    )
    transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("payment_transactions.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="held", comment="Guarded by EscrowBalanceStateMachine"
    )
    held_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        _status_check(
            "status", ["held", "released", "refunded", "disputed"], "ck_escrow_valid_status"
        ),
        CheckConstraint("amount > 0", name="ck_escrow_positive_amount"),
    )

    def __repr__(self) -> str:
        return f"<EscrowBalance order={self.order_id} status={self.status} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 4. disputes
# ---------------------------------------------------------------------------
class Dispute(Base):
    __tablename__ = "disputes"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False
    )
    raised_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("parties.id"), nullable=False
    )
    respondent_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("parties.id"),
        nullable=False,
        comment="Derived from the order, never caller-supplied",
    )
    reason: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    evidence: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="open")
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        _status_check(
            "status",
            ["open", "resolved_for_raiser", "resolved_for_respondent"],
            "ck_dispute_valid_status",
        ),
        Index(
            "uq_dispute_one_open_per_order",
            "order_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("idx_dispute_order", "order_id"),
    )

    def __repr__(self) -> str:
        return f"<Dispute id={self.id} order={self.order_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 5. trust_score_events (append-only)
# ---------------------------------------------------------------------------
class TrustScoreEvent(Base):
    """One signed score delta for a party. Never updated or deleted."""

    __tablename__ = "trust_score_events"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    subject_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("parties.id"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_score: Mapped[int] = mapped_column(Integer, nullable=False)
    new_score: Mapped[int] = mapped_column(Integer, nullable=False)
    related_entity_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    related_entity_id: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="Order, dispute or review id; dedup key"
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "subject_id", "event_type", "related_entity_id", name="uq_trust_event_once"
        ),
        Index("idx_trust_event_subject_created", "subject_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<TrustScoreEvent {self.event_type} {self.delta:+d} subject={self.subject_id}>"


# ---------------------------------------------------------------------------
# 6. payment_transactions
# ---------------------------------------------------------------------------
class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False
    )
    reference: Mapped[str] = mapped_column(
        String(40), nullable=False, unique=True, comment="tx_ref sent to the gateway"
    )
    gateway_tx_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False, default="payment")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    gateway_response: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        _status_check(
            "status", ["pending", "successful", "failed", "cancelled"], "ck_tx_valid_status"
        ),
        CheckConstraint("amount > 0", name="ck_tx_positive_amount"),
        Index("idx_tx_order", "order_id"),
    )

    def __repr__(self) -> str:
        return f"<PaymentTransaction {self.reference} status={self.status}>"


# ---------------------------------------------------------------------------
# 7. reviews
# ---------------------------------------------------------------------------
class Review(Base):
    __tablename__ = "reviews"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False, unique=True
    )
    reviewer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("parties.id"), nullable=False
    )
    reviewee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("parties.id"), nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    review_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    communication_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quality_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    professionalism_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating"),)


# ---------------------------------------------------------------------------
# 8. webhook_logs
# ---------------------------------------------------------------------------
class WebhookLog(Base):
    """Every inbound gateway callback, written before it is processed."""

    __tablename__ = "webhook_logs"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider: Mapped[str] = mapped_column(String(30), nullable=False)
    event: Mapped[str | None] = mapped_column(String(60), nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    received_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# 9. order_events (append-only audit log)
# ---------------------------------------------------------------------------
class OrderEvent(Base):
    """Immutable record of one order transition.

    APPEND-ONLY: no UPDATE or DELETE at the application level.
    """

    __tablename__ = "order_events"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    old_status: Mapped[str | None] = mapped_column(
        String(24), nullable=True, comment="Null for creation"
    )
    new_status: Mapped[str] = mapped_column(String(24), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(64), nullable=False, default="SYSTEM", comment="Party id, admin id or SYSTEM"
    )
    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_order_event_order", "order_id"),
        Index("idx_order_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<OrderEvent {self.event_type} {self.old_status}->{self.new_status} "
            f"order={self.order_id}>"
        )
