"""Domain enumerations for the order escrow engine.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class OrderStatus(enum.StrEnum):
    """Lifecycle states of an order.

    Transitions are enforced by OrderStateMachine.
    See domain/state_machine.py for the transition table.
    """

    PENDING_PAYMENT = "pending_payment"
    AWAITING_DELIVERY = "awaiting_delivery"
    DELIVERED = "delivered"
    REVISION_REQUESTED = "revision_requested"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_ORDER_STATUSES


TERMINAL_ORDER_STATUSES = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)

DISPUTABLE_ORDER_STATUSES = frozenset(
    {
        OrderStatus.AWAITING_DELIVERY,
        OrderStatus.DELIVERED,
        OrderStatus.REVISION_REQUESTED,
    }
)


class EscrowStatus(enum.StrEnum):
    """States of the single escrow balance attached to a paid order."""

    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"
    DISPUTED = "disputed"


SETTLED_ESCROW_STATUSES = frozenset({EscrowStatus.RELEASED, EscrowStatus.REFUNDED})


class DisputeStatus(enum.StrEnum):
    OPEN = "open"
    RESOLVED_FOR_RAISER = "resolved_for_raiser"
    RESOLVED_FOR_RESPONDENT = "resolved_for_respondent"


class DisputeOutcome(enum.StrEnum):
    """Arbitration verdicts. Values double as the dispute's terminal status."""

    FOR_RAISER = "resolved_for_raiser"
    FOR_RESPONDENT = "resolved_for_respondent"


class TransactionStatus(enum.StrEnum):
    PENDING = "pending"
    SUCCESSFUL = "successful"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PartyRole(enum.StrEnum):
    CLIENT = "client"
    PROVIDER = "provider"


class AccountStatus(enum.StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class OrderEventType(enum.StrEnum):
    """Types of audit events recorded in the order_events table.

    Every order transition MUST produce exactly one event.
    """

    ORDER_CREATED = "ORDER_CREATED"
    PAYMENT_INITIATED = "PAYMENT_INITIATED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    ORDER_APPROVED = "ORDER_APPROVED"
    ORDER_AUTO_APPROVED = "ORDER_AUTO_APPROVED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    DISPUTE_RAISED = "DISPUTE_RAISED"
    DISPUTE_RESOLVED_RELEASE = "DISPUTE_RESOLVED_RELEASE"
    DISPUTE_RESOLVED_REFUND = "DISPUTE_RESOLVED_REFUND"


class TrustEventType(enum.StrEnum):
    """Business events that move a party's trust score.

    Point values live in domain/trust_rules.py.
    """

    # Verification
    LIVENESS_VERIFIED = "liveness_verified"
    PHONE_VERIFIED = "phone_verified"
    EMAIL_VERIFIED = "email_verified"

    # Positive behaviour
    ORDER_COMPLETED = "order_completed"
    POSITIVE_REVIEW_4 = "positive_review_4"
    POSITIVE_REVIEW_5 = "positive_review_5"
    DISPUTE_RESOLVED_PEACEFULLY = "dispute_resolved_peacefully"
    ON_TIME_DELIVERY = "on_time_delivery"
    DELIVERY_STREAK_5 = "delivery_streak_5"
    DELIVERY_STREAK_10 = "delivery_streak_10"
    FAST_RESPONSE = "fast_response"
    HIGH_ACCEPTANCE_RATE = "high_acceptance_rate"
    ACCOUNT_AGE_MONTH = "account_age_month"

    # Negative behaviour
    NEGATIVE_REVIEW_1 = "negative_review_1"
    NEGATIVE_REVIEW_2 = "negative_review_2"
    DISPUTE_LOST = "dispute_lost"
    LATE_DELIVERY = "late_delivery"
    ORDER_CANCELLATION = "order_cancellation"
    FAKE_REVIEW_DETECTED = "fake_review_detected"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"


class TrustLevel(enum.StrEnum):
    NEW = "new"
    VERIFIED = "verified"
    TRUSTED = "trusted"
    TOP_RATED = "top_rated"
    ELITE = "elite"
