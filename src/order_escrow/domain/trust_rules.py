"""Trust score rules: point table, context modifiers and level thresholds.

Pure functions only. Persistence and per-subject serialisation live in
services/trust_service.py.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from order_escrow.domain.enums import TrustEventType, TrustLevel


@dataclass(frozen=True)
class TrustEventRule:
    points: int
    description: str


TRUST_SCORE_EVENTS: dict[TrustEventType, TrustEventRule] = {
    # Verification
    TrustEventType.LIVENESS_VERIFIED: TrustEventRule(25, "Liveness verification completed"),
    TrustEventType.PHONE_VERIFIED: TrustEventRule(10, "Phone number verified"),
    TrustEventType.EMAIL_VERIFIED: TrustEventRule(5, "Email verified"),
    # Positive behaviour
    TrustEventType.ORDER_COMPLETED: TrustEventRule(2, "Order completed successfully"),
    TrustEventType.POSITIVE_REVIEW_4: TrustEventRule(3, "Received 4-star review"),
    TrustEventType.POSITIVE_REVIEW_5: TrustEventRule(4, "Received 5-star review"),
    TrustEventType.DISPUTE_RESOLVED_PEACEFULLY: TrustEventRule(4, "Dispute resolved peacefully"),
    TrustEventType.ON_TIME_DELIVERY: TrustEventRule(1, "Delivered on time"),
    TrustEventType.DELIVERY_STREAK_5: TrustEventRule(5, "5 consecutive on-time deliveries"),
    TrustEventType.DELIVERY_STREAK_10: TrustEventRule(10, "10 consecutive on-time deliveries"),
    TrustEventType.FAST_RESPONSE: TrustEventRule(3, "Consistently fast response rate"),
    TrustEventType.HIGH_ACCEPTANCE_RATE: TrustEventRule(3, "90%+ order acceptance rate"),
    TrustEventType.ACCOUNT_AGE_MONTH: TrustEventRule(2, "Active for one month"),
    # Negative behaviour
    TrustEventType.NEGATIVE_REVIEW_1: TrustEventRule(-5, "Received 1-star review"),
    TrustEventType.NEGATIVE_REVIEW_2: TrustEventRule(-5, "Received 2-star review"),
    TrustEventType.DISPUTE_LOST: TrustEventRule(-10, "Dispute resolved against user"),
    TrustEventType.LATE_DELIVERY: TrustEventRule(-3, "Late delivery"),
    TrustEventType.ORDER_CANCELLATION: TrustEventRule(-5, "Cancelled order"),
    TrustEventType.FAKE_REVIEW_DETECTED: TrustEventRule(-15, "Fake review detected"),
    TrustEventType.SUSPICIOUS_ACTIVITY: TrustEventRule(-20, "Suspicious activity flagged"),
}

LONG_STREAK_THRESHOLD = 10
LONG_STREAK_BONUS = 5
PERFECT_REVIEW_BONUS = 1
SCORE_FLOOR = 0

# (level, minimum score), highest first
_LEVEL_THRESHOLDS: tuple[tuple[TrustLevel, int], ...] = (
    (TrustLevel.ELITE, 90),
    (TrustLevel.TOP_RATED, 70),
    (TrustLevel.TRUSTED, 40),
    (TrustLevel.VERIFIED, 25),
    (TrustLevel.NEW, 0),
)


@dataclass(frozen=True)
class TrustContext:
    """Optional facts that modify the base points of an event."""

    delivery_streak: int | None = None
    review_rating: int | None = None


def calculate_score_change(
    event_type: TrustEventType, context: TrustContext | None = None
) -> int:
    """Return the signed delta for an event, applying context modifiers."""
    base = TRUST_SCORE_EVENTS[event_type].points
    if context is None:
        return base
    if context.delivery_streak and context.delivery_streak >= LONG_STREAK_THRESHOLD:
        return base + LONG_STREAK_BONUS
    if context.review_rating == 5 and event_type is TrustEventType.POSITIVE_REVIEW_5:
        return base + PERFECT_REVIEW_BONUS
    return base


def apply_delta(score: int, delta: int) -> int:
    """Clamp a running score to the floor after applying one delta."""
    return max(SCORE_FLOOR, score + delta)


def fold_score(deltas: Iterable[int]) -> int:
    """Rebuild a score from its event log, clamping at every step."""
    score = SCORE_FLOOR
    for delta in deltas:
        score = apply_delta(score, delta)
    return score


def level_for_score(score: int) -> TrustLevel:
    for level, minimum in _LEVEL_THRESHOLDS:
        if score >= minimum:
            return level
    return TrustLevel.NEW


def review_event_for_rating(rating: int) -> TrustEventType:
    """Trust event credited to a provider for a client rating on approval."""
    if rating == 5:
        return TrustEventType.POSITIVE_REVIEW_5
    if rating == 4:
        return TrustEventType.POSITIVE_REVIEW_4
    if rating == 2:
        return TrustEventType.NEGATIVE_REVIEW_2
    if rating == 1:
        return TrustEventType.NEGATIVE_REVIEW_1
    return TrustEventType.ORDER_COMPLETED
