"""Commercial terms for a new order: fee split and delivery deadline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


@dataclass(frozen=True)
class FeeSplit:
    """Gross amount broken into platform fee and provider earnings.

    Invariant: platform_fee + provider_earnings == amount.
    """

    amount: Decimal
    platform_fee: Decimal
    provider_earnings: Decimal


def split_amount(amount: Decimal, fee_rate: Decimal) -> FeeSplit:
    """Compute the platform fee (rounded half-up to the cent) and the remainder."""
    if amount <= 0:
        raise ValueError("Order amount must be positive")
    if not Decimal("0") <= fee_rate < Decimal("1"):
        raise ValueError(f"Fee rate must be in [0, 1), got {fee_rate}")
    gross = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    fee = (gross * fee_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    return FeeSplit(amount=gross, platform_fee=fee, provider_earnings=gross - fee)


def delivery_deadline(start: datetime, delivery_days: int) -> datetime:
    return start + timedelta(days=delivery_days)
