"""Human-readable identifiers handed to people and to the payment gateway."""

from __future__ import annotations

import secrets
import string
import time
import uuid

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def new_order_number() -> str:
    """ORD-<epoch ms>-<6 uppercase alphanumerics>."""
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"ORD-{_epoch_ms()}-{suffix}"


def new_transaction_reference() -> str:
    """TX-<epoch ms>-<8 hex chars>, sent to the gateway as tx_ref."""
    return f"TX-{_epoch_ms()}-{uuid.uuid4().hex[:8]}"
