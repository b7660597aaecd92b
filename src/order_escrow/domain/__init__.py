"""Domain layer: pure business logic with no framework dependencies."""

from order_escrow.domain.enums import (
    DisputeOutcome,
    DisputeStatus,
    EscrowStatus,
    OrderEventType,
    OrderStatus,
    TransactionStatus,
    TrustEventType,
    TrustLevel,
)
from order_escrow.domain.exceptions import (
    EscrowEngineError,
    InvalidStateTransitionError,
    OrderNotFoundError,
)
from order_escrow.domain.state_machine import (
    EscrowBalanceStateMachine,
    OrderStateMachine,
    fire_transition,
)

__all__ = [
    "DisputeOutcome",
    "DisputeStatus",
    "EscrowStatus",
    "OrderEventType",
    "OrderStatus",
    "TransactionStatus",
    "TrustEventType",
    "TrustLevel",
    "EscrowEngineError",
    "InvalidStateTransitionError",
    "OrderNotFoundError",
    "EscrowBalanceStateMachine",
    "OrderStateMachine",
    "fire_transition",
]
