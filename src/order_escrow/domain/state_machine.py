"""Order and escrow-balance state machine guards.

Uses python-statemachine to enforce legal transitions at the domain level.
No matter what a route handler or the sweep job attempts, an illegal
transition (e.g., pending_payment -> completed) raises before any row is
touched. Services instantiate a machine at the record's current status, fire
the event, and only then issue the guarded UPDATE.

Order transition table:
    pending_payment    -> awaiting_delivery   (payment_confirmed)
    pending_payment    -> cancelled           (client_cancels)
    awaiting_delivery  -> cancelled           (client_cancels)
    awaiting_delivery  -> delivered           (provider_delivers)
    revision_requested -> delivered           (provider_delivers)
    delivered          -> completed           (client_approves)
    delivered          -> revision_requested  (client_requests_revision)
    delivered          -> completed           (auto_approval_elapsed)
    awaiting_delivery  -> disputed            (party_disputes)
    delivered          -> disputed            (party_disputes)
    revision_requested -> disputed            (party_disputes)
    disputed           -> completed           (dispute_resolved_release)
    disputed           -> refunded            (dispute_resolved_refund)

Escrow balance transition table:
    held     -> released   (release)
    held     -> refunded   (refund)
    held     -> disputed   (freeze)
    disputed -> released   (release)
    disputed -> refunded   (refund)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from order_escrow.domain.exceptions import InvalidStateTransitionError


class _GuardMixin:
    """Shared helpers for the guard machines below."""

    def _check_start(self, current_status: str) -> None:
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(f"Unknown status '{current_status}'. Valid states: {valid}")

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches the status enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return the event names that can fire from the current state."""
        return [getattr(event, "id", None) or event.name for event in self.allowed_events]


class OrderStateMachine(_GuardMixin, StateMachine):
    """Guards the order lifecycle.

    Usage:
        sm = OrderStateMachine(current_status="delivered")
        sm.client_approves()   # transitions to completed
        sm.status              # "completed"
    """

    # --- States ---
    pending_payment = State("Pending payment", initial=True)
    awaiting_delivery = State("Awaiting delivery")
    delivered = State("Delivered")
    revision_requested = State("Revision requested")
    disputed = State("Disputed")
    completed = State("Completed", final=True)
    cancelled = State("Cancelled", final=True)
    refunded = State("Refunded", final=True)

    # --- Payment ---
    payment_confirmed = pending_payment.to(awaiting_delivery)

    # --- Cancellation (client, before delivery) ---
    client_cancels = pending_payment.to(cancelled) | awaiting_delivery.to(cancelled)

    # --- Delivery / revision ---
    provider_delivers = awaiting_delivery.to(delivered) | revision_requested.to(delivered)
    client_requests_revision = delivered.to(revision_requested)

    # --- Settlement ---
    client_approves = delivered.to(completed)
    auto_approval_elapsed = delivered.to(completed)

    # --- Disputes ---
    party_disputes = (
        awaiting_delivery.to(disputed)
        | delivered.to(disputed)
        | revision_requested.to(disputed)
    )
    dispute_resolved_release = disputed.to(completed)
    dispute_resolved_refund = disputed.to(refunded)

    def __init__(self, current_status: str = "pending_payment") -> None:
        """Initialize the machine at a given status.

        Args:
            current_status: The current OrderStatus value (e.g., "delivered").
        """
        self._check_start(current_status)
        super().__init__(start_value=current_status)


class EscrowBalanceStateMachine(_GuardMixin, StateMachine):
    """Guards the escrow balance attached to a paid order."""

    held = State("Held", initial=True)
    disputed = State("Disputed")
    released = State("Released", final=True)
    refunded = State("Refunded", final=True)

    freeze = held.to(disputed)
    release = held.to(released) | disputed.to(released)
    refund = held.to(refunded) | disputed.to(refunded)

    def __init__(self, current_status: str = "held") -> None:
        self._check_start(current_status)
        super().__init__(start_value=current_status)


def fire_transition(
    machine_cls: type[OrderStateMachine] | type[EscrowBalanceStateMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Validate a transition and return the resulting status.

    Raises:
        InvalidStateTransitionError: If the event cannot fire from current_status.
        ValueError: If the status or event name is unknown.
    """
    sm = machine_cls(current_status=current_status)
    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )
    try:
        event_method()
    except TransitionNotAllowed as err:
        raise InvalidStateTransitionError(current_status, event_name) from err
    return sm.status
