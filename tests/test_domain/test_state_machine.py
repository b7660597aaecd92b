"""Tests for the order and escrow-balance state machine guards.

These tests verify that:
    1. All valid transitions are allowed.
    2. All invalid transitions are blocked.
    3. The convenience function fire_transition works.
    4. Edge cases (disputes, revisions, terminal states) behave correctly.
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from order_escrow.domain.exceptions import InvalidStateTransitionError
from order_escrow.domain.state_machine import (
    EscrowBalanceStateMachine,
    OrderStateMachine,
    fire_transition,
)


class TestHappyPath:
    """pending_payment -> completed through delivery and approval."""

    def test_full_lifecycle(self) -> None:
        sm = OrderStateMachine("pending_payment")
        assert sm.status == "pending_payment"

        sm.payment_confirmed()
        assert sm.status == "awaiting_delivery"

        sm.provider_delivers()
        assert sm.status == "delivered"

        sm.client_approves()
        assert sm.status == "completed"

    def test_auto_approval(self) -> None:
        sm = OrderStateMachine("delivered")
        sm.auto_approval_elapsed()
        assert sm.status == "completed"


class TestRevisionPath:
    def test_revision_then_redelivery(self) -> None:
        sm = OrderStateMachine("delivered")
        sm.client_requests_revision()
        assert sm.status == "revision_requested"

        sm.provider_delivers()
        assert sm.status == "delivered"

    def test_cannot_approve_during_revision(self) -> None:
        sm = OrderStateMachine("revision_requested")
        with pytest.raises(TransitionNotAllowed):
            sm.client_approves()


class TestCancellation:
    @pytest.mark.parametrize("status", ["pending_payment", "awaiting_delivery"])
    def test_cancel_before_delivery(self, status: str) -> None:
        sm = OrderStateMachine(status)
        sm.client_cancels()
        assert sm.status == "cancelled"

    @pytest.mark.parametrize("status", ["delivered", "revision_requested", "disputed"])
    def test_cannot_cancel_after_delivery(self, status: str) -> None:
        sm = OrderStateMachine(status)
        with pytest.raises(TransitionNotAllowed):
            sm.client_cancels()


class TestDisputePath:
    @pytest.mark.parametrize("status", ["awaiting_delivery", "delivered", "revision_requested"])
    def test_dispute_from_active_states(self, status: str) -> None:
        sm = OrderStateMachine(status)
        sm.party_disputes()
        assert sm.status == "disputed"

    def test_dispute_resolved_release(self) -> None:
        sm = OrderStateMachine("disputed")
        sm.dispute_resolved_release()
        assert sm.status == "completed"

    def test_dispute_resolved_refund(self) -> None:
        sm = OrderStateMachine("disputed")
        sm.dispute_resolved_refund()
        assert sm.status == "refunded"

    def test_cannot_dispute_unpaid_order(self) -> None:
        sm = OrderStateMachine("pending_payment")
        with pytest.raises(TransitionNotAllowed):
            sm.party_disputes()

    def test_disputed_order_cannot_be_delivered(self) -> None:
        sm = OrderStateMachine("disputed")
        with pytest.raises(TransitionNotAllowed):
            sm.provider_delivers()


class TestInvalidTransitions:
    def test_cannot_skip_payment(self) -> None:
        sm = OrderStateMachine("pending_payment")
        with pytest.raises(TransitionNotAllowed):
            sm.provider_delivers()

    def test_cannot_complete_from_pending(self) -> None:
        sm = OrderStateMachine("pending_payment")
        with pytest.raises(TransitionNotAllowed):
            sm.client_approves()

    @pytest.mark.parametrize("status", ["completed", "cancelled", "refunded"])
    def test_terminal_states_allow_nothing(self, status: str) -> None:
        sm = OrderStateMachine(status)
        assert sm.get_allowed_events() == []

    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            OrderStateMachine("shipped")


class TestEscrowBalanceMachine:
    def test_release_from_held(self) -> None:
        sm = EscrowBalanceStateMachine("held")
        sm.release()
        assert sm.status == "released"

    def test_freeze_then_refund(self) -> None:
        sm = EscrowBalanceStateMachine("held")
        sm.freeze()
        assert sm.status == "disputed"
        sm.refund()
        assert sm.status == "refunded"

    @pytest.mark.parametrize("status", ["released", "refunded"])
    def test_settled_balance_cannot_move(self, status: str) -> None:
        sm = EscrowBalanceStateMachine(status)
        with pytest.raises(TransitionNotAllowed):
            sm.release()

    def test_cannot_freeze_twice(self) -> None:
        sm = EscrowBalanceStateMachine("disputed")
        with pytest.raises(TransitionNotAllowed):
            sm.freeze()


class TestFireTransition:
    def test_valid_transition(self) -> None:
        assert fire_transition(OrderStateMachine, "delivered", "client_approves") == "completed"

    def test_invalid_transition_raises_domain_error(self) -> None:
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            fire_transition(OrderStateMachine, "completed", "client_cancels")
        assert exc_info.value.current_state == "completed"
        assert exc_info.value.attempted == "client_cancels"

    def test_unknown_event_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            fire_transition(OrderStateMachine, "delivered", "teleport")

    def test_escrow_machine(self) -> None:
        assert fire_transition(EscrowBalanceStateMachine, "disputed", "release") == "released"

    def test_allowed_events_from_delivered(self) -> None:
        sm = OrderStateMachine("delivered")
        allowed = set(sm.get_allowed_events())
        assert allowed == {
            "client_approves",
            "client_requests_revision",
            "auto_approval_elapsed",
            "party_disputes",
        }
