"""Dispute Service: raise and arbitrate disputes.

Raising a dispute freezes the escrow and parks the order in ``disputed``
until an administrator resolves it. Only one dispute per order may be open
at a time; the pre-check below gives a clean error and the partial unique
index on disputes(order_id) WHERE status = 'open' settles any race.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from order_escrow.domain.enums import (
    DISPUTABLE_ORDER_STATUSES,
    DisputeOutcome,
    DisputeStatus,
    OrderEventType,
    TrustEventType,
)
from order_escrow.domain.exceptions import (
    ConcurrentModificationError,
    DisputeAlreadyOpenError,
    DisputeNotFoundError,
    ForbiddenActionError,
    InvalidStateTransitionError,
    OrderNotFoundError,
)
from order_escrow.domain.notifier_protocol import Notification, Notifier
from order_escrow.domain.state_machine import OrderStateMachine, fire_transition
from order_escrow.infrastructure.database.orm_models import Dispute, Order
from order_escrow.infrastructure.database.repositories import (
    DisputeRepository,
    EventRepository,
    OrderRepository,
)
from order_escrow.logging_config import bind_order_context, get_logger
from order_escrow.services.escrow_ledger import EscrowLedger
from order_escrow.services.notifications import LoggingNotifier, dispatch, order_link
from order_escrow.services.trust_service import TrustService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class DisputeResolution:
    dispute_id: str
    order_id: str
    dispute_status: str
    order_status: str
    escrow_status: str | None
    winner_id: str
    loser_id: str


class DisputeService:
    def __init__(self, session: AsyncSession, notifier: Notifier | None = None) -> None:
        self._session = session
        self._notifier = notifier or LoggingNotifier()
        self._dispute_repo = DisputeRepository(session)
        self._order_repo = OrderRepository(session)
        self._event_repo = EventRepository(session)
        self._ledger = EscrowLedger(session)
        self._trust = TrustService(session)

    async def raise_dispute(
        self,
        order_id: uuid.UUID,
        raiser_id: uuid.UUID,
        reason: str,
        description: str,
        evidence: list[str] | None = None,
    ) -> Dispute:
        """Open a dispute against the other party and freeze the escrow."""
        order = await self._get_order_or_raise(order_id)
        respondent_id = self._counterparty(order, raiser_id)

        if await self._dispute_repo.get_open_for_order(order.id) is not None:
            raise DisputeAlreadyOpenError(str(order.id))
        if order.status not in DISPUTABLE_ORDER_STATUSES:
            raise InvalidStateTransitionError(order.status, "party_disputes")

        dispute = Dispute(
            order_id=order.id,
            raised_by=raiser_id,
            respondent_id=respondent_id,
            reason=reason,
            description=description,
            evidence=list(evidence or []),
            status=DisputeStatus.OPEN.value,
        )
        try:
            async with self._session.begin_nested():
                await self._dispute_repo.create(dispute)
        except IntegrityError as err:
            raise DisputeAlreadyOpenError(str(order.id)) from err

        old_status = order.status
        await self._transition_order(
            order, "party_disputes", OrderEventType.DISPUTE_RAISED, str(raiser_id), dispute
        )
        await self._ledger.freeze(order)

        logger.info(
            "dispute.raised",
            dispute_id=str(dispute.id),
            raised_by=str(raiser_id),
            previous_status=old_status,
        )
        await dispatch(
            self._notifier,
            Notification(
                recipient_id=str(respondent_id),
                kind="dispute_raised",
                title="Dispute raised",
                message=f"A dispute was raised on: {order.title}",
                link=order_link(order.id),
            ),
        )
        return dispute

    async def resolve(
        self,
        dispute_id: uuid.UUID,
        outcome: DisputeOutcome,
        resolved_by: str,
        notes: str | None = None,
    ) -> DisputeResolution:
        """Arbitrate an open dispute.

        Client wins: escrow refunded, order refunded.
        Provider wins: escrow released, order completed.
        The losing party takes a dispute_lost trust event.
        """
        dispute = await self._dispute_repo.get_by_id(dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(str(dispute_id))
        if dispute.status != DisputeStatus.OPEN:
            raise InvalidStateTransitionError(
                dispute.status, "resolve_dispute", "Dispute is already resolved"
            )

        order = await self._get_order_or_raise(dispute.order_id)
        if outcome is DisputeOutcome.FOR_RAISER:
            winner_id, loser_id = dispute.raised_by, dispute.respondent_id
        else:
            winner_id, loser_id = dispute.respondent_id, dispute.raised_by

        if not await self._dispute_repo.close(
            dispute,
            outcome.value,
            resolution_notes=notes,
            resolved_by=resolved_by,
            resolved_at=datetime.now(UTC),
        ):
            raise ConcurrentModificationError("Dispute", str(dispute.id), DisputeStatus.OPEN.value)

        client_wins = winner_id == order.client_id
        event_name = "dispute_resolved_refund" if client_wins else "dispute_resolved_release"
        event_type = (
            OrderEventType.DISPUTE_RESOLVED_REFUND
            if client_wins
            else OrderEventType.DISPUTE_RESOLVED_RELEASE
        )
        await self._transition_order(order, event_name, event_type, resolved_by, dispute)

        ledger_outcome = (
            await self._ledger.refund(order) if client_wins else await self._ledger.release(order)
        )
        await self._trust.record(
            loser_id,
            TrustEventType.DISPUTE_LOST,
            related_entity_id=dispute.id,
            related_entity_type="dispute",
        )

        logger.info(
            "dispute.resolved",
            dispute_id=str(dispute.id),
            outcome=outcome.value,
            winner_id=str(winner_id),
            order_status=order.status,
        )
        for party_id in (winner_id, loser_id):
            await dispatch(
                self._notifier,
                Notification(
                    recipient_id=str(party_id),
                    kind="dispute_resolved",
                    title="Dispute resolved",
                    message=f"The dispute on {order.title} was resolved",
                    link=order_link(order.id),
                ),
            )

        return DisputeResolution(
            dispute_id=str(dispute.id),
            order_id=str(order.id),
            dispute_status=dispute.status,
            order_status=order.status,
            escrow_status=ledger_outcome.status,
            winner_id=str(winner_id),
            loser_id=str(loser_id),
        )

    async def get_for_order(self, order_id: uuid.UUID, party_id: uuid.UUID) -> Dispute:
        """Latest dispute on an order, visible to its two parties."""
        order = await self._get_order_or_raise(order_id)
        self._counterparty(order, party_id)
        dispute = await self._dispute_repo.get_latest_for_order(order.id)
        if dispute is None:
            raise DisputeNotFoundError(f"order {order_id}")
        return dispute

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_order_or_raise(self, order_id: uuid.UUID) -> Order:
        order = await self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        bind_order_context(order.id)
        return order

    @staticmethod
    def _counterparty(order: Order, party_id: uuid.UUID) -> uuid.UUID:
        if party_id == order.client_id:
            return order.provider_id
        if party_id == order.provider_id:
            return order.client_id
        raise ForbiddenActionError("You are not a party to this order")

    async def _transition_order(
        self,
        order: Order,
        event_name: str,
        event_type: OrderEventType,
        actor: str,
        dispute: Dispute,
    ) -> None:
        old_status = order.status
        new_status = fire_transition(OrderStateMachine, old_status, event_name)
        values = {"completed_at": datetime.now(UTC)} if new_status == "completed" else {}
        if not await self._order_repo.transition(order, old_status, new_status, **values):
            raise ConcurrentModificationError("Order", str(order.id), old_status)
        await self._event_repo.record(
            order_id=order.id,
            event_type=event_type,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            metadata={"dispute_id": str(dispute.id)},
        )
