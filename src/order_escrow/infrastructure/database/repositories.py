"""Repository classes for database access.

Repositories encapsulate all SQL and give the service layer a narrow
interface. They accept an AsyncSession and never manage their own
transactions (that's the caller's responsibility).

Status changes go through compare-and-set updates
(``UPDATE ... WHERE id = :id AND status = :expected``): a False return means
another writer got there first and nothing was changed.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select, update

from order_escrow.domain.enums import OrderStatus, PartyRole
from order_escrow.infrastructure.database.orm_models import (
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

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from sqlalchemy.sql.elements import ColumnElement

    from order_escrow.domain.enums import OrderEventType

ZERO = Decimal("0")


async def _compare_and_set(
    session: AsyncSession,
    row: Any,
    expected_status: str,
    values: dict[str, Any],
) -> bool:
    """Apply ``values`` to ``row`` only if its stored status is still ``expected_status``."""
    model = type(row)
    result = await session.execute(
        update(model)
        .where(model.id == row.id, model.status == expected_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await session.refresh(row)
    return result.rowcount == 1


class PartyRepository:
    """Data access for parties, their cached trust and wallet balances."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, party_id: uuid.UUID, for_update: bool = False) -> Party | None:
        """Fetch a party, always reloading from the database.

        With ``for_update`` the row stays locked until the transaction ends
        (a no-op on SQLite, which serialises writers anyway).
        """
        stmt = select(Party).where(Party.id == party_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create(self, party_id: uuid.UUID) -> Party:
        party = await self.get(party_id)
        if party is None:
            party = Party(id=party_id)
            self._session.add(party)
            await self._session.flush()
        return party

    async def adjust_wallet(
        self,
        party_id: uuid.UUID,
        *,
        available: Decimal = ZERO,
        pending: Decimal = ZERO,
        earned: Decimal = ZERO,
    ) -> None:
        """Atomically add signed amounts to a party's wallet columns."""
        await self._session.execute(
            update(Party)
            .where(Party.id == party_id)
            .values(
                available_balance=Party.available_balance + available,
                pending_clearance=Party.pending_clearance + pending,
                total_earned=Party.total_earned + earned,
            )
            .execution_options(synchronize_session=False)
        )

    async def set_trust(self, party: Party, score: int, level: str) -> Party:
        party.trust_score = score
        party.trust_level = level
        await self._session.flush()
        return party


class OrderRepository:
    """Data access for orders."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, order: Order) -> Order:
        self._session.add(order)
        await self._session.flush()
        return order

    async def get_by_id(self, order_id: uuid.UUID) -> Order | None:
        result = await self._session.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def transition(
        self,
        order: Order,
        expected_status: str,
        new_status: str,
        **values: Any,
    ) -> bool:
        """Move the order to ``new_status`` if it is still ``expected_status``.

        Call AFTER the state machine has accepted the transition.
        """
        return await _compare_and_set(
            self._session, order, expected_status, {"status": new_status, **values}
        )

    async def due_for_auto_approval(self, cutoff: datetime, limit: int) -> list[uuid.UUID]:
        """Ids of delivered orders whose latest delivery is at or before ``cutoff``."""
        result = await self._session.execute(
            select(Order.id)
            .where(Order.status == OrderStatus.DELIVERED.value, Order.delivered_at <= cutoff)
            .order_by(Order.delivered_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_for_party(
        self,
        party_id: uuid.UUID,
        role: PartyRole | None = None,
        status: OrderStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Order], int]:
        """One page of the party's orders, newest first, plus the total match count.

        ``role`` narrows to orders where the party is the client or the
        provider; without it both sides are returned.
        """
        conditions: list[ColumnElement[bool]] = []
        if role == PartyRole.CLIENT:
            conditions.append(Order.client_id == party_id)
        elif role == PartyRole.PROVIDER:
            conditions.append(Order.provider_id == party_id)
        else:
            conditions.append(or_(Order.client_id == party_id, Order.provider_id == party_id))
        if status is not None:
            conditions.append(Order.status == status.value)

        total = await self._session.scalar(
            select(func.count()).select_from(Order).where(*conditions)
        )
        result = await self._session.execute(
            select(Order)
            .where(*conditions)
            .order_by(Order.created_at.desc(), Order.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), int(total or 0)


class EscrowRepository:
    """Data access for escrow balances (one per order)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, balance: EscrowBalance) -> EscrowBalance:
        self._session.add(balance)
        await self._session.flush()
        return balance

    async def get_by_order(self, order_id: uuid.UUID) -> EscrowBalance | None:
        result = await self._session.execute(
            select(EscrowBalance)
            .where(EscrowBalance.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def transition(
        self,
        balance: EscrowBalance,
        expected_status: str,
        new_status: str,
        **values: Any,
    ) -> bool:
        return await _compare_and_set(
            self._session, balance, expected_status, {"status": new_status, **values}
        )


class DisputeRepository:
    """Data access for disputes."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, dispute: Dispute) -> Dispute:
        self._session.add(dispute)
        await self._session.flush()
        return dispute

    async def get_by_id(self, dispute_id: uuid.UUID) -> Dispute | None:
        result = await self._session.execute(
            select(Dispute)
            .where(Dispute.id == dispute_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_open_for_order(self, order_id: uuid.UUID) -> Dispute | None:
        result = await self._session.execute(
            select(Dispute).where(Dispute.order_id == order_id, Dispute.status == "open")
        )
        return result.scalar_one_or_none()

    async def get_latest_for_order(self, order_id: uuid.UUID) -> Dispute | None:
        result = await self._session.execute(
            select(Dispute)
            .where(Dispute.order_id == order_id)
            .order_by(Dispute.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def close(self, dispute: Dispute, new_status: str, **values: Any) -> bool:
        """Move an open dispute to a terminal status (compare-and-set on 'open')."""
        return await _compare_and_set(
            self._session, dispute, "open", {"status": new_status, **values}
        )


class TrustEventRepository:
    """Data access for the append-only trust score log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def exists(
        self, subject_id: uuid.UUID, event_type: str, related_entity_id: str
    ) -> bool:
        result = await self._session.execute(
            select(TrustScoreEvent.id).where(
                TrustScoreEvent.subject_id == subject_id,
                TrustScoreEvent.event_type == event_type,
                TrustScoreEvent.related_entity_id == related_entity_id,
            )
        )
        return result.first() is not None

    async def add(self, evt: TrustScoreEvent) -> TrustScoreEvent:
        """Append an event. This is the ONLY write operation allowed."""
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def deltas_for_subject(self, subject_id: uuid.UUID) -> list[int]:
        """All deltas for a subject in the order they were recorded."""
        result = await self._session.execute(
            select(TrustScoreEvent.delta)
            .where(TrustScoreEvent.subject_id == subject_id)
            .order_by(TrustScoreEvent.created_at.asc())
        )
        return list(result.scalars().all())

    async def history(self, subject_id: uuid.UUID, limit: int = 20) -> list[TrustScoreEvent]:
        """Most recent events first."""
        result = await self._session.execute(
            select(TrustScoreEvent)
            .where(TrustScoreEvent.subject_id == subject_id)
            .order_by(TrustScoreEvent.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class TransactionRepository:
    """Data access for gateway payment transactions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, tx: PaymentTransaction) -> PaymentTransaction:
        self._session.add(tx)
        await self._session.flush()
        return tx

    async def get_by_reference(self, reference: str) -> PaymentTransaction | None:
        result = await self._session.execute(
            select(PaymentTransaction)
            .where(PaymentTransaction.reference == reference)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def mark_successful(self, tx: PaymentTransaction, **values: Any) -> bool:
        """Flip pending -> successful. False if another delivery already did."""
        return await _compare_and_set(
            self._session, tx, "pending", {"status": "successful", **values}
        )

    async def list_for_order(self, order_id: uuid.UUID) -> list[PaymentTransaction]:
        result = await self._session.execute(
            select(PaymentTransaction)
            .where(PaymentTransaction.order_id == order_id)
            .order_by(PaymentTransaction.created_at.asc())
        )
        return list(result.scalars().all())


class ReviewRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, review: Review) -> Review:
        self._session.add(review)
        await self._session.flush()
        return review

    async def get_by_order(self, order_id: uuid.UUID) -> Review | None:
        result = await self._session.execute(select(Review).where(Review.order_id == order_id))
        return result.scalar_one_or_none()


class WebhookLogRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, entry: WebhookLog) -> WebhookLog:
        self._session.add(entry)
        await self._session.flush()
        return entry


class EventRepository:
    """Data access for the append-only order audit log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        order_id: uuid.UUID,
        event_type: OrderEventType,
        old_status: str | None,
        new_status: str,
        actor: str = "SYSTEM",
        metadata: dict | None = None,
    ) -> OrderEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = OrderEvent(
            order_id=order_id,
            event_type=event_type.value,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_order(self, order_id: uuid.UUID) -> list[OrderEvent]:
        """All events for an order in chronological order."""
        result = await self._session.execute(
            select(OrderEvent)
            .where(OrderEvent.order_id == order_id)
            .order_by(OrderEvent.created_at.asc())
        )
        return list(result.scalars().all())
