"""Escrow Ledger: custody of one order's funds.

One balance per paid order, created only when a verified payment arrives.
Movements:
    open     nothing -> held      provider pending_clearance += earnings
    freeze   held -> disputed
    release  held|disputed -> released
             provider available += earnings, total_earned += earnings,
             pending_clearance -= earnings
    refund   held|disputed -> refunded
             client available += gross amount,
             provider pending_clearance -= earnings

Settling an already settled balance is a no-op, so a retried settlement can
never pay twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from order_escrow.domain.enums import SETTLED_ESCROW_STATUSES, EscrowStatus
from order_escrow.domain.exceptions import (
    ConcurrentModificationError,
    EscrowAlreadyExistsError,
    EscrowNotFoundError,
    PaymentAmountMismatchError,
)
from order_escrow.domain.state_machine import EscrowBalanceStateMachine, fire_transition
from order_escrow.infrastructure.database.orm_models import EscrowBalance
from order_escrow.infrastructure.database.repositories import (
    EscrowRepository,
    PartyRepository,
)
from order_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from decimal import Decimal

    from sqlalchemy.ext.asyncio import AsyncSession

    from order_escrow.infrastructure.database.orm_models import Order, PaymentTransaction

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerOutcome:
    """Result of a settlement call.

    ``applied`` is False when nothing moved; ``already_settled`` tells a
    retry apart from a missing balance.
    """

    applied: bool
    status: str | None
    already_settled: bool = False


class EscrowLedger:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._escrow_repo = EscrowRepository(session)
        self._party_repo = PartyRepository(session)

    async def get(self, order_id: object) -> EscrowBalance | None:
        return await self._escrow_repo.get_by_order(order_id)

    async def open(
        self,
        order: Order,
        amount: Decimal,
        transaction: PaymentTransaction | None = None,
    ) -> EscrowBalance:
        """Hold ``amount`` for ``order``. The amount must equal the order's gross."""
        if amount != order.amount:
            raise PaymentAmountMismatchError(
                reference=order.order_number,
                expected=str(order.amount),
                received=str(amount),
            )
        if await self._escrow_repo.get_by_order(order.id) is not None:
            raise EscrowAlreadyExistsError(str(order.id))

        balance = EscrowBalance(
            order_id=order.id,
            transaction_id=transaction.id if transaction is not None else None,
            amount=order.amount,
            status=EscrowStatus.HELD.value,
        )
        try:
            async with self._session.begin_nested():
                await self._escrow_repo.create(balance)
        except IntegrityError as err:
            raise EscrowAlreadyExistsError(str(order.id)) from err

        await self._party_repo.adjust_wallet(order.provider_id, pending=order.provider_earnings)
        logger.info(
            "escrow.held",
            order_id=str(order.id),
            amount=str(order.amount),
            provider_pending=str(order.provider_earnings),
        )
        return balance

    async def freeze(self, order: Order) -> LedgerOutcome:
        """Suspend settlement while a dispute is open. No-op without a balance."""
        balance = await self._escrow_repo.get_by_order(order.id)
        if balance is None:
            return LedgerOutcome(applied=False, status=None)
        await self._move(balance, "freeze", EscrowStatus.DISPUTED, disputed_at=datetime.now(UTC))
        logger.info("escrow.frozen", order_id=str(order.id))
        return LedgerOutcome(applied=True, status=balance.status)

    async def release(self, order: Order) -> LedgerOutcome:
        """Pay the provider their earnings."""
        balance = await self._settleable_balance(order)
        if balance.status in SETTLED_ESCROW_STATUSES:
            return self._already_settled(order, balance)

        await self._move(balance, "release", EscrowStatus.RELEASED, released_at=datetime.now(UTC))
        earnings = order.provider_earnings
        await self._party_repo.adjust_wallet(
            order.provider_id, available=earnings, pending=-earnings, earned=earnings
        )
        logger.info(
            "escrow.released",
            order_id=str(order.id),
            provider_id=str(order.provider_id),
            amount=str(earnings),
            platform_fee=str(order.platform_fee),
        )
        return LedgerOutcome(applied=True, status=balance.status)

    async def refund(self, order: Order) -> LedgerOutcome:
        """Return the full gross amount to the client."""
        balance = await self._settleable_balance(order)
        if balance.status in SETTLED_ESCROW_STATUSES:
            return self._already_settled(order, balance)

        await self._move(balance, "refund", EscrowStatus.REFUNDED, refunded_at=datetime.now(UTC))
        await self._party_repo.adjust_wallet(order.client_id, available=balance.amount)
        await self._party_repo.adjust_wallet(order.provider_id, pending=-order.provider_earnings)
        logger.info(
            "escrow.refunded",
            order_id=str(order.id),
            client_id=str(order.client_id),
            amount=str(balance.amount),
        )
        return LedgerOutcome(applied=True, status=balance.status)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _settleable_balance(self, order: Order) -> EscrowBalance:
        balance = await self._escrow_repo.get_by_order(order.id)
        if balance is None:
            raise EscrowNotFoundError(str(order.id))
        return balance

    async def _move(
        self,
        balance: EscrowBalance,
        event_name: str,
        target: EscrowStatus,
        **values: object,
    ) -> None:
        expected = balance.status
        fire_transition(EscrowBalanceStateMachine, expected, event_name)
        if not await self._escrow_repo.transition(balance, expected, target.value, **values):
            raise ConcurrentModificationError("Escrow balance", str(balance.id), expected)

    @staticmethod
    def _already_settled(order: Order, balance: EscrowBalance) -> LedgerOutcome:
        logger.info("escrow.already_settled", order_id=str(order.id), status=balance.status)
        return LedgerOutcome(applied=False, status=balance.status, already_settled=True)
