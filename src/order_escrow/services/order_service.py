"""Order Service: core business logic for the order lifecycle.

This is the application layer that coordinates between:
    - Domain state machine (transition guard)
    - Repositories (compare-and-set writes)
    - Escrow ledger (custody of funds)
    - Trust service (score events)
    - Event log (audit trail)

REST routes, the webhook adapter and the auto-approval sweep all call into
this service, so every rule lives in one place.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from order_escrow.config import Settings, get_settings
from order_escrow.domain.enums import (
    AccountStatus,
    OrderEventType,
    OrderStatus,
    PartyRole,
    TransactionStatus,
    TrustEventType,
)
from order_escrow.domain.exceptions import (
    ConcurrentModificationError,
    EscrowEngineError,
    ForbiddenActionError,
    InvalidInputError,
    InvalidStateTransitionError,
    OrderNotFoundError,
    PartyNotFoundError,
    PaymentAmountMismatchError,
    PaymentNotVerifiedError,
    PaymentTransactionNotFoundError,
    RevisionLimitReachedError,
    SettlementError,
)
from order_escrow.domain.notifier_protocol import Notification, Notifier
from order_escrow.domain.pricing import delivery_deadline, split_amount
from order_escrow.domain.references import new_order_number, new_transaction_reference
from order_escrow.domain.state_machine import OrderStateMachine, fire_transition
from order_escrow.domain.trust_rules import TrustContext, review_event_for_rating
from order_escrow.infrastructure.database.orm_models import (
    Order,
    OrderEvent,
    PaymentTransaction,
    Review,
)
from order_escrow.infrastructure.database.repositories import (
    EventRepository,
    OrderRepository,
    PartyRepository,
    ReviewRepository,
    TransactionRepository,
)
from order_escrow.logging_config import bind_order_context, get_logger
from order_escrow.services.escrow_ledger import EscrowLedger
from order_escrow.services.notifications import LoggingNotifier, dispatch, order_link
from order_escrow.services.payment_service import (
    ChargeLookup,
    PaymentGateway,
    PaymentLinkRequest,
    ensure_charge_matches,
)
from order_escrow.services.trust_service import TrustService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

SYSTEM_ACTOR = "SYSTEM"
MAX_PAGE_SIZE = 50
STREAK_MILESTONES = {
    5: TrustEventType.DELIVERY_STREAK_5,
    10: TrustEventType.DELIVERY_STREAK_10,
}


class PaymentConfirmation(enum.StrEnum):
    """What confirm_payment did with a verified gateway callback."""

    CONFIRMED = "confirmed"
    ALREADY_PROCESSED = "already_processed"
    ORDER_NOT_PAYABLE = "order_not_payable"


@dataclass(frozen=True)
class PaymentInitiation:
    reference: str
    payment_link: str
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class PaymentVerification:
    outcome: PaymentConfirmation
    tx_ref: str
    order_status: str


@dataclass(frozen=True)
class OrderPage:
    items: list[Order]
    total: int
    page: int
    per_page: int


@dataclass(frozen=True)
class SettlementSummary:
    order_id: str
    provider_id: str
    title: str
    status: str
    escrow_status: str | None
    amount: Decimal
    platform_fee: Decimal
    provider_earnings: Decimal
    provider_trust_delta: int
    client_trust_delta: int
    auto_approved: bool = False


def auto_approval_notice(summary: SettlementSummary) -> Notification:
    return Notification(
        recipient_id=summary.provider_id,
        kind="order_auto_approved",
        title="Order auto-approved",
        message=f"Payment released for: {summary.title}",
        link=order_link(summary.order_id),
    )


class OrderService:
    """Manages the order lifecycle from intent to settlement."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        notifier: Notifier | None = None,
        gateway: PaymentGateway | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._notifier = notifier or LoggingNotifier()
        self._gateway = gateway or PaymentGateway(self._settings)
        self._order_repo = OrderRepository(session)
        self._party_repo = PartyRepository(session)
        self._tx_repo = TransactionRepository(session)
        self._review_repo = ReviewRepository(session)
        self._event_repo = EventRepository(session)
        self._ledger = EscrowLedger(session)
        self._trust = TrustService(session)

    # ------------------------------------------------------------------
    # Order Creation
    # ------------------------------------------------------------------

    async def create_order(
        self,
        client_id: uuid.UUID,
        provider_id: uuid.UUID,
        title: str,
        description: str,
        amount: Decimal,
        delivery_days: int,
        max_revisions: int | None = None,
        service_id: uuid.UUID | None = None,
        job_id: uuid.UUID | None = None,
        proposal_id: uuid.UUID | None = None,
    ) -> Order:
        """Create an order in pending_payment with the fee split fixed."""
        if client_id == provider_id:
            raise InvalidInputError("Client and provider must be different parties", "provider_id")
        if delivery_days < 1:
            raise InvalidInputError("delivery_days must be at least 1", "delivery_days")
        if max_revisions is None:
            max_revisions = self._settings.default_max_revisions
        if max_revisions < 0:
            raise InvalidInputError("max_revisions cannot be negative", "max_revisions")
        try:
            split = split_amount(Decimal(amount), self._settings.platform_fee_rate)
        except ValueError as err:
            raise InvalidInputError(str(err), "amount") from err

        provider = await self._party_repo.get(provider_id)
        if provider is None:
            raise PartyNotFoundError(str(provider_id))
        if provider.account_status != AccountStatus.ACTIVE:
            raise InvalidInputError("Provider account is not active", "provider_id")
        await self._party_repo.get_or_create(client_id)

        now = datetime.now(UTC)
        order = Order(
            order_number=new_order_number(),
            client_id=client_id,
            provider_id=provider_id,
            service_id=service_id,
            job_id=job_id,
            proposal_id=proposal_id,
            title=title,
            description=description,
            amount=split.amount,
            platform_fee=split.platform_fee,
            provider_earnings=split.provider_earnings,
            currency=self._settings.default_currency,
            delivery_deadline=delivery_deadline(now, delivery_days),
            max_revisions=max_revisions,
            revision_count=0,
            status=OrderStatus.PENDING_PAYMENT.value,
        )
        order = await self._order_repo.create(order)

        await self._event_repo.record(
            order_id=order.id,
            event_type=OrderEventType.ORDER_CREATED,
            old_status=None,
            new_status=order.status,
            actor=str(client_id),
            metadata={"order_number": order.order_number, "amount": str(order.amount)},
        )
        bind_order_context(order.id, client_id)
        logger.info(
            "order.created",
            order_number=order.order_number,
            amount=str(order.amount),
            platform_fee=str(order.platform_fee),
        )

        await dispatch(
            self._notifier,
            Notification(
                recipient_id=str(provider_id),
                kind="new_order",
                title="New order received",
                message=f"You have a new order: {title}",
                link=order_link(order.id),
            ),
        )
        return order

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    async def initiate_payment(
        self,
        order_id: uuid.UUID,
        party_id: uuid.UUID,
        redirect_url: str | None = None,
    ) -> PaymentInitiation:
        """Issue a transaction reference and ask the gateway for a checkout link.

        The gateway is called before anything is written, so no row is
        pending while the HTTP request is in flight and a gateway failure
        leaves nothing behind.
        """
        order = await self._get_order_or_raise(order_id)
        self._require_role(order, party_id, PartyRole.CLIENT)
        if order.status != OrderStatus.PENDING_PAYMENT:
            raise InvalidStateTransitionError(
                order.status, "initiate_payment", "Order already paid or cancelled"
            )

        reference = new_transaction_reference()
        link = await self._gateway.create_payment_link(
            PaymentLinkRequest(
                reference=reference,
                amount=order.amount,
                currency=order.currency,
                redirect_url=redirect_url or self._settings.payment_redirect_url,
                title=order.title,
                description=order.description[:120],
                customer_id=str(order.client_id),
            )
        )
        await self._tx_repo.create(
            PaymentTransaction(
                order_id=order.id,
                reference=reference,
                amount=order.amount,
                currency=order.currency,
                transaction_type="payment",
                status=TransactionStatus.PENDING.value,
            )
        )

        await self._event_repo.record(
            order_id=order.id,
            event_type=OrderEventType.PAYMENT_INITIATED,
            old_status=order.status,
            new_status=order.status,
            actor=str(party_id),
            metadata={"tx_ref": reference},
        )
        logger.info("order.payment_initiated", order_id=str(order.id), tx_ref=reference)
        return PaymentInitiation(
            reference=reference,
            payment_link=link,
            amount=order.amount,
            currency=order.currency,
        )

    async def confirm_payment(
        self,
        transaction: PaymentTransaction,
        gateway_tx_id: str | None,
        gateway_payload: dict[str, Any] | None = None,
    ) -> PaymentConfirmation:
        """Apply a verified payment: transaction, order and escrow move together.

        The caller has already checked the signature and the amount.
        """
        now = datetime.now(UTC)
        if not await self._tx_repo.mark_successful(
            transaction,
            gateway_tx_id=gateway_tx_id,
            gateway_response=gateway_payload,
            paid_at=now,
        ):
            logger.info("payment.duplicate_confirmation", tx_ref=transaction.reference)
            return PaymentConfirmation.ALREADY_PROCESSED

        order = await self._get_order_or_raise(transaction.order_id)
        bind_order_context(order.id)
        if order.status != OrderStatus.PENDING_PAYMENT:
            # Money arrived for an order that can no longer take it.
            logger.error(
                "payment.order_not_payable",
                tx_ref=transaction.reference,
                order_status=order.status,
                amount=str(transaction.amount),
                action="manual_refund_required",
            )
            return PaymentConfirmation.ORDER_NOT_PAYABLE

        await self._transition(
            order,
            "payment_confirmed",
            OrderEventType.PAYMENT_CONFIRMED,
            actor=SYSTEM_ACTOR,
            metadata={"tx_ref": transaction.reference, "gateway_tx_id": gateway_tx_id},
        )
        await self._ledger.open(order, transaction.amount, transaction)
        logger.info("order.payment_confirmed", tx_ref=transaction.reference)

        await dispatch(
            self._notifier,
            Notification(
                recipient_id=str(order.provider_id),
                kind="order_paid",
                title="Order paid",
                message=f"Payment is in escrow for: {order.title}",
                link=order_link(order.id),
            ),
        )
        return PaymentConfirmation.CONFIRMED

    async def verify_payment(
        self,
        order_id: uuid.UUID,
        party_id: uuid.UUID,
        gateway_tx_id: str,
        tx_ref: str | None = None,
    ) -> PaymentVerification:
        """Ask the gateway about a charge when its callback has not arrived.

        Applies the same checks as the webhook (successful status, our
        reference, exact amount and currency) and then confirms through
        confirm_payment, so a late callback is a no-op.
        """
        order = await self._get_order_or_raise(order_id)
        self._require_role(order, party_id, PartyRole.CLIENT)
        tx = await self._find_transaction(order, tx_ref)

        if tx.status == TransactionStatus.SUCCESSFUL:
            return PaymentVerification(
                PaymentConfirmation.ALREADY_PROCESSED, tx.reference, order.status
            )
        if tx.status != TransactionStatus.PENDING:
            raise PaymentNotVerifiedError(tx.reference, f"transaction is {tx.status}")

        charge = await self._gateway.verify_transaction(
            ChargeLookup(
                transaction_id=gateway_tx_id,
                reference=tx.reference,
                amount=tx.amount,
                currency=tx.currency,
            )
        )
        if not charge.successful:
            raise PaymentNotVerifiedError(tx.reference, f"gateway reports {charge.status}")
        if charge.reference != tx.reference:
            logger.warning(
                "payment.verify_reference_mismatch",
                tx_ref=tx.reference,
                gateway_reference=charge.reference,
            )
            raise PaymentNotVerifiedError(tx.reference, "charge belongs to another reference")
        try:
            ensure_charge_matches(
                tx.reference, tx.amount, tx.currency, charge.amount, charge.currency
            )
        except PaymentAmountMismatchError:
            logger.error(
                "payment.verify_amount_mismatch",
                tx_ref=tx.reference,
                expected=str(tx.amount),
                received=str(charge.amount),
            )
            raise

        outcome = await self.confirm_payment(
            tx, gateway_tx_id=charge.transaction_id, gateway_payload=charge.raw
        )
        logger.info("order.payment_verified", tx_ref=tx.reference, outcome=outcome.value)
        return PaymentVerification(outcome, tx.reference, order.status)

    # ------------------------------------------------------------------
    # Delivery / Revision
    # ------------------------------------------------------------------

    async def deliver(
        self,
        order_id: uuid.UUID,
        provider_id: uuid.UUID,
        note: str,
        file_refs: list[str],
    ) -> Order:
        """Record a (re)delivery. Restarts the auto-approval window."""
        order = await self._get_order_or_raise(order_id)
        self._require_role(order, provider_id, PartyRole.PROVIDER)

        first_delivery = order.delivered_at is None
        now = datetime.now(UTC)
        await self._transition(
            order,
            "provider_delivers",
            OrderEventType.ORDER_DELIVERED,
            actor=str(provider_id),
            metadata={"files": len(file_refs), "first_delivery": first_delivery},
            delivery_note=note,
            delivery_files=list(file_refs),
            delivered_at=now,
        )

        if first_delivery:
            await self._record_delivery_timeliness(order, now)

        logger.info("order.delivered", files=len(file_refs), first_delivery=first_delivery)
        await dispatch(
            self._notifier,
            Notification(
                recipient_id=str(order.client_id),
                kind="order_delivered",
                title="Order delivered",
                message=f"Your order has been delivered: {order.title}",
                link=order_link(order.id),
            ),
        )
        return order

    async def request_revision(
        self,
        order_id: uuid.UUID,
        client_id: uuid.UUID,
        note: str,
    ) -> Order:
        """Send a delivered order back to the provider (bounded by max_revisions)."""
        order = await self._get_order_or_raise(order_id)
        self._require_role(order, client_id, PartyRole.CLIENT)

        fire_transition(OrderStateMachine, order.status, "client_requests_revision")
        if order.revision_count >= order.max_revisions:
            raise RevisionLimitReachedError(order.status, order.revision_count, order.max_revisions)

        await self._transition(
            order,
            "client_requests_revision",
            OrderEventType.REVISION_REQUESTED,
            actor=str(client_id),
            metadata={"revision": order.revision_count + 1},
            revision_count=Order.revision_count + 1,
            revision_note=note,
        )
        logger.info(
            "order.revision_requested",
            revision_count=order.revision_count,
            max_revisions=order.max_revisions,
        )
        await dispatch(
            self._notifier,
            Notification(
                recipient_id=str(order.provider_id),
                kind="revision_requested",
                title="Revision requested",
                message=note,
                link=order_link(order.id),
            ),
        )
        return order

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def approve(
        self,
        order_id: uuid.UUID,
        client_id: uuid.UUID,
        rating: int,
        review_text: str | None = None,
        communication_rating: int | None = None,
        quality_rating: int | None = None,
        professionalism_rating: int | None = None,
    ) -> SettlementSummary:
        """Client accepts the delivery: complete, release escrow, review, score.

        All of it commits together or not at all.
        """
        for name, value in (
            ("rating", rating),
            ("communication_rating", communication_rating),
            ("quality_rating", quality_rating),
            ("professionalism_rating", professionalism_rating),
        ):
            if value is not None and not 1 <= value <= 5:
                raise InvalidInputError(f"{name} must be between 1 and 5", name)

        order = await self._get_order_or_raise(order_id)
        self._require_role(order, client_id, PartyRole.CLIENT)
        fire_transition(OrderStateMachine, order.status, "client_approves")

        review = Review(
            order_id=order.id,
            reviewer_id=order.client_id,
            reviewee_id=order.provider_id,
            rating=rating,
            review_text=review_text,
            communication_rating=communication_rating,
            quality_rating=quality_rating,
            professionalism_rating=professionalism_rating,
        )
        summary = await self._settle_atomically(
            order, "client_approves", OrderEventType.ORDER_APPROVED, str(client_id), review
        )

        await dispatch(
            self._notifier,
            Notification(
                recipient_id=str(order.provider_id),
                kind="order_completed",
                title="Order completed",
                message=f"Payment released for: {order.title}",
                link=order_link(order.id),
            ),
        )
        return summary

    async def auto_approve(
        self,
        order_id: uuid.UUID,
        now: datetime | None = None,
        notify: bool = True,
    ) -> SettlementSummary:
        """Complete a delivered order whose review window has elapsed.

        Pass ``notify=False`` when the caller commits first and sends
        auto_approval_notice(summary) afterwards.
        """
        order = await self._get_order_or_raise(order_id)
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(days=self._settings.auto_approval_days)
        if order.delivered_at is None or order.delivered_at > cutoff:
            raise InvalidStateTransitionError(
                order.status,
                "auto_approval_elapsed",
                "Auto-approval window has not elapsed",
            )
        fire_transition(OrderStateMachine, order.status, "auto_approval_elapsed")

        summary = await self._settle_atomically(
            order, "auto_approval_elapsed", OrderEventType.ORDER_AUTO_APPROVED, SYSTEM_ACTOR
        )
        if notify:
            await dispatch(self._notifier, auto_approval_notice(summary))
        return summary

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel(
        self,
        order_id: uuid.UUID,
        client_id: uuid.UUID,
        reason: str | None = None,
    ) -> Order:
        """Cancel before delivery; a paid order is refunded in full."""
        order = await self._get_order_or_raise(order_id)
        self._require_role(order, client_id, PartyRole.CLIENT)

        old_status = order.status
        await self._transition(
            order,
            "client_cancels",
            OrderEventType.ORDER_CANCELLED,
            actor=str(client_id),
            metadata={"reason": reason} if reason else None,
            cancelled_at=datetime.now(UTC),
        )

        if old_status == OrderStatus.AWAITING_DELIVERY:
            await self._ledger.refund(order)
            await self._trust.record(
                order.client_id,
                TrustEventType.ORDER_CANCELLATION,
                related_entity_id=order.id,
                related_entity_type="order",
            )

        logger.info("order.cancelled", previous_status=old_status)
        await dispatch(
            self._notifier,
            Notification(
                recipient_id=str(order.provider_id),
                kind="order_cancelled",
                title="Order cancelled",
                message=f"The client cancelled: {order.title}",
                link=order_link(order.id),
            ),
        )
        return order

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_order_for_party(self, order_id: uuid.UUID, party_id: uuid.UUID) -> Order:
        order = await self._get_order_or_raise(order_id)
        self._role_of(order, party_id)
        return order

    async def get_events(self, order_id: uuid.UUID, party_id: uuid.UUID) -> list[OrderEvent]:
        """Audit trail, visible to the two parties only."""
        order = await self.get_order_for_party(order_id, party_id)
        return await self._event_repo.get_by_order(order.id)

    async def get_escrow_status(self, order_id: uuid.UUID) -> str | None:
        balance = await self._ledger.get(order_id)
        return balance.status if balance is not None else None

    async def list_orders(
        self,
        party_id: uuid.UUID,
        role: PartyRole | None = None,
        status: OrderStatus | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> OrderPage:
        """The caller's orders on either side, newest first."""
        if page < 1:
            raise InvalidInputError("page must be at least 1", "page")
        if not 1 <= per_page <= MAX_PAGE_SIZE:
            raise InvalidInputError(f"per_page must be between 1 and {MAX_PAGE_SIZE}", "per_page")
        items, total = await self._order_repo.list_for_party(
            party_id,
            role=role,
            status=status,
            limit=per_page,
            offset=(page - 1) * per_page,
        )
        return OrderPage(items=items, total=total, page=page, per_page=per_page)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_order_or_raise(self, order_id: uuid.UUID) -> Order:
        order = await self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        bind_order_context(order.id)
        return order

    async def _find_transaction(self, order: Order, tx_ref: str | None) -> PaymentTransaction:
        """The named transaction of this order, else its successful or latest one."""
        if tx_ref is not None:
            tx = await self._tx_repo.get_by_reference(tx_ref)
            if tx is None or tx.order_id != order.id:
                raise PaymentTransactionNotFoundError(tx_ref)
            return tx

        transactions = await self._tx_repo.list_for_order(order.id)
        if not transactions:
            raise PaymentTransactionNotFoundError(f"order {order.id}")
        for tx in reversed(transactions):
            if tx.status == TransactionStatus.SUCCESSFUL:
                return tx
        return transactions[-1]

    @staticmethod
    def _role_of(order: Order, party_id: uuid.UUID) -> PartyRole:
        if party_id == order.client_id:
            return PartyRole.CLIENT
        if party_id == order.provider_id:
            return PartyRole.PROVIDER
        raise ForbiddenActionError("You are not a party to this order")

    def _require_role(self, order: Order, party_id: uuid.UUID, role: PartyRole) -> None:
        if self._role_of(order, party_id) is not role:
            raise ForbiddenActionError(f"Only the {role.value} can do this")

    async def _transition(
        self,
        order: Order,
        event_name: str,
        event_type: OrderEventType,
        actor: str,
        metadata: dict | None = None,
        **values: Any,
    ) -> str:
        """Guard, compare-and-set and audit one order transition."""
        old_status = order.status
        new_status = fire_transition(OrderStateMachine, old_status, event_name)
        if not await self._order_repo.transition(order, old_status, new_status, **values):
            raise ConcurrentModificationError("Order", str(order.id), old_status)

        await self._event_repo.record(
            order_id=order.id,
            event_type=event_type,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            metadata=metadata,
        )
        return new_status

    async def _settle_atomically(
        self,
        order: Order,
        event_name: str,
        event_type: OrderEventType,
        actor: str,
        review: Review | None = None,
    ) -> SettlementSummary:
        """Run the completion steps inside one savepoint.

        State conflicts pass through untouched; anything else becomes a
        retryable SettlementError and leaves the order as it was.
        """
        try:
            async with self._session.begin_nested():
                summary = await self._complete(order, event_name, event_type, actor, review)
        except (ConcurrentModificationError, InvalidStateTransitionError, SettlementError):
            raise
        except Exception as exc:
            logger.exception("order.settlement_failed", error=str(exc))
            reason = exc.message if isinstance(exc, EscrowEngineError) else type(exc).__name__
            raise SettlementError(str(order.id), reason) from exc

        logger.info(
            "order.settled",
            auto_approved=summary.auto_approved,
            provider_earnings=str(summary.provider_earnings),
        )
        return summary

    async def _complete(
        self,
        order: Order,
        event_name: str,
        event_type: OrderEventType,
        actor: str,
        review: Review | None,
    ) -> SettlementSummary:
        now = datetime.now(UTC)
        values: dict[str, Any] = {"completed_at": now}
        if review is not None:
            values["client_rating"] = review.rating
            values["client_review"] = review.review_text
        await self._transition(
            order,
            event_name,
            event_type,
            actor=actor,
            metadata={"rating": review.rating} if review is not None else None,
            **values,
        )

        outcome = await self._ledger.release(order)
        if not outcome.applied:
            logger.error("order.escrow_not_releasable", escrow_status=outcome.status)
            raise SettlementError(str(order.id), f"escrow already {outcome.status}")

        if review is not None:
            await self._review_repo.create(review)
            provider_event = review_event_for_rating(review.rating)
            provider_context = TrustContext(review_rating=review.rating)
        else:
            provider_event = TrustEventType.ORDER_COMPLETED
            provider_context = None

        provider_result = await self._trust.record(
            order.provider_id,
            provider_event,
            related_entity_id=order.id,
            related_entity_type="order",
            context=provider_context,
        )
        client_result = await self._trust.record(
            order.client_id,
            TrustEventType.ORDER_COMPLETED,
            related_entity_id=order.id,
            related_entity_type="order",
        )

        return SettlementSummary(
            order_id=str(order.id),
            provider_id=str(order.provider_id),
            title=order.title,
            status=order.status,
            escrow_status=outcome.status,
            amount=order.amount,
            platform_fee=order.platform_fee,
            provider_earnings=order.provider_earnings,
            provider_trust_delta=provider_result.delta,
            client_trust_delta=client_result.delta,
            auto_approved=review is None,
        )

    async def _record_delivery_timeliness(self, order: Order, delivered_at: datetime) -> None:
        if delivered_at > order.delivery_deadline:
            await self._trust.record(
                order.provider_id,
                TrustEventType.LATE_DELIVERY,
                related_entity_id=order.id,
                related_entity_type="order",
            )
            return

        streak = await self._trust.delivery_streak(order.provider_id) + 1
        await self._trust.record(
            order.provider_id,
            TrustEventType.ON_TIME_DELIVERY,
            related_entity_id=order.id,
            related_entity_type="order",
            context=TrustContext(delivery_streak=streak),
        )
        milestone = STREAK_MILESTONES.get(streak)
        if milestone is not None:
            await self._trust.record(
                order.provider_id,
                milestone,
                related_entity_id=order.id,
                related_entity_type="order",
            )
