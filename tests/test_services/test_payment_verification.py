"""Tests for OrderService.verify_payment: confirming a charge by asking the gateway."""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from order_escrow.domain.exceptions import (
    ForbiddenActionError,
    PaymentAmountMismatchError,
    PaymentNotVerifiedError,
    PaymentTransactionNotFoundError,
)
from order_escrow.infrastructure.database.repositories import EventRepository
from order_escrow.services.order_service import OrderService, PaymentConfirmation
from order_escrow.services.payment_service import PaymentGateway
from order_escrow.services.webhook_service import WebhookService

SECRET = "test-webhook-secret"
GATEWAY_TX_ID = "4975363"


def _charge(tx_ref: str, **data) -> dict:
    charge = {
        "id": int(GATEWAY_TX_ID),
        "tx_ref": tx_ref,
        "amount": 100,
        "currency": "NGN",
        "status": "successful",
    }
    return {"status": "success", "message": "Transaction fetched", "data": {**charge, **data}}


def _verifying_orders(flow, responses: list[dict]) -> tuple[OrderService, list[str]]:
    """OrderService whose gateway answers verify calls from ``responses`` in turn."""
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json=responses.pop(0))

    live = flow.settings.model_copy(update={"gateway_secret_key": "FLWSECK_TEST-123"})
    gateway = PaymentGateway(
        live,
        simulate=False,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    svc = OrderService(
        flow.session, settings=flow.settings, notifier=flow.notifier, gateway=gateway
    )
    return svc, seen


async def _event_types(session, order_id) -> list[str]:
    return [e.event_type for e in await EventRepository(session).get_by_order(order_id)]


class TestVerifyPayment:
    @pytest.mark.asyncio
    async def test_verified_charge_confirms_the_order(self, flow) -> None:
        order = await flow.create(amount=Decimal("100"))
        tx = await flow.start_payment(order)
        svc, seen = _verifying_orders(flow, [_charge(tx.reference)])

        result = await svc.verify_payment(order.id, order.client_id, GATEWAY_TX_ID)

        assert result.outcome is PaymentConfirmation.CONFIRMED
        assert result.tx_ref == tx.reference
        assert result.order_status == "awaiting_delivery"
        assert len(seen) == 1
        assert seen[0].endswith(f"/transactions/{GATEWAY_TX_ID}/verify")
        assert tx.status == "successful"
        assert tx.gateway_tx_id == GATEWAY_TX_ID
        assert (await flow.escrow(order.id)).status == "held"
        assert "order_paid" in flow.notifier.kinds()

    @pytest.mark.asyncio
    async def test_already_confirmed_skips_the_gateway(self, flow) -> None:
        order = await flow.create(amount=Decimal("100"))
        tx = await flow.pay(order)
        svc, seen = _verifying_orders(flow, [])

        result = await svc.verify_payment(order.id, order.client_id, GATEWAY_TX_ID)

        assert result.outcome is PaymentConfirmation.ALREADY_PROCESSED
        assert result.tx_ref == tx.reference
        assert seen == []
        provider = await flow.reload_party(order.provider_id)
        assert provider.pending_clearance == Decimal("90")

    @pytest.mark.asyncio
    async def test_named_reference_is_used(self, flow) -> None:
        order = await flow.create(amount=Decimal("100"))
        first = await flow.start_payment(order)
        await flow.start_payment(order)
        svc, _ = _verifying_orders(flow, [_charge(first.reference)])

        result = await svc.verify_payment(
            order.id, order.client_id, GATEWAY_TX_ID, tx_ref=first.reference
        )

        assert result.outcome is PaymentConfirmation.CONFIRMED
        assert first.status == "successful"

    @pytest.mark.asyncio
    async def test_short_charge_is_rejected(self, flow) -> None:
        order = await flow.create(amount=Decimal("100"))
        tx = await flow.start_payment(order)
        svc, _ = _verifying_orders(flow, [_charge(tx.reference, amount=1)])

        with pytest.raises(PaymentAmountMismatchError) as exc_info:
            await svc.verify_payment(order.id, order.client_id, GATEWAY_TX_ID)

        assert exc_info.value.code == "AMOUNT_MISMATCH"
        assert tx.status == "pending"
        assert order.status == "pending_payment"
        assert await flow.escrow(order.id) is None

    @pytest.mark.asyncio
    async def test_wrong_currency_is_rejected(self, flow) -> None:
        order = await flow.create(amount=Decimal("100"))
        tx = await flow.start_payment(order)
        svc, _ = _verifying_orders(flow, [_charge(tx.reference, currency="USD")])

        with pytest.raises(PaymentAmountMismatchError):
            await svc.verify_payment(order.id, order.client_id, GATEWAY_TX_ID)

        assert tx.status == "pending"

    @pytest.mark.asyncio
    async def test_failed_charge_is_not_verified(self, flow) -> None:
        order = await flow.create(amount=Decimal("100"))
        tx = await flow.start_payment(order)
        svc, _ = _verifying_orders(flow, [_charge(tx.reference, status="failed")])

        with pytest.raises(PaymentNotVerifiedError) as exc_info:
            await svc.verify_payment(order.id, order.client_id, GATEWAY_TX_ID)

        assert exc_info.value.code == "PAYMENT_NOT_VERIFIED"
        assert tx.status == "pending"
        assert "PAYMENT_CONFIRMED" not in await _event_types(flow.session, order.id)

    @pytest.mark.asyncio
    async def test_charge_for_another_reference_is_not_verified(self, flow) -> None:
        order = await flow.create(amount=Decimal("100"))
        tx = await flow.start_payment(order)
        svc, _ = _verifying_orders(flow, [_charge("TX-someone-else")])

        with pytest.raises(PaymentNotVerifiedError):
            await svc.verify_payment(order.id, order.client_id, GATEWAY_TX_ID)

        assert tx.status == "pending"

    @pytest.mark.asyncio
    async def test_reference_of_another_order_is_not_found(self, flow) -> None:
        order = await flow.create(amount=Decimal("100"))
        other = await flow.create(amount=Decimal("100"))
        foreign = await flow.start_payment(other)
        svc, seen = _verifying_orders(flow, [])

        with pytest.raises(PaymentTransactionNotFoundError):
            await svc.verify_payment(
                order.id, order.client_id, GATEWAY_TX_ID, tx_ref=foreign.reference
            )

        assert seen == []

    @pytest.mark.asyncio
    async def test_order_without_checkout_is_not_found(self, flow) -> None:
        order = await flow.create(amount=Decimal("100"))
        svc, _ = _verifying_orders(flow, [])

        with pytest.raises(PaymentTransactionNotFoundError):
            await svc.verify_payment(order.id, order.client_id, GATEWAY_TX_ID)

    @pytest.mark.asyncio
    async def test_only_the_client_verifies(self, flow) -> None:
        order = await flow.create(amount=Decimal("100"))
        await flow.start_payment(order)
        svc, _ = _verifying_orders(flow, [])

        with pytest.raises(ForbiddenActionError):
            await svc.verify_payment(order.id, order.provider_id, GATEWAY_TX_ID)

    @pytest.mark.asyncio
    async def test_late_webhook_after_verification_is_a_no_op(
        self, flow, session_factory, settings, notifier
    ) -> None:
        order = await flow.create(amount=Decimal("100"))
        tx = await flow.start_payment(order)
        svc, _ = _verifying_orders(flow, [_charge(tx.reference)])
        await svc.verify_payment(order.id, order.client_id, GATEWAY_TX_ID)
        await flow.session.commit()

        webhooks = WebhookService(
            flow.session, session_factory, settings=settings, notifier=notifier
        )
        body = json.dumps(
            {
                "event": "charge.completed",
                "data": {
                    "id": int(GATEWAY_TX_ID),
                    "tx_ref": tx.reference,
                    "amount": 100,
                    "currency": "NGN",
                    "status": "successful",
                },
            }
        ).encode()
        ack = await webhooks.handle(body, SECRET)

        assert ack.outcome == "already_processed"
        assert (await _event_types(flow.session, order.id)).count("PAYMENT_CONFIRMED") == 1
        provider = await flow.reload_party(order.provider_id)
        assert provider.pending_clearance == Decimal("90")
