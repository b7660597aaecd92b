"""Tests for the hosted-checkout gateway client (httpx.MockTransport)."""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest
from tenacity import wait_none

from order_escrow.domain.exceptions import PaymentAmountMismatchError, PaymentGatewayError
from order_escrow.services.payment_service import (
    ChargeLookup,
    PaymentGateway,
    PaymentLinkRequest,
    ensure_charge_matches,
)

LINK_REQUEST = PaymentLinkRequest(
    reference="TX-1700000000000-abcdef12",
    amount=Decimal("50000.00"),
    currency="NGN",
    redirect_url="https://shop.example.com/thanks",
    title="Logo design",
    description="A logo for a bakery",
    customer_id="client-1",
)
LOOKUP = ChargeLookup(
    transaction_id="4975363",
    reference="TX-1700000000000-abcdef12",
    amount=Decimal("50000.00"),
    currency="NGN",
)


def _gateway(settings, handler) -> PaymentGateway:
    live = settings.model_copy(update={"gateway_secret_key": "FLWSECK_TEST-123"})
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PaymentGateway(live, simulate=False, http_client=client)


class TestSimulatedGateway:
    @pytest.mark.asyncio
    async def test_simulated_link(self, settings) -> None:
        link = await PaymentGateway(settings).create_payment_link(LINK_REQUEST)
        assert link == f"https://checkout.flutterwave.com/simulated/{LINK_REQUEST.reference}"


class TestLiveGateway:
    @pytest.mark.asyncio
    async def test_posts_payment_and_returns_link(self, settings) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"status": "success", "data": {"link": "https://pay.example/abc"}}
            )

        link = await _gateway(settings, handler).create_payment_link(LINK_REQUEST)

        assert link == "https://pay.example/abc"
        assert seen["url"].endswith("/payments")
        assert seen["auth"] == "Bearer FLWSECK_TEST-123"
        assert seen["body"]["tx_ref"] == LINK_REQUEST.reference
        assert seen["body"]["amount"] == "50000.00"

    @pytest.mark.asyncio
    async def test_error_status_raises_with_gateway_message(self, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"status": "error", "message": "Invalid currency"})

        with pytest.raises(PaymentGatewayError) as exc_info:
            await _gateway(settings, handler).create_payment_link(LINK_REQUEST)

        assert exc_info.value.message == "Invalid currency"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_link_raises(self, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "success", "data": {}})

        with pytest.raises(PaymentGatewayError):
            await _gateway(settings, handler).create_payment_link(LINK_REQUEST)


def _verify_body(**data) -> dict:
    charge = {
        "id": 4975363,
        "tx_ref": LOOKUP.reference,
        "amount": 50000,
        "currency": "NGN",
        "status": "successful",
    }
    return {"status": "success", "message": "Transaction fetched", "data": {**charge, **data}}


class TestChargeVerification:
    @pytest.mark.asyncio
    async def test_simulated_verification_echoes_the_lookup(self, settings) -> None:
        charge = await PaymentGateway(settings).verify_transaction(LOOKUP)

        assert charge.successful
        assert charge.reference == LOOKUP.reference
        assert charge.amount == LOOKUP.amount

    @pytest.mark.asyncio
    async def test_live_verification_reads_the_charge(self, settings) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=_verify_body())

        charge = await _gateway(settings, handler).verify_transaction(LOOKUP)

        assert seen["method"] == "GET"
        assert seen["url"].endswith("/transactions/4975363/verify")
        assert seen["auth"] == "Bearer FLWSECK_TEST-123"
        assert charge.successful
        assert charge.transaction_id == "4975363"
        assert charge.amount == Decimal("50000")
        assert charge.currency == "NGN"

    @pytest.mark.asyncio
    async def test_failed_charge_is_reported_not_raised(self, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_verify_body(status="failed"))

        charge = await _gateway(settings, handler).verify_transaction(LOOKUP)

        assert not charge.successful
        assert charge.status == "failed"

    @pytest.mark.asyncio
    async def test_unknown_transaction_raises(self, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                404, json={"status": "error", "message": "No transaction was found for this id"}
            )

        with pytest.raises(PaymentGatewayError) as exc_info:
            await _gateway(settings, handler).verify_transaction(LOOKUP)

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, settings, monkeypatch) -> None:
        monkeypatch.setattr(PaymentGateway._get_verification.retry, "wait", wait_none())
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, json=_verify_body())

        charge = await _gateway(settings, handler).verify_transaction(LOOKUP)

        assert charge.successful
        assert len(calls) == 2


class TestChargeMatching:
    def test_exact_match_passes(self) -> None:
        ensure_charge_matches("TX-1", Decimal("100.00"), "NGN", Decimal("100"), "ngn")

    def test_missing_currency_is_tolerated(self) -> None:
        ensure_charge_matches("TX-1", Decimal("100"), "NGN", Decimal("100"), None)

    @pytest.mark.parametrize(
        ("amount", "currency"),
        [(Decimal("99.99"), "NGN"), (Decimal("100"), "USD"), (None, "NGN")],
    )
    def test_mismatch_raises(self, amount, currency) -> None:
        with pytest.raises(PaymentAmountMismatchError):
            ensure_charge_matches("TX-1", Decimal("100"), "NGN", amount, currency)
