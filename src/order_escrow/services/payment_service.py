"""Payment gateway client: hosted payment links and charge lookups (Flutterwave v3 API).

Two modes:
    - simulate (default in development): no network, returns a fake link and
      echoes the expected charge back as successful.
    - live: POST {base_url}/payments and GET {base_url}/transactions/{id}/verify
      with the secret key, retried with exponential backoff on transport
      errors only. An HTTP error status is a definitive answer and is not
      retried.

Nothing here touches the database. The gateway normally calls us back
(services/webhook_service.py); verify_transaction is the pull-based fallback
when that callback never arrives.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from order_escrow.config import Settings, get_settings
from order_escrow.domain.exceptions import PaymentAmountMismatchError, PaymentGatewayError
from order_escrow.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PaymentLinkRequest:
    reference: str
    amount: Decimal
    currency: str
    redirect_url: str
    title: str
    description: str
    customer_id: str


@dataclass(frozen=True)
class ChargeLookup:
    """What we expect the gateway to report for one of our transactions."""

    transaction_id: str
    reference: str
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class GatewayCharge:
    """A charge as reported by the gateway's verify endpoint."""

    transaction_id: str
    reference: str | None
    amount: Decimal | None
    currency: str | None
    status: str
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def successful(self) -> bool:
        return self.status == "successful"


def ensure_charge_matches(
    reference: str,
    expected_amount: Decimal,
    expected_currency: str,
    amount: Decimal | None,
    currency: str | None,
) -> None:
    """Raise PaymentAmountMismatchError unless amount (and currency, when given) match exactly."""
    amount_ok = amount is not None and Decimal(amount) == expected_amount
    currency_ok = currency is None or currency.upper() == expected_currency.upper()
    if amount_ok and currency_ok:
        return
    raise PaymentAmountMismatchError(
        reference=reference,
        expected=f"{expected_amount} {expected_currency}",
        received=f"{amount} {currency or ''}".strip(),
    )


class PaymentGateway:
    """Creates hosted checkout links for pending payment transactions."""

    def __init__(
        self,
        settings: Settings | None = None,
        simulate: bool | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the gateway client.

        Args:
            settings: Application settings (defaults to get_settings()).
            simulate: Override settings.gateway_simulate.
            http_client: Injected client, mainly for tests (httpx.MockTransport).
        """
        self._settings = settings or get_settings()
        self._simulate = self._settings.gateway_simulate if simulate is None else simulate
        self._http_client = http_client

    @property
    def provider_name(self) -> str:
        return self._settings.gateway_provider_name

    async def create_payment_link(self, request: PaymentLinkRequest) -> str:
        if self._simulate:
            link = f"https://checkout.flutterwave.com/simulated/{request.reference}"
            logger.info(
                "payment.link_simulated",
                reference=request.reference,
                amount=str(request.amount),
            )
            return link

        body = self._build_payload(request)
        try:
            data = await self._post_payment(body)
        except httpx.TransportError as exc:
            logger.error("payment.gateway_unreachable", reference=request.reference, error=str(exc))
            raise PaymentGatewayError(f"Payment gateway unreachable: {exc}") from exc

        link = (data.get("data") or {}).get("link")
        if not link:
            raise PaymentGatewayError("Payment gateway returned no checkout link")
        logger.info("payment.link_created", reference=request.reference)
        return link

    async def verify_transaction(self, lookup: ChargeLookup) -> GatewayCharge:
        """Ask the gateway what happened to a charge."""
        if self._simulate:
            logger.info(
                "payment.verify_simulated",
                reference=lookup.reference,
                transaction_id=lookup.transaction_id,
            )
            return GatewayCharge(
                transaction_id=lookup.transaction_id,
                reference=lookup.reference,
                amount=lookup.amount,
                currency=lookup.currency,
                status="successful",
                raw={"simulated": True},
            )

        try:
            body = await self._get_verification(lookup.transaction_id)
        except httpx.TransportError as exc:
            logger.error(
                "payment.gateway_unreachable", reference=lookup.reference, error=str(exc)
            )
            raise PaymentGatewayError(f"Payment gateway unreachable: {exc}") from exc

        data = body.get("data")
        if body.get("status") != "success" or not isinstance(data, dict):
            raise PaymentGatewayError(body.get("message") or "Payment verification failed")
        charge = GatewayCharge(
            transaction_id=str(data.get("id", lookup.transaction_id)),
            reference=data.get("tx_ref"),
            amount=_to_decimal(data.get("amount")),
            currency=data.get("currency"),
            status=str(data.get("status", "")),
            raw=body,
        )
        logger.info(
            "payment.verified",
            reference=charge.reference,
            transaction_id=charge.transaction_id,
            charge_status=charge.status,
        )
        return charge

    def _build_payload(self, request: PaymentLinkRequest) -> dict[str, Any]:
        return {
            "tx_ref": request.reference,
            "amount": str(request.amount),
            "currency": request.currency,
            "redirect_url": request.redirect_url,
            "customer": {"id": request.customer_id},
            "customizations": {
                "title": request.title,
                "description": request.description,
            },
        }

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._settings.gateway_secret_key}"}

    def _url(self, path: str) -> str:
        return f"{self._settings.gateway_base_url.rstrip('/')}/{path}"

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _post_payment(self, body: dict[str, Any]) -> dict[str, Any]:
        """POST /payments with retry on transport errors."""
        return await self._send("POST", self._url("payments"), json=body)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _get_verification(self, transaction_id: str) -> dict[str, Any]:
        """GET /transactions/{id}/verify with retry on transport errors."""
        return await self._send("GET", self._url(f"transactions/{transaction_id}/verify"))

    async def _send(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        if self._http_client is not None:
            response = await self._http_client.request(
                method, url, headers=self._headers(), **kwargs
            )
        else:
            async with httpx.AsyncClient(
                timeout=self._settings.gateway_timeout_seconds
            ) as client:
                response = await client.request(method, url, headers=self._headers(), **kwargs)

        if response.is_error:
            message = "Payment gateway request failed"
            if response.headers.get("content-type", "").startswith("application/json"):
                message = response.json().get("message") or message
            logger.error(
                "payment.gateway_rejected",
                status_code=response.status_code,
                message=message,
            )
            raise PaymentGatewayError(message, status_code=response.status_code)
        return response.json()


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None
