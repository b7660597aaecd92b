"""Payment confirmation gateway adapter.

Turns a signed gateway callback into at most one payment confirmation:

    1. constant-time signature check against the shared webhook secret
    2. raw payload written to the webhook audit log (own session)
    3. anything but a successful charge.completed is acknowledged and ignored
    4. unknown tx_ref: acknowledged, logged
    5. transaction already successful: acknowledged (replay)
    6. amount/currency must match the transaction exactly (fraud signal)
    7. OrderService.confirm_payment: transaction, order and escrow together

Authentic callbacks are always acknowledged once handled, so the gateway
stops retrying. Idempotency comes from the compare-and-set on the
transaction status, not from remembering payloads.
"""

from __future__ import annotations

import hmac
import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from order_escrow.config import Settings, get_settings
from order_escrow.domain.enums import TransactionStatus
from order_escrow.domain.exceptions import (
    InvalidInputError,
    PaymentAmountMismatchError,
    WebhookSignatureError,
)
from order_escrow.infrastructure.database.repositories import TransactionRepository
from order_escrow.logging_config import get_logger
from order_escrow.schemas.webhooks import GatewayWebhook
from order_escrow.services.audit_log import WebhookAuditLog
from order_escrow.services.order_service import OrderService, PaymentConfirmation
from order_escrow.services.payment_service import ensure_charge_matches

if TYPE_CHECKING:
    from decimal import Decimal

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from order_escrow.domain.notifier_protocol import Notifier

logger = get_logger(__name__)

CHARGE_COMPLETED = "charge.completed"
CHARGE_SUCCESSFUL = "successful"


@dataclass(frozen=True)
class WebhookAck:
    outcome: str
    tx_ref: str | None = None
    status: str = "received"


def _parse_body(raw_body: bytes) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        return None
    return parsed if isinstance(parsed, dict) else None


class WebhookService:
    def __init__(
        self,
        session: AsyncSession,
        audit_session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._audit = WebhookAuditLog(audit_session_factory)
        self._tx_repo = TransactionRepository(session)
        self._orders = OrderService(session, settings=self._settings, notifier=notifier)

    def verify_signature(self, signature: str | None) -> bool:
        secret = self._settings.gateway_webhook_secret
        if not secret or not signature:
            return False
        return hmac.compare_digest(signature.encode(), secret.encode())

    async def handle(
        self,
        raw_body: bytes,
        signature: str | None,
        ip_address: str | None = None,
    ) -> WebhookAck:
        provider = self._settings.gateway_provider_name
        payload = _parse_body(raw_body)
        event_name = payload.get("event") if payload else None
        verified = self.verify_signature(signature)

        await self._audit.record(
            provider=provider,
            event=str(event_name) if event_name is not None else None,
            verified=verified,
            payload=payload if payload is not None else {"raw": raw_body.decode(errors="replace")},
            notes=None if verified else "signature rejected",
            ip_address=ip_address,
        )

        if not verified:
            logger.warning(
                "webhook.signature_invalid",
                provider=provider,
                ip_address=ip_address,
                signature_present=bool(signature),
            )
            raise WebhookSignatureError()

        if payload is None:
            raise InvalidInputError("Webhook body is not a JSON object")
        try:
            webhook = GatewayWebhook.model_validate(payload)
        except ValidationError as err:
            raise InvalidInputError(
                f"Malformed webhook payload: {err.error_count()} errors"
            ) from err

        data = webhook.data
        if webhook.event != CHARGE_COMPLETED or data.status != CHARGE_SUCCESSFUL:
            logger.info(
                "webhook.ignored",
                gateway_event=webhook.event,
                charge_status=data.status,
                tx_ref=data.tx_ref,
            )
            return WebhookAck(outcome="ignored", tx_ref=data.tx_ref)

        if not data.tx_ref:
            raise InvalidInputError("Webhook payload has no tx_ref", "data.tx_ref")

        tx = await self._tx_repo.get_by_reference(data.tx_ref)
        if tx is None:
            logger.warning("webhook.unknown_reference", tx_ref=data.tx_ref)
            return WebhookAck(outcome="unknown_reference", tx_ref=data.tx_ref)

        if tx.status == TransactionStatus.SUCCESSFUL:
            logger.info("webhook.already_processed", tx_ref=tx.reference)
            return WebhookAck(
                outcome=PaymentConfirmation.ALREADY_PROCESSED.value, tx_ref=tx.reference
            )
        if tx.status != TransactionStatus.PENDING:
            logger.warning("webhook.transaction_closed", tx_ref=tx.reference, tx_status=tx.status)
            return WebhookAck(outcome="transaction_closed", tx_ref=tx.reference)

        self._check_amount(
            tx.reference, tx.amount, tx.currency, data.amount, data.currency, ip_address
        )

        result = await self._orders.confirm_payment(
            tx,
            gateway_tx_id=str(data.id) if data.id is not None else None,
            gateway_payload=payload,
        )
        logger.info("webhook.processed", tx_ref=tx.reference, outcome=result.value)
        return WebhookAck(outcome=result.value, tx_ref=tx.reference)

    @staticmethod
    def _check_amount(
        reference: str,
        expected_amount: Decimal,
        expected_currency: str,
        amount: Decimal | None,
        currency: str | None,
        ip_address: str | None,
    ) -> None:
        try:
            ensure_charge_matches(reference, expected_amount, expected_currency, amount, currency)
        except PaymentAmountMismatchError as exc:
            logger.error(
                "webhook.amount_mismatch",
                tx_ref=reference,
                expected=exc.expected,
                received=exc.received,
                ip_address=ip_address,
            )
            raise
