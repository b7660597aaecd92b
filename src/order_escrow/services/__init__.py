"""Application services: use case orchestration."""

from order_escrow.services.dispute_service import DisputeService
from order_escrow.services.escrow_ledger import EscrowLedger, LedgerOutcome
from order_escrow.services.order_service import OrderService, PaymentConfirmation
from order_escrow.services.payment_service import PaymentGateway
from order_escrow.services.trust_service import TrustService
from order_escrow.services.webhook_service import WebhookService

__all__ = [
    "DisputeService",
    "EscrowLedger",
    "LedgerOutcome",
    "OrderService",
    "PaymentConfirmation",
    "PaymentGateway",
    "TrustService",
    "WebhookService",
]
