"""Domain exceptions for the order escrow engine.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
"""

from __future__ import annotations


class EscrowEngineError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_ENGINE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


# --- Validation / Authorization ---


class InvalidInputError(EscrowEngineError):
    """Malformed input, rejected before any state is read."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.field = field


class ForbiddenActionError(EscrowEngineError):
    """Caller is not a party to the order, or lacks the role for the action."""

    def __init__(self, message: str = "Not permitted for this order") -> None:
        super().__init__(message=message, code="FORBIDDEN")


# --- Lookups ---


class OrderNotFoundError(EscrowEngineError):
    def __init__(self, order_id: str) -> None:
        super().__init__(message=f"Order not found: {order_id}", code="ORDER_NOT_FOUND")
        self.order_id = order_id


class DisputeNotFoundError(EscrowEngineError):
    def __init__(self, ref: str) -> None:
        super().__init__(message=f"Dispute not found: {ref}", code="DISPUTE_NOT_FOUND")


class PartyNotFoundError(EscrowEngineError):
    def __init__(self, party_id: str) -> None:
        super().__init__(message=f"Party not found: {party_id}", code="PARTY_NOT_FOUND")
        self.party_id = party_id


class PaymentTransactionNotFoundError(EscrowEngineError):
    def __init__(self, reference: str) -> None:
        super().__init__(
            message=f"Payment transaction not found: {reference}",
            code="TRANSACTION_NOT_FOUND",
        )
        self.reference = reference


# --- State Conflicts ---


class InvalidStateTransitionError(EscrowEngineError):
    """Raised when an action is not legal from the entity's current status.

    Example: approve while the order is still awaiting_delivery.
    """

    def __init__(self, current_state: str, attempted: str, message: str | None = None) -> None:
        super().__init__(
            message=message or f"Cannot {attempted} while status is {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted = attempted

    def to_dict(self) -> dict:
        return {**super().to_dict(), "current_status": self.current_state}


class RevisionLimitReachedError(InvalidStateTransitionError):
    def __init__(self, current_state: str, revision_count: int, max_revisions: int) -> None:
        super().__init__(
            current_state,
            "client_requests_revision",
            message=f"Maximum revisions reached ({revision_count}/{max_revisions})",
        )
        self.code = "REVISION_LIMIT_REACHED"
        self.revision_count = revision_count
        self.max_revisions = max_revisions


class ConcurrentModificationError(EscrowEngineError):
    """Another writer changed the record between our read and our write."""

    def __init__(self, entity: str, entity_id: str, expected_status: str) -> None:
        super().__init__(
            message=(
                f"{entity} {entity_id} is no longer {expected_status}; "
                "reload and retry"
            ),
            code="CONCURRENT_MODIFICATION",
        )
        self.expected_status = expected_status


class DisputeAlreadyOpenError(EscrowEngineError):
    def __init__(self, order_id: str) -> None:
        super().__init__(
            message=f"Open dispute already exists for order {order_id}",
            code="DISPUTE_ALREADY_OPEN",
        )


class EscrowAlreadyExistsError(EscrowEngineError):
    def __init__(self, order_id: str) -> None:
        super().__init__(
            message=f"Escrow balance already exists for order {order_id}",
            code="ESCROW_ALREADY_EXISTS",
        )


class EscrowNotFoundError(EscrowEngineError):
    def __init__(self, order_id: str) -> None:
        super().__init__(
            message=f"No escrow balance for order {order_id}",
            code="ESCROW_NOT_FOUND",
        )


# --- External Verification ---


class WebhookSignatureError(EscrowEngineError):
    def __init__(self, reason: str = "Invalid webhook signature") -> None:
        super().__init__(message=reason, code="INVALID_SIGNATURE")


class PaymentAmountMismatchError(EscrowEngineError):
    """Callback claims a different amount than we expect. Treated as fraud signal."""

    def __init__(self, reference: str, expected: str, received: str) -> None:
        super().__init__(
            message=(
                f"Amount mismatch for {reference}: expected {expected}, received {received}"
            ),
            code="AMOUNT_MISMATCH",
        )
        self.reference = reference
        self.expected = expected
        self.received = received


class PaymentNotVerifiedError(EscrowEngineError):
    """The gateway does not report a successful charge for this reference."""

    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(
            message=f"Payment {reference} not verified: {reason}",
            code="PAYMENT_NOT_VERIFIED",
        )
        self.reference = reference
        self.reason = reason


# --- Settlement / Gateway ---


class SettlementError(EscrowEngineError):
    """The atomic settlement failed and was rolled back. Safe to retry."""

    def __init__(self, order_id: str, reason: str) -> None:
        super().__init__(
            message=f"Settlement failed for order {order_id}: {reason}",
            code="SETTLEMENT_FAILED",
        )
        self.order_id = order_id
        self.retryable = True

    def to_dict(self) -> dict:
        return {**super().to_dict(), "retryable": self.retryable}


class PaymentGatewayError(EscrowEngineError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message=message, code="PAYMENT_GATEWAY_ERROR")
        self.status_code = status_code
