"""FastAPI middleware for request tracing and error handling.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware: injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware: domain exceptions -> structured JSON errors
    3. CORSMiddleware

Error body shape: {"error": CODE, "message": ..., extra fields}. Business
errors keep their own codes; anything unexpected is INTERNAL_ERROR.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from order_escrow.api.deps import MissingIdentityError
from order_escrow.domain.exceptions import (
    ConcurrentModificationError,
    DisputeAlreadyOpenError,
    DisputeNotFoundError,
    EscrowAlreadyExistsError,
    EscrowEngineError,
    EscrowNotFoundError,
    ForbiddenActionError,
    InvalidStateTransitionError,
    OrderNotFoundError,
    PartyNotFoundError,
    PaymentAmountMismatchError,
    PaymentGatewayError,
    PaymentNotVerifiedError,
    PaymentTransactionNotFoundError,
    SettlementError,
    WebhookSignatureError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)


def _error_response(status_code: int, exc: EscrowEngineError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()))


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except (MissingIdentityError, WebhookSignatureError) as exc:
            logger.warning("request.unauthenticated", code=exc.code, path=request.url.path)
            return _error_response(401, exc)
        except ForbiddenActionError as exc:
            logger.warning("request.forbidden", error=exc.message, path=request.url.path)
            return _error_response(403, exc)
        except (
            OrderNotFoundError,
            DisputeNotFoundError,
            PartyNotFoundError,
            EscrowNotFoundError,
            PaymentTransactionNotFoundError,
        ) as exc:
            logger.info("resource.not_found", error=exc.message)
            return _error_response(404, exc)
        except (
            ConcurrentModificationError,
            DisputeAlreadyOpenError,
            EscrowAlreadyExistsError,
        ) as exc:
            logger.warning("state.conflict", code=exc.code, error=exc.message)
            return _error_response(409, exc)
        except InvalidStateTransitionError as exc:
            logger.warning(
                "state_machine.invalid_transition",
                current=exc.current_state,
                attempted=exc.attempted,
                code=exc.code,
            )
            return _error_response(400, exc)
        except PaymentAmountMismatchError as exc:
            logger.error("payment.amount_mismatch_rejected", reference=exc.reference)
            return _error_response(400, exc)
        except PaymentNotVerifiedError as exc:
            logger.warning("payment.not_verified", reference=exc.reference, reason=exc.reason)
            return _error_response(400, exc)
        except SettlementError as exc:
            logger.error("settlement.failed", order_id=exc.order_id, error=exc.message)
            return _error_response(500, exc)
        except PaymentGatewayError as exc:
            logger.error("payment.gateway_error", error=exc.message, status=exc.status_code)
            return _error_response(502, exc)
        except EscrowEngineError as exc:
            logger.info("domain.error", error=exc.message, code=exc.code)
            return _error_response(400, exc)
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Schema violations are 400 VALIDATION_ERROR, like InvalidInputError."""
    logger.info("request.validation_failed", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=400,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": jsonable_encoder(exc.errors()),
        },
    )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters: the last added middleware runs first.
    """
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(ErrorHandlerMiddleware)

    app.add_middleware(RequestIDMiddleware)
