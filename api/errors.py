"""Exception handlers mapping domain failures onto the JSON envelope."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, request_id_of, ErrorCodes
from clients.leanx_client import PaymentGatewayError
from core.exceptions import (
    ConcurrentModificationError,
    ConfirmationRequiredError,
    InvoiceAlreadyPaidError,
    InvoiceConsistencyError,
    InvoiceNotFoundError,
    PaymentError,
)

logger = logging.getLogger(__name__)

# Most specific first; matched by isinstance.
_PAYMENT_ERRORS = (
    (InvoiceNotFoundError, 404, ErrorCodes.NOT_FOUND),
    (InvoiceAlreadyPaidError, 409, ErrorCodes.INVOICE_ALREADY_PAID),
    (ConfirmationRequiredError, 409, ErrorCodes.CONFIRMATION_REQUIRED),
    (ConcurrentModificationError, 409, ErrorCodes.CONCURRENT_MODIFICATION),
    (InvoiceConsistencyError, 422, ErrorCodes.INVOICE_INCONSISTENT),
)


def _error(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, request_id_of(request)).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError):
        for exc_type, status_code, code in _PAYMENT_ERRORS:
            if isinstance(exc, exc_type):
                return _error(request, status_code, code, str(exc))
        return _error(request, 400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(PaymentGatewayError)
    async def gateway_error_handler(request: Request, exc: PaymentGatewayError):
        logger.warning(f"Payment gateway error: {exc}")
        return _error(request, 502, ErrorCodes.PAYMENT_GATEWAY_ERROR, str(exc))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return _error(request, 404, ErrorCodes.NOT_FOUND, message)
        return _error(request, 400, ErrorCodes.INVALID_REQUEST, message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return _error(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
