"""JSON envelope shared by the staff API endpoints.

The customer-facing receipt pages are HTML and do not use it.
"""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field
from starlette.requests import Request

from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Same value as the X-Request-ID header when available")


class APIResponse(BaseModel):
    """
    Envelope for every staff API response.

    Exactly one of data/error is set, according to success.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def request_id_of(request: Request) -> str | None:
    """Id assigned by RequestIDMiddleware, if it has run for this request."""
    return getattr(request.state, "request_id", None)


def _meta(request_id: str | None) -> APIMeta:
    return APIMeta(timestamp=now_utc(), request_id=request_id or str(uuid4()))


def success_response(data: Any, request_id: str | None = None) -> APIResponse:
    """Envelope around a successful result."""
    return APIResponse(success=True, data=data, meta=_meta(request_id))


def error_response(code: str, message: str, request_id: str | None = None) -> APIResponse:
    """Envelope around a failure. `code` should be one of ErrorCodes."""
    return APIResponse(
        success=False,
        error=APIError(code=code, message=message),
        meta=_meta(request_id),
    )


class ErrorCodes:
    """
    Error codes returned in APIError.code.

    Clients branch on these, never on the message text.
    """

    # Authentication
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"

    # Lookup & validation
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Invoice & payment
    INVOICE_ALREADY_PAID = "INVOICE_ALREADY_PAID"
    INVOICE_INCONSISTENT = "INVOICE_INCONSISTENT"
    CONFIRMATION_REQUIRED = "CONFIRMATION_REQUIRED"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
    PAYMENT_GATEWAY_ERROR = "PAYMENT_GATEWAY_ERROR"
