"""Request-scoped middleware for API requests."""

from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, request_id_of, ErrorCodes
from utils.user_context import set_current_staff, clear_current_staff

STAFF_HEADER = "X-Staff-Id"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class StaffContextMiddleware(BaseHTTPMiddleware):
    """Middleware that sets the acting staff member for staff routes.

    The upstream auth provider authenticates staff and forwards their
    identity in the X-Staff-Id header. For staff routes:
    1. Rejects the request with 401 if the header is missing
    2. Sets the staff identity in request.state and user context
    3. Clears context after request completes

    Customer-facing paths (the gateway receipt) and health checks run
    without a staff member; their writes are attributed to "system".
    """

    PUBLIC_PATHS = [
        "/payment/",
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        if self._is_public_path(request.url.path):
            return await call_next(request)

        staff = request.headers.get(STAFF_HEADER, "").strip()
        if not staff:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Staff identity required",
                    request_id_of(request),
                ).model_dump(mode="json"),
            )

        set_current_staff(staff)
        request.state.staff = staff

        try:
            return await call_next(request)
        finally:
            clear_current_staff()
