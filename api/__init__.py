"""HTTP layer: staff JSON API and customer receipt pages."""

from api.base import (
    APIResponse,
    ErrorCodes,
    error_response,
    request_id_of,
    success_response,
)
