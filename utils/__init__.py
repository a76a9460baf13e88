"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, business_date
from utils.user_context import (
    get_current_staff,
    get_current_staff_or_default,
    set_current_staff,
    clear_current_staff,
    staff_context,
)
