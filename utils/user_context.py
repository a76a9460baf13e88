"""Propagate the acting staff member through the call stack using contextvars.

The upstream auth provider identifies the staff member; the API middleware
copies that identity here so payment history and audit entries can be
attributed without threading a parameter through every service call.
"""

from contextvars import ContextVar
from contextlib import contextmanager

_current_staff: ContextVar[str | None] = ContextVar("current_staff", default=None)

# Recorder name used when a mutation happens outside a staff request
# (e.g. the customer returning from the payment gateway).
SYSTEM_RECORDER = "system"


def get_current_staff() -> str:
    """
    Get current staff identity from context.

    Raises RuntimeError if no staff context is set.
    """
    staff = _current_staff.get()
    if staff is None:
        raise RuntimeError(
            "No staff context set. This usually means you're calling "
            "staff-scoped code outside of an authenticated request."
        )
    return staff


def get_current_staff_or_default(default: str = SYSTEM_RECORDER) -> str:
    """Current staff identity, or `default` for unattended flows."""
    staff = _current_staff.get()
    return staff if staff is not None else default


def set_current_staff(staff: str) -> None:
    """Set current staff identity in context."""
    _current_staff.set(staff)


def clear_current_staff() -> None:
    """
    Clear staff context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_staff.set(None)


@contextmanager
def staff_context(staff: str):
    """
    Context manager for temporarily setting staff context.

    Example:
        with staff_context("accounting"):
            payment_service.record_payment(invoice_id, Decimal("300"), PaymentMethod.CASH)
    """
    previous = _current_staff.get()
    set_current_staff(staff)
    try:
        yield
    finally:
        if previous is None:
            clear_current_staff()
        else:
            set_current_staff(previous)
