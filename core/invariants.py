"""
Balance and status rules shared by every code path that moves money.

balance_due is never stored without being recomputed from total and deposit,
and payment_status is always derived from the resulting balance. Services
call check_invoice_consistency() on the fields they are about to write.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from core.exceptions import InvoiceConsistencyError
from core.models import PaymentStatus

CENT = Decimal("0.01")

# Balances below this are treated as settled (currency/rounding drift).
SETTLED_TOLERANCE = Decimal("1")


def to_money(value: Any) -> Decimal:
    """
    Coerce a number or numeric string to a 2-place Decimal.

    Raises ValueError for anything that isn't a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid monetary amount: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except Exception:
        raise ValueError(f"Invalid monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def balance_due_for(total: Decimal, deposit: Decimal) -> Decimal:
    """max(0, round2(total - deposit))."""
    balance = to_money(Decimal(total) - Decimal(deposit))
    return balance if balance > 0 else Decimal("0.00")


def payment_status_for(total: Decimal, deposit: Decimal) -> PaymentStatus:
    """
    Derive payment status from money.

    paid when the remaining balance is under the tolerance, deposit-paid
    when anything has been collected, pending otherwise.
    """
    remaining = to_money(Decimal(total) - Decimal(deposit))
    if remaining < SETTLED_TOLERANCE:
        return PaymentStatus.PAID
    if deposit > 0:
        return PaymentStatus.DEPOSIT_PAID
    return PaymentStatus.PENDING


def settle_fields(total: Decimal, deposit: Decimal) -> dict[str, Any]:
    """Fields to write whenever the deposit changes."""
    deposit = to_money(deposit)
    return {
        "deposit": deposit,
        "balance_due": balance_due_for(total, deposit),
        "payment_status": payment_status_for(total, deposit),
    }


def check_invoice_consistency(
    total: Decimal,
    deposit: Decimal,
    balance_due: Decimal,
    payment_status: PaymentStatus,
) -> None:
    """
    Raise InvoiceConsistencyError if the four money fields disagree.

    - deposit must not be negative
    - balance_due == max(0, round2(total - deposit))
    - payment_status == paid  <=>  balance_due < 1
    """
    if deposit < 0:
        raise InvoiceConsistencyError(f"Deposit cannot be negative (got {deposit})")

    expected_balance = balance_due_for(total, deposit)
    if to_money(balance_due) != expected_balance:
        raise InvoiceConsistencyError(
            f"balance_due {balance_due} does not match total {total} - deposit {deposit} "
            f"(expected {expected_balance})"
        )

    is_paid = payment_status == PaymentStatus.PAID
    if is_paid != (expected_balance < SETTLED_TOLERANCE):
        raise InvoiceConsistencyError(
            f"payment_status {payment_status.value} inconsistent with balance_due {expected_balance}"
        )
