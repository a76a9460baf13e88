"""
Payment service: every path by which money is credited to an invoice.

Three ways in:
- record_payment: counter payments (cash, transfer, cheque, card)
- confirm_deposit_received: staff confirm a link deposit arrived, without
  gateway proof, after an explicit yes/no prompt
- credit_online_payment: the receipt flow crediting a gateway-verified
  payment, idempotent on the gateway transaction id

All of them append to payment_history, recompute balance and status from
total and deposit, and write with the version they read so two staff
recording at once cannot silently overwrite each other.
"""

import logging
from decimal import Decimal
from typing import Any

from core.audit import AuditLogger, AuditAction, compute_changes
from core.event_bus import EventBus
from core.events import InvoicePaid, PaymentRecorded
from core.exceptions import (
    ConfirmationRequiredError,
    InvoiceAlreadyPaidError,
    InvoiceNotFoundError,
)
from core.invariants import settle_fields, to_money
from core.ledger_store import LedgerStore
from core.models import (
    DepositStatus,
    Invoice,
    PaymentHistoryEntry,
    PaymentMethod,
    PaymentStatus,
)
from utils.user_context import get_current_staff_or_default
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# Not worth diffing field by field in the audit log
_AUDIT_EXCLUDE = {"updated_at", "version", "payment_history"}


def validate_amount(amount: Any) -> Decimal:
    """
    Payment amount as money, rejected unless positive.

    Raises:
        ValueError: Not a number, or <= 0
    """
    value = to_money(amount)
    if value <= 0:
        raise ValueError(f"Payment amount must be greater than zero (got {value})")
    return value


class PaymentService:
    """Service for crediting payments to invoices."""

    def __init__(self, ledger: LedgerStore, audit: AuditLogger, event_bus: EventBus):
        self.ledger = ledger
        self.audit = audit
        self.event_bus = event_bus

    def _get_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.ledger.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def _credit(
        self,
        current: Invoice,
        amount: Decimal,
        method: PaymentMethod,
        deposit_status: DepositStatus,
        transaction_id: str | None = None,
    ) -> Invoice:
        """
        Add `amount` to the invoice's deposit and write it back.

        Raises:
            ConcurrentModificationError: Invoice changed since `current` was read
        """
        now = now_utc()
        entry = PaymentHistoryEntry(
            amount=amount,
            recorded_at=now,
            method=method,
            recorded_by=get_current_staff_or_default(),
            transaction_id=transaction_id,
        )

        fields = {
            **settle_fields(current.total, current.deposit + amount),
            "deposit_status": deposit_status,
            "payment_method": method,
            "payment_history": [*current.payment_history, entry],
            "last_payment_at": now,
        }
        if transaction_id is not None:
            fields["last_payment_transaction_id"] = transaction_id

        updated = self.ledger.update(current.id, fields, expected_version=current.version)

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json"),
            exclude_fields=_AUDIT_EXCLUDE,
        )
        changes["payment_recorded"] = {"amount": str(amount), "method": method.value}
        self.audit.log_change(
            entity_type="invoice",
            entity_id=current.id,
            action=AuditAction.UPDATE,
            changes=changes,
            staff=entry.recorded_by,
        )

        logger.info(
            f"Credited {amount} ({method.value}) to invoice {updated.invoice_number}, "
            f"balance now {updated.balance_due}"
        )

        self.event_bus.publish(PaymentRecorded.create(invoice=updated, entry=entry))
        if (
            updated.payment_status == PaymentStatus.PAID
            and current.payment_status != PaymentStatus.PAID
        ):
            self.event_bus.publish(InvoicePaid.create(invoice=updated))

        return updated

    def record_payment(self, invoice_id: str, amount: Any, method: PaymentMethod) -> Invoice:
        """
        Record a counter payment.

        Args:
            invoice_id: Invoice id
            amount: Amount received (> 0). Not capped at balance due.
            method: How it was paid

        Returns:
            Updated invoice

        Raises:
            ValueError: Invalid amount
            InvoiceNotFoundError: Unknown invoice
            InvoiceAlreadyPaidError: Nothing left to collect
        """
        amount = validate_amount(amount)
        method = PaymentMethod(method)

        current = self._get_invoice(invoice_id)
        if current.is_settled:
            raise InvoiceAlreadyPaidError(current.invoice_number)

        return self._credit(current, amount, method, DepositStatus.PAID_OFFLINE)

    def confirm_deposit_received(
        self,
        invoice_id: str,
        amount: Any,
        confirmed: bool = False,
    ) -> Invoice:
        """
        Credit a link deposit on staff say-so.

        This is the only credit without gateway proof, so it refuses to run
        unless the caller passes confirmed=True after asking the operator.

        Raises:
            ValueError: Invalid amount
            ConfirmationRequiredError: confirmed is not True
            InvoiceNotFoundError: Unknown invoice
            InvoiceAlreadyPaidError: Nothing left to collect
        """
        amount = validate_amount(amount)
        current = self._get_invoice(invoice_id)

        if confirmed is not True:
            raise ConfirmationRequiredError(
                f"Confirm deposit of {amount} received via link for invoice "
                f"{current.invoice_number}?"
            )

        if current.is_settled:
            raise InvoiceAlreadyPaidError(current.invoice_number)

        return self._credit(current, amount, PaymentMethod.ONLINE_LINK, DepositStatus.PAID_LINK)

    def credit_online_payment(
        self,
        invoice: Invoice,
        amount: Any | None,
        transaction_id: str | None,
    ) -> tuple[Invoice, bool]:
        """
        Credit a payment the gateway has confirmed.

        Safe to call more than once for the same redirect: a transaction id
        equal to the invoice's last one is skipped, and nothing is credited
        once the invoice is paid.

        Args:
            invoice: Invoice as just read by the caller
            amount: Amount paid; defaults to the balance due
            transaction_id: Gateway transaction id, if the redirect carried one

        Returns:
            (invoice after the call, whether money was credited)

        Raises:
            ConcurrentModificationError: Invoice changed since it was read
        """
        if transaction_id and invoice.last_payment_transaction_id == transaction_id:
            logger.info(
                f"Transaction {transaction_id} already credited to {invoice.invoice_number}"
            )
            return invoice, False

        if invoice.is_settled:
            return invoice, False

        credit = validate_amount(amount) if amount is not None else invoice.balance_due
        updated = self._credit(
            invoice,
            credit,
            PaymentMethod.ONLINE_LINK,
            DepositStatus.PAID_LINK,
            transaction_id=transaction_id or now_utc().isoformat(),
        )
        return updated, True
