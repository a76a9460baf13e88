"""
Invoice service for creating and reading customer invoices.

Totals are computed here once, at creation: parts and labor lines, a
percentage discount, and any deposit taken at the counter. After that the
money fields only move through PaymentService.
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal

from core.audit import AuditLogger, AuditAction
from core.event_bus import EventBus
from core.events import InvoiceCreated
from core.exceptions import InvoiceNotFoundError
from core.invariants import settle_fields, to_money
from core.ledger_store import LedgerStore
from core.models import DepositStatus, Invoice, InvoiceCreate, PaymentStatus
from utils.timezone import DEFAULT_BUSINESS_TIMEZONE, business_date, now_utc

logger = logging.getLogger(__name__)

TIMEFRAMES = ("all", "month", "year")


def compute_totals(data: InvoiceCreate) -> dict[str, Decimal]:
    """
    Money fields for a new invoice.

    Each part line is rounded to 2 places before summing, so the printed
    lines always add up to the printed total.
    """
    parts_total = sum(
        (to_money(part.quantity * part.unit_price) for part in data.parts),
        Decimal("0.00"),
    )
    labor_total = sum((to_money(line.amount) for line in data.labor), Decimal("0.00"))
    subtotal = to_money(parts_total + labor_total)
    discount_amount = to_money(subtotal * data.discount_percent / 100)

    return {
        "parts_total": to_money(parts_total),
        "labor_total": to_money(labor_total),
        "subtotal": subtotal,
        "discount_percent": data.discount_percent,
        "discount_amount": discount_amount,
        "total": to_money(subtotal - discount_amount),
    }


def initial_deposit_status(data: InvoiceCreate) -> DepositStatus:
    """How the opening deposit is being obtained."""
    if data.deposit > 0:
        return DepositStatus.PAID_OFFLINE
    if data.request_deposit_amount > 0:
        return DepositStatus.LINK_GENERATED
    return DepositStatus.NONE


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        ledger: LedgerStore,
        audit: AuditLogger,
        event_bus: EventBus,
        business_timezone: str = DEFAULT_BUSINESS_TIMEZONE,
    ):
        self.ledger = ledger
        self.audit = audit
        self.event_bus = event_bus
        self.business_timezone = business_timezone

    def _local_date(self, dt: datetime) -> date:
        return business_date(dt, self.business_timezone)

    def _generate_invoice_number(self) -> str:
        """
        Generate the next invoice number for the workshop's current day.

        Format: INV-YYYYMMDD-XXXX where XXXX is a sequence number.
        """
        prefix = f"INV-{self._local_date(now_utc()):%Y%m%d}-"

        sequence = 0
        for invoice in self.ledger.list_all(order_by="invoice_number"):
            if not invoice.invoice_number.startswith(prefix):
                continue
            try:
                sequence = max(sequence, int(invoice.invoice_number.split("-")[-1]))
            except (ValueError, IndexError):
                continue

        return f"{prefix}{sequence + 1:04d}"

    def create(self, data: InvoiceCreate) -> Invoice:
        """
        Create an invoice.

        Args:
            data: Invoice creation data

        Returns:
            Created invoice

        Raises:
            ValueError: If the invoice has nothing to bill
        """
        totals = compute_totals(data)
        if totals["total"] <= 0:
            raise ValueError("Invoice has no billable amount")

        now = now_utc()
        fields = {
            **data.model_dump(exclude={"deposit", "request_deposit_amount"}),
            **totals,
            **settle_fields(totals["total"], data.deposit),
            "invoice_number": self._generate_invoice_number(),
            "deposit_status": initial_deposit_status(data),
            "due_at": now + timedelta(days=data.payment_terms_days),
            "created_at": now,
        }

        invoice = self.ledger.create(fields)

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.CREATE,
            changes={
                "created": {
                    "invoice_number": invoice.invoice_number,
                    "total": str(invoice.total),
                    "deposit": str(invoice.deposit),
                    "deposit_status": invoice.deposit_status.value,
                }
            }
        )

        logger.info(f"Created invoice {invoice.invoice_number} for {invoice.total}")
        self.event_bus.publish(InvoiceCreated.create(invoice=invoice))

        return invoice

    def get_by_id(self, invoice_id: str) -> Invoice | None:
        """Invoice by store id, or None."""
        return self.ledger.get(invoice_id)

    def get_by_number(self, invoice_number: str) -> Invoice | None:
        """Invoice by its printed number, or None."""
        return self.ledger.get_by_number(invoice_number)

    def list_all(self) -> list[Invoice]:
        """All invoices, newest first."""
        return self.ledger.list_all(order_by="created_at", descending=True)

    def list_unpaid(self) -> list[Invoice]:
        """
        Invoices with money still owed, oldest due date first.
        """
        unpaid = [
            invoice for invoice in self.ledger.list_all(order_by="due_at", descending=False)
            if not invoice.is_settled
        ]
        return unpaid

    def delete(self, invoice_id: str) -> None:
        """
        Delete an invoice. Explicit admin action only.

        Raises:
            InvoiceNotFoundError: If invoice doesn't exist
        """
        current = self.ledger.get(invoice_id)
        if current is None:
            raise InvoiceNotFoundError(invoice_id)

        self.ledger.delete(invoice_id)

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")}
        )
        logger.info(f"Deleted invoice {current.invoice_number}")

    def summarize(self, timeframe: str = "all") -> dict[str, Decimal | int]:
        """
        Accounting summary over invoices created in a timeframe.

        Args:
            timeframe: "all", "month" (current calendar month) or "year"

        Returns:
            Dict with total_revenue, pending_payment, collected, invoice_count

        Raises:
            ValueError: Unknown timeframe
        """
        if timeframe not in TIMEFRAMES:
            raise ValueError(f"Unknown timeframe '{timeframe}'. Use one of: {', '.join(TIMEFRAMES)}")

        today = self._local_date(now_utc())
        invoices = self.ledger.list_all()
        if timeframe == "month":
            invoices = [
                i for i in invoices
                if self._local_date(i.created_at).replace(day=1) == today.replace(day=1)
            ]
        elif timeframe == "year":
            invoices = [i for i in invoices if self._local_date(i.created_at).year == today.year]

        total_revenue = sum((i.total for i in invoices), Decimal("0.00"))
        pending_payment = sum(
            (i.balance_due for i in invoices if i.payment_status != PaymentStatus.PAID),
            Decimal("0.00"),
        )

        return {
            "total_revenue": total_revenue,
            "pending_payment": pending_payment,
            "collected": total_revenue - pending_payment,
            "invoice_count": len(invoices),
        }
