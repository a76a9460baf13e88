"""
Receipt reconciliation: the page a customer lands on after the gateway.

The redirect's query string is never proof of payment. It locates the
invoice and hints at what happened; the ledger and one gateway status check
decide whether money is credited. Whatever the outcome, the customer is
sent on to the gateway's own receipt (the invoice's stored link) after a
short pause, so an ambiguous redirect never turns into a "payment failed"
screen.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from clients.leanx_client import LeanxClient, PaymentGatewayError
from core.config import PaymentConfig
from core.exceptions import InvoiceNotFoundError
from core.ledger_store import LedgerStore
from core.models import DepositStatus, Invoice
from core.redirect_params import RedirectParams
from core.services.payment_link_service import PaymentLinkService, default_link_amount
from core.services.payment_service import PaymentService

logger = logging.getLogger(__name__)


class ReceiptStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    NOT_FOUND = "not_found"
    ERROR = "error"


# Outcomes that still send the customer on to the stored link
_REDIRECTABLE = {ReceiptStatus.SUCCESS, ReceiptStatus.FAILED, ReceiptStatus.NOT_FOUND}


@dataclass(frozen=True)
class ReceiptOutcome:
    """What the receipt page should do next."""

    status: ReceiptStatus
    invoice: Invoice | None = None
    redirect_url: str | None = None
    redirect_delay_ms: int = 0
    amount_paid: Decimal | None = None
    credited: bool = False
    message: str = ""


class ReceiptService:
    """Reconcile gateway redirects against the ledger."""

    def __init__(
        self,
        ledger: LedgerStore,
        payments: PaymentService,
        links: PaymentLinkService,
        gateway: LeanxClient,
        config: PaymentConfig,
    ):
        self.ledger = ledger
        self.payments = payments
        self.links = links
        self.gateway = gateway
        self.config = config

    def reconcile(self, params: RedirectParams) -> ReceiptOutcome:
        """
        Decide the outcome of one gateway redirect.

        - payment_status=success with tamper signals: read-only, failed
        - anything else, success included: verify against the ledger, then
          one gateway check; money is credited only if the gateway says paid
        """
        if not params.invoice_number:
            return ReceiptOutcome(status=ReceiptStatus.ERROR, message="Missing invoice reference")

        readonly = params.claims_success and bool(params.tamper_signals)
        if readonly:
            logger.warning(
                f"Success redirect for {params.invoice_number} carries failure signals: "
                f"{', '.join(params.tamper_signals)}"
            )

        try:
            invoice = self.ledger.get_by_number(params.invoice_number)
        except Exception:
            logger.exception(f"Could not load invoice {params.invoice_number}")
            return ReceiptOutcome(status=ReceiptStatus.ERROR, message="Could not load invoice")

        if invoice is None:
            if params.claims_success and not readonly:
                status = ReceiptStatus.NOT_FOUND
            else:
                status = ReceiptStatus.FAILED
            return ReceiptOutcome(status=status, message=f"Invoice {params.invoice_number} not found")

        if readonly:
            return self._finish(ReceiptStatus.FAILED, invoice, params, message="Payment not confirmed")

        return self._verify(invoice, params)

    def _verify(self, invoice: Invoice, params: RedirectParams) -> ReceiptOutcome:
        if invoice.is_settled:
            return self._finish(ReceiptStatus.SUCCESS, invoice, params, message="Invoice fully paid")

        # A balance payment is recognised by its amount. Anything else
        # returning to an invoice with a link-paid deposit is that deposit.
        paying_balance = (
            params.amount is not None
            and abs(params.amount - invoice.balance_due) < self.config.balance_match_tolerance
        )
        if invoice.deposit_status == DepositStatus.PAID_LINK and not paying_balance:
            return self._finish(ReceiptStatus.SUCCESS, invoice, params, message="Deposit already recorded")

        bill_id = params.bill_id or invoice.last_payment_id
        if not bill_id:
            return self._finish(ReceiptStatus.SUCCESS, invoice, params, message="No bill to check")

        try:
            status = self.gateway.check_status(bill_id)
        except (PaymentGatewayError, ValueError) as e:
            logger.warning(f"Status check for bill {bill_id} failed, deferring to gateway receipt: {e}")
            return self._finish(ReceiptStatus.SUCCESS, invoice, params, message="Status check inconclusive")

        if not status.paid:
            logger.info(f"Bill {bill_id} reports {status.status}, deferring to gateway receipt")
            return self._finish(ReceiptStatus.SUCCESS, invoice, params, message="Payment not yet confirmed")

        # The gateway's own figure wins over the redirect's.
        amount = status.amount if status.amount is not None else params.amount
        invoice, credited = self._credit(invoice, amount, params.transaction_id)
        return self._finish(ReceiptStatus.SUCCESS, invoice, params, credited=credited)

    def _credit(
        self, invoice: Invoice, amount: Decimal | None, transaction_id: str | None
    ) -> tuple[Invoice, bool]:
        """Credit a gateway-confirmed payment. A failed ledger write is logged, not raised."""
        try:
            return self.payments.credit_online_payment(invoice, amount, transaction_id)
        except Exception as e:
            logger.warning(f"Could not record payment for {invoice.invoice_number}: {e}")
            return invoice, False

    def _finish(
        self,
        status: ReceiptStatus,
        invoice: Invoice,
        params: RedirectParams,
        credited: bool = False,
        message: str = "",
    ) -> ReceiptOutcome:
        if params.amount is not None:
            amount_paid = params.amount
        else:
            amount_paid = invoice.deposit if invoice.deposit > 0 else invoice.total

        redirect_url = invoice.last_payment_link if status in _REDIRECTABLE else None

        return ReceiptOutcome(
            status=status,
            invoice=invoice,
            redirect_url=redirect_url,
            redirect_delay_ms=self.config.redirect_delay_ms if redirect_url else 0,
            amount_paid=amount_paid,
            credited=credited,
            message=message,
        )

    def retry_payment(self, invoice_number: str) -> str:
        """
        Fresh live link for the outstanding amount, for immediate redirect.

        No demo fallback here: the customer is told to contact support.

        Raises:
            InvoiceNotFoundError: Unknown invoice number
            PaymentGatewayError: Gateway failure or rejected request
        """
        invoice = self.ledger.get_by_number(invoice_number)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_number)

        amount = default_link_amount(invoice)
        try:
            bill = self.links.issue_link(invoice, amount)
        except ValueError as e:
            raise PaymentGatewayError(str(e))

        logger.info(f"Retry link issued for {invoice_number}")
        return bill.url
