"""
Payment link service: when to hand out the stored link, when to ask the
gateway for a new one, and what to do when the gateway fails.

Reuse policy for an invoice that already has a stored link:
- deposit phase still open (link_generated, pending): reuse, it's the deposit link
- no deposit scheme and not yet paid: reuse, it's the full-payment link
- deposit confirmed paid and a balance remains: regenerate, the stored link
  was for the deposit that is now done
- anything else: reuse

A failed gateway call never blocks the operator. They get a clearly marked
demo link plus the gateway's error message.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

from clients.leanx_client import LeanxClient, PaymentGatewayError
from core.config import PaymentConfig
from core.event_bus import EventBus
from core.events import PaymentLinkGenerated
from core.exceptions import InvoiceAlreadyPaidError, InvoiceNotFoundError
from core.invariants import SETTLED_TOLERANCE
from core.ledger_store import LedgerStore
from core.models import DepositStatus, GatewayBill, Invoice, PaymentLinkRequest
from core.services.payment_service import validate_amount

logger = logging.getLogger(__name__)

DEMO_LINK_ERROR = "Demo Link Generated (API Failed)"


@dataclass(frozen=True)
class LinkDecision:
    """Outcome of the reuse policy. reuse_url is None when a new link is needed."""

    reuse_url: str | None
    reason: str

    @property
    def regenerate(self) -> bool:
        return self.reuse_url is None


def decide_link(invoice: Invoice) -> LinkDecision:
    """Apply the reuse policy to an invoice's stored link."""
    existing = invoice.last_payment_link
    if not existing:
        return LinkDecision(None, "no_stored_link")

    if invoice.deposit_status.is_open:
        return LinkDecision(existing, "deposit_phase_open")

    if not invoice.has_deposit and not invoice.is_settled:
        return LinkDecision(existing, "full_payment_unpaid")

    if invoice.deposit_status.is_paid and invoice.balance_due > SETTLED_TOLERANCE:
        return LinkDecision(None, "balance_after_paid_deposit")

    return LinkDecision(existing, "fallback")


def default_link_amount(invoice: Invoice) -> Decimal:
    """Balance due, or the full total when nothing is outstanding."""
    return invoice.balance_due if invoice.balance_due > 0 else invoice.total


class PaymentLinkService:
    """Service for issuing gateway payment links."""

    def __init__(
        self,
        ledger: LedgerStore,
        gateway: LeanxClient,
        config: PaymentConfig,
        event_bus: EventBus,
    ):
        self.ledger = ledger
        self.gateway = gateway
        self.config = config
        self.event_bus = event_bus

    def _get_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.ledger.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def receipt_redirect_url(self, invoice: Invoice, amount: Decimal) -> str:
        """Where the gateway sends the customer after paying."""
        query = urlencode({
            "payment_status": "verify",
            "invoice": invoice.invoice_number,
            "amount": f"{amount:.2f}",
        })
        return f"{self.config.receipt_url}?{query}"

    def demo_link(self, invoice: Invoice, amount: Decimal) -> str:
        """Placeholder link shown when the gateway is unavailable. Never stored."""
        base = self.config.demo_link_base.rstrip("/")
        return f"{base}/{invoice.invoice_number}?amt={amount:.2f}"

    def request_link(self, invoice_id: str, amount: Any | None = None) -> PaymentLinkRequest:
        """
        Link for collecting money on an invoice: the stored one if the reuse
        policy allows, otherwise a freshly generated one.

        Args:
            invoice_id: Invoice id
            amount: Amount for a new link; defaults to default_link_amount().
                Ignored when the stored link is reused.

        Raises:
            InvoiceNotFoundError: Unknown invoice
            InvoiceAlreadyPaidError: Invoice is paid and no deposit link is open
            ValueError: Invalid amount
        """
        invoice = self._get_invoice(invoice_id)
        decision = decide_link(invoice)

        # An open deposit link stays valid while anything is outstanding.
        deposit_link_open = decision.reason == "deposit_phase_open" and invoice.balance_due > 0
        if invoice.is_settled and not deposit_link_open:
            raise InvoiceAlreadyPaidError(invoice.invoice_number)

        amount = validate_amount(amount) if amount is not None else default_link_amount(invoice)
        is_balance_link = invoice.deposit_status.is_paid

        logger.info(f"Link decision for {invoice.invoice_number}: {decision.reason}")

        if not decision.regenerate:
            return PaymentLinkRequest(
                invoice_id=invoice.id,
                amount=amount,
                url=decision.reuse_url,
                reused=True,
                is_balance_link=is_balance_link,
            )

        result = self._generate(invoice, amount)
        return result.model_copy(update={"is_balance_link": is_balance_link})

    def generate_link(self, invoice_id: str, amount: Any) -> PaymentLinkRequest:
        """
        Ask the gateway for a new link, falling back to a demo link.

        Raises:
            ValueError: Invalid amount (before any gateway call)
            InvoiceNotFoundError: Unknown invoice
        """
        amount = validate_amount(amount)
        invoice = self._get_invoice(invoice_id)
        return self._generate(invoice, amount)

    def _generate(self, invoice: Invoice, amount: Decimal) -> PaymentLinkRequest:
        try:
            bill = self.issue_link(invoice, amount)
        except (PaymentGatewayError, ValueError) as e:
            logger.warning(f"Gateway link failed for {invoice.invoice_number}, using demo link: {e}")
            return PaymentLinkRequest(
                invoice_id=invoice.id,
                amount=amount,
                url=self.demo_link(invoice, amount),
                is_demo=True,
                error=f"{DEMO_LINK_ERROR}: {e}",
            )

        return PaymentLinkRequest(invoice_id=invoice.id, amount=amount, url=bill.url)

    def issue_link(self, invoice: Invoice, amount: Decimal) -> GatewayBill:
        """
        Create a live gateway bill and store it on the invoice.

        Storing the link is best effort: if the write fails the link is
        still returned, so the customer can pay.

        Raises:
            ValueError: Gateway-side validation (amount, phone)
            PaymentGatewayError: Gateway failure
        """
        bill = self.gateway.create_bill(
            amount=amount,
            invoice_ref=invoice.invoice_number,
            redirect_url=self.receipt_redirect_url(invoice, amount),
            customer_name=invoice.customer_name,
            customer_email=invoice.customer_email,
            customer_phone=invoice.customer_phone,
        )

        try:
            self.ledger.update(invoice.id, {
                "last_payment_link": bill.url,
                "last_payment_id": bill.id,
            })
        except Exception as e:
            logger.warning(f"Could not save payment link for {invoice.invoice_number}: {e}")

        self.event_bus.publish(PaymentLinkGenerated.create(
            invoice=invoice, url=bill.url, bill_id=bill.id, amount=amount
        ))

        return bill
