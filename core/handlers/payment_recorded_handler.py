"""
Handler for PaymentRecorded events.

Every credited payment becomes an income entry in the workshop's
transaction ledger, whichever path credited it.
"""

import logging
from typing import Callable

from core.events import PaymentRecorded
from core.models import LedgerTransaction

logger = logging.getLogger(__name__)


def handle_payment_recorded(ledger) -> Callable:
    """
    Factory that returns a PaymentRecorded handler.

    Args:
        ledger: LedgerStore instance

    Returns:
        Handler callable that appends an income transaction
    """

    def handler(event: PaymentRecorded):
        invoice = event.invoice
        entry = event.entry

        ledger.append_transaction(LedgerTransaction(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            customer_name=invoice.customer_name,
            amount=entry.amount,
            method=entry.method,
            recorded_at=entry.recorded_at,
        ))
        logger.info(f"Income of {entry.amount} logged for invoice {invoice.invoice_number}")

    return handler
