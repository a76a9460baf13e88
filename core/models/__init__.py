"""Core domain models."""

from core.models.payment import (
    PaymentMethod,
    PaymentHistoryEntry,
    LedgerTransaction,
    GatewayBill,
    GatewayStatus,
    PaymentLinkRequest,
)
from core.models.invoice import (
    Invoice,
    InvoiceCreate,
    PartLine,
    LaborLine,
    PaymentStatus,
    DepositStatus,
)

__all__ = [
    # Payment
    "PaymentMethod", "PaymentHistoryEntry", "LedgerTransaction",
    "GatewayBill", "GatewayStatus", "PaymentLinkRequest",
    # Invoice
    "Invoice", "InvoiceCreate", "PartLine", "LaborLine",
    "PaymentStatus", "DepositStatus",
]
