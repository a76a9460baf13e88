"""Payment domain models: history entries, gateway results, link requests."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class PaymentMethod(str, Enum):
    """How money reached the workshop."""

    CASH = "cash"
    TRANSFER = "transfer"
    CHEQUE = "cheque"
    CARD = "card"
    ONLINE_LINK = "online_link"


class PaymentHistoryEntry(BaseModel):
    """One credited payment. Entries are appended, never edited or removed."""

    amount: Decimal
    recorded_at: datetime
    method: PaymentMethod
    recorded_by: str
    transaction_id: str | None = None


class LedgerTransaction(BaseModel):
    """Income entry written to the workshop's transaction ledger."""

    invoice_id: str
    invoice_number: str
    customer_name: str
    amount: Decimal
    type: str = "income"
    category: str = "Invoice Payment"
    method: PaymentMethod
    recorded_at: datetime


class GatewayBill(BaseModel):
    """A hosted payment page created by the gateway."""

    url: str
    id: str | None = None
    ref: str | None = None


class GatewayStatus(BaseModel):
    """Normalized answer to a bill status check."""

    paid: bool
    status: str = "unknown"
    amount: Decimal | None = None
    raw: dict = Field(default_factory=dict, repr=False)


class PaymentLinkRequest(BaseModel):
    """
    One link-generation attempt for an invoice. Never persisted.

    `reused` means the invoice's stored link was handed back unchanged.
    `is_demo` marks a placeholder produced because the gateway call failed.
    """

    invoice_id: str
    amount: Decimal
    url: str | None = None
    reused: bool = False
    is_demo: bool = False
    is_balance_link: bool = False
    error: str | None = None
