"""Invoice domain models.

Money is held as Decimal quantized to 2 places. The ledger tolerates a
1-unit drift when deciding whether an invoice is settled.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from core.models.payment import PaymentHistoryEntry, PaymentMethod


class PaymentStatus(str, Enum):
    """How much of the invoice has been collected. Always derived from money."""

    PENDING = "pending"
    DEPOSIT_PAID = "deposit-paid"
    PAID = "paid"


class DepositStatus(str, Enum):
    """How the current deposit/payment was obtained."""

    NONE = "none"
    PENDING = "pending"
    PAID_OFFLINE = "paid_offline"
    LINK_GENERATED = "link_generated"
    PAID_LINK = "paid_link"

    @property
    def is_paid(self) -> bool:
        return self in (DepositStatus.PAID_OFFLINE, DepositStatus.PAID_LINK)

    @property
    def is_open(self) -> bool:
        """Deposit phase still waiting on the customer."""
        return self in (DepositStatus.LINK_GENERATED, DepositStatus.PENDING)


class PartLine(BaseModel):
    """A part sold on the invoice."""

    name: str = Field(..., min_length=1, max_length=200)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)


class LaborLine(BaseModel):
    """A labor charge on the invoice."""

    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., ge=0)


class InvoiceCreate(BaseModel):
    """Data required to create a customer invoice."""

    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_phone: str = Field("", max_length=30)
    customer_email: str = Field("", max_length=200)
    vehicle_plate: str | None = Field(None, max_length=20)
    work_description: str = Field("", max_length=2000)
    parts: list[PartLine] = Field(default_factory=list)
    labor: list[LaborLine] = Field(default_factory=list)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    deposit: Decimal = Field(Decimal("0"), ge=0)  # Taken offline at the counter
    request_deposit_amount: Decimal = Field(Decimal("0"), ge=0)  # To be collected by link
    payment_terms_days: int = Field(30, ge=0, le=365)
    notes: str | None = Field(None, max_length=2000)


class Invoice(BaseModel):
    """Full invoice document as stored in the ledger."""

    id: str
    invoice_number: str
    customer_name: str
    customer_phone: str = ""
    customer_email: str = ""
    vehicle_plate: str | None = None
    work_description: str = ""
    parts: list[PartLine] = Field(default_factory=list)
    labor: list[LaborLine] = Field(default_factory=list)

    parts_total: Decimal = Decimal("0.00")
    labor_total: Decimal = Decimal("0.00")
    subtotal: Decimal = Decimal("0.00")
    discount_percent: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0.00")
    total: Decimal
    deposit: Decimal = Decimal("0.00")
    balance_due: Decimal

    payment_status: PaymentStatus = PaymentStatus.PENDING
    deposit_status: DepositStatus = DepositStatus.NONE
    payment_method: PaymentMethod | None = None
    payment_history: list[PaymentHistoryEntry] = Field(default_factory=list)

    last_payment_link: str | None = None
    last_payment_id: str | None = None
    last_payment_transaction_id: str | None = None
    last_payment_at: datetime | None = None

    payment_terms_days: int = 30
    due_at: datetime | None = None
    notes: str | None = None
    version: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_settled(self) -> bool:
        """Fully paid: less than one currency unit outstanding."""
        return self.payment_status == PaymentStatus.PAID or self.balance_due < 1

    @property
    def has_deposit(self) -> bool:
        return self.deposit > 0
