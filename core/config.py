"""Payment flow configuration."""

from decimal import Decimal

from pydantic import BaseModel, Field


class PaymentConfig(BaseModel):
    """
    Payment flow configuration.

    Secrets (gateway token, collection id, database URL) live in Vault, not
    here. These are the behavioral knobs of the link and receipt flows.
    """

    # Application
    app_base_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL the gateway redirects customers back to",
    )
    receipt_path: str = Field(
        default="/payment/receipt",
        description="Path of the receipt reconciliation page",
    )
    currency: str = Field(
        default="MYR",
        description="ISO 4217 currency of all invoice amounts",
        min_length=3,
        max_length=3,
    )
    business_timezone: str = Field(
        default="Asia/Kuala_Lumpur",
        description="IANA timezone of the workshop, for invoice-number dates and summary periods",
    )

    # Gateway
    gateway_api_host: str = Field(
        default="https://api.leanx.io",
        description="Payment gateway API host",
    )
    gateway_timeout_seconds: int = Field(
        default=15,
        description="Timeout for a single gateway request",
        ge=1,
        le=60,
    )
    demo_link_base: str = Field(
        default="https://demo.payment.com/pay",
        description="Base of placeholder links handed out when the gateway fails",
    )

    # Receipt flow
    redirect_delay_ms: int = Field(
        default=500,
        description="Pause before sending the customer back to the gateway receipt",
        ge=0,
        le=999,
    )
    balance_match_tolerance: Decimal = Field(
        default=Decimal("2.00"),
        description="How close a redirect amount must be to the balance to count as a balance payment",
        ge=0,
    )

    @property
    def receipt_url(self) -> str:
        return f"{self.app_base_url.rstrip('/')}{self.receipt_path}"
