"""
Lean.x payment gateway client.

Creates hosted bill pages and checks bill status. Every response passes
through core.gateway_response so callers never deal with raw shapes.
Fail-fast: raises PaymentGatewayError on transport or API failure; the
degrade-to-demo-link policy belongs to the payment link service, not here.
"""

import json
import logging
import re
from decimal import Decimal

import requests

from core.gateway_response import (
    MalformedGatewayResponse,
    normalize_bill,
    normalize_status,
)
from core.models import GatewayBill, GatewayStatus

logger = logging.getLogger(__name__)

# Status lookups are tried in this order; a 404 means "try the next one".
STATUS_ENDPOINTS = (
    "/api/v1/bills/{bill_id}",
    "/api/v1/merchant/bills/{bill_id}",
    "/api/v1/open/bills/{bill_id}",
)
CREATE_BILL_ENDPOINT = "/api/v1/merchant/create-bill-page"

_MIN_PHONE_LENGTH = 9
_PHONE_SEPARATORS = re.compile(r"[\s-]")


class PaymentGatewayError(Exception):
    """Raised when a gateway request fails."""


def clean_phone(phone: str | None) -> str:
    """Strip spaces and dashes from a phone number."""
    return _PHONE_SEPARATORS.sub("", phone or "")


class LeanxClient:
    """Create bills and check payment status via the Lean.x merchant API."""

    def __init__(
        self,
        api_host: str,
        auth_token: str,
        collection_uuid: str,
        timeout_seconds: int = 15,
    ):
        """
        Initialize with gateway credentials.

        Args:
            api_host: Gateway base URL (e.g. https://api.leanx.io)
            auth_token: Merchant API token for the auth-token header
            collection_uuid: Collection the bills are filed under

        Raises:
            ValueError: If any credential is empty
        """
        if not api_host:
            raise ValueError("api_host is required")
        if not auth_token:
            raise ValueError("auth_token is required")
        if not collection_uuid:
            raise ValueError("collection_uuid is required")

        self.api_host = api_host.rstrip("/")
        self.auth_token = auth_token
        self.collection_uuid = collection_uuid
        self.timeout_seconds = timeout_seconds

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "auth-token": self.auth_token,
        }

    def _parse_json(self, response: requests.Response) -> dict:
        try:
            return response.json()
        except (json.JSONDecodeError, ValueError):
            logger.error(f"Gateway returned invalid JSON: {response.text[:200]}")
            raise PaymentGatewayError("Invalid response from gateway")

    def create_bill(
        self,
        amount: Decimal,
        invoice_ref: str,
        redirect_url: str,
        customer_name: str | None = None,
        customer_email: str | None = None,
        customer_phone: str | None = None,
    ) -> GatewayBill:
        """
        Create a hosted payment page for `amount`.

        Args:
            amount: Amount to collect (> 0)
            invoice_ref: Invoice number the bill is filed against
            redirect_url: Where the gateway sends the customer afterwards
            customer_name: Payer name (defaults to "Valued Customer")
            customer_email: Payer email (defaults to a placeholder)
            customer_phone: Payer phone, required by the gateway

        Returns:
            GatewayBill with the hosted URL and bill id (when recoverable)

        Raises:
            ValueError: Invalid amount or phone, before any HTTP call
            PaymentGatewayError: On any gateway failure
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise ValueError("Invalid payment amount.")

        phone = clean_phone(customer_phone)
        if len(phone) < _MIN_PHONE_LENGTH:
            raise ValueError("Invalid customer phone number. Required for payment link.")

        payload = {
            "collection_uuid": self.collection_uuid,
            "amount": float(amount.quantize(Decimal("0.01"))),
            "invoice_ref": invoice_ref,
            "redirect_url": redirect_url,
            "callback_url": f"{self.api_host}/api/payment-webhook-placeholder",
            "full_name": customer_name or "Valued Customer",
            "email": customer_email or "noemail@example.com",
            "phone_number": phone,
        }

        logger.info(f"Creating gateway bill for {invoice_ref} ({amount})")

        try:
            response = requests.post(
                f"{self.api_host}{CREATE_BILL_ENDPOINT}",
                json=payload,
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"Gateway connection failed: {e}")
            raise PaymentGatewayError(f"Connection failed: {e}")

        data = self._parse_json(response)

        if not response.ok:
            message = data.get("message") if isinstance(data, dict) else None
            error_msg = message or f"API Error: {response.status_code}"
            logger.error(f"Gateway error creating bill for {invoice_ref}: {error_msg}")
            raise PaymentGatewayError(error_msg)

        try:
            return normalize_bill(data, invoice_ref=invoice_ref)
        except MalformedGatewayResponse as e:
            logger.error(f"Gateway bill response unusable: {e}")
            raise PaymentGatewayError(str(e))

    def _get_status_payload(self, path: str) -> dict | None:
        """GET one status endpoint. None on 404, raises on other failures."""
        try:
            response = requests.get(
                f"{self.api_host}{path}",
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"Gateway connection failed: {e}")
            raise PaymentGatewayError(f"Connection failed: {e}")

        if response.status_code == 404:
            return None
        if not response.ok:
            raise PaymentGatewayError(f"API Error {response.status_code}")

        return self._parse_json(response)

    def check_status(self, bill_id: str) -> GatewayStatus:
        """
        Check whether a bill has been paid.

        Tries each of STATUS_ENDPOINTS in turn; a bill unknown to all of them
        yields status "not_found" rather than an error.

        Raises:
            ValueError: If bill_id is empty
            PaymentGatewayError: On transport failure or non-404 error status
        """
        if not bill_id:
            raise ValueError("bill_id is required")

        for template in STATUS_ENDPOINTS:
            data = self._get_status_payload(template.format(bill_id=bill_id))
            if data is not None:
                try:
                    return normalize_status(data)
                except MalformedGatewayResponse as e:
                    raise PaymentGatewayError(str(e))
            logger.info(f"Bill {bill_id} not found at {template}, trying next endpoint")

        return GatewayStatus(paid=False, status="not_found")
