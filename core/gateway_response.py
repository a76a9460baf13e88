"""
Normalization of payment gateway responses.

The gateway has returned bills and statuses in several shapes across API
versions and account types (flat, wrapped in "data", URL-only). All probing
happens here against explicit key tables so the payment services only ever
see GatewayBill and GatewayStatus.
"""

import logging
from decimal import Decimal
from typing import Any
from urllib.parse import urlparse, parse_qs

from core.invariants import to_money
from core.models import GatewayBill, GatewayStatus

logger = logging.getLogger(__name__)

# Checked in order, first at the top level and then inside NESTED_KEYS.
URL_KEYS = ("url", "payment_url", "redirect_url", "link")
ID_KEYS = ("id", "uuid", "bill_id")
AMOUNT_KEYS = ("paid_amount", "amount", "total_amount")
NESTED_KEYS = ("data",)

# Status field -> values meaning "money received".
PAID_FIELDS = {
    "paid": {True, "true"},
    "status": {"paid", "completed"},
    "state": {"paid"},
}

# A bill id recovered from the URL tail must be longer than this.
_MIN_URL_ID_LENGTH = 5


class MalformedGatewayResponse(ValueError):
    """The gateway answered, but not with anything usable."""


def _layers(data: dict) -> list[dict]:
    """Top-level dict followed by any nested payload dicts."""
    layers = [data]
    for key in NESTED_KEYS:
        nested = data.get(key)
        if isinstance(nested, dict):
            layers.append(nested)
    return layers


def _first_value(data: dict, keys: tuple[str, ...]) -> Any:
    for layer in _layers(data):
        for key in keys:
            value = layer.get(key)
            if value:
                return value
    return None


def extract_id_from_url(url: str) -> str | None:
    """
    Recover a bill id from a hosted payment URL.

    Typical shapes: https://host/bills/abcdef123 or https://host/pay?id=abcdef123
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        logger.warning(f"Could not parse payment URL for bill id: {url}")
        return None

    last_part = parsed.path.rstrip("/").split("/")[-1] if parsed.path else ""
    if len(last_part) > _MIN_URL_ID_LENGTH:
        return last_part

    ids = parse_qs(parsed.query).get("id")
    if ids:
        return ids[0]
    return None


def normalize_bill(data: Any, invoice_ref: str | None = None) -> GatewayBill:
    """
    Map a create-bill response to GatewayBill.

    Raises:
        MalformedGatewayResponse: If no payment URL can be found
    """
    if not isinstance(data, dict):
        raise MalformedGatewayResponse(
            f"Expected a JSON object from gateway, got {type(data).__name__}"
        )

    url = _first_value(data, URL_KEYS)
    if not url:
        keys = ", ".join(sorted(data.keys()))
        raise MalformedGatewayResponse(
            f"Payment generated but URL missing. Keys received: {keys}"
        )

    bill_id = _first_value(data, ID_KEYS)
    if not bill_id:
        bill_id = extract_id_from_url(str(url))
        if bill_id:
            logger.info(f"Extracted bill id from URL: {bill_id}")

    return GatewayBill(
        url=str(url),
        id=str(bill_id) if bill_id else None,
        ref=invoice_ref,
    )


def _is_paid_layer(layer: dict) -> bool:
    for field, paid_values in PAID_FIELDS.items():
        value = layer.get(field)
        if isinstance(value, str):
            value = value.lower()
        if isinstance(value, (bool, str)) and value in paid_values:
            return True
    return False


def _paid_amount(data: dict) -> Decimal | None:
    """Amount the gateway says was collected, in currency units, if it says."""
    raw = _first_value(data, AMOUNT_KEYS)
    if raw is None:
        return None
    try:
        amount = to_money(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric gateway amount: {raw!r}")
        return None
    return amount if amount > 0 else None


def normalize_status(data: Any) -> GatewayStatus:
    """
    Map a bill status response to GatewayStatus.

    Anything not recognizably paid is reported as unpaid with status
    "unknown"; the caller treats that as inconclusive, not as a failure.
    """
    if not isinstance(data, dict):
        raise MalformedGatewayResponse(
            f"Expected a JSON object from gateway, got {type(data).__name__}"
        )

    for layer in _layers(data):
        if _is_paid_layer(layer):
            return GatewayStatus(paid=True, status="paid", amount=_paid_amount(data), raw=data)

    return GatewayStatus(paid=False, status="unknown", raw=data)
