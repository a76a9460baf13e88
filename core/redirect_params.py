"""
Parsing of the query string a customer's browser carries back from the gateway.

Nothing here is proof of payment. The values are used to locate the invoice
and as hints for the reconciliation flow.

Gateways sometimes append their own parameters to a redirect URL that
already has a query string, producing values like
`invoice=INV-1?billplz[id]=abc&billplz[paid]=true`. get_param() rescues such
keys by re-splitting any value that contains '?' or '&'.
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from urllib.parse import parse_qsl

from core.invariants import to_money

# Probed in order; first non-empty wins.
BILL_ID_KEYS = ("billplz[id]", "id", "bill_id")
TRANSACTION_ID_KEYS = ("transaction_id", "billcode", "id")

_NESTED_SEPARATORS = re.compile(r"[?&]")


def get_param(pairs: list[tuple[str, str]], key: str) -> str | None:
    """
    First non-empty value for `key`, with the malformed-value rescue.

    A direct value is cut at the first '?' or '&', dropping whatever the
    gateway glued onto it.

    Args:
        pairs: Decoded query pairs in URL order
        key: Parameter name

    Returns:
        The value, or None when absent or empty
    """
    for name, value in pairs:
        if name == key and value:
            head = _NESTED_SEPARATORS.split(value, maxsplit=1)[0]
            if head:
                return head

    found = None
    for _, value in pairs:
        if value and ("?" in value or "&" in value):
            for part in _NESTED_SEPARATORS.split(value):
                nested_key, _, nested_value = part.partition("=")
                if nested_key == key:
                    found = nested_value
    return found or None


def _first_param(pairs: list[tuple[str, str]], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = get_param(pairs, key)
        if value:
            return value
    return None


def _parse_amount(raw: str | None) -> Decimal | None:
    """Positive amount or None. Garbage is ignored, not an error."""
    if not raw:
        return None
    try:
        amount = to_money(raw)
    except ValueError:
        return None
    return amount if amount > 0 else None


@dataclass(frozen=True)
class RedirectParams:
    """What the gateway redirect told us, normalized."""

    payment_status: str | None = None
    invoice_number: str | None = None
    amount: Decimal | None = None
    bill_id: str | None = None
    transaction_id: str | None = None
    status_id: str | None = None
    paid_flag: str | None = None

    @property
    def tamper_signals(self) -> list[str]:
        """Failure markers that contradict a payment_status=success claim."""
        signals = []
        if self.status_id == "3":
            signals.append("status_id=3")
        if self.paid_flag == "false":
            signals.append("billplz[paid]=false")
        return signals

    @property
    def claims_success(self) -> bool:
        return self.payment_status == "success"


def parse_redirect(query: str) -> RedirectParams:
    """
    Parse a raw query string (without the leading '?').

    Args:
        query: e.g. "payment_status=verify&invoice=INV-20260101-0001&amount=700.00"
    """
    pairs = parse_qsl(query.lstrip("?"), keep_blank_values=True)

    return RedirectParams(
        payment_status=get_param(pairs, "payment_status"),
        invoice_number=get_param(pairs, "invoice"),
        amount=_parse_amount(get_param(pairs, "amount")),
        bill_id=_first_param(pairs, BILL_ID_KEYS),
        transaction_id=_first_param(pairs, TRANSACTION_ID_KEYS),
        status_id=get_param(pairs, "status_id"),
        paid_flag=get_param(pairs, "billplz[paid]"),
    )
