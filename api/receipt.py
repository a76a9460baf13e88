"""GET /payment/receipt: where the gateway sends the customer back to.

Customer-facing, so every outcome is a small HTML page rather than the JSON
envelope. When the invoice has a stored payment link the page forwards to
it after a short pause, so the gateway's own receipt is what the customer
ends up looking at.
"""

import logging
from html import escape
from urllib.parse import urlencode

from fastapi import APIRouter, Query, Request
from starlette.responses import HTMLResponse, RedirectResponse

from clients.leanx_client import PaymentGatewayError
from core.exceptions import InvoiceNotFoundError
from core.redirect_params import parse_redirect
from core.services.receipt_service import ReceiptOutcome, ReceiptStatus

logger = logging.getLogger(__name__)

_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{title}</title>
{head}
</head>
<body style="font-family: sans-serif; text-align: center; padding: 3em 1em;">
<h2>{title}</h2>
<p>{message}</p>
{body}
</body>
</html>
"""


def render_redirect_page(url: str, delay_ms: int) -> str:
    """Page that forwards to `url` after `delay_ms`, with a manual link as backup."""
    safe_url = escape(url, quote=True)
    seconds = f"{delay_ms / 1000:.1f}"
    head = f'<meta http-equiv="refresh" content="{seconds};url={safe_url}">'
    body = (
        "<p>Please do not close this window.</p>"
        f'<p><a href="{safe_url}">Click here if not redirected</a></p>'
    )
    return _PAGE.format(
        title="Verifying payment status...",
        message="Returning you to the payment provider...",
        head=head,
        body=body,
    )


def render_fallback_page(outcome: ReceiptOutcome, retry_path: str) -> str:
    """Page for outcomes with no stored link to forward to."""
    invoice = outcome.invoice

    if outcome.status == ReceiptStatus.SUCCESS and invoice is not None:
        title = "Payment received"
        message = f"Invoice {escape(invoice.invoice_number)}: {outcome.amount_paid} paid. Balance due {invoice.balance_due}."
    else:
        title = "We could not confirm your payment"
        message = escape(outcome.message or "Please try again.")

    if invoice is not None and not invoice.is_settled:
        action = escape(f"{retry_path}?{urlencode({'invoice': invoice.invoice_number})}", quote=True)
        body = (
            f'<form method="post" action="{action}">'
            '<button type="submit">Retry payment</button>'
            "</form>"
        )
    else:
        body = '<p><a href="javascript:history.back()">Go back</a></p>'

    return _PAGE.format(title=title, message=message, head="", body=body)


def render_error_page(message: str) -> str:
    return _PAGE.format(
        title="Payment link unavailable",
        message=escape(message),
        head="",
        body="",
    )


def create_receipt_router(services: dict) -> APIRouter:
    router = APIRouter()

    receipt_svc = services["receipt"]

    @router.get("/payment/receipt")
    async def payment_receipt(request: Request):
        params = parse_redirect(request.url.query)
        outcome = receipt_svc.reconcile(params)

        logger.info(
            f"Receipt for {params.invoice_number}: {outcome.status.value} "
            f"(credited={outcome.credited})"
        )

        if outcome.redirect_url:
            return HTMLResponse(render_redirect_page(outcome.redirect_url, outcome.redirect_delay_ms))

        return HTMLResponse(render_fallback_page(outcome, request.url.path + "/retry"))

    @router.post("/payment/receipt/retry")
    async def retry_payment(invoice: str = Query(..., min_length=1)):
        try:
            url = receipt_svc.retry_payment(invoice)
        except InvoiceNotFoundError as e:
            return HTMLResponse(render_error_page(str(e)), status_code=404)
        except PaymentGatewayError as e:
            logger.warning(f"Retry link failed for {invoice}: {e}")
            return HTMLResponse(
                render_error_page("Failed to generate new payment link. Please contact support."),
                status_code=502,
            )

        return RedirectResponse(url, status_code=303)

    return router
