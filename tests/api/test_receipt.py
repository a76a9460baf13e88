"""Tests for the customer-facing receipt pages."""

from decimal import Decimal

from clients.leanx_client import PaymentGatewayError
from core.models import GatewayStatus, PaymentStatus

STORED_LINK = "https://pay.leanx.test/bill/BP-0001"


class TestReceiptPage:

    def test_no_staff_identity_needed(self, anonymous_client, make_invoice):
        invoice = make_invoice(last_payment_link=STORED_LINK)

        response = anonymous_client.get(f"/payment/receipt?invoice={invoice.invoice_number}")

        assert response.status_code == 200

    def test_confirmed_success_credits_and_forwards(self, anonymous_client, gateway, ledger, make_invoice):
        gateway.check_status.return_value = GatewayStatus(paid=True, status="paid")
        invoice = make_invoice(total="500", last_payment_id="BP-0001", last_payment_link=STORED_LINK)

        response = anonymous_client.get(
            f"/payment/receipt?payment_status=success&invoice={invoice.invoice_number}"
            f"&amount=500&transaction_id=TX-42"
        )

        assert response.headers["content-type"].startswith("text/html")
        assert 'http-equiv="refresh" content="0.5;url=https://pay.leanx.test/bill/BP-0001"' in response.text
        assert "Click here if not redirected" in response.text

        stored = ledger.get(invoice.id)
        assert stored.payment_status == PaymentStatus.PAID
        assert stored.payment_history[0].recorded_by == "system"

    def test_forged_success_credits_nothing(self, anonymous_client, gateway, ledger, make_invoice):
        gateway.check_status.return_value = GatewayStatus(paid=False, status="unknown")
        invoice = make_invoice(total="500", last_payment_id="BP-0001", last_payment_link=STORED_LINK)

        response = anonymous_client.get(
            f"/payment/receipt?payment_status=success&invoice={invoice.invoice_number}&amount=500"
        )

        assert response.status_code == 200
        assert "refresh" in response.text
        gateway.check_status.assert_called_once_with("BP-0001")
        stored = ledger.get(invoice.id)
        assert stored.payment_status == PaymentStatus.PENDING
        assert stored.deposit == Decimal("0.00")

    def test_mangled_query_still_resolves(self, anonymous_client, gateway, ledger, make_invoice):
        gateway.check_status.return_value = GatewayStatus(paid=True, status="paid")
        invoice = make_invoice(total="300", last_payment_link=STORED_LINK)

        response = anonymous_client.get(
            f"/payment/receipt?payment_status=verify&invoice={invoice.invoice_number}"
            f"?billplz[id]=BP-MANGLED&billplz[paid]=true"
        )

        assert response.status_code == 200
        gateway.check_status.assert_called_once_with("BP-MANGLED")
        assert ledger.get(invoice.id).deposit == Decimal("300.00")

    def test_ambiguous_failure_forwards_instead_of_failing(self, anonymous_client, make_invoice):
        invoice = make_invoice(last_payment_link=STORED_LINK)

        response = anonymous_client.get(f"/payment/receipt?payment_status=failed&invoice={invoice.invoice_number}")

        assert "refresh" in response.text
        assert "could not confirm" not in response.text

    def test_without_stored_link_offers_retry(self, anonymous_client, make_invoice):
        invoice = make_invoice(total="500")

        response = anonymous_client.get(
            f"/payment/receipt?payment_status=success&invoice={invoice.invoice_number}&status_id=3"
        )

        assert "We could not confirm your payment" in response.text
        assert f'action="/payment/receipt/retry?invoice={invoice.invoice_number}"' in response.text

    def test_missing_invoice_shows_message(self, anonymous_client):
        response = anonymous_client.get("/payment/receipt?payment_status=success")

        assert response.status_code == 200
        assert "Missing invoice reference" in response.text


class TestRetryPayment:

    def test_redirects_to_new_link(self, anonymous_client, gateway, make_invoice):
        invoice = make_invoice(total="500")

        response = anonymous_client.post(
            f"/payment/receipt/retry?invoice={invoice.invoice_number}",
            follow_redirects=False,
        )

        assert response.status_code == 303
        assert response.headers["location"] == "https://pay.leanx.test/bill/BP-NEW-0001"

    def test_unknown_invoice_returns_404_page(self, anonymous_client):
        response = anonymous_client.post("/payment/receipt/retry?invoice=INV-NOPE")

        assert response.status_code == 404
        assert "INV-NOPE" in response.text

    def test_gateway_failure_asks_customer_to_contact_support(self, anonymous_client, gateway, make_invoice):
        gateway.create_bill.side_effect = PaymentGatewayError("API Error: 500")
        invoice = make_invoice()

        response = anonymous_client.post(f"/payment/receipt/retry?invoice={invoice.invoice_number}")

        assert response.status_code == 502
        assert "Please contact support" in response.text
