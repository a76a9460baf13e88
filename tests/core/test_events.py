"""Tests for ledger domain events."""

import dataclasses
from datetime import timezone
from decimal import Decimal

import pytest

from core.events import (
    InvoiceCreated,
    InvoiceEvent,
    InvoicePaid,
    LedgerEvent,
    PaymentEvent,
    PaymentLinkGenerated,
    PaymentRecorded,
)
from core.models import PaymentHistoryEntry, PaymentMethod
from utils.timezone import now_utc


class TestEventBase:

    def test_events_get_unique_ids(self, make_invoice):
        invoice = make_invoice()
        assert InvoiceCreated.create(invoice).event_id != InvoiceCreated.create(invoice).event_id

    def test_occurred_at_is_utc(self, make_invoice):
        event = InvoicePaid.create(make_invoice())
        assert event.occurred_at.tzinfo == timezone.utc

    def test_events_are_immutable(self, make_invoice):
        event = InvoiceCreated.create(make_invoice())
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.invoice = None

    def test_hierarchy(self, make_invoice):
        invoice = make_invoice()
        assert isinstance(InvoicePaid.create(invoice), InvoiceEvent)
        assert isinstance(
            PaymentLinkGenerated.create(invoice, "https://pay", "BP-1", Decimal("10")),
            PaymentEvent,
        )
        assert isinstance(InvoiceCreated.create(invoice), LedgerEvent)


class TestPaymentEvents:

    def test_payment_recorded_carries_entry(self, make_invoice):
        invoice = make_invoice()
        entry = PaymentHistoryEntry(
            amount=Decimal("300.00"),
            recorded_at=now_utc(),
            method=PaymentMethod.CASH,
            recorded_by="cashier",
        )

        event = PaymentRecorded.create(invoice=invoice, entry=entry)

        assert event.invoice is invoice
        assert event.entry.amount == Decimal("300.00")

    def test_link_generated_payload(self, make_invoice):
        invoice = make_invoice()

        event = PaymentLinkGenerated.create(
            invoice=invoice, url="https://pay.leanx.test/bill/BP-1",
            bill_id="BP-1", amount=Decimal("800.00"),
        )

        assert event.url == "https://pay.leanx.test/bill/BP-1"
        assert event.bill_id == "BP-1"
        assert event.amount == Decimal("800.00")
