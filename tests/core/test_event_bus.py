"""Tests for EventBus."""

import logging

import pytest

from core.event_bus import EventBus
from core.events import InvoiceCreated, InvoicePaid


@pytest.fixture
def _invoice(make_invoice):
    return make_invoice(total="450.00")


# =============================================================================
# SUBSCRIBE AND PUBLISH
# =============================================================================


class TestSubscribeAndPublish:

    def test_single_handler_receives_the_exact_event_object(self, _invoice):
        bus = EventBus()
        received = []
        bus.subscribe("InvoiceCreated", received.append)

        event = InvoiceCreated.create(invoice=_invoice)
        bus.publish(event)

        assert len(received) == 1
        assert received[0] is event

    def test_handler_can_read_payload_fields(self, _invoice):
        bus = EventBus()
        numbers = []
        bus.subscribe("InvoiceCreated", lambda e: numbers.append(e.invoice.invoice_number))

        bus.publish(InvoiceCreated.create(invoice=_invoice))

        assert numbers == [_invoice.invoice_number]

    def test_multiple_handlers_called_in_subscription_order(self, _invoice):
        bus = EventBus()
        order = []
        bus.subscribe("InvoiceCreated", lambda e: order.append("A"))
        bus.subscribe("InvoiceCreated", lambda e: order.append("B"))
        bus.subscribe("InvoiceCreated", lambda e: order.append("C"))

        bus.publish(InvoiceCreated.create(invoice=_invoice))

        assert order == ["A", "B", "C"]

    def test_type_isolation_only_matching_subscribers_called(self, _invoice):
        bus = EventBus()
        created_calls = []
        paid_calls = []
        bus.subscribe("InvoiceCreated", created_calls.append)
        bus.subscribe("InvoicePaid", paid_calls.append)

        bus.publish(InvoiceCreated.create(invoice=_invoice))

        assert len(created_calls) == 1
        assert paid_calls == []

    def test_no_subscribers_does_not_raise(self, _invoice):
        EventBus().publish(InvoiceCreated.create(invoice=_invoice))

    def test_two_publishes_deliver_two_distinct_events(self, _invoice):
        bus = EventBus()
        received = []
        bus.subscribe("InvoiceCreated", received.append)

        bus.publish(InvoiceCreated.create(invoice=_invoice))
        bus.publish(InvoiceCreated.create(invoice=_invoice))

        assert len(received) == 2
        assert received[0].event_id != received[1].event_id


# =============================================================================
# HANDLER ERROR ISOLATION
# =============================================================================


class TestHandlerErrorIsolation:

    def test_handler_exception_does_not_propagate(self, _invoice):
        bus = EventBus()
        bus.subscribe("InvoicePaid", lambda e: (_ for _ in ()).throw(RuntimeError("boom")))

        # Must not raise
        bus.publish(InvoicePaid.create(invoice=_invoice))

    def test_handler_exception_is_logged_with_event_type_and_event_id(self, _invoice, caplog):
        bus = EventBus()

        def failing_handler(event):
            raise ValueError("transaction ledger unavailable")

        bus.subscribe("InvoicePaid", failing_handler)

        with caplog.at_level(logging.ERROR, logger="core.event_bus"):
            event = InvoicePaid.create(invoice=_invoice)
            bus.publish(event)

        assert "transaction ledger unavailable" in caplog.text
        assert "InvoicePaid" in caplog.text
        assert event.event_id in caplog.text

    def test_all_handlers_run_even_if_multiple_fail(self, _invoice):
        bus = EventBus()
        results = []

        bus.subscribe("InvoicePaid", lambda e: (_ for _ in ()).throw(RuntimeError("fail 1")))
        bus.subscribe("InvoicePaid", lambda e: results.append("survived_1"))
        bus.subscribe("InvoicePaid", lambda e: (_ for _ in ()).throw(RuntimeError("fail 2")))
        bus.subscribe("InvoicePaid", lambda e: results.append("survived_2"))

        bus.publish(InvoicePaid.create(invoice=_invoice))

        assert results == ["survived_1", "survived_2"]
