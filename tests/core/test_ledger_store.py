"""Tests for the in-memory LedgerStore and shared update rules."""

from datetime import timedelta
from decimal import Decimal

import pytest

from core.exceptions import ConcurrentModificationError, InvoiceConsistencyError, InvoiceNotFoundError
from core.invariants import settle_fields
from core.models import (
    DepositStatus,
    LedgerTransaction,
    PaymentHistoryEntry,
    PaymentMethod,
    PaymentStatus,
)
from utils.timezone import now_utc


def _entry(amount="100"):
    return PaymentHistoryEntry(
        amount=Decimal(amount),
        recorded_at=now_utc(),
        method=PaymentMethod.CASH,
        recorded_by="tester",
    )


# =============================================================================
# CREATE / READ
# =============================================================================


class TestCreateAndRead:

    def test_assigns_id_and_version(self, make_invoice):
        invoice = make_invoice()

        assert invoice.id
        assert invoice.version == 1
        assert invoice.updated_at is not None

    def test_get_returns_copy(self, ledger, make_invoice):
        invoice = make_invoice()

        fetched = ledger.get(invoice.id)
        fetched.customer_name = "Changed locally"

        assert ledger.get(invoice.id).customer_name == "Ahmad Faiz"

    def test_get_unknown_is_none(self, ledger):
        assert ledger.get("missing") is None

    def test_get_by_number(self, ledger, make_invoice):
        invoice = make_invoice(invoice_number="INV-20260301-0042")
        assert ledger.get_by_number("INV-20260301-0042").id == invoice.id
        assert ledger.get_by_number("INV-nope") is None

    def test_duplicate_number_rejected(self, make_invoice):
        make_invoice(invoice_number="INV-20260301-0001")
        with pytest.raises(ValueError, match="already exists"):
            make_invoice(invoice_number="INV-20260301-0001")

    def test_inconsistent_create_rejected(self, ledger):
        with pytest.raises(InvoiceConsistencyError):
            ledger.create({
                "invoice_number": "INV-BAD",
                "customer_name": "X",
                "total": Decimal("100"),
                "deposit": Decimal("0"),
                "balance_due": Decimal("50"),
                "payment_status": PaymentStatus.PENDING,
                "created_at": now_utc(),
            })

    def test_find_by_unqueryable_field_rejected(self, ledger):
        with pytest.raises(ValueError, match="Cannot query"):
            ledger.find_by_field("notes", "x")

    def test_list_orders_newest_first(self, make_invoice, ledger):
        first = make_invoice(created_at=now_utc() - timedelta(days=2))
        second = make_invoice(created_at=now_utc() - timedelta(days=1))

        ids = [i.id for i in ledger.list_all()]
        assert ids.index(second.id) < ids.index(first.id)


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdate:

    def test_partial_update_bumps_version(self, ledger, make_invoice):
        invoice = make_invoice()

        updated = ledger.update(invoice.id, {"last_payment_link": "https://pay.test/abc"})

        assert updated.last_payment_link == "https://pay.test/abc"
        assert updated.version == 2
        assert updated.total == invoice.total

    def test_money_update_must_be_consistent(self, ledger, make_invoice):
        invoice = make_invoice(total="1000")

        with pytest.raises(InvoiceConsistencyError):
            ledger.update(invoice.id, {"deposit": Decimal("300")})

        assert ledger.get(invoice.id).deposit == Decimal("0.00")

    def test_consistent_money_update_applies(self, ledger, make_invoice):
        invoice = make_invoice(total="1000")

        updated = ledger.update(invoice.id, settle_fields(invoice.total, Decimal("300")))

        assert updated.balance_due == Decimal("700.00")
        assert updated.payment_status == PaymentStatus.DEPOSIT_PAID

    def test_immutable_fields_rejected(self, ledger, make_invoice):
        invoice = make_invoice()
        with pytest.raises(ValueError, match="immutable"):
            ledger.update(invoice.id, {"invoice_number": "INV-OTHER"})

    def test_unknown_fields_rejected(self, ledger, make_invoice):
        invoice = make_invoice()
        with pytest.raises(ValueError, match="Unknown invoice fields"):
            ledger.update(invoice.id, {"colour": "red"})

    def test_unknown_invoice_raises_not_found(self, ledger):
        with pytest.raises(InvoiceNotFoundError):
            ledger.update("missing", {"notes": "x"})

    def test_stale_version_rejected(self, ledger, make_invoice):
        invoice = make_invoice()
        ledger.update(invoice.id, {"notes": "someone else"})

        with pytest.raises(ConcurrentModificationError) as exc_info:
            ledger.update(invoice.id, {"notes": "me"}, expected_version=invoice.version)

        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2
        assert ledger.get(invoice.id).notes == "someone else"

    def test_matching_version_accepted(self, ledger, make_invoice):
        invoice = make_invoice()
        updated = ledger.update(invoice.id, {"notes": "me"}, expected_version=1)
        assert updated.notes == "me"


class TestPaymentHistoryAppendOnly:

    def test_append_allowed(self, ledger, make_invoice):
        invoice = make_invoice()
        first = _entry("100")

        invoice = ledger.update(invoice.id, {"payment_history": [first]})
        invoice = ledger.update(invoice.id, {"payment_history": [*invoice.payment_history, _entry("50")]})

        assert [e.amount for e in invoice.payment_history] == [Decimal("100"), Decimal("50")]

    def test_removal_rejected(self, ledger, make_invoice):
        invoice = make_invoice()
        invoice = ledger.update(invoice.id, {"payment_history": [_entry("100")]})

        with pytest.raises(InvoiceConsistencyError, match="append-only"):
            ledger.update(invoice.id, {"payment_history": []})

    def test_edit_rejected(self, ledger, make_invoice):
        invoice = make_invoice()
        invoice = ledger.update(invoice.id, {"payment_history": [_entry("100")]})
        edited = invoice.payment_history[0].model_copy(update={"amount": Decimal("1")})

        with pytest.raises(InvoiceConsistencyError, match="append-only"):
            ledger.update(invoice.id, {"payment_history": [edited]})


# =============================================================================
# DELETE & TRANSACTIONS
# =============================================================================


class TestDeleteAndTransactions:

    def test_delete(self, ledger, make_invoice):
        invoice = make_invoice()
        assert ledger.delete(invoice.id) is True
        assert ledger.get(invoice.id) is None
        assert ledger.delete(invoice.id) is False

    def test_transactions_newest_first(self, ledger):
        for amount in ("10", "20", "30"):
            ledger.append_transaction(LedgerTransaction(
                invoice_id="i", invoice_number="INV-1", customer_name="C",
                amount=Decimal(amount), method=PaymentMethod.CASH, recorded_at=now_utc(),
            ))

        amounts = [t.amount for t in ledger.list_transactions(limit=2)]
        assert amounts == [Decimal("30"), Decimal("20")]


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================


class TestSubscribe:

    def test_initial_snapshot_delivered(self, ledger, make_invoice):
        invoice = make_invoice()
        snapshots = []

        ledger.subscribe(snapshots.append)

        assert len(snapshots) == 1
        assert [i.id for i in snapshots[0]] == [invoice.id]

    def test_snapshot_after_each_write(self, ledger, make_invoice):
        snapshots = []
        ledger.subscribe(snapshots.append)

        invoice = make_invoice()
        ledger.update(invoice.id, {"deposit_status": DepositStatus.LINK_GENERATED})

        assert len(snapshots) == 3
        assert snapshots[-1][0].deposit_status == DepositStatus.LINK_GENERATED

    def test_unsubscribe_stops_delivery(self, ledger, make_invoice):
        snapshots = []
        unsubscribe = ledger.subscribe(snapshots.append)
        unsubscribe()

        make_invoice()

        assert len(snapshots) == 1

    def test_failing_listener_does_not_break_writes(self, ledger, make_invoice, caplog):
        def broken(snapshot):
            raise RuntimeError("listener down")

        ledger.subscribe(broken)
        invoice = make_invoice()

        assert ledger.get(invoice.id) is not None
        assert "listener down" in caplog.text

    def test_unknown_order_rejected(self, ledger):
        with pytest.raises(ValueError, match="Cannot order by"):
            ledger.subscribe(lambda s: None, order_by="customer_name")
