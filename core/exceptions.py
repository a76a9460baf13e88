"""Typed exceptions for invoice payment failures."""


class PaymentError(Exception):
    """Base class for invoice payment errors."""


class InvoiceNotFoundError(PaymentError, ValueError):
    """No invoice matches the given id or number."""

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Invoice {reference} not found")


class InvoiceAlreadyPaidError(PaymentError, ValueError):
    """The invoice is fully settled; nothing left to collect."""

    def __init__(self, invoice_number: str):
        self.invoice_number = invoice_number
        super().__init__(f"Invoice {invoice_number} is already fully paid")


class ConfirmationRequiredError(PaymentError):
    """
    A manual credit was attempted without explicit operator confirmation.

    Crediting money without gateway proof is only allowed after a yes/no
    prompt has been answered yes.
    """


class InvoiceConsistencyError(PaymentError):
    """A write would break the balance/status invariants of an invoice."""


class ConcurrentModificationError(PaymentError):
    """The invoice changed since it was read; the write was rejected."""

    def __init__(self, invoice_id: str, expected_version: int, actual_version: int):
        self.invoice_id = invoice_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Invoice {invoice_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
