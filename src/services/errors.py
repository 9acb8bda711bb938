"""Domain errors for the rent invoice lifecycle.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with, so handlers never have to guess.
"""

from datetime import date
from typing import Any


class InvoiceError(Exception):
    """Base rent-invoice error."""

    code = "invoice_error"
    http_status = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class InvalidPeriod(InvoiceError):
    """Billing period start is not before its end."""

    code = "invalid_period"

    def __init__(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        message: str | None = None,
    ):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            message or f"Period start {start_date} must be before period end {end_date}"
        )


class DirectoryUnavailable(InvoiceError):
    """Occupancy data could not be read; generation must not proceed."""

    code = "directory_unavailable"
    http_status = 503

    def __init__(self, message: str = "Rental unit directory is unavailable"):
        super().__init__(message)


class DuplicateInvoice(InvoiceError):
    """Storage-level uniqueness violation on (rental unit, billing period)."""

    code = "duplicate_invoice"
    http_status = 409

    def __init__(self, rental_unit_id: int, year: int, month: int):
        self.rental_unit_id = rental_unit_id
        self.year = year
        self.month = month
        super().__init__(
            f"Invoice already exists for unit {rental_unit_id} in {year}-{month:02d}"
        )


class InvalidTransition(InvoiceError):
    """Illegal status change; the invoice is left unmodified."""

    code = "invalid_transition"
    http_status = 409

    def __init__(self, invoice_id: int | None, current: str, attempted: str):
        self.invoice_id = invoice_id
        self.current = current
        self.attempted = attempted
        super().__init__(
            f"Cannot move invoice {invoice_id} from '{current}' to '{attempted}'"
        )


class MissingTenantSnapshot(InvoiceError):
    """Payer name could not be resolved for a payment ledger entry."""

    code = "missing_tenant_snapshot"
    http_status = 422

    def __init__(self, tenant_id: int | None):
        self.tenant_id = tenant_id
        super().__init__(f"Cannot resolve payer name for tenant {tenant_id}")


class MissingCurrency(InvoiceError):
    """Currency code has no configured currency record."""

    code = "missing_currency"
    http_status = 422

    def __init__(self, currency: str | None):
        self.currency = currency
        super().__init__(f"Currency '{currency}' is not configured")


class InvalidDeletion(InvoiceError):
    """Only pending or draft invoices may be deleted."""

    code = "invalid_deletion"
    http_status = 409

    def __init__(self, invoice_id: int, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(
            f"Invoice {invoice_id} cannot be deleted while status is '{status}'"
        )


class InvoiceNotFound(InvoiceError):
    code = "invoice_not_found"
    http_status = 404

    def __init__(self, invoice_id: int):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} not found")


class DirectoryRecordNotFound(InvoiceError):
    """Rental unit or tenant named by a manual invoice does not exist."""

    code = "directory_record_not_found"
    http_status = 404

    def __init__(self, kind: str, record_id: int):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind.capitalize()} {record_id} not found")


class ConcurrentModification(InvoiceError):
    """Optimistic version check kept failing for the same invoice."""

    code = "concurrent_modification"
    http_status = 409

    def __init__(self, invoice_id: int):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} was modified concurrently, retry later")


class CurrencyMismatch(InvoiceError):
    code = "currency_mismatch"

    def __init__(self, left: str, right: str):
        self.left = left
        self.right = right
        super().__init__(f"Cannot combine amounts in {left} and {right}")


__all__ = [
    "InvoiceError",
    "InvalidPeriod",
    "DirectoryUnavailable",
    "DuplicateInvoice",
    "InvalidTransition",
    "MissingTenantSnapshot",
    "MissingCurrency",
    "InvalidDeletion",
    "InvoiceNotFound",
    "DirectoryRecordNotFound",
    "ConcurrentModification",
    "CurrencyMismatch",
]
