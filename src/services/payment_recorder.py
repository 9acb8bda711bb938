"""Payment ledger recording for paid rent invoices."""

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.directory import Currency, Tenant
from src.models.payment_record import PaymentRecord
from src.models.rent_invoice import PaymentDetails, RentInvoice
from src.services.errors import MissingCurrency, MissingTenantSnapshot

logger = logging.getLogger(__name__)


class PaymentRecorder:
    """Builds the immutable ledger entry for a paid invoice.

    The entry is added to the session but not committed: the caller commits
    it together with the invoice's ``paid`` status. The recorder does not
    deduplicate; ``InvoiceStateMachine.mark_paid`` calls it at most once per
    invoice.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve_payer(self, tenant_id: int | None) -> Tenant:
        """Live lookup of the tenant paying the invoice.

        Raises:
            MissingTenantSnapshot: tenant gone or has no usable name
        """
        tenant = await self.session.get(Tenant, tenant_id) if tenant_id is not None else None
        if tenant is None or not tenant.full_name:
            raise MissingTenantSnapshot(tenant_id)
        return tenant

    async def resolve_currency_id(self, code: str | None) -> int:
        """Currency id for an ISO code; never falls back to a default.

        Raises:
            MissingCurrency: no configured currency with that code
        """
        if not code:
            raise MissingCurrency(code)
        result = await self.session.execute(
            select(Currency.id).where(Currency.code == code.upper())
        )
        currency_id = result.scalar_one_or_none()
        if currency_id is None:
            raise MissingCurrency(code)
        return currency_id

    async def record(
        self,
        invoice: RentInvoice,
        details: PaymentDetails,
        paid_date: date,
        created_by: int | None = None,
    ) -> PaymentRecord:
        """Add one ledger entry for ``invoice`` to the session.

        Args:
            invoice: Invoice being paid (amount is its current total)
            details: How the payment was taken
            paid_date: Date the payment was taken
            created_by: Acting user id from the caller's context

        Returns:
            The pending PaymentRecord
        """
        tenant = await self.resolve_payer(invoice.tenant_id)
        currency_id = await self.resolve_currency_id(invoice.currency)

        entry = PaymentRecord(
            unit_id=invoice.rental_unit_id,
            invoice_id=invoice.id,
            amount=invoice.total.amount,
            currency_id=currency_id,
            payment_type_id=details.payment_type,
            payment_mode_id=details.payment_mode,
            paid_date=paid_date,
            paid_by=tenant.full_name,
            mobile_no=tenant.phone,
            reference_number=details.reference_number,
            remarks=details.notes or f"Payment for invoice {invoice.invoice_number}",
            created_by_id=created_by,
            is_active=True,
        )
        self.session.add(entry)
        logger.info(
            "Recorded payment for invoice %s: %s %s by %s on %s",
            invoice.invoice_number,
            invoice.total_amount,
            invoice.currency,
            entry.paid_by,
            paid_date,
        )
        return entry


__all__ = ["PaymentRecorder"]
