"""Rent invoice persistence with the (unit, period) idempotency guard."""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import extract, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.billing_period import BillingPeriod
from src.models.money import Money
from src.models.rent_invoice import InvoiceStatus, RentInvoice
from src.services.audit_service import InvoiceAuditTrail
from src.services.errors import DuplicateInvoice, InvalidDeletion, InvoiceNotFound

logger = logging.getLogger(__name__)

PERIOD_CONSTRAINT = "uq_rent_invoice_unit_period"

DELETABLE_STATUSES = (InvoiceStatus.PENDING, InvoiceStatus.DRAFT)
OVERDUE_CANDIDATE_STATUSES = (InvoiceStatus.DRAFT, InvoiceStatus.PENDING, InvoiceStatus.SENT)


@dataclass
class InvoiceStatistics:
    """Invoice counts and per-currency sums for the dashboard."""

    total_invoices: int = 0
    pending_invoices: int = 0
    paid_invoices: int = 0
    overdue_invoices: int = 0
    current_month_invoices: int = 0
    current_month_pending: int = 0
    current_month_paid: int = 0
    total_amount_pending: dict[str, Decimal] = field(default_factory=dict)
    total_amount_paid: dict[str, Decimal] = field(default_factory=dict)


def _is_period_conflict(error: IntegrityError) -> bool:
    text = str(error.orig).lower()
    return PERIOD_CONSTRAINT in text or (
        "rent_invoices.rental_unit_id" in text and "billing_month" in text
    )


class InvoiceRepository:
    """Storage for rent invoices.

    ``add`` commits each invoice in its own transaction. The unique
    constraint on (rental_unit_id, billing_year, billing_month) is the real
    double-billing guard; ``exists_for_period`` is only a fast pre-check.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists_for_period(self, rental_unit_id: int, period: BillingPeriod) -> bool:
        """Whether the unit already has an invoice for the period's month."""
        return await self.find_for_period(rental_unit_id, period) is not None

    async def find_for_period(
        self, rental_unit_id: int, period: BillingPeriod
    ) -> RentInvoice | None:
        result = await self.session.execute(
            select(RentInvoice).where(
                RentInvoice.rental_unit_id == rental_unit_id,
                RentInvoice.billing_year == period.billing_year,
                RentInvoice.billing_month == period.billing_month,
            )
        )
        return result.scalars().first()

    async def add(self, invoice: RentInvoice, actor_id: int | None = None) -> RentInvoice:
        """Insert and number a new invoice in one transaction.

        Raises:
            DuplicateInvoice: the unit already has an invoice for the period
        """
        self.session.add(invoice)
        try:
            await self.session.flush()
            invoice.assign_number()
            InvoiceAuditTrail(self.session).created(invoice, actor_id)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            period = BillingPeriod(invoice.period_start, invoice.period_end, invoice.due_date)
            if _is_period_conflict(e) or await self.find_for_period(invoice.rental_unit_id, period):
                raise DuplicateInvoice(
                    invoice.rental_unit_id, invoice.billing_year, invoice.billing_month
                ) from e
            raise

        await self.session.refresh(invoice)
        logger.info(
            "Created rent invoice %s for unit %d (%d-%02d): %s %s",
            invoice.invoice_number,
            invoice.rental_unit_id,
            invoice.billing_year,
            invoice.billing_month,
            invoice.total_amount,
            invoice.currency,
        )
        return invoice

    async def get(self, invoice_id: int, for_update: bool = False) -> RentInvoice | None:
        """Load an invoice, always re-reading its current row state."""
        stmt = (
            select(RentInvoice)
            .where(RentInvoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_or_raise(self, invoice_id: int, for_update: bool = False) -> RentInvoice:
        invoice = await self.get(invoice_id, for_update=for_update)
        if invoice is None:
            raise InvoiceNotFound(invoice_id)
        return invoice

    async def get_by_number(self, invoice_number: str) -> RentInvoice | None:
        result = await self.session.execute(
            select(RentInvoice).where(RentInvoice.invoice_number == invoice_number)
        )
        return result.scalars().first()

    async def list_invoices(
        self,
        status: InvoiceStatus | None = None,
        month: int | None = None,
        year: int | None = None,
        tenant_id: int | None = None,
    ) -> list[RentInvoice]:
        """List invoices newest first, optionally filtered."""
        stmt = select(RentInvoice)
        if status is not None:
            stmt = stmt.where(RentInvoice.status == status)
        if month is not None:
            stmt = stmt.where(extract("month", RentInvoice.invoice_date) == month)
        if year is not None:
            stmt = stmt.where(extract("year", RentInvoice.invoice_date) == year)
        if tenant_id is not None:
            stmt = stmt.where(RentInvoice.tenant_id == tenant_id)
        stmt = stmt.order_by(RentInvoice.invoice_date.desc(), RentInvoice.id.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_overdue_candidate_ids(self, today: date) -> list[int]:
        """Ids of unpaid, non-terminal invoices whose due date has passed."""
        result = await self.session.execute(
            select(RentInvoice.id)
            .where(
                RentInvoice.status.in_(OVERDUE_CANDIDATE_STATUSES),
                RentInvoice.due_date < today,
            )
            .order_by(RentInvoice.id.asc())
        )
        return list(result.scalars().all())

    async def delete(self, invoice_id: int, actor_id: int | None = None) -> None:
        """Delete an invoice that has not left pending/draft.

        Raises:
            InvoiceNotFound: no such invoice
            InvalidDeletion: the invoice is sent, paid, overdue or cancelled
        """
        invoice = await self.get_or_raise(invoice_id, for_update=True)
        if invoice.status not in DELETABLE_STATUSES:
            raise InvalidDeletion(invoice_id, InvoiceStatus(invoice.status).value)

        await self.session.delete(invoice)
        InvoiceAuditTrail(self.session).record(
            invoice_id, "delete", actor_id, {"invoice_number": invoice.invoice_number}
        )
        await self.session.commit()
        logger.info("Deleted rent invoice %s (id=%d)", invoice.invoice_number, invoice_id)

    async def get_statistics(self, today: date) -> InvoiceStatistics:
        """Counts by status, current-month counts and per-currency sums."""
        stats = InvoiceStatistics()

        status_counts = await self.session.execute(
            select(RentInvoice.status, func.count(RentInvoice.id)).group_by(RentInvoice.status)
        )
        for status, count in status_counts.all():
            stats.total_invoices += count
            if status == InvoiceStatus.PENDING:
                stats.pending_invoices = count
            elif status == InvoiceStatus.PAID:
                stats.paid_invoices = count
            elif status == InvoiceStatus.OVERDUE:
                stats.overdue_invoices = count

        month_counts = await self.session.execute(
            select(RentInvoice.status, func.count(RentInvoice.id))
            .where(
                extract("year", RentInvoice.invoice_date) == today.year,
                extract("month", RentInvoice.invoice_date) == today.month,
            )
            .group_by(RentInvoice.status)
        )
        for status, count in month_counts.all():
            stats.current_month_invoices += count
            if status == InvoiceStatus.PENDING:
                stats.current_month_pending = count
            elif status == InvoiceStatus.PAID:
                stats.current_month_paid = count

        sums = await self.session.execute(
            select(RentInvoice.status, RentInvoice.currency, func.sum(RentInvoice.total_amount))
            .where(RentInvoice.status.in_((InvoiceStatus.PENDING, InvoiceStatus.PAID)))
            .group_by(RentInvoice.status, RentInvoice.currency)
        )
        for status, currency, total in sums.all():
            target = (
                stats.total_amount_pending
                if status == InvoiceStatus.PENDING
                else stats.total_amount_paid
            )
            target[currency] = Money(total or 0, currency).amount

        return stats


__all__ = [
    "InvoiceRepository",
    "InvoiceStatistics",
    "DELETABLE_STATUSES",
    "OVERDUE_CANDIDATE_STATUSES",
]
