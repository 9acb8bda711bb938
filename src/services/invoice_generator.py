"""Monthly rent invoice generation.

One run bills every occupied unit once for a billing period. Runs are
idempotent: units already invoiced for the period are reported as skipped,
never billed twice. ``issue_single`` bills one unit by hand through the same
numbering and uniqueness path.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.billing_period import BillingPeriod
from src.models.directory import RentalUnit, Tenant
from src.models.money import Money
from src.models.rent_invoice import RentInvoice
from src.services.errors import DirectoryRecordNotFound, DuplicateInvoice, MissingCurrency
from src.services.invoice_repository import InvoiceRepository
from src.services.occupancy_service import (
    LeaseOccupancyResolver,
    OccupancyResolver,
    OccupiedUnit,
)

logger = logging.getLogger(__name__)

REASON_INVALID_RENT = "invalid rent amount"
REASON_MISSING_CURRENCY = "missing currency"
REASON_ALREADY_EXISTS = "invoice already exists for period"
REASON_PERSIST_FAILED = "failed to persist invoice"


@dataclass(frozen=True)
class SkippedUnit:
    """A unit the run did not bill, with the reason shown to the operator."""

    unit_id: int
    reason: str
    label: str | None = None


@dataclass
class GenerationRun:
    """Outcome of one ``generate`` call. Not persisted."""

    period: BillingPeriod
    created_invoices: list[RentInvoice] = field(default_factory=list)
    skipped_units: list[SkippedUnit] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created_invoices)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_units)

    @property
    def due_date_warning(self) -> str | None:
        if self.period.due_before_end:
            return (
                f"Due date {self.period.due_date} is before period end {self.period.end_date}"
            )
        return None


class InvoiceGenerator:
    """Builds and persists one pending invoice per occupied unit.

    Occupancy is evaluated as of the period's end date; a lease that ended
    inside the period still counts, so a unit vacated mid-period is billed
    for it. Each invoice commits on its own; a failure on one unit is
    reported in ``skipped_units`` and never loses the invoices already
    created by the same run.
    """

    def __init__(
        self,
        session: AsyncSession,
        resolver: OccupancyResolver | None = None,
        repository: InvoiceRepository | None = None,
        today: Callable[[], date] = date.today,
        directory_timeout: float | None = None,
    ):
        self.session = session
        self.resolver = resolver or LeaseOccupancyResolver(session, timeout=directory_timeout)
        self.repository = repository or InvoiceRepository(session)
        self.today = today

    async def generate(self, period: BillingPeriod, actor_id: int | None = None) -> GenerationRun:
        """Generate invoices for ``period``.

        Raises:
            InvalidPeriod: period start is not before its end
            DirectoryUnavailable: occupied units could not be read (nothing created)
        """
        period.validate()
        run = GenerationRun(period=period)
        if run.due_date_warning:
            logger.warning("Generating %s: %s", period, run.due_date_warning)

        units = await self.resolver.list_occupied_units(period.end_date, since=period.start_date)
        logger.info("Generating rent invoices for %s: %d occupied units", period, len(units))

        invoice_date = self.today()
        for unit in sorted(units, key=lambda u: u.unit_id):
            invoice, reason = await self._bill_unit(unit, period, invoice_date, actor_id)
            if invoice is not None:
                run.created_invoices.append(invoice)
            else:
                logger.info("Skipped unit %d (%s): %s", unit.unit_id, unit.label, reason)
                run.skipped_units.append(SkippedUnit(unit.unit_id, reason, unit.label))

        logger.info(
            "Rent generation for %s completed: %d created, %d skipped",
            period,
            run.created_count,
            run.skipped_count,
        )
        return run

    async def issue_single(
        self,
        rental_unit_id: int,
        tenant_id: int,
        invoice_date: date,
        due_date: date,
        rent_amount: Decimal,
        late_fee: Decimal | None = None,
        notes: str | None = None,
        actor_id: int | None = None,
    ) -> RentInvoice:
        """Issue one invoice by hand for the month of ``invoice_date``.

        Goes through the same numbering, uniqueness and audit path as a
        generation run, but a conflict is an error here, not a skip.

        Raises:
            DirectoryRecordNotFound: unit or tenant does not exist
            MissingCurrency: the unit has no currency
            DuplicateInvoice: the unit is already billed for that month
        """
        unit = await self.session.get(RentalUnit, rental_unit_id)
        if unit is None:
            raise DirectoryRecordNotFound("rental unit", rental_unit_id)
        if await self.session.get(Tenant, tenant_id) is None:
            raise DirectoryRecordNotFound("tenant", tenant_id)
        if not unit.currency:
            raise MissingCurrency(unit.currency)

        period = replace(
            BillingPeriod.for_month(invoice_date.year, invoice_date.month), due_date=due_date
        )
        if await self.repository.exists_for_period(unit.id, period):
            raise DuplicateInvoice(unit.id, period.billing_year, period.billing_month)

        invoice = RentInvoice.issue(
            tenant_id=tenant_id,
            property_id=unit.property_id,
            rental_unit_id=unit.id,
            period=period,
            rent=Money(rent_amount, unit.currency),
            invoice_date=invoice_date,
            notes=notes,
        )
        if late_fee:
            invoice.set_late_fee(Money(late_fee, unit.currency))

        invoice = await self.repository.add(invoice, actor_id)
        logger.info(
            "Issued %s by hand for unit %d (%s): %s",
            invoice.invoice_number,
            unit.id,
            period,
            invoice.total,
        )
        self.session.expunge(invoice)
        return invoice

    async def _bill_unit(
        self,
        unit: OccupiedUnit,
        period: BillingPeriod,
        invoice_date: date,
        actor_id: int | None,
    ) -> tuple[RentInvoice | None, str | None]:
        if unit.rent_amount is None and not unit.currency and (unit.rent_value or 0) > 0:
            return None, REASON_MISSING_CURRENCY
        if unit.rent_amount is None or not unit.rent_amount.is_positive:
            return None, REASON_INVALID_RENT

        try:
            if await self.repository.exists_for_period(unit.unit_id, period):
                return None, REASON_ALREADY_EXISTS

            invoice = RentInvoice.issue(
                tenant_id=unit.tenant_id,
                property_id=unit.property_id,
                rental_unit_id=unit.unit_id,
                period=period,
                rent=unit.rent_amount,
                invoice_date=invoice_date,
                notes=f"Monthly rent for {unit.label}",
            )
            invoice = await self.repository.add(invoice, actor_id)
        except DuplicateInvoice:
            # Lost a race with a concurrent run; the other run billed this unit
            logger.info("Concurrent invoice detected for unit %d in %s", unit.unit_id, period)
            return None, REASON_ALREADY_EXISTS
        except SQLAlchemyError:
            logger.exception("Failed to persist invoice for unit %d in %s", unit.unit_id, period)
            await self.session.rollback()
            return None, REASON_PERSIST_FAILED

        # Detach so a later per-unit rollback cannot expire the reported invoice
        self.session.expunge(invoice)
        return invoice, None


__all__ = [
    "InvoiceGenerator",
    "GenerationRun",
    "SkippedUnit",
    "REASON_INVALID_RENT",
    "REASON_MISSING_CURRENCY",
    "REASON_ALREADY_EXISTS",
    "REASON_PERSIST_FAILED",
]
