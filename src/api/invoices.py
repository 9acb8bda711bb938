"""Rent invoice API endpoints."""

import logging
from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings
from src.models.billing_period import BillingPeriod
from src.models.rent_invoice import InvoiceStatus, PaymentDetails, RentInvoice
from src.services import AsyncSessionLocal, get_async_session
from src.services.audit_service import InvoiceAuditTrail
from src.services.invoice_generator import InvoiceGenerator
from src.services.invoice_repository import InvoiceRepository
from src.services.invoice_state_machine import InvoiceStateMachine
from src.services.scheduler_service import DailyRunResult, RentScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rent-invoices", tags=["rent-invoices"])


# Request schemas
class GenerateRequest(BaseModel):
    """Either a calendar month or an explicit period.

    ``due_date_offset`` (days after the period end) only applies to the
    month form; it defaults to ``Settings.default_due_days``.
    """

    month: int | None = Field(default=None, ge=1, le=12)
    year: int | None = Field(default=None, ge=2000, le=2100)
    due_date_offset: int | None = Field(default=None, ge=0, le=90)
    start_date: date | None = None
    end_date: date | None = None
    due_date: date | None = None

    @model_validator(mode="after")
    def check_period_form(self) -> "GenerateRequest":
        has_month = self.month is not None and self.year is not None
        has_dates = None not in (self.start_date, self.end_date, self.due_date)
        if not has_month and not has_dates:
            raise ValueError("Provide month and year, or start_date, end_date and due_date")
        return self

    def to_period(self) -> BillingPeriod:
        if self.month is not None and self.year is not None:
            offset = self.due_date_offset
            if offset is None:
                offset = settings.default_due_days
            return BillingPeriod.for_month(self.year, self.month, offset)
        return BillingPeriod(self.start_date, self.end_date, self.due_date)


class PayRequest(BaseModel):
    """Payment details recorded in the ledger when an invoice is paid."""

    payment_type: int | None = None
    payment_mode: int | None = None
    reference_number: str | None = Field(default=None, max_length=50)
    payment_date: date | None = None
    notes: str | None = None

    def to_details(self) -> PaymentDetails:
        return PaymentDetails(
            payment_type=self.payment_type,
            payment_mode=self.payment_mode,
            reference_number=self.reference_number,
            notes=self.notes,
            payment_date=self.payment_date,
        )


class CreateInvoiceRequest(BaseModel):
    """One invoice issued by hand; billed to the month of ``invoice_date``."""

    rental_unit_id: int
    tenant_id: int
    invoice_date: date
    due_date: date
    rent_amount: Decimal = Field(gt=0)
    late_fee: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None

    @model_validator(mode="after")
    def check_due_after_invoice(self) -> "CreateInvoiceRequest":
        if self.due_date <= self.invoice_date:
            raise ValueError("due_date must be after invoice_date")
        return self


class UpdateNotesRequest(BaseModel):
    notes: str | None = None


class LateFeeRequest(BaseModel):
    daily_rate: Decimal = Field(ge=0)
    as_of: date | None = None


class SweepRequest(BaseModel):
    today: date | None = None
    daily_late_fee: Decimal | None = Field(default=None, ge=0)


# Response schemas
class InvoiceResponse(BaseModel):
    """One rent invoice."""

    id: int
    invoice_number: str | None
    tenant_id: int
    property_id: int
    rental_unit_id: int
    billing_year: int
    billing_month: int
    period_start: date
    period_end: date
    invoice_date: date
    due_date: date
    rent_amount: Decimal
    late_fee: Decimal
    total_amount: Decimal
    currency: str
    status: InvoiceStatus
    paid_date: date | None = None
    notes: str | None = None
    payment_details: dict[str, Any] | None = None
    formatted_total: str | None = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_invoice(cls, invoice: RentInvoice) -> "InvoiceResponse":
        """Amounts are rendered at the currency's own precision."""
        response = cls.model_validate(invoice)
        response.rent_amount = invoice.rent.amount
        response.late_fee = invoice.late_fee_money.amount
        response.total_amount = invoice.total.amount
        response.formatted_total = invoice.total.format(settings.locale)
        return response


class AuditEntryResponse(BaseModel):
    action: str
    actor_id: int | None = None
    changes: dict[str, Any] | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceListResponse(BaseModel):
    invoices: list[InvoiceResponse]
    count: int


class SkippedUnitResponse(BaseModel):
    unit_id: int
    reason: str
    label: str | None = None


class GenerateResponse(BaseModel):
    """Outcome of a generation run."""

    period_start: date
    period_end: date
    due_date: date
    created_count: int
    skipped_count: int
    invoices: list[InvoiceResponse]
    skipped: list[SkippedUnitResponse]
    due_date_warning: str | None = None


class SweepResponse(BaseModel):
    today: date
    overdue_count: int
    invoices: list[InvoiceResponse]


class StatisticsResponse(BaseModel):
    total_invoices: int
    pending_invoices: int
    paid_invoices: int
    overdue_invoices: int
    current_month_invoices: int
    current_month_pending: int
    current_month_paid: int
    total_amount_pending: dict[str, Decimal]
    total_amount_paid: dict[str, Decimal]


class DailyRunResponse(BaseModel):
    run_date: date
    created_count: int
    skipped_count: int
    overdue_count: int
    skipped: list[SkippedUnitResponse]
    skipped_reason: str | None = None
    error: str | None = None

    @classmethod
    def from_result(cls, result: DailyRunResult) -> "DailyRunResponse":
        generation = result.generation
        skipped = generation.skipped_units if generation else []
        return cls(
            run_date=result.run_date,
            created_count=generation.created_count if generation else 0,
            skipped_count=generation.skipped_count if generation else 0,
            overdue_count=len(result.overdue),
            skipped=[SkippedUnitResponse(unit_id=s.unit_id, reason=s.reason, label=s.label) for s in skipped],
            skipped_reason=result.skipped_reason,
            error=result.error,
        )


def get_scheduler(request: Request) -> RentScheduler:
    """Scheduler started by the app lifespan, or an idle one bound to the default database."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        scheduler = RentScheduler(
            AsyncSessionLocal,
            timezone=settings.scheduler_timezone,
            run_hour=settings.scheduler_run_hour,
            late_fee_daily_rate=settings.late_fee_daily_rate,
            directory_timeout=settings.directory_timeout_seconds,
        )
        request.app.state.scheduler = scheduler
    return scheduler


def get_actor_id(x_actor_id: int | None = Header(default=None)) -> int | None:  # noqa: B008
    """Acting user id for the audit trail (X-Actor-Id header)."""
    return x_actor_id


@router.get("/", response_model=InvoiceListResponse)
async def list_invoices(
    status: InvoiceStatus | None = Query(default=None),  # noqa: B008
    month: int | None = Query(default=None, ge=1, le=12),  # noqa: B008
    year: int | None = Query(default=None),  # noqa: B008
    tenant_id: int | None = Query(default=None),  # noqa: B008
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> InvoiceListResponse:
    """List invoices, newest first."""
    invoices = await InvoiceRepository(session).list_invoices(
        status=status, month=month, year=year, tenant_id=tenant_id
    )
    return InvoiceListResponse(
        invoices=[InvoiceResponse.from_invoice(i) for i in invoices],
        count=len(invoices),
    )


@router.post("/", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    request: CreateInvoiceRequest,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
    actor_id: int | None = Depends(get_actor_id),  # noqa: B008
) -> InvoiceResponse:
    """Issue one pending invoice by hand; a second one for the same unit and month is a 409."""
    invoice = await InvoiceGenerator(session).issue_single(
        rental_unit_id=request.rental_unit_id,
        tenant_id=request.tenant_id,
        invoice_date=request.invoice_date,
        due_date=request.due_date,
        rent_amount=request.rent_amount,
        late_fee=request.late_fee,
        notes=request.notes,
        actor_id=actor_id,
    )
    return InvoiceResponse.from_invoice(invoice)


@router.get("/statistics", response_model=StatisticsResponse)
async def get_statistics(
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> StatisticsResponse:
    stats = await InvoiceRepository(session).get_statistics(date.today())
    return StatisticsResponse(**asdict(stats))


@router.post("/generate", response_model=GenerateResponse)
async def generate_invoices(
    request: GenerateRequest,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
    actor_id: int | None = Depends(get_actor_id),  # noqa: B008
) -> GenerateResponse:
    """Generate invoices for every occupied unit in the period.

    Units already billed for the period are reported in ``skipped``.
    """
    period = request.to_period()
    logger.info("Manual rent generation requested for %s by actor %s", period, actor_id)

    generator = InvoiceGenerator(session, directory_timeout=settings.directory_timeout_seconds)
    run = await generator.generate(period, actor_id=actor_id)

    return GenerateResponse(
        period_start=period.start_date,
        period_end=period.end_date,
        due_date=period.due_date,
        created_count=run.created_count,
        skipped_count=run.skipped_count,
        invoices=[InvoiceResponse.from_invoice(i) for i in run.created_invoices],
        skipped=[
            SkippedUnitResponse(unit_id=s.unit_id, reason=s.reason, label=s.label)
            for s in run.skipped_units
        ],
        due_date_warning=run.due_date_warning,
    )


@router.post("/sweep-overdue", response_model=SweepResponse)
async def sweep_overdue(
    request: SweepRequest | None = None,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> SweepResponse:
    request = request or SweepRequest()
    today = request.today or date.today()
    daily_late_fee = request.daily_late_fee
    if daily_late_fee is None:
        daily_late_fee = settings.late_fee_daily_rate
    invoices = await InvoiceStateMachine(session).sweep_overdue(today, daily_late_fee=daily_late_fee)
    return SweepResponse(
        today=today,
        overdue_count=len(invoices),
        invoices=[InvoiceResponse.from_invoice(i) for i in invoices],
    )


@router.get("/cron/status")
async def cron_status(
    scheduler: RentScheduler = Depends(get_scheduler),  # noqa: B008
) -> dict[str, Any]:
    """Scheduler status: running flag, next and last run, rent settings."""
    return await scheduler.get_status()


@router.post("/cron/trigger", response_model=DailyRunResponse)
async def cron_trigger(
    scheduler: RentScheduler = Depends(get_scheduler),  # noqa: B008
) -> DailyRunResponse:
    """Run this month's generation and the overdue sweep now."""
    result = await scheduler.trigger_manual_generation()
    return DailyRunResponse.from_result(result)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> InvoiceResponse:
    invoice = await InvoiceRepository(session).get_or_raise(invoice_id)
    return InvoiceResponse.from_invoice(invoice)


@router.get("/{invoice_id}/history", response_model=list[AuditEntryResponse])
async def get_invoice_history(
    invoice_id: int,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> list[AuditEntryResponse]:
    """Audit trail of one invoice, oldest first."""
    await InvoiceRepository(session).get_or_raise(invoice_id)
    entries = await InvoiceAuditTrail(session).history(invoice_id)
    return [AuditEntryResponse.model_validate(e) for e in entries]


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice_notes(
    invoice_id: int,
    request: UpdateNotesRequest,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
    actor_id: int | None = Depends(get_actor_id),  # noqa: B008
) -> InvoiceResponse:
    """Edit notes of an open invoice. Status changes go through the action routes."""
    invoice = await InvoiceStateMachine(session).update_notes(
        invoice_id, request.notes, actor_id=actor_id
    )
    return InvoiceResponse.from_invoice(invoice)


@router.post("/{invoice_id}/send", response_model=InvoiceResponse)
async def send_invoice(
    invoice_id: int,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
    actor_id: int | None = Depends(get_actor_id),  # noqa: B008
) -> InvoiceResponse:
    invoice = await InvoiceStateMachine(session).mark_sent(invoice_id, actor_id=actor_id)
    return InvoiceResponse.from_invoice(invoice)


@router.post("/{invoice_id}/pay", response_model=InvoiceResponse)
async def pay_invoice(
    invoice_id: int,
    request: PayRequest | None = None,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
    actor_id: int | None = Depends(get_actor_id),  # noqa: B008
) -> InvoiceResponse:
    """Mark an invoice paid and record the payment in the ledger."""
    request = request or PayRequest()
    invoice = await InvoiceStateMachine(session).mark_paid(
        invoice_id,
        details=request.to_details(),
        actor_id=actor_id,
    )
    return InvoiceResponse.from_invoice(invoice)


@router.post("/{invoice_id}/overdue", response_model=InvoiceResponse)
async def mark_invoice_overdue(
    invoice_id: int,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
    actor_id: int | None = Depends(get_actor_id),  # noqa: B008
) -> InvoiceResponse:
    invoice = await InvoiceStateMachine(session).mark_overdue(invoice_id, actor_id=actor_id)
    return InvoiceResponse.from_invoice(invoice)


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    invoice_id: int,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
    actor_id: int | None = Depends(get_actor_id),  # noqa: B008
) -> InvoiceResponse:
    invoice = await InvoiceStateMachine(session).cancel(invoice_id, actor_id=actor_id)
    return InvoiceResponse.from_invoice(invoice)


@router.post("/{invoice_id}/late-fee", response_model=InvoiceResponse)
async def apply_late_fee(
    invoice_id: int,
    request: LateFeeRequest,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
    actor_id: int | None = Depends(get_actor_id),  # noqa: B008
) -> InvoiceResponse:
    invoice = await InvoiceStateMachine(session).apply_late_fee(
        invoice_id, request.daily_rate, as_of=request.as_of, actor_id=actor_id
    )
    return InvoiceResponse.from_invoice(invoice)


@router.delete("/{invoice_id}")
async def delete_invoice(
    invoice_id: int,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
    actor_id: int | None = Depends(get_actor_id),  # noqa: B008
) -> dict[str, Any]:
    """Delete a pending invoice; anything else is refused with 409."""
    await InvoiceRepository(session).delete(invoice_id, actor_id=actor_id)
    return {"deleted": True, "id": invoice_id}
