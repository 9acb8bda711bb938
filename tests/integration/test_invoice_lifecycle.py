"""Integration tests: monthly generation through payment, sweeps and cancellation."""

import asyncio
import itertools
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.models import Base
from src.models.billing_period import BillingPeriod
from src.models.payment_record import PaymentRecord
from src.models.rent_invoice import InvoiceStatus, PaymentDetails, RentInvoice
from src.services.errors import InvalidTransition
from src.services.invoice_generator import REASON_ALREADY_EXISTS, InvoiceGenerator
from src.services.invoice_repository import InvoiceRepository
from src.services.invoice_state_machine import InvoiceStateMachine
from tests.conftest import Directory

JANUARY = BillingPeriod(date(2024, 1, 1), date(2024, 1, 31), date(2024, 2, 7))


@pytest.fixture
async def unit(directory):
    return await directory.occupied_unit("101", rent="5000.00")


@pytest.fixture
def generator(async_db_session):
    return InvoiceGenerator(async_db_session, today=lambda: date(2024, 1, 1))


@pytest.fixture
async def state_machine(session_factory):
    async with session_factory() as session:
        yield InvoiceStateMachine(session, today=lambda: date(2024, 2, 10))


def assert_totals(invoice: RentInvoice) -> None:
    assert invoice.total_amount == invoice.rent_amount + invoice.late_fee
    assert invoice.total_amount >= invoice.rent_amount


class TestMonthlyCycle:
    """January 2024 billing of one 5000 MVR unit."""

    async def test_generation_creates_first_invoice(self, generator, unit):
        run = await generator.generate(JANUARY)

        assert run.created_count == 1
        invoice = run.created_invoices[0]
        assert invoice.invoice_number == "INV-000001"
        assert invoice.total_amount == Decimal("5000.00")
        assert invoice.currency == "MVR"
        assert invoice.status == InvoiceStatus.PENDING

    async def test_repeat_generation_reports_existing_invoice(self, generator, unit):
        await generator.generate(JANUARY)

        rerun = await generator.generate(JANUARY)

        assert rerun.created_invoices == []
        assert [(s.unit_id, s.reason) for s in rerun.skipped_units] == [
            (unit.id, "invoice already exists for period")
        ]

    async def test_sweep_after_due_date_marks_overdue_without_fee(self, generator, state_machine, unit):
        invoice = (await generator.generate(JANUARY)).created_invoices[0]

        swept = await state_machine.sweep_overdue(date(2024, 2, 10))

        assert [i.id for i in swept] == [invoice.id]
        assert swept[0].status == InvoiceStatus.OVERDUE
        assert swept[0].late_fee == Decimal("0.00")
        assert_totals(swept[0])

    async def test_payment_emits_single_ledger_entry(
        self, async_db_session, generator, state_machine, unit
    ):
        invoice = (await generator.generate(JANUARY)).created_invoices[0]

        paid = await state_machine.mark_paid(
            invoice.id,
            PaymentDetails(payment_type=1, payment_mode=2, payment_date=date(2024, 2, 5)),
        )

        assert paid.status == InvoiceStatus.PAID
        assert paid.paid_date == date(2024, 2, 5)
        entries = (await async_db_session.execute(select(PaymentRecord))).scalars().all()
        assert len(entries) == 1
        assert entries[0].amount == paid.total_amount

    async def test_cancelling_paid_invoice_fails(self, async_db_session, generator, state_machine, unit):
        invoice = (await generator.generate(JANUARY)).created_invoices[0]
        paid = await state_machine.mark_paid(invoice.id, PaymentDetails(payment_date=date(2024, 2, 5)))

        with pytest.raises(InvalidTransition):
            await state_machine.cancel(invoice.id)

        stored = await InvoiceRepository(async_db_session).get(invoice.id)
        assert stored.status == InvoiceStatus.PAID
        assert stored.version_id == paid.version_id
        assert stored.paid_date == date(2024, 2, 5)

    async def test_totals_hold_through_lifecycle(self, async_db_session, generator, state_machine, unit):
        invoice = (await generator.generate(JANUARY)).created_invoices[0]
        assert_totals(invoice)

        for step in (
            state_machine.mark_sent(invoice.id),
            state_machine.apply_late_fee(invoice.id, Decimal("35"), as_of=date(2024, 2, 9)),
            state_machine.mark_overdue(invoice.id, daily_late_fee=Decimal("35"), as_of=date(2024, 2, 12)),
            state_machine.mark_paid(invoice.id, PaymentDetails()),
        ):
            assert_totals(await step)

        stored = await InvoiceRepository(async_db_session).get(invoice.id)
        assert stored.late_fee == Decimal("175.00")
        assert stored.total_amount == Decimal("5175.00")

    async def test_next_month_is_billed_separately(self, async_db_session, unit):
        january = InvoiceGenerator(async_db_session, today=lambda: date(2024, 1, 1))
        february = InvoiceGenerator(async_db_session, today=lambda: date(2024, 2, 1))

        await january.generate(BillingPeriod.for_month(2024, 1))
        run = await february.generate(BillingPeriod.for_month(2024, 2))

        assert run.created_count == 1
        assert run.created_invoices[0].invoice_number == "INV-000002"
        assert run.created_invoices[0].due_date == date(2024, 3, 7)


class TestStateMachineSoundness:
    ACTIONS = ("sent", "paid", "overdue", "cancelled")

    async def test_no_sequence_leaves_a_terminal_state(
        self, async_db_session, generator, state_machine, unit
    ):
        invoice_id = (await generator.generate(JANUARY)).created_invoices[0].id
        calls = {
            "sent": state_machine.mark_sent,
            "paid": state_machine.mark_paid,
            "overdue": state_machine.mark_overdue,
            "cancelled": state_machine.cancel,
        }

        for sequence in itertools.product(self.ACTIONS, repeat=3):
            await async_db_session.execute(
                update(RentInvoice)
                .where(RentInvoice.id == invoice_id)
                .values(status=InvoiceStatus.PENDING)
            )
            await async_db_session.commit()

            reached = []
            for action in sequence:
                terminal = bool(reached) and reached[-1] in ("paid", "cancelled")
                try:
                    invoice = await calls[action](invoice_id)
                except InvalidTransition:
                    continue
                assert not terminal, f"left terminal state via {sequence}"
                reached.append(InvoiceStatus(invoice.status).value)

            assert not {"paid", "cancelled"} <= set(reached), sequence


class TestConcurrentGeneration:
    """Two generation runs for the same month against one file database."""

    @pytest.fixture
    async def file_factory(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rent.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        await engine.dispose()

    async def test_at_most_one_invoice_per_unit(self, file_factory):
        async with file_factory() as session:
            directory = Directory(session)
            await directory.currency("MVR")
            for number in range(101, 106):
                await directory.occupied_unit(str(number))

        async def run_once():
            async with file_factory() as session:
                return await InvoiceGenerator(session, today=lambda: date(2024, 1, 1)).generate(JANUARY)

        first, second = await asyncio.gather(run_once(), run_once())

        async with file_factory() as session:
            per_unit = (
                await session.execute(
                    select(RentInvoice.rental_unit_id, func.count(RentInvoice.id)).group_by(
                        RentInvoice.rental_unit_id
                    )
                )
            ).all()

        assert len(per_unit) == 5
        assert all(count == 1 for _, count in per_unit)
        assert first.created_count + second.created_count == 5
        created = {i.rental_unit_id for i in first.created_invoices + second.created_invoices}
        for run in (first, second):
            for skipped in run.skipped_units:
                assert skipped.reason == REASON_ALREADY_EXISTS
                assert skipped.unit_id in created
