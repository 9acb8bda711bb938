"""Unit tests for monthly invoice generation."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from src.models.billing_period import BillingPeriod
from src.models.rent_invoice import InvoiceStatus, RentInvoice
from src.services.errors import DirectoryRecordNotFound, DirectoryUnavailable, DuplicateInvoice
from src.services.invoice_generator import (
    REASON_ALREADY_EXISTS,
    REASON_INVALID_RENT,
    REASON_MISSING_CURRENCY,
    REASON_PERSIST_FAILED,
    InvoiceGenerator,
)
from src.services.invoice_repository import InvoiceRepository

JANUARY = BillingPeriod.for_month(2024, 1)


def generator_for(session, **kwargs) -> InvoiceGenerator:
    return InvoiceGenerator(session, today=lambda: date(2024, 1, 1), **kwargs)


async def count_invoices(session) -> int:
    return (await session.execute(select(func.count(RentInvoice.id)))).scalar_one()


class TestGenerate:
    async def test_three_decimal_currency_is_stored_exactly(self, async_db_session, directory):
        await directory.currency("KWD", "Kuwaiti Dinar")
        unit = await directory.occupied_unit("101", rent="250.125", currency="KWD")

        run = await generator_for(async_db_session).generate(JANUARY)
        invoice_id = run.created_invoices[0].id

        stored = await InvoiceRepository(async_db_session).get(invoice_id)
        assert stored.rental_unit_id == unit.id
        assert stored.currency == "KWD"
        assert stored.rent_amount == Decimal("250.125")
        assert stored.total_amount == Decimal("250.125")
        assert stored.total.amount == Decimal("250.125")

    async def test_bills_every_occupied_unit(self, async_db_session, directory):
        first = await directory.occupied_unit("101", rent="5000.00")
        second = await directory.occupied_unit("102", rent="7500.00")
        await directory.unit("103")  # vacant

        run = await generator_for(async_db_session).generate(JANUARY)

        assert run.created_count == 2
        assert run.skipped_count == 0
        assert run.due_date_warning is None
        by_unit = {i.rental_unit_id: i for i in run.created_invoices}
        assert set(by_unit) == {first.id, second.id}
        invoice = by_unit[second.id]
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.rent_amount == Decimal("7500.00")
        assert invoice.late_fee == Decimal("0.00")
        assert invoice.total_amount == Decimal("7500.00")
        assert invoice.currency == "MVR"
        assert invoice.tenant_id == second.tenant_id
        assert invoice.property_id == second.property_id
        assert invoice.invoice_date == date(2024, 1, 1)
        assert invoice.period_start == date(2024, 1, 1)
        assert invoice.period_end == date(2024, 1, 31)
        assert invoice.due_date == date(2024, 2, 7)
        assert invoice.invoice_number == f"INV-{invoice.id:06d}"
        assert invoice.notes == "Monthly rent for Sunset Residency - Unit 102"

    async def test_second_run_skips_everything(self, async_db_session, directory):
        await directory.occupied_unit("101")
        await directory.occupied_unit("102")
        generator = generator_for(async_db_session)
        await generator.generate(JANUARY)

        rerun = await generator.generate(JANUARY)

        assert rerun.created_count == 0
        assert rerun.skipped_count == 2
        assert {s.reason for s in rerun.skipped_units} == {REASON_ALREADY_EXISTS}
        assert await count_invoices(async_db_session) == 2

    async def test_lost_race_is_reported_as_skip(self, async_db_session, directory, monkeypatch):
        await directory.occupied_unit("101")
        await generator_for(async_db_session).generate(JANUARY)

        # Pre-check passes as if the concurrent insert had not landed yet
        repository = InvoiceRepository(async_db_session)

        async def not_yet(rental_unit_id, period):
            return False

        monkeypatch.setattr(repository, "exists_for_period", not_yet)
        run = await generator_for(async_db_session, repository=repository).generate(JANUARY)

        assert run.created_count == 0
        assert [s.reason for s in run.skipped_units] == [REASON_ALREADY_EXISTS]
        assert await count_invoices(async_db_session) == 1

    @pytest.mark.parametrize("rent", ["0", "-100", None])
    async def test_unit_without_positive_rent_is_skipped(self, async_db_session, directory, rent):
        unit = await directory.occupied_unit("101", rent=rent)

        run = await generator_for(async_db_session).generate(JANUARY)

        assert run.created_count == 0
        assert run.skipped_units[0].unit_id == unit.id
        assert run.skipped_units[0].reason == REASON_INVALID_RENT
        assert run.skipped_units[0].label == "Sunset Residency - Unit 101"

    async def test_unit_without_currency_is_skipped(self, async_db_session, directory):
        await directory.occupied_unit("101", currency=None)
        billed = await directory.occupied_unit("102")

        run = await generator_for(async_db_session).generate(JANUARY)

        assert [i.rental_unit_id for i in run.created_invoices] == [billed.id]
        assert [s.reason for s in run.skipped_units] == [REASON_MISSING_CURRENCY]

    async def test_persist_failure_skips_only_that_unit(self, async_db_session, directory):
        # Ids captured up front: the per-unit rollback expires loaded objects
        broken_id = (await directory.occupied_unit("101")).id
        healthy_id = (await directory.occupied_unit("102")).id

        class FlakyRepository(InvoiceRepository):
            async def add(self, invoice, actor_id=None):
                if invoice.rental_unit_id == broken_id:
                    raise OperationalError("INSERT", {}, Exception("disk I/O error"))
                return await super().add(invoice, actor_id)

        run = await generator_for(
            async_db_session, repository=FlakyRepository(async_db_session)
        ).generate(JANUARY)

        assert [i.rental_unit_id for i in run.created_invoices] == [healthy_id]
        assert [(s.unit_id, s.reason) for s in run.skipped_units] == [(broken_id, REASON_PERSIST_FAILED)]

    async def test_directory_failure_aborts_run(self, async_db_session, directory):
        await directory.occupied_unit("101")

        class DownResolver:
            async def list_occupied_units(self, as_of, since=None):
                raise DirectoryUnavailable("Rental unit directory is unavailable")

        with pytest.raises(DirectoryUnavailable):
            await generator_for(async_db_session, resolver=DownResolver()).generate(JANUARY)
        assert await count_invoices(async_db_session) == 0

    async def test_empty_directory_creates_nothing(self, async_db_session, directory):
        run = await generator_for(async_db_session).generate(JANUARY)

        assert run.created_count == 0
        assert run.skipped_count == 0

    async def test_due_date_before_period_end_warns(self, async_db_session, directory):
        await directory.occupied_unit("101")
        period = BillingPeriod(date(2024, 1, 1), date(2024, 1, 31), date(2024, 1, 10))

        run = await generator_for(async_db_session).generate(period)

        assert run.created_count == 1
        assert "before period end" in run.due_date_warning
        assert run.created_invoices[0].due_date == date(2024, 1, 10)

    async def test_unit_vacated_mid_period_is_billed(self, async_db_session, directory):
        unit = await directory.occupied_unit("101", end=date(2024, 1, 15))

        run = await generator_for(async_db_session).generate(JANUARY)

        assert [i.rental_unit_id for i in run.created_invoices] == [unit.id]

    async def test_rent_is_snapshotted(self, async_db_session, directory):
        unit = await directory.occupied_unit("101", rent="5000.00")
        run = await generator_for(async_db_session).generate(JANUARY)

        unit.rent_amount = Decimal("6000.00")
        await async_db_session.commit()

        stored = await InvoiceRepository(async_db_session).get(run.created_invoices[0].id)
        assert stored.rent_amount == Decimal("5000.00")
        assert stored.total_amount == Decimal("5000.00")


class TestIssueSingle:
    async def test_issues_invoice_with_late_fee(self, async_db_session, directory):
        unit = await directory.occupied_unit("101", rent="5000.00")

        invoice = await generator_for(async_db_session).issue_single(
            rental_unit_id=unit.id,
            tenant_id=unit.tenant_id,
            invoice_date=date(2024, 3, 4),
            due_date=date(2024, 3, 11),
            rent_amount=Decimal("4200"),
            late_fee=Decimal("75.5"),
            notes="Pro-rated March",
        )

        assert invoice.invoice_number == f"INV-{invoice.id:06d}"
        assert invoice.status == InvoiceStatus.PENDING
        assert (invoice.billing_year, invoice.billing_month) == (2024, 3)
        assert invoice.period_start == date(2024, 3, 1)
        assert invoice.period_end == date(2024, 3, 31)
        assert invoice.due_date == date(2024, 3, 11)
        assert invoice.rent_amount == Decimal("4200.00")
        assert invoice.late_fee == Decimal("75.50")
        assert invoice.total_amount == Decimal("4275.50")
        assert invoice.notes == "Pro-rated March"

    async def test_month_already_billed_is_an_error(self, async_db_session, directory):
        unit = await directory.occupied_unit("101")
        await generator_for(async_db_session).generate(JANUARY)

        with pytest.raises(DuplicateInvoice):
            await generator_for(async_db_session).issue_single(
                unit.id, unit.tenant_id, date(2024, 1, 20), date(2024, 1, 27), Decimal("100")
            )
        assert await count_invoices(async_db_session) == 1

    async def test_unknown_tenant_is_rejected(self, async_db_session, directory):
        unit = await directory.occupied_unit("101")

        with pytest.raises(DirectoryRecordNotFound) as exc_info:
            await generator_for(async_db_session).issue_single(
                unit.id, 999, date(2024, 1, 20), date(2024, 1, 27), Decimal("100")
            )

        assert exc_info.value.code == "directory_record_not_found"
        assert await count_invoices(async_db_session) == 0
