"""Unit tests for PaymentRecorder and the immutable payment ledger."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from src.models.billing_period import BillingPeriod
from src.models.payment_record import PaymentRecord
from src.models.rent_invoice import PaymentDetails
from src.services.errors import MissingCurrency, MissingTenantSnapshot
from src.services.invoice_generator import InvoiceGenerator
from src.services.payment_recorder import PaymentRecorder


@pytest.fixture
async def invoice(async_db_session, directory):
    await directory.occupied_unit("101", rent="5000.00")
    run = await InvoiceGenerator(async_db_session, today=lambda: date(2024, 1, 1)).generate(
        BillingPeriod.for_month(2024, 1)
    )
    return run.created_invoices[0]


class TestResolvers:
    async def test_currency_is_resolved_case_insensitively(self, async_db_session, directory):
        recorder = PaymentRecorder(async_db_session)
        usd = await directory.currency("USD")

        assert await recorder.resolve_currency_id("usd") == usd.id

    @pytest.mark.parametrize("code", ["EUR", "", None])
    async def test_unknown_currency_has_no_fallback(self, async_db_session, directory, code):
        with pytest.raises(MissingCurrency) as exc_info:
            await PaymentRecorder(async_db_session).resolve_currency_id(code)
        assert exc_info.value.http_status == 422

    async def test_missing_tenant(self, async_db_session):
        with pytest.raises(MissingTenantSnapshot):
            await PaymentRecorder(async_db_session).resolve_payer(404)
        with pytest.raises(MissingTenantSnapshot):
            await PaymentRecorder(async_db_session).resolve_payer(None)


class TestRecord:
    async def test_entry_is_added_but_not_committed(self, async_db_session, invoice):
        recorder = PaymentRecorder(async_db_session)

        entry = await recorder.record(
            invoice,
            PaymentDetails(notes="Paid at front desk"),
            paid_date=date(2024, 1, 25),
            created_by=9,
        )

        assert entry in async_db_session.new
        assert entry.amount == Decimal("5000.00")
        assert entry.remarks == "Paid at front desk"
        assert entry.paid_by == "Aisha Ibrahim"
        assert entry.created_by_id == 9
        assert entry.is_active

    async def test_entries_cannot_be_updated(self, async_db_session, invoice):
        entry = await PaymentRecorder(async_db_session).record(
            invoice, PaymentDetails(), paid_date=date(2024, 1, 25)
        )
        await async_db_session.commit()

        entry.remarks = "rewritten"
        with pytest.raises(ValueError, match="immutable"):
            await async_db_session.commit()
        await async_db_session.rollback()

        stored = (await async_db_session.execute(select(PaymentRecord.remarks))).scalar_one()
        assert stored == f"Payment for invoice {invoice.invoice_number}"
