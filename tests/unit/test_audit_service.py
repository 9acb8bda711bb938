"""Tests for the rent invoice audit trail."""

from datetime import date
from decimal import Decimal

from src.models.audit_log import ENTITY_RENT_INVOICE
from src.models.billing_period import BillingPeriod
from src.models.money import Money
from src.models.rent_invoice import RentInvoice
from src.services.audit_service import InvoiceAuditTrail
from src.services.invoice_repository import InvoiceRepository


async def test_history_is_scoped_to_one_invoice_in_order(async_db_session, directory):
    unit = await directory.occupied_unit("101")
    other = await directory.occupied_unit("102")
    repository = InvoiceRepository(async_db_session)
    invoices = []
    for target in (unit, other):
        invoice = RentInvoice.issue(
            tenant_id=target.tenant_id,
            property_id=target.property_id,
            rental_unit_id=target.id,
            period=BillingPeriod.for_month(2024, 1),
            rent=Money(Decimal("5000"), "MVR"),
            invoice_date=date(2024, 1, 1),
        )
        invoices.append(await repository.add(invoice, actor_id=2))

    trail = InvoiceAuditTrail(async_db_session)
    trail.record(invoices[0].id, "sent", 5, {"from": "pending", "to": "sent"})
    await async_db_session.commit()

    history = await trail.history(invoices[0].id)

    assert [e.action for e in history] == ["create", "sent"]
    assert {e.entity_type for e in history} == {ENTITY_RENT_INVOICE}
    assert history[0].actor_id == 2
    assert history[0].changes["invoice_number"] == "INV-000001"
    assert history[0].changes["period"] == "2024-01"
    assert history[1].changes == {"from": "pending", "to": "sent"}


async def test_unflushed_entry_is_discarded_on_rollback(async_db_session):
    trail = InvoiceAuditTrail(async_db_session)
    trail.record(42, "cancelled")

    await async_db_session.rollback()

    assert await trail.history(42) == []
