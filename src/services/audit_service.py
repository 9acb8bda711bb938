"""Audit trail for rent invoices."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.audit_log import ENTITY_RENT_INVOICE, AuditLog
from src.models.rent_invoice import RentInvoice


class InvoiceAuditTrail:
    """Writes and reads the audit rows of rent invoices.

    Writes only add to the session; the row commits (or rolls back) together
    with the change it describes.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def record(
        self,
        invoice_id: int,
        action: str,
        actor_id: int | None = None,
        changes: dict[str, Any] | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            entity_type=ENTITY_RENT_INVOICE,
            entity_id=invoice_id,
            action=action,
            actor_id=actor_id,
            changes=changes,
        )
        self.session.add(entry)
        return entry

    def created(self, invoice: RentInvoice, actor_id: int | None = None) -> AuditLog:
        return self.record(
            invoice.id,
            "create",
            actor_id,
            {
                "invoice_number": invoice.invoice_number,
                "rental_unit_id": invoice.rental_unit_id,
                "period": f"{invoice.billing_year}-{invoice.billing_month:02d}",
                "total_amount": str(invoice.total.amount),
                "currency": invoice.currency,
            },
        )

    async def history(self, invoice_id: int) -> list[AuditLog]:
        """Every recorded change of one invoice, oldest first."""
        result = await self.session.execute(
            select(AuditLog)
            .where(
                AuditLog.entity_type == ENTITY_RENT_INVOICE,
                AuditLog.entity_id == invoice_id,
            )
            .order_by(AuditLog.id)
        )
        return list(result.scalars().all())


__all__ = ["InvoiceAuditTrail"]
