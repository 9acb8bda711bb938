"""Audit trail rows for rent invoices and scheduler runs."""

from typing import Any

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel

ENTITY_RENT_INVOICE = "rent_invoice"


class AuditLog(Base, BaseModel):
    """One recorded change: invoice created, moved to a new status, fee applied or deleted.

    ``changes`` holds the before/after snapshot, e.g.
    ``{"from": "pending", "to": "paid", "total_amount": "5000.00"}``.
    ``actor_id`` is None for scheduler-driven changes.
    """

    __tablename__ = "audit_logs"

    entity_type: Mapped[str] = mapped_column(String(50))
    entity_id: Mapped[int]
    action: Mapped[str] = mapped_column(String(50))
    actor_id: Mapped[int | None] = mapped_column(nullable=True)
    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (Index("idx_audit_entity", "entity_type", "entity_id"),)

    def __repr__(self) -> str:
        return f"<AuditLog({self.entity_type}#{self.entity_id} {self.action} by {self.actor_id})>"


__all__ = ["AuditLog", "ENTITY_RENT_INVOICE"]
