"""Payment ledger ORM model: immutable record of a completed rent payment."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, Numeric, String, event
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class PaymentRecord(Base, BaseModel):
    """Ledger entry emitted when a rent invoice is paid.

    Written once, in the same transaction as the invoice's ``paid`` status.
    Reporting reads these rows independently of the invoice's mutable status,
    so they are never updated afterwards.
    """

    __tablename__ = "payment_records"

    unit_id: Mapped[int] = mapped_column(
        ForeignKey("rental_units.id"),
        nullable=False,
        index=True,
    )
    invoice_id: Mapped[int | None] = mapped_column(
        ForeignKey("rent_invoices.id"),
        nullable=True,
        unique=True,
        comment="Source invoice (one ledger entry per paid invoice)",
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    currency_id: Mapped[int] = mapped_column(ForeignKey("currencies.id"), nullable=False)
    payment_type_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_mode_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    paid_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_by: Mapped[str] = mapped_column(String(100), nullable=False)
    mobile_no: Mapped[str | None] = mapped_column(String(20), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    remarks: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_by_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Acting user; null for system-recorded payments",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (Index("idx_payment_record_paid_date", "paid_date"),)

    def __repr__(self) -> str:
        return (
            f"<PaymentRecord(id={self.id}, unit_id={self.unit_id}, invoice_id={self.invoice_id}, "
            f"amount={self.amount}, paid_date={self.paid_date}, paid_by={self.paid_by})>"
        )


@event.listens_for(PaymentRecord, "before_update")
def _reject_ledger_update(mapper, connection, target: PaymentRecord) -> None:
    raise ValueError(f"Payment ledger entry {target.id} is immutable")


__all__ = ["PaymentRecord"]
