"""Rent invoice ORM model: the aggregate driven through the invoice lifecycle."""

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Date, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel
from src.models.billing_period import BillingPeriod
from src.models.money import Money

INVOICE_NUMBER_PREFIX = "INV-"


def format_invoice_number(invoice_id: int) -> str:
    """``INV-`` followed by the persisted id zero-padded to 6 digits."""
    return f"{INVOICE_NUMBER_PREFIX}{invoice_id:06d}"


class InvoiceStatus(str, Enum):
    """Lifecycle status of a rent invoice."""

    DRAFT = "draft"
    """Synonym of pending before the invoice is sent (UI-originated flows)"""

    PENDING = "pending"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)


@dataclass(frozen=True)
class PaymentDetails:
    """How and when a payment was taken."""

    payment_type: int | None = None
    payment_mode: int | None = None
    reference_number: str | None = None
    notes: str | None = None
    payment_date: date | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.payment_date is not None:
            data["payment_date"] = self.payment_date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentDetails":
        payment_date = data.get("payment_date")
        if isinstance(payment_date, str):
            payment_date = date.fromisoformat(payment_date)
        return cls(
            payment_type=data.get("payment_type"),
            payment_mode=data.get("payment_mode"),
            reference_number=data.get("reference_number"),
            notes=data.get("notes"),
            payment_date=payment_date,
        )


class RentInvoice(Base, BaseModel):
    """Monthly rent invoice for one rental unit.

    Rent is copied from the unit at generation time so later rent changes do
    not alter issued invoices. ``total_amount`` is always ``rent_amount +
    late_fee`` and is only ever written through this class.

    (rental_unit_id, billing_year, billing_month) is unique: it is the
    idempotency key that prevents double-billing a unit for a period.
    """

    __tablename__ = "rent_invoices"

    invoice_number: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        unique=True,
        comment="INV-NNNNNN, assigned from id right after insert",
    )

    # Directory references (copies, not live joins)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False, index=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    rental_unit_id: Mapped[int] = mapped_column(
        ForeignKey("rental_units.id"),
        nullable=False,
        index=True,
    )

    # Billing period
    billing_year: Mapped[int] = mapped_column(Integer, nullable=False)
    billing_month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    invoice_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Amounts; scale 4 covers every ISO 4217 minor unit
    rent_amount: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    late_fee: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[InvoiceStatus] = mapped_column(
        SQLEnum(InvoiceStatus),
        nullable=False,
        default=InvoiceStatus.PENDING,
        index=True,
    )
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Optimistic lock: every UPDATE checks and bumps this
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        UniqueConstraint(
            "rental_unit_id",
            "billing_year",
            "billing_month",
            name="uq_rent_invoice_unit_period",
        ),
        Index("idx_rent_invoice_status_due", "status", "due_date"),
    )

    @classmethod
    def issue(
        cls,
        *,
        tenant_id: int,
        property_id: int,
        rental_unit_id: int,
        period: BillingPeriod,
        rent: Money,
        invoice_date: date,
        notes: str | None = None,
    ) -> "RentInvoice":
        """Build a new pending invoice with zero late fee."""
        if not rent.is_positive:
            raise ValueError(f"Rent amount must be positive, got {rent}")
        late_fee = Money.zero(rent.currency)
        return cls(
            tenant_id=tenant_id,
            property_id=property_id,
            rental_unit_id=rental_unit_id,
            billing_year=period.billing_year,
            billing_month=period.billing_month,
            period_start=period.start_date,
            period_end=period.end_date,
            invoice_date=invoice_date,
            due_date=period.due_date,
            rent_amount=rent.amount,
            late_fee=late_fee.amount,
            total_amount=(rent + late_fee).amount,
            currency=rent.currency,
            status=InvoiceStatus.PENDING,
            notes=notes,
        )

    @property
    def rent(self) -> Money:
        return Money(self.rent_amount, self.currency)

    @property
    def late_fee_money(self) -> Money:
        return Money(self.late_fee or Decimal("0"), self.currency)

    @property
    def total(self) -> Money:
        return Money(self.total_amount, self.currency)

    @property
    def is_terminal(self) -> bool:
        return InvoiceStatus(self.status).is_terminal

    def is_overdue(self, today: date) -> bool:
        """Unpaid and past due (read-side check; the sweep applies the status)."""
        return (
            self.status in (InvoiceStatus.DRAFT, InvoiceStatus.PENDING, InvoiceStatus.SENT)
            and self.due_date < today
        )

    def set_late_fee(self, fee: Money) -> None:
        """Store a late fee and recompute the total."""
        total = self.rent + fee  # CurrencyMismatch for a foreign currency
        if fee.amount < 0:
            raise ValueError(f"Late fee cannot be negative, got {fee}")
        self.late_fee = fee.amount
        self.total_amount = total.amount

    def assign_number(self) -> None:
        if self.id is None:
            raise ValueError("Invoice must be flushed before numbering")
        self.invoice_number = format_invoice_number(self.id)

    @property
    def payment(self) -> PaymentDetails | None:
        if self.payment_details is None:
            return None
        return PaymentDetails.from_dict(self.payment_details)

    def __repr__(self) -> str:
        return (
            f"<RentInvoice(id={self.id}, number={self.invoice_number}, "
            f"unit={self.rental_unit_id}, period={self.billing_year}-{self.billing_month}, "
            f"status={self.status}, total={self.total_amount} {self.currency})>"
        )


__all__ = [
    "RentInvoice",
    "InvoiceStatus",
    "PaymentDetails",
    "format_invoice_number",
    "INVOICE_NUMBER_PREFIX",
]
