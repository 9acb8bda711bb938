"""Rental directory ORM models: properties, tenants, rental units, leases, currencies.

These tables are owned by the property management screens. The invoice core
only reads them (occupancy, tenant snapshot, currency resolution).
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, ForeignKey, Index, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class UnitStatus(str, Enum):
    """Stored occupancy flag of a rental unit."""

    VACANT = "vacant"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"


class Property(Base, BaseModel):
    """Physical property (building) containing rental units."""

    __tablename__ = "properties"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    units: Mapped[list["RentalUnit"]] = relationship(
        "RentalUnit",
        back_populates="property",
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, name={self.name})>"


class Tenant(Base, BaseModel):
    """Person renting a unit. Name and phone feed payment ledger entries."""

    __tablename__ = "tenants"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name={self.full_name})>"


class RentalUnit(Base, BaseModel):
    """Rentable unit with its current rent terms.

    ``status`` and ``tenant_id`` are a denormalized cache of the active lease;
    occupancy for billing is derived from ``leases``, see
    ``reconcile_unit_statuses``.
    """

    __tablename__ = "rental_units"

    property_id: Mapped[int] = mapped_column(
        ForeignKey("properties.id"),
        nullable=False,
        index=True,
    )
    unit_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[UnitStatus] = mapped_column(
        SQLEnum(UnitStatus),
        nullable=False,
        default=UnitStatus.VACANT,
        comment="Cached occupancy flag (derived from leases on reconcile)",
    )
    tenant_id: Mapped[int | None] = mapped_column(
        ForeignKey("tenants.id"),
        nullable=True,
        index=True,
    )
    rent_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 4),
        nullable=True,
        comment="Current monthly rent",
    )
    deposit_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 4),
        nullable=True,
    )
    currency: Mapped[str | None] = mapped_column(
        String(3),
        nullable=True,
        comment="ISO 4217 code of rent and deposit",
    )

    property: Mapped["Property"] = relationship("Property", back_populates="units")
    leases: Mapped[list["Lease"]] = relationship("Lease", back_populates="unit")

    def __repr__(self) -> str:
        return (
            f"<RentalUnit(id={self.id}, unit_number={self.unit_number}, "
            f"status={self.status}, rent_amount={self.rent_amount})>"
        )


class Lease(Base, BaseModel):
    """Tenancy of one tenant in one unit. ``end_date`` null means open-ended."""

    __tablename__ = "leases"

    rental_unit_id: Mapped[int] = mapped_column(
        ForeignKey("rental_units.id"),
        nullable=False,
    )
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("tenants.id"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    unit: Mapped["RentalUnit"] = relationship("RentalUnit", back_populates="leases")

    __table_args__ = (
        Index("idx_lease_unit_dates", "rental_unit_id", "start_date", "end_date"),
    )

    def covers(self, as_of: date) -> bool:
        return (
            self.is_active
            and self.start_date <= as_of
            and (self.end_date is None or self.end_date >= as_of)
        )

    def __repr__(self) -> str:
        return (
            f"<Lease(id={self.id}, rental_unit_id={self.rental_unit_id}, "
            f"tenant_id={self.tenant_id}, {self.start_date}..{self.end_date})>"
        )


class Currency(Base, BaseModel):
    """Configured currency; payment ledger entries reference it by id."""

    __tablename__ = "currencies"

    code: Mapped[str] = mapped_column(String(3), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<Currency(id={self.id}, code={self.code})>"


__all__ = ["UnitStatus", "Property", "Tenant", "RentalUnit", "Lease", "Currency"]
