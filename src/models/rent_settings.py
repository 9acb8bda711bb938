"""Rent generation settings ORM model (single row, edited from the settings screen)."""

from sqlalchemy import Boolean, CheckConstraint, Integer
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class RentSettingsRecord(Base, BaseModel):
    """Stored rent settings read by the recurrence scheduler."""

    __tablename__ = "rent_settings"

    auto_generate_rent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rent_generation_day: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
        comment="Day of month (1..31) on which invoices are generated",
    )
    rent_due_days: Mapped[int] = mapped_column(
        Integer,
        default=7,
        nullable=False,
        comment="Days after period end until an invoice is due",
    )

    __table_args__ = (
        CheckConstraint("rent_generation_day BETWEEN 1 AND 31", name="ck_rent_generation_day"),
        CheckConstraint("rent_due_days >= 0", name="ck_rent_due_days"),
    )

    def __repr__(self) -> str:
        return (
            f"<RentSettingsRecord(auto_generate_rent={self.auto_generate_rent}, "
            f"rent_generation_day={self.rent_generation_day}, rent_due_days={self.rent_due_days})>"
        )


__all__ = ["RentSettingsRecord"]
