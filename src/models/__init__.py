"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from src.models.audit_log import AuditLog  # noqa: E402
from src.models.billing_period import BillingPeriod  # noqa: E402
from src.models.directory import (  # noqa: E402
    Currency,
    Lease,
    Property,
    RentalUnit,
    Tenant,
    UnitStatus,
)
from src.models.job_run import JobRun  # noqa: E402
from src.models.money import Money  # noqa: E402
from src.models.payment_record import PaymentRecord  # noqa: E402
from src.models.rent_invoice import (  # noqa: E402
    InvoiceStatus,
    PaymentDetails,
    RentInvoice,
    format_invoice_number,
)
from src.models.rent_settings import RentSettingsRecord  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "AuditLog",
    "BillingPeriod",
    "Currency",
    "Lease",
    "Property",
    "RentalUnit",
    "Tenant",
    "UnitStatus",
    "JobRun",
    "Money",
    "PaymentRecord",
    "InvoiceStatus",
    "PaymentDetails",
    "RentInvoice",
    "format_invoice_number",
    "RentSettingsRecord",
]
