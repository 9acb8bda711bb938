"""Initial schema: rental directory, rent invoices, payment ledger, scheduler.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
    ]


def upgrade() -> None:
    # Rental directory
    op.create_table(
        "properties",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "currencies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=3), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "rental_units",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("property_id", sa.Integer(), nullable=False),
        sa.Column("unit_number", sa.String(length=50), nullable=False),
        sa.Column(
            "status",
            sa.Enum("VACANT", "OCCUPIED", "MAINTENANCE", name="unitstatus"),
            nullable=False,
            comment="Cached occupancy flag (derived from leases on reconcile)",
        ),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("rent_amount", sa.Numeric(18, 4), nullable=True, comment="Current monthly rent"),
        sa.Column("deposit_amount", sa.Numeric(18, 4), nullable=True),
        sa.Column(
            "currency",
            sa.String(length=3),
            nullable=True,
            comment="ISO 4217 code of rent and deposit",
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"]),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_rental_units_property_id", "property_id"),
        sa.Index("ix_rental_units_tenant_id", "tenant_id"),
    )

    op.create_table(
        "leases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("rental_unit_id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["rental_unit_id"], ["rental_units.id"]),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("idx_lease_unit_dates", "rental_unit_id", "start_date", "end_date"),
    )

    # Rent invoices
    op.create_table(
        "rent_invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "invoice_number",
            sa.String(length=20),
            nullable=True,
            comment="INV-NNNNNN, assigned from id right after insert",
        ),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("property_id", sa.Integer(), nullable=False),
        sa.Column("rental_unit_id", sa.Integer(), nullable=False),
        sa.Column("billing_year", sa.Integer(), nullable=False),
        sa.Column("billing_month", sa.Integer(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("rent_amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("late_fee", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "DRAFT", "PENDING", "SENT", "PAID", "OVERDUE", "CANCELLED", name="invoicestatus"
            ),
            nullable=False,
        ),
        sa.Column("paid_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payment_details", sa.JSON(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"]),
        sa.ForeignKeyConstraint(["rental_unit_id"], ["rental_units.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_number"),
        sa.UniqueConstraint(
            "rental_unit_id", "billing_year", "billing_month", name="uq_rent_invoice_unit_period"
        ),
        sa.Index("ix_rent_invoices_tenant_id", "tenant_id"),
        sa.Index("ix_rent_invoices_rental_unit_id", "rental_unit_id"),
        sa.Index("ix_rent_invoices_invoice_date", "invoice_date"),
        sa.Index("ix_rent_invoices_due_date", "due_date"),
        sa.Index("ix_rent_invoices_status", "status"),
        sa.Index("idx_rent_invoice_status_due", "status", "due_date"),
    )

    # Payment ledger
    op.create_table(
        "payment_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column(
            "invoice_id",
            sa.Integer(),
            nullable=True,
            comment="Source invoice (one ledger entry per paid invoice)",
        ),
        sa.Column("amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("currency_id", sa.Integer(), nullable=False),
        sa.Column("payment_type_id", sa.Integer(), nullable=True),
        sa.Column("payment_mode_id", sa.Integer(), nullable=True),
        sa.Column("paid_date", sa.Date(), nullable=False),
        sa.Column("paid_by", sa.String(length=100), nullable=False),
        sa.Column("mobile_no", sa.String(length=20), nullable=True),
        sa.Column("reference_number", sa.String(length=50), nullable=True),
        sa.Column("remarks", sa.String(length=500), nullable=True),
        sa.Column(
            "created_by_id",
            sa.Integer(),
            nullable=True,
            comment="Acting user; null for system-recorded payments",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["unit_id"], ["rental_units.id"]),
        sa.ForeignKeyConstraint(["invoice_id"], ["rent_invoices.id"]),
        sa.ForeignKeyConstraint(["currency_id"], ["currencies.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_id"),
        sa.Index("ix_payment_records_unit_id", "unit_id"),
        sa.Index("idx_payment_record_paid_date", "paid_date"),
    )

    # Settings, scheduler runs and audit trail
    op.create_table(
        "rent_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("auto_generate_rent", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column(
            "rent_generation_day",
            sa.Integer(),
            nullable=False,
            server_default="1",
            comment="Day of month (1..31) on which invoices are generated",
        ),
        sa.Column(
            "rent_due_days",
            sa.Integer(),
            nullable=False,
            server_default="7",
            comment="Days after period end until an invoice is due",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("rent_generation_day BETWEEN 1 AND 31", name="ck_rent_generation_day"),
        sa.CheckConstraint("rent_due_days >= 0", name="ck_rent_due_days"),
    )

    op.create_table(
        "scheduler_job_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_name", sa.String(length=100), nullable=False),
        sa.Column("run_date", sa.Date(), nullable=False),
        sa.Column("created_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("overdue_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("job_name", "run_date", name="uq_job_run_day"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("idx_audit_entity", "entity_type", "entity_id"),
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("scheduler_job_runs")
    op.drop_table("rent_settings")
    op.drop_table("payment_records")
    op.drop_table("rent_invoices")
    op.drop_table("leases")
    op.drop_table("rental_units")
    op.drop_table("currencies")
    op.drop_table("tenants")
    op.drop_table("properties")
    sa.Enum(name="invoicestatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="unitstatus").drop(op.get_bind(), checkfirst=True)
