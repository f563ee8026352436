"""initial schema

Revision ID: 20261016_0001
Revises: 
Create Date: 2026-10-16 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261016_0001"
down_revision = None
branch_labels = None
depends_on = None

BOOKING_STATUSES = ("pending", "confirmed", "cancelled")
AVAILABILITY_BASES = ("none", "staff", "resource", "both", "auto")
OVERRIDE_TYPES = ("OFF", "ADD_HOURS", "CUSTOM_HOURS")
MEMBERSHIP_STATUSES = ("active", "expired", "archived")
LEDGER_TYPES = ("grant", "debit")


def _now():
    return sa.text("CURRENT_TIMESTAMP")


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("timezone", sa.Text(), nullable=False, server_default=sa.text("'UTC'")),
        sa.Column("currency", sa.Text(), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("require_phone", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_booking_change_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=_now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "tenant_hours",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("open_time", sa.Text(), nullable=True),
        sa.Column("close_time", sa.Text(), nullable=True),
        sa.Column("is_closed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "day_of_week"),
    )

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("slot_interval_minutes", sa.Integer(), nullable=True),
        sa.Column("max_parallel_bookings", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("max_consecutive_slots", sa.Integer(), nullable=True),
        sa.Column("requires_staff", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("requires_resource", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("requires_confirmation", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("allow_membership", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "availability_basis",
            sa.Enum(*AVAILABILITY_BASES, name="availability_basis"),
            nullable=False,
            server_default=sa.text("'auto'"),
        ),
        sa.Column("is_active", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    for table in ("staff", "resources"):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.Text(), nullable=False),
            sa.Column("is_active", sa.Integer(), nullable=False, server_default=sa.text("1")),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=_now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=_now()),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "email", name="uq_customers_tenant_email"),
    )

    op.create_table(
        "staff_schedules",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("staff_id", sa.Integer(), nullable=False),
        sa.Column("weekday", sa.Integer(), nullable=False),
        sa.Column("start_minute", sa.Integer(), nullable=False),
        sa.Column("end_minute", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["staff_id"], ["staff.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "staff_schedule_overrides",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("staff_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("type", sa.Enum(*OVERRIDE_TYPES, name="staff_override_type"), nullable=False),
        sa.Column("start_minute", sa.Integer(), nullable=True),
        sa.Column("end_minute", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=_now()),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["staff_id"], ["staff.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tenant_id", "staff_id", "date", "type", "start_minute", "end_minute",
            name="staff_overrides_unique_block",
        ),
    )
    op.create_index(
        "idx_staff_overrides_tenant_staff_date",
        "staff_schedule_overrides",
        ["tenant_id", "staff_id", "date"],
        unique=False,
    )

    op.create_table(
        "tenant_blackouts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("starts_at", sa.DateTime(), nullable=False),
        sa.Column("ends_at", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("resource_id", sa.Integer(), nullable=True),
        sa.Column("staff_id", sa.Integer(), nullable=True),
        sa.Column("service_id", sa.Integer(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=_now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=_now()),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["resource_id"], ["resources.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["staff_id"], ["staff.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["service_id"], ["services.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_tenant_blackouts_window", "tenant_blackouts", ["tenant_id", "starts_at", "ends_at"], unique=False)

    op.create_table(
        "membership_plans",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("currency", sa.Text(), nullable=True),
        sa.Column("included_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("included_uses", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("validity_days", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("is_active", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "customer_memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("plan_id", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*MEMBERSHIP_STATUSES, name="membership_status"),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        sa.Column("minutes_remaining", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("uses_remaining", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("start_at", sa.DateTime(), nullable=True),
        sa.Column("end_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=_now()),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["plan_id"], ["membership_plans.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("service_id", sa.Integer(), nullable=True),
        sa.Column("staff_id", sa.Integer(), nullable=True),
        sa.Column("resource_id", sa.Integer(), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*BOOKING_STATUSES, name="booking_status"),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("customer_name", sa.Text(), nullable=True),
        sa.Column("customer_phone", sa.Text(), nullable=True),
        sa.Column("customer_email", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.Text(), nullable=True),
        sa.Column("booking_code", sa.Text(), nullable=True),
        sa.Column("customer_membership_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["service_id"], ["services.id"]),
        sa.ForeignKeyConstraint(["staff_id"], ["staff.id"]),
        sa.ForeignKeyConstraint(["resource_id"], ["resources.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["customer_membership_id"], ["customer_memberships.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "idempotency_key", name="uq_bookings_tenant_idempotency_key"),
    )
    op.create_index("idx_bookings_staff_window", "bookings", ["tenant_id", "staff_id", "start_time", "end_time"], unique=False)
    op.create_index("idx_bookings_resource_window", "bookings", ["tenant_id", "resource_id", "start_time", "end_time"], unique=False)

    op.create_table(
        "membership_ledger",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("customer_membership_id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=True),
        sa.Column("type", sa.Enum(*LEDGER_TYPES, name="membership_ledger_type"), nullable=False),
        sa.Column("minutes_delta", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("uses_delta", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["customer_membership_id"], ["customer_memberships.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_membership_ledger_booking_debit",
        "membership_ledger",
        ["customer_membership_id", "booking_id"],
        unique=True,
        postgresql_where=sa.text("type = 'debit'"),
        sqlite_where=sa.text("type = 'debit'"),
    )


def downgrade() -> None:
    op.drop_index("uq_membership_ledger_booking_debit", table_name="membership_ledger")
    op.drop_table("membership_ledger")

    op.drop_index("idx_bookings_resource_window", table_name="bookings")
    op.drop_index("idx_bookings_staff_window", table_name="bookings")
    op.drop_table("bookings")

    op.drop_table("customer_memberships")
    op.drop_table("membership_plans")

    op.drop_index("idx_tenant_blackouts_window", table_name="tenant_blackouts")
    op.drop_table("tenant_blackouts")

    op.drop_index("idx_staff_overrides_tenant_staff_date", table_name="staff_schedule_overrides")
    op.drop_table("staff_schedule_overrides")
    op.drop_table("staff_schedules")

    op.drop_table("customers")
    op.drop_table("resources")
    op.drop_table("staff")
    op.drop_table("services")
    op.drop_table("tenant_hours")
    op.drop_table("tenants")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in (
            "membership_ledger_type",
            "booking_status",
            "membership_status",
            "staff_override_type",
            "availability_basis",
        ):
            sa.Enum(name=name).drop(bind, checkfirst=True)
