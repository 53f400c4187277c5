"""Initial RentFlow schema."""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create base tables and enums."""
    bind = op.get_bind()

    userrole = postgresql.ENUM(
        "prospective_tenant", "tenant", "manager", name="userrole", create_type=False
    )
    leasestate = postgresql.ENUM(
        "pending_tenant",
        "pending_landlord",
        "fully_signed",
        "active",
        "terminated",
        "expired",
        name="leasestate",
        create_type=False,
    )
    obligationtype = postgresql.ENUM(
        "security_deposit", "rent", "late_fee", "other", name="obligationtype", create_type=False
    )
    obligationstatus = postgresql.ENUM(
        "pending",
        "late",
        "processing",
        "completed",
        "failed",
        name="obligationstatus",
        create_type=False,
    )

    userrole.create(bind, checkfirst=True)
    leasestate.create(bind, checkfirst=True)
    obligationtype.create(bind, checkfirst=True)
    obligationstatus.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("role", userrole, nullable=False, server_default="prospective_tenant"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "properties",
        sa.Column("property_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "owner_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_properties_owner", "properties", ["owner_id"])

    op.create_table(
        "leases",
        sa.Column("lease_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "property_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("properties.property_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("monthly_rent", sa.Numeric(20, 6), nullable=False),
        sa.Column("security_deposit", sa.Numeric(20, 6), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("rent_due_day", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("tenant_signature", sa.Text(), nullable=True),
        sa.Column("tenant_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("landlord_signature", sa.Text(), nullable=True),
        sa.Column("landlord_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tenant_wallet", sa.String(length=255), nullable=True),
        sa.Column("landlord_wallet", sa.String(length=255), nullable=True),
        sa.Column("state", leasestate, nullable=False, server_default="pending_tenant"),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("terminated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("termination_reason", sa.Text(), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_paid", sa.Numeric(20, 6), nullable=False, server_default="0"),
        sa.Column("last_payment_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("rent_due_day BETWEEN 1 AND 31", name="ck_leases_rent_due_day"),
        sa.CheckConstraint("monthly_rent > 0", name="ck_leases_monthly_rent_positive"),
        sa.CheckConstraint("security_deposit >= 0", name="ck_leases_security_deposit"),
        sa.CheckConstraint("end_date >= start_date", name="ck_leases_term"),
    )
    op.create_index("idx_leases_state", "leases", ["state"])
    op.create_index("idx_leases_tenant", "leases", ["tenant_id"])
    op.create_index("idx_leases_property", "leases", ["property_id"])

    op.create_table(
        "payment_obligations",
        sa.Column("obligation_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "lease_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leases.lease_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "tenant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.user_id"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(20, 6), nullable=False),
        sa.Column("obligation_type", obligationtype, nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", obligationstatus, nullable=False, server_default="pending"),
        sa.Column("settlement_reference", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("period_key", sa.String(length=32), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_obligations_amount_positive"),
        # One deposit per lease, one rent obligation per lease per calendar month
        sa.UniqueConstraint("lease_id", "period_key", name="uq_obligation_period"),
    )
    op.create_index(
        "idx_obligations_lease_type",
        "payment_obligations",
        ["lease_id", "obligation_type"],
    )
    op.create_index(
        "idx_obligations_status_due",
        "payment_obligations",
        ["status", "due_date"],
    )


def downgrade() -> None:
    """Drop all tables and enums."""
    op.drop_index("idx_obligations_status_due", table_name="payment_obligations")
    op.drop_index("idx_obligations_lease_type", table_name="payment_obligations")
    op.drop_table("payment_obligations")

    op.drop_index("idx_leases_property", table_name="leases")
    op.drop_index("idx_leases_tenant", table_name="leases")
    op.drop_index("idx_leases_state", table_name="leases")
    op.drop_table("leases")

    op.drop_index("idx_properties_owner", table_name="properties")
    op.drop_table("properties")

    op.drop_table("users")

    bind = op.get_bind()
    sa.Enum(name="obligationstatus").drop(bind, checkfirst=True)
    sa.Enum(name="obligationtype").drop(bind, checkfirst=True)
    sa.Enum(name="leasestate").drop(bind, checkfirst=True)
    sa.Enum(name="userrole").drop(bind, checkfirst=True)
