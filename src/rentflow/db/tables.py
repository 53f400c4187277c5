"""SQLAlchemy table definitions."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from rentflow.db.base import Base
from rentflow.models.enums import LeaseState, ObligationStatus, ObligationType, UserRole

# USDC amounts carry six decimal places
Money = Numeric(20, 6, asdecimal=True)


def _enum(enum_cls, name: str) -> Enum:
    """Enum column storing member values rather than names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class UserTable(Base):
    """Users table - tenants, prospective tenants and managers."""

    __tablename__ = "users"

    user_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        _enum(UserRole, "userrole"), nullable=False, default=UserRole.PROSPECTIVE_TENANT
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PropertyTable(Base):
    """Properties table - only the ownership link is needed by the lease engine."""

    __tablename__ = "properties"

    property_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    owner_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_properties_owner", "owner_id"),)


class LeaseTable(Base):
    """Leases table - terms, signatures and lifecycle stamps."""

    __tablename__ = "leases"

    lease_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    property_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("properties.property_id", ondelete="CASCADE"), nullable=False
    )

    # Terms
    monthly_rent: Mapped[Decimal] = mapped_column(Money, nullable=False)
    security_deposit: Mapped[Decimal] = mapped_column(Money, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    rent_due_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Signatures
    tenant_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    tenant_signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    landlord_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    landlord_signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Settlement accounts
    tenant_wallet: Mapped[str | None] = mapped_column(String(255), nullable=True)
    landlord_wallet: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Lifecycle (state is derived from the stamps below and the signatures)
    state: Mapped[LeaseState] = mapped_column(
        _enum(LeaseState, "leasestate"), nullable=False, default=LeaseState.PENDING_TENANT
    )
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    terminated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    termination_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Payment totals
    total_paid: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    last_payment_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("rent_due_day BETWEEN 1 AND 31", name="ck_leases_rent_due_day"),
        CheckConstraint("monthly_rent > 0", name="ck_leases_monthly_rent_positive"),
        CheckConstraint("security_deposit >= 0", name="ck_leases_security_deposit"),
        CheckConstraint("end_date >= start_date", name="ck_leases_term"),
        # Index for scheduler sweeps
        Index("idx_leases_state", "state"),
        Index("idx_leases_tenant", "tenant_id"),
        Index("idx_leases_property", "property_id"),
    )


class ObligationTable(Base):
    """Payment obligations table - amounts owed under a lease."""

    __tablename__ = "payment_obligations"

    obligation_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    lease_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("leases.lease_id", ondelete="CASCADE"), nullable=False
    )
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id"), nullable=False
    )

    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    obligation_type: Mapped[ObligationType] = mapped_column(
        _enum(ObligationType, "obligationtype"), nullable=False
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[ObligationStatus] = mapped_column(
        _enum(ObligationStatus, "obligationstatus"),
        nullable=False,
        default=ObligationStatus.PENDING,
    )

    settlement_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # "security_deposit" / "rent:YYYY-MM" / NULL for ad-hoc types
    period_key: Mapped[str | None] = mapped_column(String(32), nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_obligations_amount_positive"),
        # One deposit per lease, one rent obligation per lease per calendar month
        UniqueConstraint("lease_id", "period_key", name="uq_obligation_period"),
        Index("idx_obligations_lease_type", "lease_id", "obligation_type"),
        # Index for overdue sweeps
        Index("idx_obligations_status_due", "status", "due_date"),
    )
