"""Database repositories for RentFlow entities."""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID, uuid4

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.db.tables import LeaseTable, ObligationTable, PropertyTable, UserTable
from rentflow.models import (
    Lease,
    LeaseState,
    Obligation,
    ObligationDraft,
    ObligationStatus,
    ObligationType,
    User,
    UserRole,
)
from rentflow.utils.time import month_bounds, period_key


def obligation_period_key(obligation_type: ObligationType, due_date: date) -> str | None:
    """
    Uniqueness key of an obligation within its lease.

    One security deposit per lease and one rent obligation per calendar month;
    ad-hoc types (late fees, other) are not constrained.
    """
    if obligation_type == ObligationType.SECURITY_DEPOSIT:
        return ObligationType.SECURITY_DEPOSIT.value
    if obligation_type == ObligationType.RENT:
        return f"{ObligationType.RENT.value}:{period_key(due_date)}"
    return None


class UserRepository:
    """Repository for user operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        email: str,
        full_name: str | None = None,
        role: UserRole = UserRole.PROSPECTIVE_TENANT,
    ) -> User:
        """Create a new user."""
        now = datetime.now(timezone.utc)
        row = UserTable(
            user_id=uuid4(),
            email=email,
            full_name=full_name,
            role=role,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def get(self, user_id: UUID) -> User | None:
        """Get a user by ID."""
        result = await self.session.execute(
            select(UserTable)
            .where(UserTable.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def promote_to_tenant(self, user_id: UUID) -> bool:
        """
        Promote a prospective tenant to tenant.

        Conditional on the current role, so repeated calls promote at most once
        and never rewrite a manager's role. Returns True if the row changed.
        """
        result = await self.session.execute(
            update(UserTable)
            .where(
                UserTable.user_id == user_id,
                UserTable.role == UserRole.PROSPECTIVE_TENANT,
            )
            .values(role=UserRole.TENANT, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def _row_to_model(self, row: UserTable) -> User:
        """Convert database row to model."""
        return User(
            user_id=row.user_id,
            email=row.email,
            full_name=row.full_name,
            role=row.role,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class PropertyRepository:
    """Repository for the property ownership link."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, owner_id: UUID, title: str) -> UUID:
        """Create a property owned by a landlord; returns its ID."""
        row = PropertyTable(
            property_id=uuid4(),
            owner_id=owner_id,
            title=title,
            created_at=datetime.now(timezone.utc),
        )
        self.session.add(row)
        await self.session.flush()
        return row.property_id


class LeaseRepository:
    """Repository for lease operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _select(self) -> Select:
        """Lease rows joined with the owning landlord."""
        return select(LeaseTable, PropertyTable.owner_id).join(
            PropertyTable, PropertyTable.property_id == LeaseTable.property_id
        )

    async def create(
        self,
        tenant_id: UUID,
        property_id: UUID,
        monthly_rent: Decimal,
        security_deposit: Decimal,
        start_date: date,
        end_date: date,
        rent_due_day: int = 1,
    ) -> Lease:
        """
        Create a generated (unsigned) lease.

        Lease generation belongs to the application workflow; this is the
        record-level insert it relies on.
        """
        now = datetime.now(timezone.utc)
        row = LeaseTable(
            lease_id=uuid4(),
            tenant_id=tenant_id,
            property_id=property_id,
            monthly_rent=monthly_rent,
            security_deposit=security_deposit,
            start_date=start_date,
            end_date=end_date,
            rent_due_day=rent_due_day,
            state=LeaseState.PENDING_TENANT,
            total_paid=Decimal("0"),
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        await self.session.flush()
        lease = await self.get(row.lease_id)
        assert lease is not None
        return lease

    async def get(self, lease_id: UUID, for_update: bool = False) -> Lease | None:
        """
        Get a lease by ID.

        With for_update the lease row stays locked until the surrounding
        transaction ends, serializing read-modify-write on that lease.
        """
        query = (
            self._select()
            .where(LeaseTable.lease_id == lease_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update(of=LeaseTable)

        result = await self.session.execute(query)
        row = result.one_or_none()
        return self._row_to_model(row[0], row[1]) if row else None

    async def list_by_state(
        self,
        state: LeaseState,
        limit: int | None = None,
    ) -> list[Lease]:
        """List leases in a given state, oldest first."""
        query = (
            self._select()
            .where(LeaseTable.state == state)
            .order_by(LeaseTable.created_at.asc())
            .execution_options(populate_existing=True)
        )
        if limit:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return [self._row_to_model(lease_row, owner_id) for lease_row, owner_id in result.all()]

    async def count_by_state(self) -> dict[LeaseState, int]:
        """Count leases per state."""
        result = await self.session.execute(
            select(LeaseTable.state, func.count()).group_by(LeaseTable.state)
        )
        return {state: count for state, count in result.all()}

    async def list_ended(self, today: date) -> list[Lease]:
        """List active leases whose term ended before today."""
        result = await self.session.execute(
            self._select()
            .where(
                LeaseTable.state == LeaseState.ACTIVE,
                LeaseTable.end_date < today,
            )
            .execution_options(populate_existing=True)
        )
        return [self._row_to_model(lease_row, owner_id) for lease_row, owner_id in result.all()]

    async def list_active_with_prospective_tenant(self) -> list[Lease]:
        """List active leases whose tenant was never promoted."""
        result = await self.session.execute(
            self._select()
            .join(UserTable, UserTable.user_id == LeaseTable.tenant_id)
            .where(
                LeaseTable.state == LeaseState.ACTIVE,
                UserTable.role == UserRole.PROSPECTIVE_TENANT,
            )
            .execution_options(populate_existing=True)
        )
        return [self._row_to_model(lease_row, owner_id) for lease_row, owner_id in result.all()]

    async def save_signatures(self, lease: Lease) -> None:
        """Write signature, wallet and state fields of a lease in a single UPDATE."""
        await self.session.execute(
            update(LeaseTable)
            .where(LeaseTable.lease_id == lease.lease_id)
            .values(
                tenant_signature=lease.tenant_signature,
                tenant_signed_at=lease.tenant_signed_at,
                landlord_signature=lease.landlord_signature,
                landlord_signed_at=lease.landlord_signed_at,
                tenant_wallet=lease.tenant_wallet,
                landlord_wallet=lease.landlord_wallet,
                state=lease.state,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )

    async def update_lifecycle(
        self,
        lease_id: UUID,
        expected_states: Iterable[LeaseState],
        **values: Any,
    ) -> bool:
        """
        Conditionally update lifecycle fields.

        The write only applies while the lease is in one of expected_states,
        which makes concurrent or repeated transitions apply at most once.
        Returns True if the row changed.
        """
        values["updated_at"] = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(LeaseTable)
            .where(
                LeaseTable.lease_id == lease_id,
                LeaseTable.state.in_(list(expected_states)),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def record_payment(self, lease_id: UUID, amount: Decimal, paid_at: datetime) -> None:
        """Add a settled amount to the lease running total."""
        await self.session.execute(
            update(LeaseTable)
            .where(LeaseTable.lease_id == lease_id)
            .values(
                total_paid=LeaseTable.total_paid + amount,
                last_payment_at=paid_at,
                updated_at=paid_at,
            )
            .execution_options(synchronize_session=False)
        )

    def _row_to_model(self, row: LeaseTable, landlord_id: UUID) -> Lease:
        """Convert database row to model."""
        return Lease(
            lease_id=row.lease_id,
            tenant_id=row.tenant_id,
            property_id=row.property_id,
            landlord_id=landlord_id,
            monthly_rent=row.monthly_rent,
            security_deposit=row.security_deposit,
            start_date=row.start_date,
            end_date=row.end_date,
            rent_due_day=row.rent_due_day,
            tenant_signature=row.tenant_signature,
            tenant_signed_at=row.tenant_signed_at,
            landlord_signature=row.landlord_signature,
            landlord_signed_at=row.landlord_signed_at,
            tenant_wallet=row.tenant_wallet,
            landlord_wallet=row.landlord_wallet,
            state=row.state,
            activated_at=row.activated_at,
            terminated_at=row.terminated_at,
            termination_reason=row.termination_reason,
            expired_at=row.expired_at,
            total_paid=row.total_paid,
            last_payment_at=row.last_payment_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class ObligationRepository:
    """Repository for payment obligation operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, draft: ObligationDraft) -> Obligation:
        """
        Insert an obligation.

        The insert runs in its own savepoint; a unique-constraint violation on
        (lease_id, period_key) rolls back only that savepoint and surfaces as
        ObligationConflict.
        """
        now = datetime.now(timezone.utc)
        key = obligation_period_key(draft.obligation_type, draft.due_date)
        row = ObligationTable(
            obligation_id=uuid4(),
            lease_id=draft.lease_id,
            tenant_id=draft.tenant_id,
            amount=draft.amount,
            obligation_type=draft.obligation_type,
            due_date=draft.due_date,
            status=ObligationStatus.PENDING,
            notes=draft.notes,
            period_key=key,
            created_at=now,
            updated_at=now,
        )

        try:
            async with self.session.begin_nested():  # SAVEPOINT
                self.session.add(row)
                await self.session.flush()
        except IntegrityError:
            from rentflow.engine.errors import ObligationConflict

            raise ObligationConflict(str(draft.lease_id), key)

        return self._row_to_model(row)

    async def get(self, obligation_id: UUID, for_update: bool = False) -> Obligation | None:
        """Get an obligation by ID."""
        query = (
            select(ObligationTable)
            .where(ObligationTable.obligation_id == obligation_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()

        result = await self.session.execute(query)
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def list_for_lease(
        self,
        lease_id: UUID,
        types: Iterable[ObligationType] | None = None,
    ) -> list[Obligation]:
        """List obligations of a lease, optionally filtered by type, ordered by due date."""
        query = select(ObligationTable).where(ObligationTable.lease_id == lease_id)
        if types is not None:
            query = query.where(ObligationTable.obligation_type.in_(list(types)))

        query = query.order_by(
            ObligationTable.due_date.asc(),
            ObligationTable.created_at.asc(),
        ).execution_options(populate_existing=True)

        result = await self.session.execute(query)
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def find_in_month(
        self,
        lease_id: UUID,
        obligation_type: ObligationType,
        year: int,
        month: int,
    ) -> Obligation | None:
        """Find an obligation of a type due in the given calendar month."""
        first_day, next_first_day = month_bounds(year, month)
        result = await self.session.execute(
            select(ObligationTable)
            .where(
                ObligationTable.lease_id == lease_id,
                ObligationTable.obligation_type == obligation_type,
                ObligationTable.due_date >= first_day,
                ObligationTable.due_date < next_first_day,
            )
            .order_by(ObligationTable.created_at.asc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def update_status(
        self,
        obligation_id: UUID,
        new_status: ObligationStatus,
        expected_statuses: Iterable[ObligationStatus],
        **values: Any,
    ) -> bool:
        """
        Conditionally move an obligation to new_status.

        Applies only while the current status is one of expected_statuses.
        Returns True if the row changed.
        """
        values["status"] = new_status
        values["updated_at"] = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(ObligationTable)
            .where(
                ObligationTable.obligation_id == obligation_id,
                ObligationTable.status.in_(list(expected_statuses)),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def mark_overdue(self, today: date) -> int:
        """Bulk-transition pending obligations due before today to late."""
        result = await self.session.execute(
            update(ObligationTable)
            .where(
                ObligationTable.status == ObligationStatus.PENDING,
                ObligationTable.due_date < today,
            )
            .values(status=ObligationStatus.LATE, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def count_by_status(self) -> dict[ObligationStatus, int]:
        """Count obligations per status."""
        result = await self.session.execute(
            select(ObligationTable.status, func.count()).group_by(ObligationTable.status)
        )
        return {status: count for status, count in result.all()}

    async def sum_by_status(
        self,
        due_from: date | None = None,
        due_before: date | None = None,
    ) -> dict[ObligationStatus, tuple[int, Decimal]]:
        """Count and total amount per status, optionally for due dates in [due_from, due_before)."""
        query = select(
            ObligationTable.status,
            func.count(),
            func.coalesce(func.sum(ObligationTable.amount), 0),
        ).group_by(ObligationTable.status)
        if due_from is not None:
            query = query.where(ObligationTable.due_date >= due_from)
        if due_before is not None:
            query = query.where(ObligationTable.due_date < due_before)

        result = await self.session.execute(query)
        return {
            status: (count, Decimal(str(amount))) for status, count, amount in result.all()
        }

    async def list_due_between(
        self,
        start: date,
        end: date,
        statuses: Iterable[ObligationStatus],
    ) -> list[Obligation]:
        """List obligations due in [start, end] with one of the given statuses."""
        result = await self.session.execute(
            select(ObligationTable)
            .where(
                ObligationTable.status.in_(list(statuses)),
                ObligationTable.due_date >= start,
                ObligationTable.due_date <= end,
            )
            .order_by(ObligationTable.due_date.asc())
            .execution_options(populate_existing=True)
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def list_overdue(self, today: date) -> list[Obligation]:
        """List unpaid obligations (pending or late) due before today."""
        result = await self.session.execute(
            select(ObligationTable)
            .where(
                ObligationTable.status.in_([ObligationStatus.PENDING, ObligationStatus.LATE]),
                ObligationTable.due_date < today,
            )
            .order_by(ObligationTable.due_date.asc())
            .execution_options(populate_existing=True)
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    def _row_to_model(self, row: ObligationTable) -> Obligation:
        """Convert database row to model."""
        return Obligation(
            obligation_id=row.obligation_id,
            lease_id=row.lease_id,
            tenant_id=row.tenant_id,
            amount=row.amount,
            obligation_type=row.obligation_type,
            due_date=row.due_date,
            status=row.status,
            settlement_reference=row.settlement_reference,
            notes=row.notes,
            period_key=row.period_key,
            completed_at=row.completed_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
