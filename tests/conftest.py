"""
Pytest fixtures for RentFlow tests.
"""

import os
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Ensure test config is set before importing rentflow modules.
os.environ.setdefault("RENTFLOW_ENV", "development")
os.environ.setdefault("RENTFLOW_DATABASE_URL", "sqlite+aiosqlite://")

from rentflow.db.base import Base, enable_sqlite_savepoints
from rentflow.db.repositories import LeaseRepository, PropertyRepository, UserRepository
from rentflow.engine import LeaseEngine
from rentflow.models import Lease, SignerRole, User, UserRole
import rentflow.db.tables  # noqa: F401


@pytest.fixture
async def engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    """Provide a clean database session per test."""
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def lease_engine(session) -> LeaseEngine:
    return LeaseEngine(session)


@pytest.fixture
def make_user(session):
    """Factory for users."""

    async def _make(role: UserRole = UserRole.PROSPECTIVE_TENANT) -> User:
        return await UserRepository(session).create(
            email=f"{uuid4().hex[:12]}@example.com",
            full_name="Test User",
            role=role,
        )

    return _make


@pytest.fixture
def make_lease(session, make_user):
    """Factory for unsigned leases with a prospective tenant and a landlord."""

    async def _make(
        monthly_rent: Decimal = Decimal("1500"),
        security_deposit: Decimal = Decimal("1500"),
        start_date: date = date(2025, 1, 1),
        end_date: date = date(2025, 12, 31),
        rent_due_day: int = 1,
        tenant: Optional[User] = None,
    ) -> Lease:
        tenant = tenant or await make_user()
        landlord = await make_user(role=UserRole.MANAGER)
        property_id = await PropertyRepository(session).create(landlord.user_id, "Unit 4B")
        return await LeaseRepository(session).create(
            tenant_id=tenant.user_id,
            property_id=property_id,
            monthly_rent=monthly_rent,
            security_deposit=security_deposit,
            start_date=start_date,
            end_date=end_date,
            rent_due_day=rent_due_day,
        )

    return _make


@pytest.fixture
def sign_both():
    """Landlord signs, then tenant signs; returns the tenant's SigningResult."""

    async def _sign(engine: LeaseEngine, lease: Lease, landlord_wallet: str = "landlord-wallet"):
        await engine.sign_lease(
            lease.lease_id,
            SignerRole.LANDLORD,
            lease.landlord_id,
            "landlord-sig",
            wallet_address=landlord_wallet,
        )
        return await engine.sign_lease(
            lease.lease_id,
            SignerRole.TENANT,
            lease.tenant_id,
            "tenant-sig",
            wallet_address="tenant-wallet",
        )

    return _sign


@pytest.fixture
async def client(session):
    """Async test client with overridden dependencies."""
    from rentflow.api.deps import get_db_session
    from rentflow.main import app

    async def override_get_db_session():
        yield session

    app.dependency_overrides[get_db_session] = override_get_db_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
