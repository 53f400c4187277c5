"""
End-to-end move-in: signing, activation obligations, payment and activation.
"""

from datetime import date
from decimal import Decimal

import pytest

from rentflow.db.repositories import UserRepository
from rentflow.models import LeaseState, ObligationStatus, ObligationType, SignerRole, UserRole


@pytest.mark.asyncio
async def test_move_in(lease_engine, session, make_lease, monkeypatch):
    monkeypatch.setattr("rentflow.engine.activation.utc_today", lambda: date(2024, 12, 15))
    lease = await make_lease(
        monthly_rent=Decimal("1500"),
        security_deposit=Decimal("1500"),
        start_date=date(2025, 1, 1),
    )

    landlord_signed = await lease_engine.sign_lease(
        lease.lease_id, SignerRole.LANDLORD, lease.landlord_id, "landlord-sig"
    )
    assert landlord_signed.lease.state == LeaseState.PENDING_TENANT
    assert landlord_signed.obligations_created == []

    tenant_signed = await lease_engine.sign_lease(
        lease.lease_id, SignerRole.TENANT, lease.tenant_id, "tenant-sig"
    )
    assert tenant_signed.lease.state == LeaseState.FULLY_SIGNED

    by_type = {o.obligation_type: o for o in tenant_signed.obligations_created}
    deposit = by_type[ObligationType.SECURITY_DEPOSIT]
    rent = by_type[ObligationType.RENT]
    assert (deposit.amount, deposit.due_date, deposit.status) == (
        Decimal("1500"),
        date(2024, 12, 15),
        ObligationStatus.PENDING,
    )
    assert (rent.amount, rent.due_date, rent.status) == (
        Decimal("1500"),
        date(2025, 1, 1),
        ObligationStatus.PENDING,
    )

    await lease_engine.complete_obligation(deposit.obligation_id, "tx-deposit")
    assert (await lease_engine.get_lease(lease.lease_id)).state == LeaseState.FULLY_SIGNED

    result = await lease_engine.complete_obligation(rent.obligation_id, "tx-rent")
    assert result.lease_activated is True

    stored = await lease_engine.get_lease(lease.lease_id)
    assert stored.state == LeaseState.ACTIVE
    assert stored.total_paid == Decimal("3000")
    tenant = await UserRepository(session).get(lease.tenant_id)
    assert tenant.role == UserRole.TENANT
