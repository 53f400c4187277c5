"""
Signing through the engine: persistence, authorization and obligation generation.
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from rentflow.engine.errors import LeaseNotFound, SignerNotAuthorized
from rentflow.models import LeaseState, ObligationStatus, ObligationType, SignerRole
from rentflow.observability.metrics import metrics


@pytest.mark.asyncio
async def test_sign_persists_signature_and_state(lease_engine, make_lease):
    lease = await make_lease()

    result = await lease_engine.sign_lease(
        lease.lease_id, SignerRole.TENANT, lease.tenant_id, "tenant-sig"
    )

    assert result.lease.state == LeaseState.PENDING_LANDLORD
    assert result.obligations_created == []

    stored = await lease_engine.get_lease(lease.lease_id)
    assert stored.state == LeaseState.PENDING_LANDLORD
    assert stored.tenant_signature == "tenant-sig"
    assert stored.tenant_signed_at is not None
    assert stored.landlord_signature is None


@pytest.mark.asyncio
async def test_both_orders_converge_to_fully_signed(lease_engine, make_lease):
    first = await make_lease()
    second = await make_lease()

    await lease_engine.sign_lease(first.lease_id, SignerRole.TENANT, first.tenant_id, "t")
    await lease_engine.sign_lease(first.lease_id, SignerRole.LANDLORD, first.landlord_id, "l")

    await lease_engine.sign_lease(second.lease_id, SignerRole.LANDLORD, second.landlord_id, "l")
    await lease_engine.sign_lease(second.lease_id, SignerRole.TENANT, second.tenant_id, "t")

    for lease_id in (first.lease_id, second.lease_id):
        stored = await lease_engine.get_lease(lease_id)
        assert stored.state == LeaseState.FULLY_SIGNED
        assert stored.tenant_signature == "t"
        assert stored.landlord_signature == "l"


@pytest.mark.asyncio
async def test_fully_signed_generates_activation_obligations(lease_engine, make_lease, sign_both):
    lease = await make_lease()

    result = await sign_both(lease_engine, lease)

    assert result.lease.state == LeaseState.FULLY_SIGNED
    assert result.warnings == []
    types = sorted(o.obligation_type.value for o in result.obligations_created)
    assert types == ["rent", "security_deposit"]
    assert all(o.status == ObligationStatus.PENDING for o in result.obligations_created)

    stored = await lease_engine.get_lease(lease.lease_id)
    assert stored.landlord_wallet == "landlord-wallet"
    assert stored.tenant_wallet == "tenant-wallet"


@pytest.mark.asyncio
async def test_resigning_fully_signed_lease_creates_nothing(lease_engine, make_lease, sign_both):
    lease = await make_lease()
    await sign_both(lease_engine, lease)

    again = await lease_engine.sign_lease(
        lease.lease_id, SignerRole.TENANT, lease.tenant_id, "tenant-sig-2"
    )

    assert again.lease.state == LeaseState.FULLY_SIGNED
    assert again.obligations_created == []
    obligations = await lease_engine.list_lease_obligations(lease.lease_id)
    assert len(obligations) == 2


@pytest.mark.asyncio
async def test_wrong_signer_rejected_and_nothing_saved(lease_engine, make_lease):
    lease = await make_lease()

    with pytest.raises(SignerNotAuthorized):
        await lease_engine.sign_lease(lease.lease_id, SignerRole.LANDLORD, lease.tenant_id, "sig")

    stored = await lease_engine.get_lease(lease.lease_id)
    assert stored.landlord_signature is None
    assert stored.state == LeaseState.PENDING_TENANT


@pytest.mark.asyncio
async def test_unknown_lease_not_found(lease_engine):
    with pytest.raises(LeaseNotFound):
        await lease_engine.sign_lease(uuid4(), SignerRole.TENANT, uuid4(), "sig")


@pytest.mark.asyncio
async def test_generation_failure_keeps_signature_and_warns(
    lease_engine, make_lease, sign_both, monkeypatch
):
    """Signature recorded but obligations missing is surfaced, not dropped."""
    lease = await make_lease()

    async def broken(*args, **kwargs):
        raise SQLAlchemyError("insert failed")

    monkeypatch.setattr(lease_engine.generator, "ensure_activation_obligations", broken)
    deferred_before = metrics.get_counter("obligations.activation.deferred")

    result = await sign_both(lease_engine, lease)

    assert result.lease.state == LeaseState.FULLY_SIGNED
    assert len(result.warnings) == 1
    assert str(lease.lease_id) in result.warnings[0]
    assert metrics.get_counter("obligations.activation.deferred") == deferred_before + 1

    stored = await lease_engine.get_lease(lease.lease_id)
    assert stored.state == LeaseState.FULLY_SIGNED
    assert await lease_engine.list_lease_obligations(lease.lease_id) == []


@pytest.mark.asyncio
async def test_first_rent_due_on_start_date(lease_engine, make_lease, sign_both):
    lease = await make_lease()
    result = await sign_both(lease_engine, lease)

    rent = next(o for o in result.obligations_created if o.obligation_type == ObligationType.RENT)
    assert rent.due_date == lease.start_date
    assert rent.amount == lease.monthly_rent
