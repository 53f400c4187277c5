"""
REST API tests.
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from rentflow.api.deps import get_payment_rail
from rentflow.engine.errors import PaymentRailUnavailable
from rentflow.integrations.payment_rail import PaymentRail, TransferResult
from rentflow.main import app


class StubRail(PaymentRail):
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    async def transfer_funds(self, from_account, to_account, amount, metadata=None):
        if self.error:
            raise self.error
        return self.result


async def _sign(client, lease, role, signer_id, wallet=None):
    return await client.post(
        f"/v1/leases/{lease.lease_id}/sign",
        json={
            "signer_role": role,
            "signer_id": str(signer_id),
            "signature": f"{role}-sig",
            "wallet_address": wallet,
        },
    )


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/v1/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_get_unknown_lease(client):
    response = await client.get(f"/v1/leases/{uuid4()}")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_get_lease_hides_signatures(client, make_lease):
    lease = await make_lease()
    await _sign(client, lease, "tenant", lease.tenant_id)

    response = await client.get(f"/v1/leases/{lease.lease_id}")

    body = response.json()
    assert response.status_code == 200
    assert body["state"] == "pending_landlord"
    assert body["tenant_signed"] is True
    assert body["landlord_signed"] is False
    assert "tenant_signature" not in body


@pytest.mark.asyncio
async def test_sign_wrong_party_forbidden(client, make_lease):
    lease = await make_lease()

    response = await _sign(client, lease, "landlord", lease.tenant_id)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_sign_invalid_role(client, make_lease):
    lease = await make_lease()

    response = await _sign(client, lease, "guarantor", lease.tenant_id)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_signing_through_activation(client, make_lease):
    lease = await make_lease()

    await _sign(client, lease, "landlord", lease.landlord_id, wallet="landlord-wallet")
    signed = await _sign(client, lease, "tenant", lease.tenant_id)
    body = signed.json()

    assert signed.status_code == 200
    assert body["lease"]["state"] == "fully_signed"
    assert body["warnings"] == []
    assert sorted(o["obligation_type"] for o in body["obligations_created"]) == [
        "rent",
        "security_deposit",
    ]

    results = []
    for obligation in body["obligations_created"]:
        response = await client.post(
            f"/v1/obligations/{obligation['obligation_id']}/complete",
            json={"settlement_reference": "ref"},
        )
        assert response.status_code == 200
        results.append(response.json())

    assert [r["lease_activated"] for r in results] == [False, True]
    assert results[1]["role_promoted"] is True

    lease_body = (await client.get(f"/v1/leases/{lease.lease_id}")).json()
    assert lease_body["state"] == "active"

    listed = (await client.get(f"/v1/leases/{lease.lease_id}/obligations")).json()
    assert {o["status"] for o in listed["obligations"]} == {"completed"}


@pytest.mark.asyncio
async def test_complete_unknown_obligation(client):
    response = await client.post(f"/v1/obligations/{uuid4()}/complete", json={})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_complete_failed_obligation_conflicts(client, lease_engine, make_lease, sign_both):
    lease = await make_lease()
    result = await sign_both(lease_engine, lease)
    obligation_id = result.obligations_created[0].obligation_id

    failed = await client.post(f"/v1/obligations/{obligation_id}/fail", json={"reason": "declined"})
    assert failed.json()["status"] == "failed"

    response = await client.post(f"/v1/obligations/{obligation_id}/complete", json={})
    assert response.status_code == 409

    replaced = await client.post(f"/v1/obligations/{obligation_id}/replace")
    assert replaced.status_code == 200
    assert replaced.json()["status"] == "pending"


@pytest.mark.asyncio
async def test_partial_activation_body(client, lease_engine, make_lease, sign_both, monkeypatch):
    from rentflow.db.repositories import UserRepository

    lease = await make_lease()
    result = await sign_both(lease_engine, lease)
    first, second = result.obligations_created
    await lease_engine.complete_obligation(first.obligation_id, "ref")

    async def broken(self, user_id):
        raise SQLAlchemyError("role update failed")

    monkeypatch.setattr(UserRepository, "promote_to_tenant", broken)

    response = await client.post(f"/v1/obligations/{second.obligation_id}/complete", json={})

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["lease_id"] == str(lease.lease_id)
    assert detail["lease_activated"] is True
    assert detail["role_promoted"] is False


@pytest.mark.asyncio
async def test_terminate_lease(client, make_lease):
    lease = await make_lease()

    response = await client.post(
        f"/v1/leases/{lease.lease_id}/terminate", json={"reason": "withdrawn"}
    )

    assert response.status_code == 200
    assert response.json()["state"] == "terminated"
    assert response.json()["termination_reason"] == "withdrawn"


@pytest.mark.asyncio
async def test_pay_obligation(client, lease_engine, make_lease, sign_both):
    lease = await make_lease()
    result = await sign_both(lease_engine, lease)
    obligation_id = result.obligations_created[0].obligation_id
    app.dependency_overrides[get_payment_rail] = lambda: StubRail(
        result=TransferResult(success=True, reference="tx-9")
    )

    response = await client.post(
        f"/v1/obligations/{obligation_id}/pay", json={"from_account": "tenant-account"}
    )

    assert response.status_code == 200
    assert response.json()["status"] == "processing"
    assert response.json()["settlement_reference"] == "tx-9"


@pytest.mark.asyncio
async def test_pay_with_rail_down(client, lease_engine, make_lease, sign_both):
    lease = await make_lease()
    result = await sign_both(lease_engine, lease)
    obligation_id = result.obligations_created[0].obligation_id
    app.dependency_overrides[get_payment_rail] = lambda: StubRail(
        error=PaymentRailUnavailable("circuit breaker open", retry_after=30)
    )

    response = await client.post(
        f"/v1/obligations/{obligation_id}/pay", json={"from_account": "tenant-account"}
    )

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "30"


@pytest.mark.asyncio
async def test_maintenance_run_and_listings(client, lease_engine, make_lease, sign_both):
    lease = await make_lease()
    result = await sign_both(lease_engine, lease)
    for obligation in result.obligations_created:
        await lease_engine.complete_obligation(obligation.obligation_id, "ref")

    response = await client.post("/v1/maintenance/run", json={"run_date": "2025-02-10"})

    body = response.json()
    assert response.status_code == 200
    assert body["rent_created"] == 3
    assert body["marked_late"] == 1
    assert body["rent_errors"] == 0

    upcoming = await client.get("/v1/obligations/upcoming", params={"days": 400})
    assert upcoming.status_code == 422

    overdue = await client.get("/v1/obligations/overdue")
    assert overdue.status_code == 200
    assert len(overdue.json()["obligations"]) >= 1


@pytest.mark.asyncio
async def test_metrics(client, make_lease):
    await make_lease()

    response = await client.get("/v1/metrics")

    body = response.json()
    assert response.status_code == 200
    assert body["leases_by_state"]["pending_tenant"] >= 1
    assert "counters" in body["metrics"]
    assert set(body["obligations_by_status"]) == {
        "pending",
        "processing",
        "completed",
        "late",
        "failed",
    }


@pytest.mark.asyncio
async def test_unmapped_domain_error_uses_fallback_handler(client, monkeypatch):
    from rentflow.engine import LeaseEngine
    from rentflow.engine.errors import InternalError

    async def broken(self, today=None):
        raise InternalError("store unavailable")

    monkeypatch.setattr(LeaseEngine, "list_overdue_obligations", broken)

    response = await client.get("/v1/obligations/overdue")

    assert response.status_code == 500
    assert response.json() == {"detail": "store unavailable", "code": "INTERNAL"}
