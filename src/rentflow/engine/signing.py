"""
Lease signing state machine.

Lease state is never stored as an independent flag: it is recomputed from
the signature fields and the lifecycle stamps every time one of them changes.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from rentflow.engine.errors import InvalidLeaseTransition, SignerNotAuthorized
from rentflow.models import Lease, LeaseState, SignerRole
from rentflow.utils.time import utc_now


def derive_lease_state(
    *,
    tenant_signed: bool,
    landlord_signed: bool,
    activated: bool = False,
    terminated: bool = False,
    expired: bool = False,
) -> LeaseState:
    """Compute lease state from signature presence and lifecycle stamps."""
    if terminated:
        return LeaseState.TERMINATED
    if expired:
        return LeaseState.EXPIRED
    if activated:
        return LeaseState.ACTIVE
    if tenant_signed and landlord_signed:
        return LeaseState.FULLY_SIGNED
    if tenant_signed:
        return LeaseState.PENDING_LANDLORD
    # Landlord-only, or nobody yet: waiting on the tenant
    return LeaseState.PENDING_TENANT


def lease_state_of(lease: Lease) -> LeaseState:
    """Derived state of a lease record."""
    return derive_lease_state(
        tenant_signed=lease.has_signature(SignerRole.TENANT),
        landlord_signed=lease.has_signature(SignerRole.LANDLORD),
        activated=lease.activated_at is not None,
        terminated=lease.terminated_at is not None,
        expired=lease.expired_at is not None,
    )


def with_derived_state(lease: Lease, **changes) -> Lease:
    """
    Apply field changes and recompute state.

    Raises InvalidLeaseTransition if the recomputed state is not reachable
    from the current one.
    """
    updated = lease.model_copy(update=changes)
    new_state = lease_state_of(updated)
    if not lease.state.can_transition_to(new_state):
        raise InvalidLeaseTransition(str(lease.lease_id), lease.state.value, new_state.value)
    return updated.model_copy(update={"state": new_state})


def apply_signature(
    lease: Lease,
    role: SignerRole,
    signature: str,
    signer_id: UUID,
    wallet_address: Optional[str] = None,
    signed_at: Optional[datetime] = None,
) -> Lease:
    """
    Record a signature for a role and recompute the lease state.

    Only the designated party may sign for a role. Re-signing overwrites
    the previous signature and timestamp. Terminated and expired leases
    accept no signatures.
    """
    if signer_id != lease.party_id(role):
        raise SignerNotAuthorized(str(lease.lease_id), role.value, str(signer_id))
    if lease.state.is_terminal():
        raise InvalidLeaseTransition(str(lease.lease_id), lease.state.value, lease.state.value)

    signed_at = signed_at or utc_now()
    if role == SignerRole.TENANT:
        changes = {"tenant_signature": signature, "tenant_signed_at": signed_at}
        if wallet_address:
            changes["tenant_wallet"] = wallet_address
    else:
        changes = {"landlord_signature": signature, "landlord_signed_at": signed_at}
        if wallet_address:
            changes["landlord_wallet"] = wallet_address

    return with_derived_state(lease, **changes)
