"""RentFlow engine errors."""


class RentFlowError(Exception):
    """Base error for RentFlow operations."""

    def __init__(self, message: str, code: str = "RENTFLOW_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


# =============================================================================
# NotFound - surfaced to the caller, not retried
# =============================================================================


class NotFoundError(RentFlowError):
    """Referenced record does not exist."""

    def __init__(self, message: str):
        super().__init__(message, "NOT_FOUND")


class LeaseNotFound(NotFoundError):
    """Lease does not exist."""

    def __init__(self, lease_id: str):
        super().__init__(f"Lease not found: {lease_id}")
        self.lease_id = lease_id


class ObligationNotFound(NotFoundError):
    """Payment obligation does not exist."""

    def __init__(self, obligation_id: str):
        super().__init__(f"Obligation not found: {obligation_id}")
        self.obligation_id = obligation_id


# =============================================================================
# Forbidden - surfaced, not retried
# =============================================================================


class ForbiddenError(RentFlowError):
    """Operation not permitted for this actor."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, "FORBIDDEN")


class SignerNotAuthorized(ForbiddenError):
    """Signer is not the party designated for the role."""

    def __init__(self, lease_id: str, role: str, signer_id: str):
        super().__init__(f"{signer_id} may not sign lease {lease_id} as {role}")
        self.lease_id = lease_id
        self.role = role
        self.signer_id = signer_id


# =============================================================================
# Conflict
# =============================================================================


class ConflictError(RentFlowError):
    """Request conflicts with the current record state."""

    def __init__(self, message: str):
        super().__init__(message, "CONFLICT")


class ObligationConflict(ConflictError):
    """An obligation for the same lease period already exists."""

    def __init__(self, lease_id: str, period_key: str | None):
        super().__init__(f"Obligation {period_key} already exists for lease {lease_id}")
        self.lease_id = lease_id
        self.period_key = period_key


class InvalidLeaseTransition(ConflictError):
    """Invalid lease state transition."""

    def __init__(self, lease_id: str, current_state: str, requested_state: str):
        super().__init__(
            f"Invalid lease transition from {current_state} to {requested_state} for lease {lease_id}"
        )
        self.lease_id = lease_id
        self.current_state = current_state
        self.requested_state = requested_state


class InvalidObligationTransition(ConflictError):
    """Invalid obligation status transition."""

    def __init__(self, obligation_id: str, current_status: str, requested_status: str):
        super().__init__(
            f"Invalid transition from {current_status} to {requested_status} "
            f"for obligation {obligation_id}"
        )
        self.obligation_id = obligation_id
        self.current_status = current_status
        self.requested_status = requested_status


class SettlementAccountMissing(ConflictError):
    """No destination account is recorded for the lease."""

    def __init__(self, lease_id: str):
        super().__init__(f"Lease {lease_id} has no landlord settlement account")
        self.lease_id = lease_id


# =============================================================================
# Internal - safe to retry, every mutating operation is idempotent
# =============================================================================


class InternalError(RentFlowError):
    """Store or unexpected failure."""

    def __init__(self, message: str):
        super().__init__(message, "INTERNAL")


class PartialActivationError(InternalError):
    """Lease activation and tenant promotion did not both succeed."""

    def __init__(self, lease_id: str, lease_activated: bool, role_promoted: bool, cause: str = ""):
        super().__init__(
            f"Partial activation for lease {lease_id}: "
            f"lease_activated={lease_activated}, role_promoted={role_promoted}"
            + (f" ({cause})" if cause else "")
        )
        self.lease_id = lease_id
        self.lease_activated = lease_activated
        self.role_promoted = role_promoted


class PaymentRailUnavailable(RentFlowError):
    """The payment rail could not be reached; the obligation was not touched."""

    def __init__(self, reason: str, retry_after: int | None = None):
        super().__init__(f"Payment rail unavailable: {reason}", "PAYMENT_RAIL_UNAVAILABLE")
        self.reason = reason
        self.retry_after = retry_after
