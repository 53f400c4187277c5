"""RentFlow enumerations."""

from enum import Enum


class LeaseState(str, Enum):
    """Lease lifecycle state."""

    PENDING_TENANT = "pending_tenant"
    PENDING_LANDLORD = "pending_landlord"
    FULLY_SIGNED = "fully_signed"
    ACTIVE = "active"
    TERMINATED = "terminated"
    EXPIRED = "expired"

    @classmethod
    def terminal_states(cls) -> set["LeaseState"]:
        """Return terminal states."""
        return {cls.TERMINATED, cls.EXPIRED}

    @classmethod
    def signing_states(cls) -> set["LeaseState"]:
        """Return states that are still collecting signatures."""
        return {cls.PENDING_TENANT, cls.PENDING_LANDLORD}

    def is_terminal(self) -> bool:
        """Check if state is terminal."""
        return self in self.terminal_states()

    def can_transition_to(self, new_state: "LeaseState") -> bool:
        """Check if a transition is allowed. Staying in the same state is always allowed."""
        if new_state == self:
            return True
        valid_transitions: dict[LeaseState, set[LeaseState]] = {
            LeaseState.PENDING_TENANT: {
                LeaseState.PENDING_LANDLORD,
                LeaseState.FULLY_SIGNED,
                LeaseState.TERMINATED,
            },
            LeaseState.PENDING_LANDLORD: {LeaseState.FULLY_SIGNED, LeaseState.TERMINATED},
            LeaseState.FULLY_SIGNED: {LeaseState.ACTIVE, LeaseState.TERMINATED},
            LeaseState.ACTIVE: {LeaseState.EXPIRED, LeaseState.TERMINATED},
            LeaseState.EXPIRED: {LeaseState.TERMINATED},
            LeaseState.TERMINATED: set(),
        }
        return new_state in valid_transitions.get(self, set())


class SignerRole(str, Enum):
    """Party signing a lease."""

    TENANT = "tenant"
    LANDLORD = "landlord"


class ObligationType(str, Enum):
    """Kind of amount owed under a lease."""

    SECURITY_DEPOSIT = "security_deposit"
    RENT = "rent"
    LATE_FEE = "late_fee"
    OTHER = "other"

    @classmethod
    def activation_types(cls) -> set["ObligationType"]:
        """Types that gate lease activation."""
        return {cls.SECURITY_DEPOSIT, cls.RENT}


class ObligationStatus(str, Enum):
    """Payment obligation status."""

    PENDING = "pending"
    LATE = "late"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def terminal_states(cls) -> set["ObligationStatus"]:
        """Return terminal states."""
        return {cls.COMPLETED, cls.FAILED}

    @classmethod
    def payable_states(cls) -> set["ObligationStatus"]:
        """States from which a payment may be submitted."""
        return {cls.PENDING, cls.LATE}

    def is_terminal(self) -> bool:
        """Check if status is terminal."""
        return self in self.terminal_states()

    def can_transition_to(self, new_status: "ObligationStatus") -> bool:
        """Check if transition to new status is valid per state machine."""
        valid_transitions: dict[ObligationStatus, set[ObligationStatus]] = {
            ObligationStatus.PENDING: {
                ObligationStatus.LATE,
                ObligationStatus.PROCESSING,
                ObligationStatus.COMPLETED,
                ObligationStatus.FAILED,
            },
            ObligationStatus.LATE: {
                ObligationStatus.PROCESSING,
                ObligationStatus.COMPLETED,
                ObligationStatus.FAILED,
            },
            ObligationStatus.PROCESSING: {ObligationStatus.COMPLETED, ObligationStatus.FAILED},
            ObligationStatus.COMPLETED: set(),
            ObligationStatus.FAILED: set(),
        }
        return new_status in valid_transitions.get(self, set())


class UserRole(str, Enum):
    """User role."""

    PROSPECTIVE_TENANT = "prospective_tenant"
    TENANT = "tenant"
    MANAGER = "manager"
