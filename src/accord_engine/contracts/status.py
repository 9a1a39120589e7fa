"""Contract status enumeration and the legal transition table."""

from enum import Enum

from accord_engine.common.exceptions import InvalidTransitionError


class ContractStatus(str, Enum):
    DRAFT = "draft"
    REVIEW = "review"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    SENT = "sent"
    VIEWED = "viewed"
    PARTIALLY_SIGNED = "partially_signed"
    SIGNED = "signed"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    TERMINATED = "terminated"


S = ContractStatus

TRANSITIONS: dict[ContractStatus, frozenset[ContractStatus]] = {
    S.DRAFT: frozenset({S.REVIEW, S.PENDING_APPROVAL, S.APPROVED, S.SENT, S.CANCELLED}),
    S.REVIEW: frozenset({S.DRAFT, S.PENDING_APPROVAL, S.APPROVED, S.CANCELLED}),
    S.PENDING_APPROVAL: frozenset({S.APPROVED, S.DRAFT, S.CANCELLED}),
    S.APPROVED: frozenset({S.SENT, S.DRAFT, S.CANCELLED}),
    S.SENT: frozenset({S.VIEWED, S.PARTIALLY_SIGNED, S.EXPIRED, S.CANCELLED}),
    S.VIEWED: frozenset({S.PARTIALLY_SIGNED, S.SIGNED, S.EXPIRED, S.CANCELLED}),
    S.PARTIALLY_SIGNED: frozenset({S.SIGNED, S.EXPIRED, S.CANCELLED}),
    S.SIGNED: frozenset({S.ACTIVE, S.TERMINATED}),
    S.ACTIVE: frozenset({S.EXPIRED, S.TERMINATED}),
    S.EXPIRED: frozenset({S.TERMINATED}),
    S.CANCELLED: frozenset(),
    S.TERMINATED: frozenset(),
}

# Every status must have a row, terminal ones included
_missing = set(ContractStatus) - set(TRANSITIONS)
if _missing:
    raise RuntimeError(f"Transition table is missing rows for: {sorted(s.value for s in _missing)}")

TERMINAL_STATUSES: frozenset[ContractStatus] = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)

# Statuses in which a party may sign
SIGNABLE_STATUSES: frozenset[ContractStatus] = frozenset({S.SENT, S.VIEWED, S.PARTIALLY_SIGNED})

# Source statuses swept by the expiry job
EXPIRABLE_STATUSES: frozenset[ContractStatus] = SIGNABLE_STATUSES

# Statuses only the send/view/sign protocol may enter
PROTOCOL_STATUSES: frozenset[ContractStatus] = frozenset({S.SENT, S.VIEWED, S.PARTIALLY_SIGNED, S.SIGNED})

SENDABLE_STATUSES: frozenset[ContractStatus] = frozenset({S.DRAFT, S.APPROVED})


def allowed_targets(current: ContractStatus) -> list[str]:
    """Sorted list of status values reachable from ``current``."""
    return sorted(s.value for s in TRANSITIONS[ContractStatus(current)])


def can_transition(current: ContractStatus, target: ContractStatus) -> bool:
    return ContractStatus(target) in TRANSITIONS[ContractStatus(current)]


def check_transition(current: ContractStatus, target: ContractStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is in the table."""
    current = ContractStatus(current)
    target = ContractStatus(target)
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value, allowed_targets(current))
