"""
Client-side mirror of the rental lifecycle.

The backend is the authority on every transition. This module only lets
the client refuse actions the backend would refuse anyway (so invalid
actions can be disabled up front) and check that rentals fetched from the
server follow the lifecycle.
"""
import enum
from typing import Dict, FrozenSet, List, NamedTuple, Optional

from models.rental import Rental, RentalStatus
from services.exceptions import AlreadyPaidError, InvalidTransitionError, PermissionDeniedError

S = RentalStatus


class Role(str, enum.Enum):
    RENTER = "renter"
    OWNER = "owner"


class RentalAction(enum.Enum):
    PAY_DEPOSIT = "pay the deposit"
    APPROVE = "approve the booking"
    REJECT = "reject the booking"
    CREATE_CONTRACT = "create a contract"
    SIGN_CONTRACT = "sign the contract"
    PAY_REMAINING = "pay the remaining balance"
    CONFIRM_RECEIVED = "confirm the vehicle was received"
    CONFIRM_RETURNED = "confirm the vehicle was returned"

    @property
    def label(self) -> str:
        return self.value


class Transition(NamedTuple):
    # None means either party may act.
    role: Optional[Role]
    sources: FrozenSet[RentalStatus]
    target: RentalStatus


TRANSITIONS: Dict[RentalAction, Transition] = {
    RentalAction.PAY_DEPOSIT: Transition(Role.RENTER, frozenset({S.DEPOSIT_PENDING}), S.DEPOSIT_PAID),
    RentalAction.APPROVE: Transition(Role.OWNER, frozenset({S.DEPOSIT_PAID, S.OWNER_PENDING}), S.OWNER_APPROVED),
    RentalAction.REJECT: Transition(
        Role.OWNER, frozenset({S.DEPOSIT_PENDING, S.DEPOSIT_PAID, S.OWNER_PENDING}), S.CANCELLED
    ),
    RentalAction.CREATE_CONTRACT: Transition(
        Role.OWNER, frozenset({S.OWNER_APPROVED, S.CONTRACT_PENDING}), S.CONTRACT_PENDING
    ),
    # Reaches CONTRACT_SIGNED only once both parties have signed.
    RentalAction.SIGN_CONTRACT: Transition(None, frozenset({S.CONTRACT_PENDING}), S.CONTRACT_SIGNED),
    RentalAction.PAY_REMAINING: Transition(Role.RENTER, frozenset({S.CONTRACT_SIGNED}), S.REMAINING_PAYMENT_PAID),
    RentalAction.CONFIRM_RECEIVED: Transition(
        Role.OWNER, frozenset({S.REMAINING_PAYMENT_PAID}), S.RENTER_RECEIVED
    ),
    RentalAction.CONFIRM_RETURNED: Transition(Role.OWNER, frozenset({S.RENTER_RECEIVED}), S.RENTER_RETURNED),
}

# Moves the backend makes on its own (owner hand-off after payment, settlement, completion).
# OWNER PENDING is only ever entered after the deposit, so it counts as paid.
SYSTEM_EDGES: Dict[RentalStatus, FrozenSet[RentalStatus]] = {
    S.DEPOSIT_PAID: frozenset({S.OWNER_PENDING}),
    S.RENTER_RETURNED: frozenset({S.COMPLETED}),
    S.CANCELLED: frozenset({S.DEPOSIT_REFUNDED}),
}

PAYMENT_ACTIONS = {
    RentalAction.PAY_DEPOSIT: S.DEPOSIT_PAID,
    RentalAction.PAY_REMAINING: S.REMAINING_PAYMENT_PAID,
}


def _build_edges() -> Dict[RentalStatus, FrozenSet[RentalStatus]]:
    edges: Dict[RentalStatus, set] = {status: set() for status in RentalStatus}
    for transition in TRANSITIONS.values():
        for source in transition.sources:
            edges[source].add(transition.target)
    for source, targets in SYSTEM_EDGES.items():
        edges[source].update(targets)
    # Either party, or the backend, may abandon a rental that has not finished.
    for status in RentalStatus:
        if not status.is_terminal:
            edges[status].add(S.CANCELLED)
    return {status: frozenset(targets) for status, targets in edges.items()}


EDGES = _build_edges()


# --- Roles ---

def resolve_role(rental: Rental, user_id: int) -> Role:
    """
    Works out which side of `rental` the user is on. Must be recomputed for
    every rental: the same account can rent one vehicle and own another.
    """
    if user_id == rental.renter_id:
        return Role.RENTER
    if user_id == rental.vehicle_owner_id:
        return Role.OWNER
    raise PermissionDeniedError(f"User {user_id} is not a party to rental {rental.id}.")


# --- Guards ---

def can_perform(status: RentalStatus, action: RentalAction, role: Role) -> bool:
    transition = TRANSITIONS[action]
    if transition.role is not None and transition.role is not role:
        return False
    return status in transition.sources


def allowed_actions(status: RentalStatus, role: Role) -> List[RentalAction]:
    """Actions `role` may take on a rental in `status`, in lifecycle order."""
    return [action for action in RentalAction if can_perform(status, action, role)]


def ensure_allowed(status: RentalStatus, action: RentalAction, role: Role) -> Transition:
    """
    Raises instead of returning False:
    PermissionDeniedError for the wrong party, AlreadyPaidError for a payment
    that already happened, InvalidTransitionError for any other bad status.
    """
    transition = TRANSITIONS[action]
    if transition.role is not None and transition.role is not role:
        raise PermissionDeniedError(f"Only the {transition.role.value} can {action.label}.")
    if status in transition.sources:
        return transition

    paid_status = PAYMENT_ACTIONS.get(action)
    if paid_status is not None and status.rank >= paid_status.rank and status.holds_booking:
        raise AlreadyPaidError(
            f"Cannot {action.label}: rental is already {status.value}.", status=status, action=action
        )
    raise InvalidTransitionError(
        f"Cannot {action.label} while the rental is {status.value}.", status=status, action=action
    )


# --- History ---

def is_valid_edge(source: RentalStatus, target: RentalStatus) -> bool:
    return target in EDGES[source]


def history_problems(rental: Rental) -> List[str]:
    """
    Lists every way the rental's workflow history breaks the lifecycle.
    An empty list means the history is consistent.
    """
    problems = []
    history = rental.status_workflow_history
    if not history:
        return problems
    if history[-1].status is not rental.status:
        problems.append(f"last entry {history[-1].status.value} != status {rental.status.value}")
    for previous, current in zip(history, history[1:]):
        if current.timestamp < previous.timestamp:
            problems.append(f"{current.status.value} is timestamped before {previous.status.value}")
        if not is_valid_edge(previous.status, current.status):
            problems.append(f"{previous.status.value} -> {current.status.value} is not a lifecycle transition")
    return problems


def is_append_only(previous: Rental, current: Rental) -> bool:
    """True when `current` keeps all of `previous`'s history and only adds to it."""
    old, new = previous.status_workflow_history, current.status_workflow_history
    if len(new) < len(old):
        return False
    return all(a.status is b.status and a.timestamp == b.timestamp for a, b in zip(old, new))


# --- Presentation ---

class StatusCategory(str, enum.Enum):
    PAYMENT = "payment"
    OWNER_REVIEW = "owner_review"
    CONTRACT = "contract"
    HANDOVER = "handover"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


STATUS_CATEGORIES: Dict[RentalStatus, StatusCategory] = {
    S.DEPOSIT_PENDING: StatusCategory.PAYMENT,
    S.DEPOSIT_PAID: StatusCategory.PAYMENT,
    S.OWNER_PENDING: StatusCategory.OWNER_REVIEW,
    S.OWNER_APPROVED: StatusCategory.OWNER_REVIEW,
    S.CONTRACT_PENDING: StatusCategory.CONTRACT,
    S.CONTRACT_SIGNED: StatusCategory.CONTRACT,
    S.REMAINING_PAYMENT_PAID: StatusCategory.HANDOVER,
    S.RENTER_RECEIVED: StatusCategory.HANDOVER,
    S.RENTER_RETURNED: StatusCategory.HANDOVER,
    S.COMPLETED: StatusCategory.COMPLETED,
    S.CANCELLED: StatusCategory.CANCELLED,
    S.DEPOSIT_REFUNDED: StatusCategory.REFUNDED,
}

_uncategorised = set(RentalStatus) - set(STATUS_CATEGORIES)
if _uncategorised:
    raise RuntimeError(f"Rental statuses without a category: {sorted(s.value for s in _uncategorised)}")


def status_category(status: RentalStatus) -> StatusCategory:
    return STATUS_CATEGORIES[status]
