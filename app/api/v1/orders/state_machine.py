"""
Order status state machine. Fixed, domain-specific transition table; no persistence here.

    UNSUBMITTED -> SUBMITTED -> CONFIRMED | AUTO_CONFIRMED -> QUEUED -> PICKUP -> ONGOING
        -> PACKAGING -> DELIVERY -> COMPLETED | DONE
    ABORTED from any non-terminal status.

QUEUED is entered only through scheduling (date + duration estimate are written with the status).
"""

from typing import Dict, FrozenSet

from app.core.enums import OrderStatus
from app.core.exceptions import InvalidInput, StateConflict

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.DONE, OrderStatus.ABORTED}
)

# Statuses in which printing work is being done; the current class/student pointer is exposed for these.
IN_PROGRESS_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.PICKUP, OrderStatus.ONGOING, OrderStatus.PACKAGING}
)

SCHEDULABLE_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.SUBMITTED, OrderStatus.CONFIRMED, OrderStatus.AUTO_CONFIRMED}
)

_NON_TERMINAL = frozenset(s for s in OrderStatus if s not in TERMINAL_STATUSES)

# target -> allowed source statuses
ALLOWED_SOURCES: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.SUBMITTED: frozenset({OrderStatus.UNSUBMITTED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SUBMITTED}),
    OrderStatus.AUTO_CONFIRMED: frozenset({OrderStatus.SUBMITTED}),
    OrderStatus.QUEUED: SCHEDULABLE_STATUSES,
    OrderStatus.PICKUP: frozenset({OrderStatus.QUEUED}),
    OrderStatus.ONGOING: frozenset({OrderStatus.QUEUED, OrderStatus.PICKUP}),
    OrderStatus.PACKAGING: frozenset({OrderStatus.ONGOING}),
    OrderStatus.DELIVERY: frozenset({OrderStatus.PACKAGING}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.PACKAGING, OrderStatus.DELIVERY}),
    OrderStatus.DONE: frozenset({OrderStatus.DELIVERY}),
    OrderStatus.ABORTED: _NON_TERMINAL,
}

ACTION_NAMES: Dict[OrderStatus, str] = {
    OrderStatus.SUBMITTED: "order_submitted",
    OrderStatus.CONFIRMED: "order_confirmed",
    OrderStatus.AUTO_CONFIRMED: "order_auto_confirmed",
    OrderStatus.QUEUED: "order_scheduled",
    OrderStatus.PICKUP: "order_picked_up",
    OrderStatus.ONGOING: "order_started",
    OrderStatus.PACKAGING: "order_packaging",
    OrderStatus.DELIVERY: "order_out_for_delivery",
    OrderStatus.COMPLETED: "order_completed",
    OrderStatus.DONE: "order_done",
    OrderStatus.ABORTED: "order_aborted",
}


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidInput(f"Invalid status. Allowed values are: {allowed}")


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return current in ALLOWED_SOURCES.get(target, frozenset())


def check_transition(current: OrderStatus, target: OrderStatus) -> None:
    """Raise StateConflict unless current -> target is legal. current == target is handled by callers as a no-op."""
    if not can_transition(current, target):
        raise StateConflict(
            f"Invalid status transition: {current.value} -> {target.value}",
            current_status=current.value,
        )
