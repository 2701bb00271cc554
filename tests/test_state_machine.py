import pytest

from app.api.v1.orders.state_machine import (
    ALLOWED_SOURCES,
    TERMINAL_STATUSES,
    can_transition,
    check_transition,
    is_terminal,
    parse_status,
)
from app.core.enums import OrderStatus
from app.core.exceptions import InvalidInput, StateConflict


@pytest.mark.parametrize(
    "current,target",
    [
        (OrderStatus.UNSUBMITTED, OrderStatus.SUBMITTED),
        (OrderStatus.SUBMITTED, OrderStatus.CONFIRMED),
        (OrderStatus.SUBMITTED, OrderStatus.AUTO_CONFIRMED),
        (OrderStatus.CONFIRMED, OrderStatus.QUEUED),
        (OrderStatus.AUTO_CONFIRMED, OrderStatus.QUEUED),
        (OrderStatus.SUBMITTED, OrderStatus.QUEUED),
        (OrderStatus.QUEUED, OrderStatus.PICKUP),
        (OrderStatus.QUEUED, OrderStatus.ONGOING),
        (OrderStatus.PICKUP, OrderStatus.ONGOING),
        (OrderStatus.ONGOING, OrderStatus.PACKAGING),
        (OrderStatus.PACKAGING, OrderStatus.DELIVERY),
        (OrderStatus.PACKAGING, OrderStatus.COMPLETED),
        (OrderStatus.DELIVERY, OrderStatus.COMPLETED),
        (OrderStatus.DELIVERY, OrderStatus.DONE),
    ],
)
def test_forward_transitions_allowed(current: OrderStatus, target: OrderStatus) -> None:
    assert can_transition(current, target)
    check_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (OrderStatus.UNSUBMITTED, OrderStatus.CONFIRMED),
        (OrderStatus.UNSUBMITTED, OrderStatus.QUEUED),
        (OrderStatus.SUBMITTED, OrderStatus.ONGOING),
        (OrderStatus.QUEUED, OrderStatus.PACKAGING),
        (OrderStatus.ONGOING, OrderStatus.QUEUED),
        (OrderStatus.PACKAGING, OrderStatus.DONE),
        (OrderStatus.DELIVERY, OrderStatus.PACKAGING),
    ],
)
def test_illegal_transitions_raise_state_conflict(current: OrderStatus, target: OrderStatus) -> None:
    assert not can_transition(current, target)
    with pytest.raises(StateConflict) as exc_info:
        check_transition(current, target)
    assert exc_info.value.status_code == 409
    assert exc_info.value.message == f"Invalid status transition: {current.value} -> {target.value}"


def test_abort_from_every_non_terminal_status() -> None:
    for status in OrderStatus:
        if status in TERMINAL_STATUSES:
            assert not can_transition(status, OrderStatus.ABORTED)
        else:
            assert can_transition(status, OrderStatus.ABORTED)


def test_terminal_statuses_never_transition() -> None:
    for terminal in TERMINAL_STATUSES:
        assert is_terminal(terminal)
        for target in ALLOWED_SOURCES:
            assert not can_transition(terminal, target)


def test_every_status_except_unsubmitted_has_sources() -> None:
    assert set(ALLOWED_SOURCES) == set(OrderStatus) - {OrderStatus.UNSUBMITTED}


def test_parse_status() -> None:
    assert parse_status("ONGOING") is OrderStatus.ONGOING
    with pytest.raises(InvalidInput) as exc_info:
        parse_status("PRINTING")
    assert exc_info.value.status_code == 400
    assert "Allowed values" in exc_info.value.message
