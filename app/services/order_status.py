"""Order status state machine.

Every status write goes through :func:`ensure_transition`; the table below is
the only place where legal moves are defined.
"""

from enum import Enum

from app.services.exceptions import InvalidStatusTransition


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED, OrderStatus.TIMEOUT}),
    OrderStatus.PAID: frozenset({OrderStatus.PROCESSING, OrderStatus.FULFILLED, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.FULFILLED, OrderStatus.CANCELLED}),
    OrderStatus.TIMEOUT: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.FULFILLED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({OrderStatus.FULFILLED, OrderStatus.CANCELLED, OrderStatus.TIMEOUT})

NEXT_EXPECTED_STATUS: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.PAID,
    OrderStatus.PAID: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.FULFILLED,
}

STATUS_LABELS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Awaiting Payment",
    OrderStatus.PAID: "Payment Confirmed",
    OrderStatus.PROCESSING: "Processing",
    OrderStatus.FULFILLED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
    OrderStatus.TIMEOUT: "Payment Timeout",
}


def _coerce(status: str | OrderStatus) -> OrderStatus | None:
    try:
        return OrderStatus(status)
    except ValueError:
        return None


def can_transition(current: str | OrderStatus, requested: str | OrderStatus) -> bool:
    current_status = _coerce(current)
    requested_status = _coerce(requested)
    if current_status is None or requested_status is None:
        return False
    return requested_status in ALLOWED_TRANSITIONS[current_status]


def ensure_transition(current: str | OrderStatus, requested: str | OrderStatus) -> OrderStatus:
    """Return the requested status or raise InvalidStatusTransition."""
    requested_status = _coerce(requested)
    if requested_status is None:
        raise InvalidStatusTransition(str(current), str(requested), f"Unknown order status: {requested}")
    if not can_transition(current, requested_status):
        raise InvalidStatusTransition(_value(current), requested_status.value)
    return requested_status


def is_terminal(status: str | OrderStatus) -> bool:
    return _coerce(status) in TERMINAL_STATUSES


def next_expected_status(status: str | OrderStatus) -> str | None:
    current = _coerce(status)
    if current is None or current not in NEXT_EXPECTED_STATUS:
        return None
    return NEXT_EXPECTED_STATUS[current].value


def status_label(status: str | OrderStatus) -> str:
    current = _coerce(status)
    if current is None:
        return "Unknown"
    return STATUS_LABELS[current]


def _value(status: str | OrderStatus) -> str:
    return status.value if isinstance(status, OrderStatus) else str(status)
