"""Order status transition table.

Every status change goes through ``ensure_transition``; nothing writes
``Order.status`` without it.
"""

from types import MappingProxyType
from typing import Mapping, Optional, Union

from services.market_service.errors import InvalidTransitionError
from services.market_service.models import OrderStatus

INITIAL_STATUS = OrderStatus.PENDING

ALLOWED_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = MappingProxyType(
    {
        OrderStatus.PENDING: frozenset(
            {OrderStatus.PROCESSING, OrderStatus.CANCELLED}
        ),
        OrderStatus.PROCESSING: frozenset(
            {OrderStatus.SHIPPED, OrderStatus.CANCELLED}
        ),
        OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
        OrderStatus.DELIVERED: frozenset(),
        OrderStatus.CANCELLED: frozenset(),
    }
)

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# Statuses whose items still hold a reservation in the inventory ledger
RESERVING_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})

StatusLike = Union[OrderStatus, str]


def _coerce(value: StatusLike) -> Optional[OrderStatus]:
    try:
        return OrderStatus(value)
    except ValueError:
        return None


def allowed_transitions(current: StatusLike) -> frozenset[OrderStatus]:
    status = _coerce(current)
    if status is None:
        return frozenset()
    return ALLOWED_TRANSITIONS[status]


def can_transition(current: StatusLike, requested: StatusLike) -> bool:
    """Whether ``current -> requested`` is in the table. Unknown values never are."""
    target = _coerce(requested)
    return target is not None and target in allowed_transitions(current)


def ensure_transition(current: StatusLike, requested: StatusLike) -> OrderStatus:
    """Return the requested status, or raise ``InvalidTransitionError``."""
    if not can_transition(current, requested):
        raise InvalidTransitionError(
            getattr(current, "value", str(current)),
            getattr(requested, "value", str(requested)),
        )
    return OrderStatus(requested)


def is_terminal(status: StatusLike) -> bool:
    return _coerce(status) in TERMINAL_STATUSES
