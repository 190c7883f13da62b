# Overview: Order status transition table; the single place order.status is changed.

from __future__ import annotations

from ..enums import OrderStatus
from ..errors import InvalidStateTransitionError

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.CONFIRMED, OrderStatus.DEPOSIT_PAID, OrderStatus.FULLY_PAID, OrderStatus.CANCELLED}
    ),
    OrderStatus.CONFIRMED: frozenset(
        {OrderStatus.DEPOSIT_PAID, OrderStatus.FULLY_PAID, OrderStatus.CANCELLED}
    ),
    # A second partial payment keeps a deposit order in deposit_paid
    OrderStatus.DEPOSIT_PAID: frozenset(
        {OrderStatus.DEPOSIT_PAID, OrderStatus.FULLY_PAID, OrderStatus.CANCELLED}
    ),
    OrderStatus.FULLY_PAID: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

# Extra moves open only to an admin removing a sponsorship.
SPONSORSHIP_ADMIN_TRANSITIONS = {
    OrderStatus.FULLY_PAID: frozenset({OrderStatus.CANCELLED}),
}

TERMINAL_STATUSES = frozenset({OrderStatus.FULLY_PAID, OrderStatus.CANCELLED, OrderStatus.REFUNDED})


def can_transition(current: str, target: str) -> bool:
    return OrderStatus(target) in ALLOWED_TRANSITIONS[OrderStatus(current)]


def is_terminal(status: str) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def transition_order(order, target: OrderStatus, *, sponsorship_admin: bool = False) -> None:
    """
    Move an order to target, rejecting any move not in the table.

    sponsorship_admin widens the table with SPONSORSHIP_ADMIN_TRANSITIONS,
    and only for sponsorship orders.
    """
    current = OrderStatus(order.status)
    target = OrderStatus(target)
    allowed = ALLOWED_TRANSITIONS[current]
    if sponsorship_admin and order.is_sponsorship:
        allowed = allowed | SPONSORSHIP_ADMIN_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidStateTransitionError(
            f"Cannot move order from {current.value} to {target.value}",
            details={"order_id": order.id, "from": current.value, "to": target.value},
        )
    order.status = target.value

