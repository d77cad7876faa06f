# easymove/core/orders/state_machine.py
"""
Машина состояний заказа.
"""

from __future__ import annotations

from easymove.common.constants import OrderStatus
from easymove.common.exceptions import InvalidTransitionError


class OrderStateMachine:
    """Допустимые переходы статуса заказа."""

    ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
        OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
        OrderStatus.ACCEPTED: frozenset({
            OrderStatus.IN_PROGRESS,
            OrderStatus.COMPLETED,
            OrderStatus.CANCELLED,
        }),
        OrderStatus.IN_PROGRESS: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
        OrderStatus.COMPLETED: frozenset(),
        OrderStatus.CANCELLED: frozenset(),
    }

    # pending задаётся при создании, accepted только через захват водителем
    EXTERNALLY_SETTABLE: frozenset[OrderStatus] = frozenset({
        OrderStatus.IN_PROGRESS,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    })

    @staticmethod
    def can_transition(current_status: str, new_status: str) -> bool:
        try:
            curr = OrderStatus(current_status)
            new = OrderStatus(new_status)
        except ValueError:
            return False
        return new in OrderStateMachine.ALLOWED_TRANSITIONS.get(curr, frozenset())

    @staticmethod
    def is_externally_settable(status: str) -> bool:
        try:
            return OrderStatus(status) in OrderStateMachine.EXTERNALLY_SETTABLE
        except ValueError:
            return False

    @classmethod
    def ensure_transition(cls, current_status: str, new_status: str) -> None:
        """Raises InvalidTransitionError, если переход запрещён."""
        if not cls.can_transition(current_status, new_status):
            current = getattr(current_status, "value", current_status)
            requested = getattr(new_status, "value", new_status)
            raise InvalidTransitionError(
                f"Переход {current} -> {requested} запрещён",
                current=current,
                requested=requested,
            )
