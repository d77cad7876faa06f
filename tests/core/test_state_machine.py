# tests/core/test_state_machine.py
"""
Тесты машины состояний заказа.
"""

from __future__ import annotations

import pytest

from easymove.common.constants import OrderStatus
from easymove.common.exceptions import InvalidTransitionError
from easymove.core.orders.state_machine import OrderStateMachine


ALLOWED = {
    (OrderStatus.PENDING, OrderStatus.ACCEPTED),
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
    (OrderStatus.ACCEPTED, OrderStatus.IN_PROGRESS),
    (OrderStatus.ACCEPTED, OrderStatus.COMPLETED),
    (OrderStatus.ACCEPTED, OrderStatus.CANCELLED),
    (OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED),
    (OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED),
}


class TestOrderStateMachine:
    """Тесты допустимых переходов."""

    @pytest.mark.parametrize("current", list(OrderStatus))
    @pytest.mark.parametrize("target", list(OrderStatus))
    def test_transition_grid(self, current: OrderStatus, target: OrderStatus) -> None:
        """Разрешены ровно переходы из таблицы, остальные запрещены."""
        assert OrderStateMachine.can_transition(current, target) == ((current, target) in ALLOWED)

    @pytest.mark.parametrize("terminal", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
    def test_terminal_states_have_no_exits(self, terminal: OrderStatus) -> None:
        assert OrderStateMachine.ALLOWED_TRANSITIONS[terminal] == frozenset()

    def test_unknown_status(self) -> None:
        assert OrderStateMachine.can_transition("pending", "teleported") is False
        assert OrderStateMachine.can_transition("lost", "cancelled") is False

    def test_accepts_plain_strings(self) -> None:
        assert OrderStateMachine.can_transition("accepted", "in_progress") is True

    @pytest.mark.parametrize("status,settable", [
        (OrderStatus.PENDING, False),
        (OrderStatus.ACCEPTED, False),
        (OrderStatus.IN_PROGRESS, True),
        (OrderStatus.COMPLETED, True),
        (OrderStatus.CANCELLED, True),
        ("bogus", False),
    ])
    def test_externally_settable(self, status: str, settable: bool) -> None:
        """pending и accepted нельзя установить через смену статуса."""
        assert OrderStateMachine.is_externally_settable(status) is settable

    def test_ensure_transition_raises(self) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            OrderStateMachine.ensure_transition(OrderStatus.COMPLETED, OrderStatus.CANCELLED)

        assert exc_info.value.details == {"current": "completed", "requested": "cancelled"}
        assert "completed -> cancelled" in exc_info.value.message

    def test_ensure_transition_passes(self) -> None:
        OrderStateMachine.ensure_transition(OrderStatus.PENDING, OrderStatus.CANCELLED)
