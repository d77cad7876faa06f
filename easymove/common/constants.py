# easymove/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class UserRole(str, Enum):
    """Роли пользователей."""
    CUSTOMER = "customer"
    DRIVER = "driver"


class OrderStatus(str, Enum):
    """Статусы заказа."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DriverView(str, Enum):
    """Режимы списка заказов для водителя."""
    AVAILABLE = "available"
    MINE = "mine"


class PricingMode(str, Enum):
    """Способ получения коэффициента расстояния."""
    HASHED = "hashed"
    SEEDED = "seeded"


# Заказ закреплён за водителем и считается в лимите "один активный заказ"
ACTIVE_ORDER_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.ACCEPTED,
    OrderStatus.IN_PROGRESS,
})

# Статусы, при которых driver_id обязан быть заполнен
ASSIGNED_ORDER_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.ACCEPTED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.COMPLETED,
})

TERMINAL_ORDER_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
})
