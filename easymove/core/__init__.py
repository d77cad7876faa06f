# easymove/core/__init__.py
"""
Доменный слой.
Жизненный цикл заказа, принятие заказов водителями, выдача и статистика.
"""

from easymove.core.listing import ListingService
from easymove.core.matching import MatchingService
from easymove.core.orders import Order, OrderService
from easymove.core.stats import StatsService
from easymove.core.users import DriverProfile, User, UserService

__all__ = [
    "User",
    "DriverProfile",
    "UserService",
    "Order",
    "OrderService",
    "MatchingService",
    "ListingService",
    "StatsService",
]
