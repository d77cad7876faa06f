# easymove/core/orders/__init__.py
"""
Домен заказов.
Модели, машина состояний, оценка стоимости и сервис жизненного цикла.
"""

from easymove.core.orders.models import Address, EnrichedOrder, Order, OrderDraft
from easymove.core.orders.pricing import FareCalculator, PricingFunction
from easymove.core.orders.repository import OrderRepository
from easymove.core.orders.service import OrderService
from easymove.core.orders.state_machine import OrderStateMachine

__all__ = [
    "Address",
    "Order",
    "OrderDraft",
    "EnrichedOrder",
    "FareCalculator",
    "PricingFunction",
    "OrderRepository",
    "OrderService",
    "OrderStateMachine",
]
