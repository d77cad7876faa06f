# easymove/core/listing/service.py
"""
Выдача списков заказов с учётом роли актора.
"""

from __future__ import annotations

from typing import Optional, assert_never

from pydantic import BaseModel, Field

from easymove.common.constants import DriverView, OrderStatus, TypeMsg, UserRole
from easymove.common.logger import log_info
from easymove.core.orders.enrichment import OrderEnricher
from easymove.core.orders.models import EnrichedOrder, Order
from easymove.core.orders.repository import OrderRepository
from easymove.core.users.models import Actor


class OrderFilters(BaseModel):
    """Фильтры списка заказов."""

    status: Optional[OrderStatus] = None
    view: Optional[DriverView] = Field(None, description="Только для водителя, по умолчанию available")
    limit: Optional[int] = Field(None, ge=1, le=200)


class ListingService:
    """
    Списки заказов:
    - заказчик видит свои заказы, новые первыми;
    - водитель видит свободные заказы (ближайшая подача первой)
      или свои (view=mine, новые первыми).
    """

    def __init__(self, order_repo: OrderRepository, enricher: OrderEnricher) -> None:
        self._orders = order_repo
        self._enricher = enricher

    async def _select(self, actor: Actor, filters: OrderFilters) -> list[Order]:
        match actor.role:
            case UserRole.CUSTOMER:
                return await self._orders.find_by_customer(
                    actor.user_id, status=filters.status, limit=filters.limit
                )
            case UserRole.DRIVER:
                view = filters.view or DriverView.AVAILABLE
                if view == DriverView.MINE:
                    return await self._orders.find_by_driver(
                        actor.user_id, status=filters.status, limit=filters.limit
                    )
                return await self._orders.find_available(limit=filters.limit)
            case _:
                assert_never(actor.role)

    async def list_orders(self, actor: Actor, filters: OrderFilters | None = None) -> list[EnrichedOrder]:
        """
        Возвращает обогащённые заказы, видимые актору.

        Args:
            actor: Актор запроса
            filters: Статус, режим водителя, лимит
        """
        filters = filters or OrderFilters()
        orders = await self._select(actor, filters)
        await log_info(
            f"Список заказов для {actor.role.value} {actor.user_id}: {len(orders)}",
            type_msg=TypeMsg.DEBUG,
        )
        return await self._enricher.enrich_many(orders)

    async def enrich(self, order: Order) -> EnrichedOrder:
        """Обогащает один заказ (для чтения по id)."""
        return await self._enricher.enrich(order)
