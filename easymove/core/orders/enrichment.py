# easymove/core/orders/enrichment.py
"""
Обогащение заказов при чтении: время до подачи, срочность,
публичные профили водителя и заказчика. В хранилище не сохраняется.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable

from easymove.common.utils import round_half_up, utcnow
from easymove.core.orders.models import CustomerContact, EnrichedOrder, Order
from easymove.core.users.models import UserPublicView
from easymove.core.users.service import UserService


def hours_until(pickup: datetime, now: datetime) -> int:
    """Часы до подачи, округлённые половиной вверх."""
    return round_half_up((pickup - now).total_seconds() / 3600)


def is_urgent(hours_until_pickup: int, window_hours: int = 2) -> bool:
    """Срочный заказ: подача в ближайшие window_hours часов и ещё не прошла."""
    return 0 < hours_until_pickup <= window_hours


class OrderEnricher:
    """Строит EnrichedOrder, запрашивая каждый профиль один раз на вызов."""

    def __init__(
        self,
        user_service: UserService,
        clock: Callable[[], datetime] = utcnow,
        urgent_window_hours: int = 2,
    ) -> None:
        self._users = user_service
        self._clock = clock
        self._urgent_window_hours = urgent_window_hours

    @staticmethod
    def _customer_contact(order: Order, profile: UserPublicView | None) -> CustomerContact:
        # Профиль удалён или недоступен: показываем снимок из заказа
        if profile is None:
            return CustomerContact(
                name=order.customer_name,
                phone=order.customer_phone,
                email=order.customer_email,
            )
        return CustomerContact(
            name=profile.name,
            phone=profile.phone or order.customer_phone,
            email=profile.email or order.customer_email,
        )

    async def enrich_many(self, orders: Iterable[Order]) -> list[EnrichedOrder]:
        orders = list(orders)
        if not orders:
            return []

        ids: set[str] = set()
        for order in orders:
            ids.add(order.customer_id)
            if order.driver_id:
                ids.add(order.driver_id)
        profiles = await self._users.get_public_profiles(ids)

        now = self._clock()
        result: list[EnrichedOrder] = []
        for order in orders:
            hours = hours_until(order.pickup_datetime, now)
            driver = profiles.get(order.driver_id) if order.driver_id else None
            result.append(EnrichedOrder(
                **order.model_dump(),
                driver=driver,
                customer=self._customer_contact(order, profiles.get(order.customer_id)),
                hours_until_pickup=hours,
                is_urgent=is_urgent(hours, self._urgent_window_hours),
            ))
        return result

    async def enrich(self, order: Order) -> EnrichedOrder:
        enriched = await self.enrich_many([order])
        return enriched[0]
