# easymove/core/stats/service.py
"""
Статистика водителя: считается на лету по его заказам.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, assert_never
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from easymove.common.constants import ACTIVE_ORDER_STATUSES, OrderStatus, TypeMsg, UserRole
from easymove.common.exceptions import ForbiddenError, NotFoundError
from easymove.common.logger import log_info
from easymove.common.utils import round_half_up, utcnow
from easymove.core.orders.models import Order
from easymove.core.orders.repository import OrderRepository
from easymove.core.users.models import Actor
from easymove.core.users.service import UserService


class RecentOrder(BaseModel):
    """Краткая запись о недавнем заказе."""

    id: str
    status: OrderStatus
    customer_name: str
    pickup_address: str
    destination_address: str
    pickup_datetime: datetime
    price: int
    created_at: datetime


class DriverStats(BaseModel):
    """Показатели водителя."""

    driver_id: str
    total_orders: int = 0
    completed_orders: int = 0
    active_orders: int = 0
    completion_rate: int = Field(0, description="Процент завершённых, 0..100")
    monthly_earnings: int = 0
    monthly_trips: int = 0
    currency: str = "CHF"
    rating: Optional[float] = None
    total_trips: int = 0
    is_available: bool = False
    recent_orders: list[RecentOrder] = Field(default_factory=list)


def order_revenue(order: Order) -> int:
    """Выручка заказа: итоговая цена, если задана, иначе оценка."""
    return order.final_price if order.final_price is not None else order.estimated_price


def month_start(now: datetime, tz: ZoneInfo) -> datetime:
    """Начало текущего календарного месяца в часовом поясе tz."""
    local = now.astimezone(tz)
    return local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class StatsService:
    """Агрегатор статистики водителя."""

    def __init__(
        self,
        order_repo: OrderRepository,
        user_service: UserService,
        clock: Callable[[], datetime] = utcnow,
        timezone_name: str = "Europe/Zurich",
        currency: str = "CHF",
        recent_limit: int = 5,
    ) -> None:
        self._orders = order_repo
        self._users = user_service
        self._clock = clock
        self._tz = ZoneInfo(timezone_name)
        self._currency = currency
        self._recent_limit = recent_limit

    @staticmethod
    def _check_access(actor: Actor, driver_id: str) -> None:
        match actor.role:
            case UserRole.DRIVER:
                if actor.user_id != driver_id:
                    raise ForbiddenError("Статистика доступна только самому водителю", driver_id=driver_id)
            case UserRole.CUSTOMER:
                raise ForbiddenError("Статистика доступна только водителям", driver_id=driver_id)
            case _:
                assert_never(actor.role)

    async def _recent(self, orders: list[Order]) -> list[RecentOrder]:
        recent = orders[: self._recent_limit]
        profiles = await self._users.get_public_profiles(o.customer_id for o in recent)
        return [
            RecentOrder(
                id=o.id,
                status=o.status,
                customer_name=profiles[o.customer_id].name if o.customer_id in profiles else o.customer_name,
                pickup_address=o.pickup.address,
                destination_address=o.destination.address,
                pickup_datetime=o.pickup_datetime,
                price=order_revenue(o),
                created_at=o.created_at,
            )
            for o in recent
        ]

    async def driver_stats(self, actor: Actor, driver_id: str) -> DriverStats:
        """
        Считает показатели водителя.

        Raises:
            ForbiddenError: Актор не является этим водителем
            NotFoundError: Водитель не найден
        """
        self._check_access(actor, driver_id)

        driver = await self._users.get_user(driver_id)
        if driver is None:
            raise NotFoundError(f"Водитель {driver_id} не найден", id=driver_id)

        # Новые первыми
        orders = await self._orders.find_by_driver(driver_id)

        completed = [o for o in orders if o.status == OrderStatus.COMPLETED]
        active = [o for o in orders if o.status in ACTIVE_ORDER_STATUSES]

        start = month_start(self._clock(), self._tz)
        monthly = [o for o in completed if o.completed_at is not None and o.completed_at >= start]

        total = len(orders)
        completion_rate = round_half_up(100 * len(completed) / total) if total else 0

        profile = driver.driver_info
        stats = DriverStats(
            driver_id=driver_id,
            total_orders=total,
            completed_orders=len(completed),
            active_orders=len(active),
            completion_rate=completion_rate,
            monthly_earnings=sum(order_revenue(o) for o in monthly),
            monthly_trips=len(monthly),
            currency=self._currency,
            rating=profile.rating if profile else None,
            total_trips=profile.total_trips if profile else 0,
            is_available=profile.is_available if profile else False,
            recent_orders=await self._recent(orders),
        )

        await log_info(
            f"Статистика водителя {driver_id}: {stats.completed_orders}/{stats.total_orders}",
            type_msg=TypeMsg.DEBUG,
        )
        return stats
