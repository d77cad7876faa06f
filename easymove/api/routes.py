# easymove/api/routes.py
"""
HTTP маршруты: заказы и водители.
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from easymove.api.dependencies import ActorDep, get_services
from easymove.common.constants import DriverView, OrderStatus
from easymove.core.listing import OrderFilters
from easymove.core.orders.models import EnrichedOrder, Order, OrderDraft
from easymove.core.stats import DriverStats
from easymove.core.users.models import DriverProfile

orders_router = APIRouter(prefix="/orders", tags=["Orders"])
drivers_router = APIRouter(prefix="/drivers", tags=["Drivers"])


class UpdateStatusRequest(BaseModel):
    status: str = Field(..., description="in_progress, completed или cancelled")
    final_price: Optional[int] = Field(None, description="Итоговая стоимость при завершении")


class AvailabilityRequest(BaseModel):
    is_available: bool


# =============================================================================
# ЗАКАЗЫ
# =============================================================================

@orders_router.post("", response_model=Order, status_code=status.HTTP_201_CREATED)
async def create_order(draft: OrderDraft, actor: ActorDep) -> Order:
    """Создание заказа заказчиком."""
    return await get_services().orders.create_order(actor.user_id, draft)


@orders_router.get("", response_model=list[EnrichedOrder])
async def list_orders(
    actor: ActorDep,
    order_status: Annotated[Optional[OrderStatus], Query(alias="status")] = None,
    view: Optional[DriverView] = None,
    limit: Annotated[Optional[int], Query(ge=1, le=200)] = None,
) -> list[EnrichedOrder]:
    """Заказы, видимые актору."""
    filters = OrderFilters(status=order_status, view=view, limit=limit)
    return await get_services().listing.list_orders(actor, filters)


@orders_router.get("/{order_id}", response_model=EnrichedOrder)
async def get_order(order_id: str, actor: ActorDep) -> EnrichedOrder:
    services = get_services()
    order = await services.orders.get_order(actor, order_id)
    return await services.listing.enrich(order)


@orders_router.post("/{order_id}/accept", response_model=EnrichedOrder)
async def accept_order(order_id: str, actor: ActorDep) -> EnrichedOrder:
    """Водитель принимает заказ; 409 если заказ уже принят другим."""
    return await get_services().matching.accept_order(actor.user_id, order_id)


@orders_router.patch("/{order_id}/status", response_model=EnrichedOrder)
async def update_order_status(
    order_id: str,
    request: UpdateStatusRequest,
    actor: ActorDep,
) -> EnrichedOrder:
    services = get_services()
    order = await services.orders.update_order_status(
        actor.user_id,
        order_id,
        request.status,
        final_price=request.final_price,
    )
    return await services.listing.enrich(order)


# =============================================================================
# ВОДИТЕЛИ
# =============================================================================

@drivers_router.put("/me/availability", response_model=DriverProfile)
async def set_availability(request: AvailabilityRequest, actor: ActorDep) -> DriverProfile:
    return await get_services().matching.set_driver_availability(actor.user_id, request.is_available)


@drivers_router.get("/{driver_id}/stats", response_model=DriverStats)
async def driver_stats(driver_id: str, actor: ActorDep) -> DriverStats:
    """Статистика водителя; доступна только ему самому."""
    if driver_id == "me":
        driver_id = actor.user_id
    return await get_services().stats.driver_stats(actor, driver_id)


router = APIRouter()
router.include_router(orders_router)
router.include_router(drivers_router)
