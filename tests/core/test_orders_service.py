# tests/core/test_orders_service.py
"""
Тесты для сервиса заказов.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest

from easymove.common.constants import OrderStatus, UserRole
from easymove.common.exceptions import (
    ConflictError,
    ForbiddenError,
    InputValidationError,
    InvalidTransitionError,
    NotFoundError,
)
from easymove.config.loader import OrderSettings
from easymove.core.matching import MatchingService
from easymove.core.orders.models import AddressInput, Order, OrderDraft
from easymove.core.orders.pricing import FareCalculator
from easymove.core.orders.repository import InMemoryOrderRepository
from easymove.core.orders.service import OrderService
from easymove.core.users.models import Actor, User
from easymove.core.users.repository import InMemoryUserRepository
from easymove.infra.event_bus import EventTypes


def published_types(event_bus: AsyncMock) -> list[str]:
    return [call.args[0].event_type for call in event_bus.publish.call_args_list]


class TestCreateOrder:
    """Тесты создания заказа."""

    @pytest.mark.asyncio
    async def test_create_order_success(
        self,
        order_service: OrderService,
        customer: User,
        make_draft: Callable[..., OrderDraft],
        pricing: FareCalculator,
        mock_event_bus: AsyncMock,
    ) -> None:
        """Заказ создаётся в pending с оценкой стоимости."""
        order = await order_service.create_order(customer.id, make_draft())

        assert order.status == OrderStatus.PENDING
        assert order.driver_id is None
        assert order.customer_id == customer.id
        assert order.final_price is None
        assert order.estimated_price == pricing(order.pickup, order.destination, 2)
        assert published_types(mock_event_bus) == [EventTypes.ORDER_CREATED]

    @pytest.mark.asyncio
    async def test_create_order_uses_pricing_function(
        self,
        order_repo: InMemoryOrderRepository,
        user_repo: InMemoryUserRepository,
        customer: User,
        make_draft: Callable[..., OrderDraft],
        clock: Callable,
    ) -> None:
        """Цена берётся из переданной функции стоимости."""
        service = OrderService(order_repo, user_repo, lambda p, d, n: 77, clock=clock)
        order = await service.create_order(customer.id, make_draft(passenger_count=3))
        assert order.estimated_price == 77

    @pytest.mark.asyncio
    async def test_missing_contacts_fall_back_to_profile(
        self,
        order_service: OrderService,
        customer: User,
        make_draft: Callable[..., OrderDraft],
    ) -> None:
        """Пустые контакты черновика заполняются из профиля заказчика."""
        order = await order_service.create_order(
            customer.id,
            make_draft(customer_name=None, customer_phone="", customer_email=None),
        )
        assert order.customer_name == customer.name
        assert order.customer_phone == customer.phone
        assert order.customer_email == customer.email

    @pytest.mark.asyncio
    async def test_default_city(
        self,
        order_service: OrderService,
        customer: User,
        make_draft: Callable[..., OrderDraft],
    ) -> None:
        """Город по умолчанию подставляется, если не указан."""
        order = await order_service.create_order(
            customer.id,
            make_draft(pickup=AddressInput(address="Zurich Airport")),
        )
        assert order.pickup.city == "Zurich"

    @pytest.mark.asyncio
    async def test_collects_all_field_errors(
        self,
        order_service: OrderService,
        customer: User,
        make_draft: Callable[..., OrderDraft],
        now: Any,
        mock_event_bus: AsyncMock,
    ) -> None:
        """Ошибки собираются сразу по всем полям."""
        draft = make_draft(
            customer_email="not-an-email",
            pickup=AddressInput(address="   "),
            pickup_datetime=now - timedelta(minutes=1),
            passenger_count=0,
            luggage_count=-1,
        )

        with pytest.raises(InputValidationError) as exc_info:
            await order_service.create_order(customer.id, draft)

        assert set(exc_info.value.errors) == {
            "customer_email",
            "pickup.address",
            "pickup_datetime",
            "passenger_count",
            "luggage_count",
        }
        mock_event_bus.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_pickup_datetime_required(
        self,
        order_service: OrderService,
        customer: User,
        make_draft: Callable[..., OrderDraft],
    ) -> None:
        with pytest.raises(InputValidationError) as exc_info:
            await order_service.create_order(customer.id, make_draft(pickup_datetime=None))
        assert "pickup_datetime" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_pickup_exactly_now_rejected(
        self,
        order_service: OrderService,
        customer: User,
        make_draft: Callable[..., OrderDraft],
        now: Any,
    ) -> None:
        """Время подачи должно быть строго в будущем."""
        with pytest.raises(InputValidationError):
            await order_service.create_order(customer.id, make_draft(pickup_datetime=now))

    @pytest.mark.asyncio
    async def test_passenger_limit(
        self,
        order_service: OrderService,
        customer: User,
        make_draft: Callable[..., OrderDraft],
    ) -> None:
        with pytest.raises(InputValidationError) as exc_info:
            await order_service.create_order(customer.id, make_draft(passenger_count=9))
        assert "passenger_count" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_driver_cannot_create(
        self,
        order_service: OrderService,
        driver: User,
        make_draft: Callable[..., OrderDraft],
    ) -> None:
        with pytest.raises(ForbiddenError):
            await order_service.create_order(driver.id, make_draft())

    @pytest.mark.asyncio
    async def test_unknown_customer(
        self,
        order_service: OrderService,
        make_draft: Callable[..., OrderDraft],
    ) -> None:
        with pytest.raises(ForbiddenError):
            await order_service.create_order("ghost", make_draft())

    @pytest.mark.asyncio
    async def test_event_bus_failure_does_not_break_creation(
        self,
        order_service: OrderService,
        customer: User,
        make_draft: Callable[..., OrderDraft],
        mock_event_bus: AsyncMock,
        order_repo: InMemoryOrderRepository,
    ) -> None:
        """Сбой публикации события не отменяет создание заказа."""
        mock_event_bus.publish.side_effect = RuntimeError("broker down")

        order = await order_service.create_order(customer.id, make_draft())

        assert await order_repo.get_by_id(order.id) is not None


class TestUpdateOrderStatus:
    """Тесты смены статуса заказа."""

    @pytest.fixture
    async def accepted_order(
        self,
        order_service: OrderService,
        matching_service: MatchingService,
        customer: User,
        driver: User,
        make_draft: Callable[..., OrderDraft],
    ) -> Order:
        order = await order_service.create_order(customer.id, make_draft())
        await matching_service.accept_order(driver.id, order.id)
        return order

    @pytest.mark.asyncio
    async def test_driver_starts_and_completes(
        self,
        order_service: OrderService,
        accepted_order: Order,
        driver: User,
        now: Any,
        mock_event_bus: AsyncMock,
    ) -> None:
        started = await order_service.update_order_status(driver.id, accepted_order.id, "in_progress")
        assert started.status == OrderStatus.IN_PROGRESS

        completed = await order_service.update_order_status(
            driver.id, accepted_order.id, OrderStatus.COMPLETED, final_price=95
        )
        assert completed.status == OrderStatus.COMPLETED
        assert completed.final_price == 95
        assert completed.completed_at == now
        assert completed.driver_id == driver.id

        assert published_types(mock_event_bus)[-2:] == [
            EventTypes.ORDER_STARTED,
            EventTypes.ORDER_COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_complete_directly_from_accepted(
        self,
        order_service: OrderService,
        accepted_order: Order,
        driver: User,
    ) -> None:
        """accepted -> completed разрешён без in_progress."""
        completed = await order_service.update_order_status(driver.id, accepted_order.id, "completed")
        assert completed.status == OrderStatus.COMPLETED
        assert completed.final_price is None

    @pytest.mark.asyncio
    async def test_customer_cancels_pending(
        self,
        order_service: OrderService,
        customer: User,
        make_draft: Callable[..., OrderDraft],
        now: Any,
    ) -> None:
        order = await order_service.create_order(customer.id, make_draft())
        cancelled = await order_service.update_order_status(customer.id, order.id, "cancelled")
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancelled_at == now
        assert cancelled.driver_id is None

    @pytest.mark.asyncio
    async def test_cancel_keeps_driver_by_default(
        self,
        order_service: OrderService,
        accepted_order: Order,
        customer: User,
        driver: User,
    ) -> None:
        """По умолчанию отменённый заказ сохраняет driver_id."""
        cancelled = await order_service.update_order_status(customer.id, accepted_order.id, "cancelled")
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.driver_id == driver.id

    @pytest.mark.asyncio
    async def test_cancel_releases_driver_when_configured(
        self,
        order_repo: InMemoryOrderRepository,
        user_repo: InMemoryUserRepository,
        pricing: FareCalculator,
        clock: Callable,
        accepted_order: Order,
        customer: User,
    ) -> None:
        service = OrderService(
            order_repo,
            user_repo,
            pricing,
            clock=clock,
            rules=OrderSettings(RELEASE_DRIVER_ON_CANCEL=True),
        )
        cancelled = await service.update_order_status(customer.id, accepted_order.id, "cancelled")
        assert cancelled.driver_id is None

    @pytest.mark.asyncio
    async def test_pending_cannot_start(
        self,
        order_service: OrderService,
        customer: User,
        make_draft: Callable[..., OrderDraft],
    ) -> None:
        order = await order_service.create_order(customer.id, make_draft())
        with pytest.raises(InvalidTransitionError):
            await order_service.update_order_status(customer.id, order.id, "in_progress")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["pending", "accepted"])
    async def test_status_not_externally_settable(
        self,
        order_service: OrderService,
        accepted_order: Order,
        driver: User,
        status: str,
    ) -> None:
        with pytest.raises(InvalidTransitionError):
            await order_service.update_order_status(driver.id, accepted_order.id, status)

    @pytest.mark.asyncio
    async def test_unknown_status(
        self,
        order_service: OrderService,
        accepted_order: Order,
        driver: User,
    ) -> None:
        with pytest.raises(InputValidationError):
            await order_service.update_order_status(driver.id, accepted_order.id, "teleported")

    @pytest.mark.asyncio
    async def test_terminal_order_is_frozen(
        self,
        order_service: OrderService,
        accepted_order: Order,
        customer: User,
    ) -> None:
        await order_service.update_order_status(customer.id, accepted_order.id, "cancelled")
        with pytest.raises(InvalidTransitionError):
            await order_service.update_order_status(customer.id, accepted_order.id, "cancelled")

    @pytest.mark.asyncio
    async def test_stranger_forbidden(
        self,
        order_service: OrderService,
        accepted_order: Order,
        other_customer: User,
        second_driver: User,
    ) -> None:
        """Ни чужой заказчик, ни чужой водитель не могут менять статус."""
        with pytest.raises(ForbiddenError):
            await order_service.update_order_status(other_customer.id, accepted_order.id, "cancelled")
        with pytest.raises(ForbiddenError):
            await order_service.update_order_status(second_driver.id, accepted_order.id, "in_progress")

    @pytest.mark.asyncio
    async def test_unknown_actor(self, order_service: OrderService, accepted_order: Order) -> None:
        with pytest.raises(ForbiddenError):
            await order_service.update_order_status("ghost", accepted_order.id, "cancelled")

    @pytest.mark.asyncio
    async def test_order_not_found(self, order_service: OrderService, customer: User) -> None:
        with pytest.raises(NotFoundError):
            await order_service.update_order_status(customer.id, "missing", "cancelled")

    @pytest.mark.asyncio
    async def test_final_price_only_on_completion(
        self,
        order_service: OrderService,
        accepted_order: Order,
        driver: User,
    ) -> None:
        with pytest.raises(InputValidationError):
            await order_service.update_order_status(
                driver.id, accepted_order.id, "in_progress", final_price=90
            )
        with pytest.raises(InputValidationError):
            await order_service.update_order_status(
                driver.id, accepted_order.id, "completed", final_price=-1
            )

    @pytest.mark.asyncio
    async def test_lost_compare_and_set_is_conflict(
        self,
        order_service: OrderService,
        order_repo: InMemoryOrderRepository,
        accepted_order: Order,
        driver: User,
    ) -> None:
        """Если статус изменился между чтением и записью, возвращается конфликт."""
        order_repo.transition = AsyncMock(return_value=None)  # type: ignore[method-assign]

        with pytest.raises(ConflictError):
            await order_service.update_order_status(driver.id, accepted_order.id, "in_progress")


class TestGetOrder:
    """Тесты чтения одного заказа."""

    @pytest.mark.asyncio
    async def test_visibility(
        self,
        order_service: OrderService,
        matching_service: MatchingService,
        customer: User,
        other_customer: User,
        driver: User,
        second_driver: User,
        make_draft: Callable[..., OrderDraft],
    ) -> None:
        order = await order_service.create_order(customer.id, make_draft())

        # Свободный заказ видят все водители
        assert (await order_service.get_order(Actor(second_driver.id, UserRole.DRIVER), order.id)).id == order.id
        with pytest.raises(ForbiddenError):
            await order_service.get_order(Actor(other_customer.id, UserRole.CUSTOMER), order.id)

        await matching_service.accept_order(driver.id, order.id)

        assert (await order_service.get_order(Actor(driver.id, UserRole.DRIVER), order.id)).driver_id == driver.id
        assert (await order_service.get_order(Actor(customer.id, UserRole.CUSTOMER), order.id)).id == order.id
        with pytest.raises(ForbiddenError):
            await order_service.get_order(Actor(second_driver.id, UserRole.DRIVER), order.id)

    @pytest.mark.asyncio
    async def test_not_found(self, order_service: OrderService, customer: User) -> None:
        with pytest.raises(NotFoundError):
            await order_service.get_order(Actor(customer.id, UserRole.CUSTOMER), "missing")
