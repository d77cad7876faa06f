# easymove/core/orders/service.py
"""
Сервис жизненного цикла заказа.
Создание, смена статуса и чтение одного заказа.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Callable, assert_never

from easymove.common.constants import OrderStatus, TypeMsg, UserRole
from easymove.common.exceptions import (
    ConflictError,
    ForbiddenError,
    InputValidationError,
    InvalidTransitionError,
    NotFoundError,
)
from easymove.common.logger import log_info
from easymove.common.utils import utcnow
from easymove.config.loader import OrderSettings
from easymove.core.orders.models import Address, AddressInput, Order, OrderDraft
from easymove.core.orders.pricing import PricingFunction
from easymove.core.orders.repository import OrderRepository
from easymove.core.orders.state_machine import OrderStateMachine
from easymove.core.users.models import Actor, User
from easymove.core.users.repository import UserRepository
from easymove.infra.event_bus import EventBus, EventTypes, publish_event

EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")

STATUS_EVENTS: dict[OrderStatus, str] = {
    OrderStatus.ACCEPTED: EventTypes.ORDER_ACCEPTED,
    OrderStatus.IN_PROGRESS: EventTypes.ORDER_STARTED,
    OrderStatus.COMPLETED: EventTypes.ORDER_COMPLETED,
    OrderStatus.CANCELLED: EventTypes.ORDER_CANCELLED,
}


def order_event_payload(order: Order) -> dict[str, Any]:
    return {
        "order_id": order.id,
        "customer_id": order.customer_id,
        "driver_id": order.driver_id,
        "status": order.status.value,
    }


class OrderService:
    """
    Сервис заказов.
    Актор всегда перечитывается из хранилища: роли и id от вызывающей
    стороны не принимаются на веру.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        user_repo: UserRepository,
        pricing: PricingFunction,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
        rules: OrderSettings | None = None,
        default_city: str = "Zurich",
    ) -> None:
        """
        Args:
            order_repo: Репозиторий заказов
            user_repo: Репозиторий пользователей
            pricing: Функция оценки стоимости
            event_bus: Шина событий (None, если RabbitMQ выключен)
            clock: Источник текущего времени
            rules: Ограничения заказа из конфигурации
            default_city: Город, если в адресе он не указан
        """
        self._orders = order_repo
        self._users = user_repo
        self._pricing = pricing
        self._event_bus = event_bus
        self._clock = clock
        self._rules = rules or OrderSettings()
        self._default_city = default_city

    # =========================================================================
    # СОЗДАНИЕ
    # =========================================================================

    def _build_address(self, raw: AddressInput, field: str, errors: dict[str, str]) -> Address | None:
        address = (raw.address or "").strip()
        if not address:
            errors[f"{field}.address"] = "Адрес обязателен"
            return None
        city = (raw.city or "").strip() or self._default_city
        postal_code = (raw.postal_code or "").strip() or None
        return Address(address=address, city=city, postal_code=postal_code)

    def _validate_draft(self, customer: User, draft: OrderDraft, now: datetime) -> dict[str, Any]:
        """Проверяет черновик и возвращает нормализованные поля; ошибки собираются по всем полям."""
        errors: dict[str, str] = {}

        name = (draft.customer_name or customer.name or "").strip()
        phone = (draft.customer_phone or customer.phone or "").strip()
        email = (draft.customer_email or customer.email or "").strip()
        if not name:
            errors["customer_name"] = "Имя обязательно"
        if not phone:
            errors["customer_phone"] = "Телефон обязателен"
        if not email:
            errors["customer_email"] = "Email обязателен"
        elif not EMAIL_RE.match(email):
            errors["customer_email"] = "Некорректный email"

        pickup = self._build_address(draft.pickup, "pickup", errors)
        destination = self._build_address(draft.destination, "destination", errors)

        if draft.pickup_datetime is None:
            errors["pickup_datetime"] = "Время подачи обязательно"
        elif draft.pickup_datetime <= now:
            errors["pickup_datetime"] = "Время подачи должно быть в будущем"

        rules = self._rules
        if not rules.MIN_PASSENGERS <= draft.passenger_count <= rules.MAX_PASSENGERS:
            errors["passenger_count"] = (
                f"Количество пассажиров от {rules.MIN_PASSENGERS} до {rules.MAX_PASSENGERS}"
            )
        if not 0 <= draft.luggage_count <= rules.MAX_LUGGAGE:
            errors["luggage_count"] = f"Количество багажа от 0 до {rules.MAX_LUGGAGE}"

        if errors:
            raise InputValidationError("Некорректные данные заказа", errors)

        return {
            "customer_name": name,
            "customer_phone": phone,
            "customer_email": email,
            "pickup": pickup,
            "destination": destination,
        }

    async def create_order(self, customer_id: str, draft: OrderDraft) -> Order:
        """
        Создаёт заказ в статусе pending.

        Raises:
            ForbiddenError: Актор не найден или не является заказчиком
            InputValidationError: Черновик не прошёл проверку
        """
        customer = await self._users.get_by_id(customer_id)
        if customer is None:
            raise ForbiddenError("Неизвестный пользователь", user_id=customer_id)

        match customer.role:
            case UserRole.CUSTOMER:
                pass
            case UserRole.DRIVER:
                raise ForbiddenError("Водитель не может создавать заказы", user_id=customer_id)
            case _:
                assert_never(customer.role)

        now = self._clock()
        fields = self._validate_draft(customer, draft, now)

        estimated_price = self._pricing(fields["pickup"], fields["destination"], draft.passenger_count)

        order = Order(
            customer_id=customer.id,
            **fields,
            pickup_datetime=draft.pickup_datetime,
            flight_number=draft.flight_number or None,
            airline=draft.airline or None,
            special_requirements=draft.special_requirements or None,
            notes=draft.notes or None,
            passenger_count=draft.passenger_count,
            luggage_count=draft.luggage_count,
            estimated_price=estimated_price,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        created = await self._orders.create(order)

        await log_info(
            f"Заказ {created.id} создан клиентом {customer.id}, оценка {estimated_price}",
            type_msg=TypeMsg.INFO,
        )
        await publish_event(self._event_bus, EventTypes.ORDER_CREATED, order_event_payload(created))
        return created

    # =========================================================================
    # СМЕНА СТАТУСА
    # =========================================================================

    @staticmethod
    def _owns(user: User, order: Order) -> bool:
        match user.role:
            case UserRole.CUSTOMER:
                return order.customer_id == user.id
            case UserRole.DRIVER:
                return order.driver_id is not None and order.driver_id == user.id
            case _:
                assert_never(user.role)

    def _transition_patch(
        self,
        new_status: OrderStatus,
        now: datetime,
        final_price: int | None,
    ) -> dict[str, Any]:
        patch: dict[str, Any] = {"status": new_status, "updated_at": now}
        if new_status == OrderStatus.COMPLETED:
            patch["completed_at"] = now
            if final_price is not None:
                patch["final_price"] = final_price
        elif new_status == OrderStatus.CANCELLED:
            patch["cancelled_at"] = now
            if self._rules.RELEASE_DRIVER_ON_CANCEL:
                patch["driver_id"] = None
        return patch

    async def update_order_status(
        self,
        actor_id: str,
        order_id: str,
        new_status: OrderStatus | str,
        final_price: int | None = None,
    ) -> Order:
        """
        Переводит заказ в in_progress, completed или cancelled.

        Порядок проверок: актор существует, статус допустим для внешней
        установки, заказ существует, актор владеет заказом, переход разрешён.

        Raises:
            ForbiddenError: Актор неизвестен или не владеет заказом
            InvalidTransitionError: Статус нельзя установить или переход запрещён
            NotFoundError: Заказ не найден
            InputValidationError: Некорректный статус или итоговая цена
            ConflictError: Заказ изменился параллельно, повторите запрос
        """
        actor = await self._users.get_by_id(actor_id)
        if actor is None:
            raise ForbiddenError("Неизвестный пользователь", user_id=actor_id)

        try:
            target = OrderStatus(new_status)
        except ValueError:
            raise InputValidationError(
                "Неизвестный статус", {"status": f"Недопустимое значение: {new_status}"}
            ) from None

        if not OrderStateMachine.is_externally_settable(target):
            raise InvalidTransitionError(
                f"Статус {target.value} нельзя установить напрямую",
                requested=target.value,
            )

        order = await self._orders.get_by_id(order_id)
        if order is None:
            raise NotFoundError(f"Заказ {order_id} не найден", id=order_id)

        if not self._owns(actor, order):
            raise ForbiddenError("Нет доступа к заказу", order_id=order_id)

        OrderStateMachine.ensure_transition(order.status, target)

        if final_price is not None:
            if target != OrderStatus.COMPLETED:
                raise InputValidationError(
                    "Итоговая цена задаётся только при завершении",
                    {"final_price": "Допустимо только для статуса completed"},
                )
            if final_price < 0:
                raise InputValidationError(
                    "Некорректная итоговая цена", {"final_price": "Не может быть отрицательной"}
                )

        now = self._clock()
        updated = await self._orders.transition(
            order.id, order.status, self._transition_patch(target, now, final_price)
        )
        if updated is None:
            # Статус сменился между чтением и записью
            fresh = await self._orders.get_by_id(order.id)
            if fresh is None:
                raise NotFoundError(f"Заказ {order_id} не найден", id=order_id)
            OrderStateMachine.ensure_transition(fresh.status, target)
            raise ConflictError("Заказ изменён параллельно, повторите запрос", order_id=order_id)

        await log_info(
            f"Заказ {order.id}: {order.status.value} -> {target.value} ({actor.role.value} {actor.id})",
            type_msg=TypeMsg.INFO,
        )
        await publish_event(self._event_bus, STATUS_EVENTS[target], order_event_payload(updated))
        return updated

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_order(self, actor: Actor, order_id: str) -> Order:
        """
        Один заказ для участника, либо для любого водителя, пока заказ свободен.

        Raises:
            NotFoundError: Заказ не найден
            ForbiddenError: Нет доступа
        """
        order = await self._orders.get_by_id(order_id)
        if order is None:
            raise NotFoundError(f"Заказ {order_id} не найден", id=order_id)

        if order.is_participant(actor.user_id):
            return order

        match actor.role:
            case UserRole.DRIVER:
                if order.status == OrderStatus.PENDING and order.driver_id is None:
                    return order
            case UserRole.CUSTOMER:
                pass
            case _:
                assert_never(actor.role)

        raise ForbiddenError("Нет доступа к заказу", order_id=order_id)
