# easymove/core/matching/service.py
"""
Сервис принятия заказов водителями.

Несколько водителей могут одновременно попытаться принять один заказ.
Победитель определяется условной записью хранилища (claim), сервис
никогда не делает "прочитать, проверить, записать" по статусу заказа.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, assert_never

from easymove.common.constants import TypeMsg, UserRole
from easymove.common.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PreconditionFailedError,
    TransientStoreError,
)
from easymove.common.logger import log_info, log_warning
from easymove.common.utils import utcnow
from easymove.core.orders.enrichment import OrderEnricher
from easymove.core.orders.models import EnrichedOrder
from easymove.core.orders.repository import ClaimOutcome, ClaimResult, OrderRepository
from easymove.core.orders.service import order_event_payload
from easymove.core.users.models import DriverProfile, User
from easymove.core.users.repository import UserRepository
from easymove.core.users.service import UserService
from easymove.infra.event_bus import EventBus, EventTypes, publish_event

ALREADY_ACTIVE_MESSAGE = "Водитель уже выполняет активный заказ"
ALREADY_TAKEN_MESSAGE = "Заказ уже принят другим водителем"
UNAVAILABLE_MESSAGE = "Водитель недоступен для заказов"


class MatchingService:
    """
    Сервис матчинга заказов с водителями.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        user_repo: UserRepository,
        user_service: UserService,
        enricher: OrderEnricher,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
        transient_retries: int = 1,
    ) -> None:
        """
        Args:
            order_repo: Репозиторий заказов
            user_repo: Репозиторий пользователей
            user_service: Сервис пользователей (инвалидация кэша профилей)
            enricher: Обогащение результата профилями
            event_bus: Шина событий (None, если RabbitMQ выключен)
            clock: Источник текущего времени
            transient_retries: Сколько раз повторять захват при временной ошибке хранилища
        """
        self._orders = order_repo
        self._users = user_repo
        self._user_service = user_service
        self._enricher = enricher
        self._event_bus = event_bus
        self._clock = clock
        self._transient_retries = transient_retries

    async def _load_driver(self, driver_id: str) -> User:
        """Перечитывает актора и проверяет, что это водитель."""
        user = await self._users.get_by_id(driver_id)
        if user is None:
            raise ForbiddenError("Неизвестный пользователь", user_id=driver_id)

        match user.role:
            case UserRole.DRIVER:
                return user
            case UserRole.CUSTOMER:
                raise ForbiddenError("Операция доступна только водителям", user_id=driver_id)
            case _:
                assert_never(user.role)

    async def _claim(self, order_id: str, driver_id: str) -> ClaimResult:
        attempt = 0
        while True:
            try:
                return await self._orders.claim(order_id, driver_id, self._clock())
            except TransientStoreError as e:
                if attempt >= self._transient_retries:
                    raise
                attempt += 1
                await log_warning(f"Повтор захвата заказа {order_id} после временной ошибки: {e.message}")

    async def accept_order(self, driver_id: str, order_id: str) -> EnrichedOrder:
        """
        Водитель принимает свободный заказ.

        Raises:
            ForbiddenError: Актор не водитель
            ConflictError: У водителя уже есть активный заказ или заказ принят другим
            PreconditionFailedError: Профиль неполный или водитель недоступен
            NotFoundError: Заказ не найден
            TransientStoreError: Повторная временная ошибка хранилища
        """
        driver = await self._load_driver(driver_id)

        if await self._orders.count_active_by_driver(driver.id):
            raise ConflictError(ALREADY_ACTIVE_MESSAGE, driver_id=driver.id)

        profile = driver.driver_info
        if profile is None or not profile.is_complete:
            raise PreconditionFailedError("Профиль водителя не заполнен", driver_id=driver.id)
        if not profile.is_available:
            raise PreconditionFailedError(UNAVAILABLE_MESSAGE, driver_id=driver.id)

        result = await self._claim(order_id, driver.id)

        match result.outcome:
            case ClaimOutcome.CLAIMED:
                pass
            case ClaimOutcome.ALREADY_CLAIMED:
                # Проигранная гонка штатна, уровень INFO
                await log_info(
                    f"Водитель {driver.id} не успел принять заказ {order_id}",
                    type_msg=TypeMsg.INFO,
                )
                raise ConflictError(ALREADY_TAKEN_MESSAGE, order_id=order_id)
            case ClaimOutcome.DRIVER_BUSY:
                await log_info(
                    f"Водитель {driver.id} занят параллельно принятым заказом",
                    type_msg=TypeMsg.INFO,
                )
                raise ConflictError(ALREADY_ACTIVE_MESSAGE, driver_id=driver.id)
            case ClaimOutcome.DRIVER_UNAVAILABLE:
                # Доступность выключили после предварительной проверки
                raise PreconditionFailedError(UNAVAILABLE_MESSAGE, driver_id=driver.id)
            case ClaimOutcome.NOT_FOUND:
                raise NotFoundError(f"Заказ {order_id} не найден", id=order_id)
            case _:
                assert_never(result.outcome)

        order = result.order
        if order is None:
            raise NotFoundError(f"Заказ {order_id} не найден", id=order_id)

        try:
            await self._users.increment_total_trips(driver.id)
        except Exception as e:
            await log_warning(f"Не удалось увеличить total_trips водителя {driver.id}: {e}")
        await self._user_service.invalidate_profile(driver.id)

        await log_info(f"Заказ {order.id} принят водителем {driver.id}", type_msg=TypeMsg.INFO)
        await publish_event(self._event_bus, EventTypes.ORDER_ACCEPTED, order_event_payload(order))

        return await self._enricher.enrich(order)

    async def set_driver_availability(self, driver_id: str, is_available: bool) -> DriverProfile:
        """
        Включает или выключает готовность водителя принимать заказы.

        Raises:
            ForbiddenError: Актор не водитель
            PreconditionFailedError: Нет профиля водителя
            ConflictError: Выключение при активном заказе
        """
        driver = await self._load_driver(driver_id)
        if driver.driver_info is None:
            raise PreconditionFailedError("Профиль водителя не заполнен", driver_id=driver.id)

        try:
            profile = await self._users.set_availability(driver.id, is_available)
        except NotFoundError as e:
            raise PreconditionFailedError("Профиль водителя не заполнен", driver_id=driver.id) from e

        if profile is None:
            raise ConflictError("У водителя есть активные заказы", driver_id=driver.id)

        await self._user_service.invalidate_profile(driver.id)
        await log_info(
            f"Водитель {driver.id}: is_available={profile.is_available}",
            type_msg=TypeMsg.INFO,
        )
        await publish_event(
            self._event_bus,
            EventTypes.DRIVER_AVAILABILITY_CHANGED,
            {"driver_id": driver.id, "is_available": profile.is_available},
        )
        return profile
