# easymove/api/dependencies.py
"""
Dependency Injection для HTTP API.
Сборка сервисов поверх выбранного хранилища и разрешение актора запроса.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Awaitable, Callable

from fastapi import Depends, Header, HTTPException, status

from easymove.common.constants import TypeMsg
from easymove.common.exceptions import ForbiddenError
from easymove.common.logger import log_info
from easymove.common.utils import utcnow
from easymove.config.loader import Settings
from easymove.core.listing import ListingService
from easymove.core.matching import MatchingService
from easymove.core.orders.enrichment import OrderEnricher
from easymove.core.orders.pricing import FareCalculator, PricingFunction
from easymove.core.orders.repository import (
    InMemoryOrderRepository,
    OrderRepository,
    PostgresOrderRepository,
)
from easymove.core.orders.service import OrderService
from easymove.core.stats import StatsService
from easymove.core.users.models import Actor
from easymove.core.users.repository import (
    InMemoryUserRepository,
    PostgresUserRepository,
    UserRepository,
)
from easymove.core.users.service import UserService
from easymove.infra.event_bus import EventBus
from easymove.infra.redis_client import RedisClient

HealthCheck = Callable[[], Awaitable[bool]]


@dataclass
class Services:
    """Собранные сервисы приложения."""
    users: UserService
    orders: OrderService
    matching: MatchingService
    listing: ListingService
    stats: StatsService
    health_checks: dict[str, HealthCheck] = field(default_factory=dict)


def build_services(
    user_repo: UserRepository,
    order_repo: OrderRepository,
    config: Settings,
    *,
    redis: RedisClient | None = None,
    event_bus: EventBus | None = None,
    pricing: PricingFunction | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    """
    Собирает сервисы поверх репозиториев.

    Args:
        user_repo: Репозиторий пользователей
        order_repo: Репозиторий заказов
        config: Настройки приложения
        redis: Кэш профилей (необязателен)
        event_bus: Шина событий (необязательна)
        pricing: Функция оценки стоимости (по умолчанию из секции fares)
        clock: Источник текущего времени
    """
    users = UserService(user_repo, redis=redis, profile_ttl=config.redis_ttl.PROFILE_TTL)
    enricher = OrderEnricher(
        users,
        clock=clock,
        urgent_window_hours=config.orders.URGENT_WINDOW_HOURS,
    )
    pricing = pricing or FareCalculator.from_config(config.fares)

    return Services(
        users=users,
        orders=OrderService(
            order_repo,
            user_repo,
            pricing,
            event_bus=event_bus,
            clock=clock,
            rules=config.orders,
            default_city=config.domain.DEFAULT_CITY,
        ),
        matching=MatchingService(
            order_repo,
            user_repo,
            users,
            enricher,
            event_bus=event_bus,
            clock=clock,
            transient_retries=config.orders.CLAIM_TRANSIENT_RETRIES,
        ),
        listing=ListingService(order_repo, enricher),
        stats=StatsService(
            order_repo,
            users,
            clock=clock,
            timezone_name=config.domain.TIMEZONE,
            currency=config.domain.CURRENCY,
            recent_limit=config.orders.RECENT_ORDERS_LIMIT,
        ),
    )


# Синглтон
_services: Services | None = None
_closers: list[Callable[[], Awaitable[None]]] = []


def set_services(services: Services | None) -> None:
    """Устанавливает собранные сервисы (используется при старте и в тестах)."""
    global _services
    _services = services


def get_services() -> Services:
    """Получить сервисы приложения."""
    if _services is None:
        raise RuntimeError("Сервисы не инициализированы. Вызовите init_dependencies()")
    return _services


def is_initialized() -> bool:
    return _services is not None


async def init_dependencies(config: Settings) -> Services:
    """
    Инициализирует инфраструктуру по настройкам и собирает сервисы.
    STORE_BACKEND=memory использует хранилище в памяти процесса.
    """
    redis: RedisClient | None = None
    event_bus: EventBus | None = None
    health_checks: dict[str, HealthCheck] = {}

    if config.system.STORE_BACKEND == "postgres":
        from easymove.infra.database import close_db, get_db, init_db

        await init_db()
        db = get_db()
        _closers.append(close_db)
        user_repo: UserRepository = PostgresUserRepository(db)
        order_repo: OrderRepository = PostgresOrderRepository(db)
        health_checks["postgres"] = db.health_check
    else:
        from easymove.infra.memory_store import get_memory_store

        store = get_memory_store()
        user_repo = InMemoryUserRepository(store)
        order_repo = InMemoryOrderRepository(store)
        health_checks["memory_store"] = store.health_check

    if config.redis.REDIS_ENABLED:
        from easymove.infra.redis_client import close_redis, get_redis, init_redis

        await init_redis()
        redis = get_redis()
        _closers.append(close_redis)
        health_checks["redis"] = redis.health_check

    if config.rabbitmq.RABBITMQ_ENABLED:
        from easymove.infra.event_bus import close_event_bus, get_event_bus, init_event_bus

        await init_event_bus()
        event_bus = get_event_bus()
        _closers.append(close_event_bus)
        health_checks["rabbitmq"] = event_bus.health_check

    services = build_services(user_repo, order_repo, config, redis=redis, event_bus=event_bus)
    services.health_checks = health_checks
    set_services(services)

    await log_info(
        f"Зависимости инициализированы: store={config.system.STORE_BACKEND}, "
        f"redis={config.redis.REDIS_ENABLED}, rabbitmq={config.rabbitmq.RABBITMQ_ENABLED}",
        type_msg=TypeMsg.INFO,
    )
    return services


async def close_dependencies() -> None:
    """Закрывает ресурсы в обратном порядке."""
    while _closers:
        closer = _closers.pop()
        await closer()
    set_services(None)


# =============================================================================
# ЗАВИСИМОСТИ FASTAPI
# =============================================================================

async def get_actor(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> Actor:
    """
    Актор запроса по заголовку X-User-Id, выставленному шлюзом аутентификации.
    Пользователь перечитывается из хранилища.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Требуется заголовок X-User-Id",
        )
    try:
        return await get_services().users.resolve_actor(x_user_id)
    except ForbiddenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Неизвестный пользователь",
        ) from None


ActorDep = Annotated[Actor, Depends(get_actor)]
