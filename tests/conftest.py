# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable
from unittest.mock import AsyncMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")

from easymove.common.constants import UserRole
from easymove.config.loader import OrderSettings
from easymove.core.listing import ListingService
from easymove.core.matching import MatchingService
from easymove.core.orders.enrichment import OrderEnricher
from easymove.core.orders.models import AddressInput, OrderDraft
from easymove.core.orders.pricing import FareCalculator
from easymove.core.orders.repository import InMemoryOrderRepository
from easymove.core.orders.service import OrderService
from easymove.core.stats import StatsService
from easymove.core.users.models import DriverProfile, User, UserCreateDTO, VehicleInfo
from easymove.core.users.repository import InMemoryUserRepository
from easymove.core.users.service import UserService
from easymove.infra.memory_store import USERS, InMemoryDocumentStore


# Фиксированное "сейчас" для всех сервисов
NOW = datetime(2024, 6, 15, 10, 0, tzinfo=timezone.utc)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "easymove_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "STORE_BACKEND": "memory",
        "SEED_DEMO_USERS": False,
        "API_PORT": 9000,
        "LOG_LEVEL": "DEBUG",
        "LOG_TO_FILE": False,
        "LOG_FORMAT": "colored",
        "DEFAULT_CITY": "Geneva",
        "TIMEZONE": "Europe/Zurich",
        "CURRENCY": "CHF",
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "easymove_test",
        "DB_USER": "postgres",
        "REDIS_ENABLED": False,
        "REDIS_NAMESPACE": "easymove_test",
        "PROFILE_TTL": 60,
        "RABBITMQ_ENABLED": False,
        "RABBITMQ_EXCHANGE": "easymove.test",
        "BASE_PRICE": 40.0,
        "PASSENGER_SURCHARGE": 1.2,
        "PRICING_MODE": "seeded",
        "PRICING_SEED": 42,
        "URGENT_WINDOW_HOURS": 3,
        "RELEASE_DRIVER_ON_CANCEL": True,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="INSERT 0 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.is_connected = True
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.get_model = AsyncMock(return_value=None)
    redis.set_model = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=None)
    event_bus.is_connected = True
    return event_bus


# =============================================================================
# ХРАНИЛИЩЕ И СЕРВИСЫ
# =============================================================================

@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Часы, всегда возвращающие NOW."""
    return lambda: NOW


@pytest.fixture
def store() -> InMemoryDocumentStore:
    """Чистое хранилище в памяти на каждый тест."""
    memory_store = InMemoryDocumentStore()
    memory_store.create_unique_index(USERS, "email")
    return memory_store


@pytest.fixture
def user_repo(store: InMemoryDocumentStore) -> InMemoryUserRepository:
    return InMemoryUserRepository(store)


@pytest.fixture
def order_repo(store: InMemoryDocumentStore) -> InMemoryOrderRepository:
    return InMemoryOrderRepository(store)


@pytest.fixture
def user_service(user_repo: InMemoryUserRepository) -> UserService:
    return UserService(user_repo)


@pytest.fixture
def pricing() -> FareCalculator:
    return FareCalculator()


@pytest.fixture
def order_rules() -> OrderSettings:
    return OrderSettings()


@pytest.fixture
def order_service(
    order_repo: InMemoryOrderRepository,
    user_repo: InMemoryUserRepository,
    pricing: FareCalculator,
    mock_event_bus: AsyncMock,
    clock: Callable[[], datetime],
    order_rules: OrderSettings,
) -> OrderService:
    return OrderService(
        order_repo,
        user_repo,
        pricing,
        event_bus=mock_event_bus,
        clock=clock,
        rules=order_rules,
    )


@pytest.fixture
def enricher(user_service: UserService, clock: Callable[[], datetime]) -> OrderEnricher:
    return OrderEnricher(user_service, clock=clock, urgent_window_hours=2)


@pytest.fixture
def matching_service(
    order_repo: InMemoryOrderRepository,
    user_repo: InMemoryUserRepository,
    user_service: UserService,
    enricher: OrderEnricher,
    mock_event_bus: AsyncMock,
    clock: Callable[[], datetime],
) -> MatchingService:
    return MatchingService(
        order_repo,
        user_repo,
        user_service,
        enricher,
        event_bus=mock_event_bus,
        clock=clock,
    )


@pytest.fixture
def listing_service(order_repo: InMemoryOrderRepository, enricher: OrderEnricher) -> ListingService:
    return ListingService(order_repo, enricher)


@pytest.fixture
def stats_service(
    order_repo: InMemoryOrderRepository,
    user_service: UserService,
    clock: Callable[[], datetime],
) -> StatsService:
    return StatsService(order_repo, user_service, clock=clock)


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

def _vehicle() -> VehicleInfo:
    return VehicleInfo(
        make="Mercedes-Benz",
        model="E-Class",
        year=2022,
        color="Black",
        plate="ZH 123456",
        capacity=4,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_draft() -> Callable[..., OrderDraft]:
    """Фабрика валидных черновиков с подачей через сутки после NOW."""
    def factory(**overrides: Any) -> OrderDraft:
        data: dict[str, Any] = {
            "customer_name": "Anna Keller",
            "customer_phone": "+41 79 111 2233",
            "customer_email": "anna@example.com",
            "pickup": AddressInput(address="Zurich Airport, Terminal 1", city="Zurich", postal_code="8058"),
            "destination": AddressInput(address="Bahnhofstrasse 1", city="Zurich", postal_code="8001"),
            "pickup_datetime": NOW + timedelta(days=1),
            "flight_number": "LX 318",
            "airline": "SWISS",
            "passenger_count": 2,
            "luggage_count": 2,
        }
        data.update(overrides)
        return OrderDraft(**data)
    return factory


@pytest.fixture
async def customer(user_repo: InMemoryUserRepository) -> User:
    """Зарегистрированный заказчик."""
    return await user_repo.create(User(
        email="anna@example.com",
        name="Anna Keller",
        phone="+41 79 111 2233",
        role=UserRole.CUSTOMER,
    ))


@pytest.fixture
async def other_customer(user_repo: InMemoryUserRepository) -> User:
    return await user_repo.create(User(
        email="peter@example.com",
        name="Peter Frei",
        phone="+41 79 999 8877",
        role=UserRole.CUSTOMER,
    ))


@pytest.fixture
def create_driver(user_repo: InMemoryUserRepository) -> Callable[..., Awaitable[User]]:
    """Фабрика водителей; без profile создаётся полный профиль."""
    async def factory(
        email: str = "hans@example.com",
        name: str = "Hans Mueller",
        profile: DriverProfile | None = None,
    ) -> User:
        return await user_repo.create(User(
            email=email,
            name=name,
            phone="+41 79 234 5678",
            role=UserRole.DRIVER,
            driver_info=profile if profile is not None else DriverProfile(
                license_number="CH-12345678",
                vehicle=_vehicle(),
            ),
        ))
    return factory


@pytest.fixture
async def driver(create_driver: Callable[..., Awaitable[User]]) -> User:
    """Водитель с полным профилем."""
    return await create_driver()


@pytest.fixture
async def second_driver(create_driver: Callable[..., Awaitable[User]]) -> User:
    return await create_driver(email="luca@example.com", name="Luca Rossi")


@pytest.fixture
def sample_user_dto() -> UserCreateDTO:
    return UserCreateDTO(
        email="Maria@Example.com",
        name="Maria Weber",
        phone="+41 79 555 0000",
        role=UserRole.CUSTOMER,
    )
