# easymove/core/users/repository.py
"""
Репозиторий пользователей.
Интерфейс и две реализации: PostgreSQL (asyncpg) и хранилище в памяти.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Iterable

import asyncpg
from asyncpg import Record

from easymove.common.constants import ACTIVE_ORDER_STATUSES, TypeMsg, UserRole
from easymove.common.exceptions import DuplicateKeyError, NotFoundError
from easymove.common.logger import log_info
from easymove.core.users.models import DriverProfile, User, VehicleInfo
from easymove.infra.database import DatabaseManager
from easymove.infra.memory_store import ORDERS, USERS, InMemoryDocumentStore


class UserRepository(ABC):
    """Доступ к пользователям и профилям водителей."""

    @abstractmethod
    async def create(self, user: User) -> User:
        """Сохраняет пользователя; DuplicateKeyError при занятом email."""

    @abstractmethod
    async def get_by_id(self, user_id: str) -> User | None:
        ...

    @abstractmethod
    async def get_by_email(self, email: str) -> User | None:
        ...

    @abstractmethod
    async def get_many(self, user_ids: Iterable[str]) -> dict[str, User]:
        """Пакетное чтение; отсутствующие id просто не попадают в результат."""

    @abstractmethod
    async def update(self, user_id: str, patch: dict[str, Any]) -> User:
        """Частичное обновление name/phone; NotFoundError если нет пользователя."""

    @abstractmethod
    async def increment_total_trips(self, driver_id: str, delta: int = 1) -> None:
        ...

    @abstractmethod
    async def set_availability(self, driver_id: str, is_available: bool) -> DriverProfile | None:
        """
        Меняет готовность водителя.
        Выключение выполняется только если у водителя нет активного заказа,
        проверка и запись происходят одним атомарным шагом.

        Returns:
            Обновлённый профиль или None, если сработал запрет
        """


# =============================================================================
# POSTGRESQL
# =============================================================================

class PostgresUserRepository(UserRepository):
    """Репозиторий пользователей поверх PostgreSQL."""

    _SELECT = """
        SELECT u.id, u.email, u.name, u.phone, u.role, u.created_at, u.updated_at,
               d.user_id AS profile_user_id, d.license_number,
               d.vehicle_make, d.vehicle_model, d.vehicle_year, d.vehicle_color,
               d.vehicle_plate, d.vehicle_capacity,
               d.rating, d.total_trips, d.is_available
        FROM users u
        LEFT JOIN driver_profiles d ON d.user_id = u.id
    """

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    @staticmethod
    def _profile_from_row(row: Record) -> DriverProfile:
        vehicle = None
        if row["vehicle_make"] is not None:
            vehicle = VehicleInfo(
                make=row["vehicle_make"],
                model=row["vehicle_model"],
                year=row["vehicle_year"],
                color=row["vehicle_color"],
                plate=row["vehicle_plate"],
                capacity=row["vehicle_capacity"],
            )
        return DriverProfile(
            license_number=row["license_number"],
            vehicle=vehicle,
            rating=row["rating"],
            total_trips=row["total_trips"],
            is_available=row["is_available"],
        )

    def _row_to_user(self, row: Record) -> User:
        profile = None
        if row["profile_user_id"] is not None:
            profile = self._profile_from_row(row)
        return User(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            phone=row["phone"],
            role=UserRole(row["role"]),
            driver_info=profile,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def create(self, user: User) -> User:
        profile = user.driver_info
        vehicle = profile.vehicle if profile else None
        try:
            async with self._db.transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO users (id, email, name, phone, role, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                    """,
                    user.id,
                    user.email.lower(),
                    user.name,
                    user.phone,
                    user.role.value,
                    user.created_at,
                    user.updated_at,
                )
                if profile is not None:
                    await conn.execute(
                        """
                        INSERT INTO driver_profiles (
                            user_id, license_number,
                            vehicle_make, vehicle_model, vehicle_year, vehicle_color,
                            vehicle_plate, vehicle_capacity,
                            rating, total_trips, is_available, updated_at
                        )
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                        """,
                        user.id,
                        profile.license_number,
                        vehicle.make if vehicle else None,
                        vehicle.model if vehicle else None,
                        vehicle.year if vehicle else None,
                        vehicle.color if vehicle else None,
                        vehicle.plate if vehicle else None,
                        vehicle.capacity if vehicle else 4,
                        profile.rating,
                        profile.total_trips,
                        profile.is_available,
                        user.updated_at,
                    )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateKeyError("Пользователь с таким email уже существует", field="email") from e

        await log_info(f"Пользователь {user.id} создан", type_msg=TypeMsg.DEBUG)
        return user.model_copy(update={"email": user.email.lower()})

    async def get_by_id(self, user_id: str) -> User | None:
        row = await self._db.fetchrow(f"{self._SELECT} WHERE u.id = $1", user_id)
        return self._row_to_user(row) if row is not None else None

    async def get_by_email(self, email: str) -> User | None:
        row = await self._db.fetchrow(f"{self._SELECT} WHERE u.email = $1", email.lower())
        return self._row_to_user(row) if row is not None else None

    async def get_many(self, user_ids: Iterable[str]) -> dict[str, User]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        rows = await self._db.fetch(f"{self._SELECT} WHERE u.id = ANY($1::text[])", ids)
        return {row["id"]: self._row_to_user(row) for row in rows}

    async def update(self, user_id: str, patch: dict[str, Any]) -> User:
        row = await self._db.fetchrow(
            """
            UPDATE users
            SET name = COALESCE($2, name),
                phone = COALESCE($3, phone),
                updated_at = $4
            WHERE id = $1
            RETURNING id
            """,
            user_id,
            patch.get("name"),
            patch.get("phone"),
            datetime.now(timezone.utc),
        )
        if row is None:
            raise NotFoundError(f"Пользователь {user_id} не найден", id=user_id)
        user = await self.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"Пользователь {user_id} не найден", id=user_id)
        return user

    async def increment_total_trips(self, driver_id: str, delta: int = 1) -> None:
        status = await self._db.execute(
            """
            UPDATE driver_profiles
            SET total_trips = total_trips + $2, updated_at = $3
            WHERE user_id = $1
            """,
            driver_id,
            delta,
            datetime.now(timezone.utc),
        )
        if status.endswith(" 0"):
            raise NotFoundError(f"Профиль водителя {driver_id} не найден", id=driver_id)

    async def set_availability(self, driver_id: str, is_available: bool) -> DriverProfile | None:
        async with self._db.transaction() as conn:
            # Блокировка профиля сериализует выключение с захватом заказа (FOR SHARE в claim)
            locked = await conn.fetchval(
                "SELECT 1 FROM driver_profiles WHERE user_id = $1 FOR UPDATE",
                driver_id,
            )
            if locked is None:
                raise NotFoundError(f"Профиль водителя {driver_id} не найден", id=driver_id)

            if not is_available:
                active = await conn.fetchval(
                    "SELECT COUNT(*) FROM orders WHERE driver_id = $1 AND status = ANY($2::text[])",
                    driver_id,
                    [status.value for status in ACTIVE_ORDER_STATUSES],
                )
                if active:
                    return None

            row = await conn.fetchrow(
                """
                UPDATE driver_profiles d
                SET is_available = $2, updated_at = $3
                WHERE d.user_id = $1
                RETURNING d.user_id AS profile_user_id, d.license_number,
                          d.vehicle_make, d.vehicle_model, d.vehicle_year, d.vehicle_color,
                          d.vehicle_plate, d.vehicle_capacity,
                          d.rating, d.total_trips, d.is_available
                """,
                driver_id,
                is_available,
                datetime.now(timezone.utc),
            )
        return self._profile_from_row(row)


# =============================================================================
# ХРАНИЛИЩЕ В ПАМЯТИ
# =============================================================================

class InMemoryUserRepository(UserRepository):
    """Репозиторий пользователей поверх InMemoryDocumentStore."""

    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store

    async def create(self, user: User) -> User:
        doc = user.model_dump()
        doc["email"] = user.email.lower()
        saved = await self._store.insert(USERS, doc)
        await log_info(f"Пользователь {user.id} создан", type_msg=TypeMsg.DEBUG)
        return User.model_validate(saved)

    async def get_by_id(self, user_id: str) -> User | None:
        doc = await self._store.get(USERS, user_id)
        return User.model_validate(doc) if doc is not None else None

    async def get_by_email(self, email: str) -> User | None:
        target = email.lower()
        docs = await self._store.find(USERS, lambda d: d["email"] == target)
        return User.model_validate(docs[0]) if docs else None

    async def get_many(self, user_ids: Iterable[str]) -> dict[str, User]:
        ids = set(user_ids)
        if not ids:
            return {}
        docs = await self._store.find(USERS, lambda d: d["id"] in ids)
        return {doc["id"]: User.model_validate(doc) for doc in docs}

    async def update(self, user_id: str, patch: dict[str, Any]) -> User:
        allowed = {k: v for k, v in patch.items() if k in ("name", "phone") and v is not None}
        allowed["updated_at"] = datetime.now(timezone.utc)
        doc = await self._store.update(USERS, user_id, allowed)
        return User.model_validate(doc)

    async def increment_total_trips(self, driver_id: str, delta: int = 1) -> None:
        await self._store.increment(USERS, driver_id, "driver_info.total_trips", delta)

    async def set_availability(self, driver_id: str, is_available: bool) -> DriverProfile | None:
        async with self._store.transaction() as session:
            doc = session.get(USERS, driver_id)
            if doc is None or doc.get("driver_info") is None:
                raise NotFoundError(f"Профиль водителя {driver_id} не найден", id=driver_id)

            if not is_available:
                active = session.count(
                    ORDERS,
                    lambda o: o["driver_id"] == driver_id and o["status"] in ACTIVE_ORDER_STATUSES,
                )
                if active:
                    return None

            profile = {**doc["driver_info"], "is_available": is_available}
            updated = session.update(
                USERS,
                driver_id,
                {"driver_info": profile, "updated_at": datetime.now(timezone.utc)},
            )
        return DriverProfile.model_validate(updated["driver_info"])
