# easymove/core/orders/repository.py
"""
Репозиторий заказов.
Интерфейс и две реализации: PostgreSQL (asyncpg) и хранилище в памяти.

Захват заказа и смена статуса выполняются условными записями хранилища,
а не последовательностью "прочитать, проверить, записать" в сервисе.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import asyncpg
from asyncpg import Record

from easymove.common.constants import ACTIVE_ORDER_STATUSES, OrderStatus, TypeMsg
from easymove.common.exceptions import NotFoundError, TransientStoreError
from easymove.common.logger import log_info
from easymove.core.orders.models import Address, Order
from easymove.infra.database import DatabaseManager
from easymove.infra.memory_store import ORDERS, USERS, Document, InMemoryDocumentStore


class ClaimOutcome(str, Enum):
    """Результат попытки захвата заказа."""
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"
    DRIVER_BUSY = "driver_busy"
    DRIVER_UNAVAILABLE = "driver_unavailable"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ClaimResult:
    outcome: ClaimOutcome
    order: Order | None = None


class OrderRepository(ABC):
    """Доступ к заказам."""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        ...

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Order | None:
        ...

    @abstractmethod
    async def update(self, order_id: str, patch: dict[str, Any]) -> Order:
        """Частичное обновление; NotFoundError если заказа нет."""

    @abstractmethod
    async def claim(self, order_id: str, driver_id: str, at: datetime) -> ClaimResult:
        """
        Атомарно назначает водителя: status == pending, driver_id пуст,
        водитель доступен и у него нет активного заказа.

        Raises:
            TransientStoreError: Временный конфликт хранилища
        """

    @abstractmethod
    async def transition(
        self,
        order_id: str,
        expected_status: OrderStatus,
        patch: dict[str, Any],
    ) -> Order | None:
        """
        Compare-and-set по статусу.

        Returns:
            Обновлённый заказ или None, если статус уже изменился

        Raises:
            NotFoundError: Заказа нет
        """

    @abstractmethod
    async def find_by_customer(
        self,
        customer_id: str,
        status: OrderStatus | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        """Заказы клиента, новые первыми."""

    @abstractmethod
    async def find_available(self, limit: int | None = None) -> list[Order]:
        """Свободные заказы (pending без водителя), ближайшая подача первой."""

    @abstractmethod
    async def find_by_driver(
        self,
        driver_id: str,
        status: OrderStatus | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        """Заказы водителя, новые первыми."""

    @abstractmethod
    async def count_active_by_driver(self, driver_id: str) -> int:
        ...


# =============================================================================
# POSTGRESQL
# =============================================================================

# Поля Order, которые можно менять через update/transition
_MUTABLE_COLUMNS = (
    "status",
    "driver_id",
    "final_price",
    "notes",
    "special_requirements",
    "updated_at",
    "accepted_at",
    "completed_at",
    "cancelled_at",
)

_ORDER_BY = {
    "created_desc": "ORDER BY created_at DESC",
    "pickup_asc": "ORDER BY pickup_datetime ASC",
}


class PostgresOrderRepository(OrderRepository):
    """Репозиторий заказов поверх PostgreSQL."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    @staticmethod
    def _row_to_order(row: Record) -> Order:
        return Order(
            id=row["id"],
            customer_id=row["customer_id"],
            driver_id=row["driver_id"],
            customer_name=row["customer_name"],
            customer_phone=row["customer_phone"],
            customer_email=row["customer_email"],
            pickup=Address(
                address=row["pickup_address"],
                city=row["pickup_city"],
                postal_code=row["pickup_postal_code"],
            ),
            destination=Address(
                address=row["destination_address"],
                city=row["destination_city"],
                postal_code=row["destination_postal_code"],
            ),
            pickup_datetime=row["pickup_datetime"],
            flight_number=row["flight_number"],
            airline=row["airline"],
            special_requirements=row["special_requirements"],
            notes=row["notes"],
            passenger_count=row["passenger_count"],
            luggage_count=row["luggage_count"],
            estimated_price=row["estimated_price"],
            final_price=row["final_price"],
            status=OrderStatus(row["status"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            accepted_at=row["accepted_at"],
            completed_at=row["completed_at"],
            cancelled_at=row["cancelled_at"],
        )

    @staticmethod
    def _build_set_clause(patch: dict[str, Any], start: int) -> tuple[str, list[Any]]:
        unknown = set(patch) - set(_MUTABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Нельзя обновлять поля заказа: {sorted(unknown)}")

        parts: list[str] = []
        values: list[Any] = []
        for index, (column, value) in enumerate(patch.items(), start=start):
            parts.append(f"{column} = ${index}")
            values.append(value.value if isinstance(value, Enum) else value)
        return ", ".join(parts), values

    async def create(self, order: Order) -> Order:
        await self._db.execute(
            """
            INSERT INTO orders (
                id, customer_id, driver_id,
                customer_name, customer_phone, customer_email,
                pickup_address, pickup_city, pickup_postal_code,
                destination_address, destination_city, destination_postal_code,
                pickup_datetime, flight_number, airline, special_requirements, notes,
                passenger_count, luggage_count, estimated_price, final_price,
                status, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12,
                    $13, $14, $15, $16, $17, $18, $19, $20, $21, $22, $23, $24)
            """,
            order.id,
            order.customer_id,
            order.driver_id,
            order.customer_name,
            order.customer_phone,
            order.customer_email,
            order.pickup.address,
            order.pickup.city,
            order.pickup.postal_code,
            order.destination.address,
            order.destination.city,
            order.destination.postal_code,
            order.pickup_datetime,
            order.flight_number,
            order.airline,
            order.special_requirements,
            order.notes,
            order.passenger_count,
            order.luggage_count,
            order.estimated_price,
            order.final_price,
            order.status.value,
            order.created_at,
            order.updated_at,
        )
        await log_info(f"Заказ {order.id} создан", type_msg=TypeMsg.DEBUG)
        return order

    async def get_by_id(self, order_id: str) -> Order | None:
        row = await self._db.fetchrow("SELECT * FROM orders WHERE id = $1", order_id)
        return self._row_to_order(row) if row is not None else None

    async def update(self, order_id: str, patch: dict[str, Any]) -> Order:
        set_clause, values = self._build_set_clause(patch, start=2)
        row = await self._db.fetchrow(
            f"UPDATE orders SET {set_clause} WHERE id = $1 RETURNING *",
            order_id,
            *values,
        )
        if row is None:
            raise NotFoundError(f"Заказ {order_id} не найден", id=order_id)
        return self._row_to_order(row)

    async def claim(self, order_id: str, driver_id: str, at: datetime) -> ClaimResult:
        try:
            async with self._db.transaction() as conn:
                # FOR SHARE на профиле: выключение доступности (FOR UPDATE) ждёт конца захвата
                available = await conn.fetchval(
                    "SELECT is_available FROM driver_profiles WHERE user_id = $1 FOR SHARE",
                    driver_id,
                )
                if not available:
                    return ClaimResult(ClaimOutcome.DRIVER_UNAVAILABLE)

                row = await conn.fetchrow(
                    """
                    UPDATE orders
                    SET driver_id = $2, status = 'accepted', accepted_at = $3, updated_at = $3
                    WHERE id = $1 AND status = 'pending' AND driver_id IS NULL
                    RETURNING *
                    """,
                    order_id,
                    driver_id,
                    at,
                )
                if row is None:
                    row = await conn.fetchrow("SELECT * FROM orders WHERE id = $1", order_id)
                    if row is None:
                        return ClaimResult(ClaimOutcome.NOT_FOUND)
                    return ClaimResult(ClaimOutcome.ALREADY_CLAIMED, self._row_to_order(row))
        except asyncpg.UniqueViolationError:
            # Частичный уникальный индекс: у водителя уже есть активный заказ
            return ClaimResult(ClaimOutcome.DRIVER_BUSY)
        except (asyncpg.SerializationError, asyncpg.DeadlockDetectedError) as e:
            raise TransientStoreError("Временный конфликт при захвате заказа", id=order_id) from e

        return ClaimResult(ClaimOutcome.CLAIMED, self._row_to_order(row))

    async def transition(
        self,
        order_id: str,
        expected_status: OrderStatus,
        patch: dict[str, Any],
    ) -> Order | None:
        set_clause, values = self._build_set_clause(patch, start=3)
        try:
            row = await self._db.fetchrow(
                f"UPDATE orders SET {set_clause} WHERE id = $1 AND status = $2 RETURNING *",
                order_id,
                expected_status.value,
                *values,
            )
        except (asyncpg.SerializationError, asyncpg.DeadlockDetectedError) as e:
            raise TransientStoreError("Временный конфликт при смене статуса", id=order_id) from e

        if row is not None:
            return self._row_to_order(row)

        exists = await self._db.fetchval("SELECT EXISTS (SELECT 1 FROM orders WHERE id = $1)", order_id)
        if not exists:
            raise NotFoundError(f"Заказ {order_id} не найден", id=order_id)
        return None

    async def _select(self, where: str, args: list[Any], order_by: str, limit: int | None) -> list[Order]:
        query = f"SELECT * FROM orders WHERE {where} {_ORDER_BY[order_by]}"
        if limit is not None:
            args = [*args, limit]
            query += f" LIMIT ${len(args)}"
        rows = await self._db.fetch(query, *args)
        return [self._row_to_order(row) for row in rows]

    async def find_by_customer(
        self,
        customer_id: str,
        status: OrderStatus | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        if status is None:
            return await self._select("customer_id = $1", [customer_id], "created_desc", limit)
        return await self._select(
            "customer_id = $1 AND status = $2", [customer_id, status.value], "created_desc", limit
        )

    async def find_available(self, limit: int | None = None) -> list[Order]:
        return await self._select("status = 'pending' AND driver_id IS NULL", [], "pickup_asc", limit)

    async def find_by_driver(
        self,
        driver_id: str,
        status: OrderStatus | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        if status is None:
            return await self._select("driver_id = $1", [driver_id], "created_desc", limit)
        return await self._select(
            "driver_id = $1 AND status = $2", [driver_id, status.value], "created_desc", limit
        )

    async def count_active_by_driver(self, driver_id: str) -> int:
        return await self._db.fetchval(
            "SELECT COUNT(*) FROM orders WHERE driver_id = $1 AND status = ANY($2::text[])",
            driver_id,
            [status.value for status in ACTIVE_ORDER_STATUSES],
        )


# =============================================================================
# ХРАНИЛИЩЕ В ПАМЯТИ
# =============================================================================

def _is_active_for(driver_id: str):
    return lambda doc: doc["driver_id"] == driver_id and doc["status"] in ACTIVE_ORDER_STATUSES


class InMemoryOrderRepository(OrderRepository):
    """Репозиторий заказов поверх InMemoryDocumentStore."""

    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store

    @staticmethod
    def _to_order(doc: Document) -> Order:
        return Order.model_validate(doc)

    @staticmethod
    def _limited(orders: list[Order], limit: int | None) -> list[Order]:
        return orders if limit is None else orders[:limit]

    async def create(self, order: Order) -> Order:
        saved = await self._store.insert(ORDERS, order.model_dump())
        await log_info(f"Заказ {order.id} создан", type_msg=TypeMsg.DEBUG)
        return self._to_order(saved)

    async def get_by_id(self, order_id: str) -> Order | None:
        doc = await self._store.get(ORDERS, order_id)
        return self._to_order(doc) if doc is not None else None

    async def update(self, order_id: str, patch: dict[str, Any]) -> Order:
        return self._to_order(await self._store.update(ORDERS, order_id, patch))

    async def claim(self, order_id: str, driver_id: str, at: datetime) -> ClaimResult:
        async with self._store.transaction() as session:
            doc = session.get(ORDERS, order_id)
            if doc is None:
                return ClaimResult(ClaimOutcome.NOT_FOUND)
            if doc["status"] != OrderStatus.PENDING or doc["driver_id"] is not None:
                return ClaimResult(ClaimOutcome.ALREADY_CLAIMED, self._to_order(doc))

            driver = session.get(USERS, driver_id)
            profile = driver.get("driver_info") if driver is not None else None
            if not profile or not profile.get("is_available"):
                return ClaimResult(ClaimOutcome.DRIVER_UNAVAILABLE)

            if session.count(ORDERS, _is_active_for(driver_id)):
                return ClaimResult(ClaimOutcome.DRIVER_BUSY)

            updated = session.update(ORDERS, order_id, {
                "driver_id": driver_id,
                "status": OrderStatus.ACCEPTED,
                "accepted_at": at,
                "updated_at": at,
            })
        return ClaimResult(ClaimOutcome.CLAIMED, self._to_order(updated))

    async def transition(
        self,
        order_id: str,
        expected_status: OrderStatus,
        patch: dict[str, Any],
    ) -> Order | None:
        async with self._store.transaction() as session:
            doc = session.get(ORDERS, order_id)
            if doc is None:
                raise NotFoundError(f"Заказ {order_id} не найден", id=order_id)
            if doc["status"] != expected_status:
                return None
            updated = session.update(ORDERS, order_id, patch)
        return self._to_order(updated)

    async def find_by_customer(
        self,
        customer_id: str,
        status: OrderStatus | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        docs = await self._store.find(
            ORDERS,
            lambda d: d["customer_id"] == customer_id and (status is None or d["status"] == status),
        )
        orders = sorted((self._to_order(d) for d in docs), key=lambda o: o.created_at, reverse=True)
        return self._limited(orders, limit)

    async def find_available(self, limit: int | None = None) -> list[Order]:
        docs = await self._store.find(
            ORDERS,
            lambda d: d["status"] == OrderStatus.PENDING and d["driver_id"] is None,
        )
        orders = sorted((self._to_order(d) for d in docs), key=lambda o: o.pickup_datetime)
        return self._limited(orders, limit)

    async def find_by_driver(
        self,
        driver_id: str,
        status: OrderStatus | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        docs = await self._store.find(
            ORDERS,
            lambda d: d["driver_id"] == driver_id and (status is None or d["status"] == status),
        )
        orders = sorted((self._to_order(d) for d in docs), key=lambda o: o.created_at, reverse=True)
        return self._limited(orders, limit)

    async def count_active_by_driver(self, driver_id: str) -> int:
        async with self._store.transaction() as session:
            return session.count(ORDERS, _is_active_for(driver_id))
