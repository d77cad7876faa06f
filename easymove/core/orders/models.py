# easymove/core/orders/models.py
"""
Модели данных заказов.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from easymove.common.constants import (
    ACTIVE_ORDER_STATUSES,
    ASSIGNED_ORDER_STATUSES,
    OrderStatus,
)
from easymove.core.users.models import UserPublicView


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    """Наивное время считается UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Address(BaseModel):
    """Адрес подачи или назначения."""

    address: str = Field(..., min_length=1, description="Улица и дом или терминал")
    city: str = Field(..., min_length=1, description="Город")
    postal_code: Optional[str] = Field(None, description="Почтовый индекс")

    class Config:
        from_attributes = True

    def normalized(self) -> str:
        """Нормализованная строка для детерминированной оценки стоимости."""
        parts = [self.address, self.city, self.postal_code or ""]
        return "|".join(" ".join(p.lower().split()) for p in parts)


class AddressInput(BaseModel):
    """Адрес во входящем черновике; обязательность проверяет сервис."""

    address: str = ""
    city: Optional[str] = None
    postal_code: Optional[str] = None


class OrderDraft(BaseModel):
    """
    Черновик заказа от клиента.
    Поля намеренно нестрогие: OrderService собирает ошибки по всем полям сразу.
    """

    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None

    pickup: AddressInput = Field(default_factory=AddressInput)
    destination: AddressInput = Field(default_factory=AddressInput)
    pickup_datetime: Optional[datetime] = None

    flight_number: Optional[str] = None
    airline: Optional[str] = None
    special_requirements: Optional[str] = None
    notes: Optional[str] = None

    passenger_count: int = 1
    luggage_count: int = 0

    @field_validator("pickup_datetime")
    @classmethod
    def make_aware(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)


class Order(BaseModel):
    """Модель заказа."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID заказа")
    customer_id: str = Field(..., description="ID заказчика")
    driver_id: Optional[str] = Field(None, description="ID водителя")

    # Контакты на момент создания
    customer_name: str = Field(..., min_length=1)
    customer_phone: str = Field(..., min_length=1)
    customer_email: str = Field(..., min_length=3)

    # Маршрут
    pickup: Address
    destination: Address
    pickup_datetime: datetime
    flight_number: Optional[str] = None
    airline: Optional[str] = None
    special_requirements: Optional[str] = None
    notes: Optional[str] = None

    passenger_count: int = Field(..., ge=1, description="Пассажиров")
    luggage_count: int = Field(0, ge=0, description="Мест багажа")

    # Стоимость в целых единицах валюты
    estimated_price: int = Field(..., ge=0, description="Оценка при создании")
    final_price: Optional[int] = Field(None, ge=0, description="Итоговая стоимость")

    status: OrderStatus = Field(OrderStatus.PENDING, description="Статус заказа")

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator(
        "pickup_datetime", "created_at", "updated_at",
        "accepted_at", "completed_at", "cancelled_at",
    )
    @classmethod
    def make_aware(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @model_validator(mode="after")
    def check_driver_assignment(self) -> "Order":
        """driver_id заполнен тогда и только тогда, когда заказ закреплён за водителем."""
        if self.status == OrderStatus.CANCELLED:
            return self
        assigned = self.status in ASSIGNED_ORDER_STATUSES
        if assigned and self.driver_id is None:
            raise ValueError(f"Заказ в статусе {self.status.value} должен иметь driver_id")
        if not assigned and self.driver_id is not None:
            raise ValueError(f"Заказ в статусе {self.status.value} не может иметь driver_id")
        return self

    @property
    def is_active(self) -> bool:
        """Заказ занимает водителя."""
        return self.status in ACTIVE_ORDER_STATUSES

    def is_participant(self, user_id: str) -> bool:
        """Пользователь является заказчиком или назначенным водителем."""
        return user_id == self.customer_id or (
            self.driver_id is not None and user_id == self.driver_id
        )


class CustomerContact(BaseModel):
    """Контакты заказчика в выдаче: из профиля, либо из снимка заказа."""

    name: str
    phone: Optional[str] = None
    email: Optional[str] = None


class EnrichedOrder(Order):
    """Заказ с вычисляемыми при чтении полями и присоединёнными профилями."""

    driver: Optional[UserPublicView] = None
    customer: Optional[CustomerContact] = None
    hours_until_pickup: Optional[int] = None
    is_urgent: bool = False
