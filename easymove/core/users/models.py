# easymove/core/users/models.py
"""
Модели данных пользователей.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from easymove.common.constants import UserRole


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VehicleInfo(BaseModel):
    """Описание автомобиля водителя."""

    make: str = Field(..., min_length=1, description="Марка")
    model: str = Field(..., min_length=1, description="Модель")
    year: Optional[int] = Field(None, ge=1950, description="Год выпуска")
    color: Optional[str] = Field(None, description="Цвет")
    plate: str = Field(..., min_length=1, description="Госномер")
    capacity: int = Field(4, ge=1, description="Количество пассажирских мест")

    class Config:
        from_attributes = True


class DriverProfile(BaseModel):
    """Профиль водителя (есть только у пользователей с ролью driver)."""

    license_number: Optional[str] = Field(None, description="Номер водительского удостоверения")
    vehicle: Optional[VehicleInfo] = Field(None, description="Автомобиль")
    rating: float = Field(5.0, ge=0.0, le=5.0, description="Рейтинг")
    total_trips: int = Field(0, ge=0, description="Количество принятых заказов")
    is_available: bool = Field(True, description="Готов ли принимать заказы")

    class Config:
        from_attributes = True

    @property
    def is_complete(self) -> bool:
        """Профиль пригоден для работы: указан автомобиль."""
        return self.vehicle is not None


class User(BaseModel):
    """Модель пользователя."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID пользователя")
    email: str = Field(..., min_length=3, description="Email (уникальный, без учёта регистра)")
    name: str = Field(..., min_length=1, description="Имя")
    phone: Optional[str] = Field(None, description="Телефон")
    role: UserRole = Field(..., description="Роль, не меняется после создания")
    driver_info: Optional[DriverProfile] = Field(None, description="Профиль водителя")

    created_at: datetime = Field(default_factory=_utcnow, description="Дата регистрации")
    updated_at: datetime = Field(default_factory=_utcnow, description="Дата обновления")

    class Config:
        from_attributes = True

    @model_validator(mode="after")
    def check_driver_info(self) -> "User":
        """Профиль водителя допустим только у водителя."""
        if self.role != UserRole.DRIVER and self.driver_info is not None:
            raise ValueError("driver_info допустим только для роли driver")
        return self


class UserCreateDTO(BaseModel):
    """DTO для регистрации пользователя."""

    email: str
    name: str
    phone: Optional[str] = None
    role: UserRole = UserRole.CUSTOMER
    driver_info: Optional[DriverProfile] = None


class UserPublicView(BaseModel):
    """Публичные поля пользователя, которые видит вторая сторона заказа."""

    id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    role: UserRole
    vehicle: Optional[VehicleInfo] = None
    rating: Optional[float] = None

    @classmethod
    def from_user(cls, user: User) -> "UserPublicView":
        """Строит публичное представление из полной модели."""
        profile = user.driver_info
        return cls(
            id=user.id,
            name=user.name,
            phone=user.phone,
            email=user.email,
            role=user.role,
            vehicle=profile.vehicle if profile else None,
            rating=profile.rating if profile else None,
        )


@dataclass(frozen=True)
class Actor:
    """Аутентифицированный участник запроса."""

    user_id: str
    role: UserRole
