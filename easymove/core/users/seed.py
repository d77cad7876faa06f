# easymove/core/users/seed.py
"""
Демо-пользователи для режима разработки.
"""

from __future__ import annotations

from easymove.common.constants import TypeMsg, UserRole
from easymove.common.logger import log_info
from easymove.core.users.models import DriverProfile, User, UserCreateDTO, VehicleInfo
from easymove.core.users.service import UserService

DEMO_USERS: tuple[UserCreateDTO, ...] = (
    UserCreateDTO(
        name="Demo Customer",
        email="customer@example.com",
        phone="+41 79 123 4567",
        role=UserRole.CUSTOMER,
    ),
    UserCreateDTO(
        name="Hans Mueller",
        email="hans.mueller@example.com",
        phone="+41 79 234 5678",
        role=UserRole.DRIVER,
        driver_info=DriverProfile(
            license_number="CH-12345678",
            vehicle=VehicleInfo(
                make="Mercedes-Benz",
                model="E-Class",
                year=2022,
                color="Black",
                plate="ZH 123456",
                capacity=4,
            ),
        ),
    ),
)


async def seed_demo_users(user_service: UserService) -> list[User]:
    """
    Создаёт демо-пользователей, если их ещё нет (поиск по email).

    Returns:
        Демо-пользователи из хранилища, новые и уже существовавшие
    """
    users: list[User] = []
    for dto in DEMO_USERS:
        existing = await user_service.get_user_by_email(dto.email)
        if existing is not None:
            users.append(existing)
            continue
        users.append(await user_service.register_user(dto))

    await log_info(
        "Демо-пользователи: " + ", ".join(f"{u.name} <{u.email}> id={u.id}" for u in users),
        type_msg=TypeMsg.INFO,
    )
    return users
