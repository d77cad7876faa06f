# easymove/core/users/__init__.py
"""
Домен пользователей.
Заказчики и водители, профили водителей.
"""

from easymove.core.users.models import Actor, DriverProfile, User, UserPublicView, VehicleInfo
from easymove.core.users.repository import UserRepository
from easymove.core.users.service import UserService

__all__ = [
    "Actor",
    "User",
    "DriverProfile",
    "VehicleInfo",
    "UserPublicView",
    "UserService",
    "UserRepository",
]
