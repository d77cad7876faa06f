# easymove/core/users/service.py
"""
Сервис пользователей.
Регистрация, чтение профилей и разрешение актора запроса.
Публичные профили кэшируются в Redis, если он подключён.
"""

from __future__ import annotations

from typing import Iterable

from pydantic import ValidationError

from easymove.common.constants import TypeMsg
from easymove.common.exceptions import ForbiddenError, InputValidationError
from easymove.common.logger import log_error, log_info
from easymove.core.users.models import Actor, User, UserCreateDTO, UserPublicView
from easymove.core.users.repository import UserRepository
from easymove.infra.redis_client import RedisClient


class UserService:
    """
    Сервис пользователей.
    Профили водителей изменяются только через MatchingService.
    """

    def __init__(
        self,
        user_repo: UserRepository,
        redis: RedisClient | None = None,
        profile_ttl: int = 300,
    ) -> None:
        """
        Args:
            user_repo: Репозиторий пользователей
            redis: Клиент Redis для кэша публичных профилей (необязателен)
            profile_ttl: TTL кэша профиля в секундах
        """
        self._user_repo = user_repo
        self._redis = redis
        self._profile_ttl = profile_ttl

    @staticmethod
    def _profile_cache_key(user_id: str) -> str:
        return f"user:public:{user_id}"

    async def register_user(self, dto: UserCreateDTO) -> User:
        """
        Регистрирует пользователя.

        Raises:
            InputValidationError: Некорректные данные
            DuplicateKeyError: Email уже занят
        """
        try:
            user = User(**dto.model_dump())
        except ValidationError as e:
            errors = {".".join(str(p) for p in err["loc"]) or "user": err["msg"] for err in e.errors()}
            raise InputValidationError("Некорректные данные пользователя", errors) from e

        created = await self._user_repo.create(user)
        await log_info(
            f"Пользователь зарегистрирован: {created.id} ({created.role.value})",
            type_msg=TypeMsg.INFO,
        )
        return created

    async def get_user(self, user_id: str) -> User | None:
        """Читает пользователя из хранилища (без кэша)."""
        return await self._user_repo.get_by_id(user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        return await self._user_repo.get_by_email(email)

    async def update_contact(self, user_id: str, name: str | None = None, phone: str | None = None) -> User:
        """Обновляет имя и телефон; инвалидирует кэш профиля."""
        user = await self._user_repo.update(user_id, {"name": name, "phone": phone})
        await self.invalidate_profile(user_id)
        return user

    async def get_public_profiles(self, user_ids: Iterable[str]) -> dict[str, UserPublicView]:
        """
        Публичные профили по id, каждый id запрашивается один раз.
        Cache-Aside: сначала Redis, затем пакетное чтение недостающих.
        """
        ids = {user_id for user_id in user_ids if user_id}
        result: dict[str, UserPublicView] = {}

        if self._redis is not None and self._redis.is_connected:
            try:
                for user_id in ids:
                    cached = await self._redis.get_model(self._profile_cache_key(user_id), UserPublicView)
                    if cached is not None:
                        result[user_id] = cached
            except Exception as e:
                # Кэш недоступен: читаем всё из хранилища
                await log_error(f"Ошибка чтения кэша профилей: {e}")
                result.clear()

        missing = ids - result.keys()
        if missing:
            users = await self._user_repo.get_many(missing)
            for user_id, user in users.items():
                view = UserPublicView.from_user(user)
                result[user_id] = view
                await self._cache_profile(view)

        return result

    async def _cache_profile(self, view: UserPublicView) -> None:
        if self._redis is None or not self._redis.is_connected:
            return
        try:
            await self._redis.set_model(self._profile_cache_key(view.id), view, ttl=self._profile_ttl)
        except Exception as e:
            await log_error(f"Не удалось закэшировать профиль {view.id}: {e}")

    async def invalidate_profile(self, user_id: str) -> None:
        """Удаляет публичный профиль из кэша."""
        if self._redis is None or not self._redis.is_connected:
            return
        try:
            await self._redis.delete(self._profile_cache_key(user_id))
        except Exception as e:
            await log_error(f"Не удалось инвалидировать кэш профиля {user_id}: {e}")

    async def resolve_actor(self, user_id: str) -> Actor:
        """
        Перечитывает пользователя из хранилища и возвращает актора.

        Raises:
            ForbiddenError: Пользователь не существует
        """
        user = await self._user_repo.get_by_id(user_id)
        if user is None:
            raise ForbiddenError("Неизвестный пользователь", user_id=user_id)
        return Actor(user_id=user.id, role=user.role)
