# tests/infra/test_redis_client.py
"""
Тесты для клиента Redis.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from pydantic import BaseModel

from easymove.infra.redis_client import RedisClient


class SampleModel(BaseModel):
    """Тестовая Pydantic модель."""
    id: str
    name: str
    active: bool = True


class TestRedisClient:
    """Тесты для RedisClient."""

    @pytest.fixture
    def redis_client(self) -> RedisClient:
        """Создаёт экземпляр RedisClient для тестов."""
        # Сбрасываем синглтон для каждого теста
        RedisClient._instance = None
        RedisClient._client = None
        return RedisClient()

    @pytest.fixture
    def connected_client(self, redis_client: RedisClient) -> RedisClient:
        redis_client._client = AsyncMock()
        return redis_client

    def test_singleton(self, redis_client: RedisClient) -> None:
        """Проверяет паттерн Singleton."""
        assert RedisClient() is redis_client

    def test_client_not_initialized(self, redis_client: RedisClient) -> None:
        """Проверяет ошибку при обращении к неинициализированному клиенту."""
        with pytest.raises(RuntimeError, match="Redis клиент не инициализирован"):
            _ = redis_client.client
        assert redis_client.is_connected is False

    def test_make_key(self, redis_client: RedisClient) -> None:
        """Проверяет формирование ключа с namespace."""
        assert redis_client._make_key("user:public:1") == "easymove:user:public:1"

    @pytest.mark.asyncio
    async def test_set_model_with_ttl(self, connected_client: RedisClient) -> None:
        model = SampleModel(id="u-1", name="Anna")

        await connected_client.set_model("profile", model, ttl=300)

        connected_client.client.set.assert_awaited_once_with(
            "easymove:profile", model.model_dump_json(), ex=300
        )

    @pytest.mark.asyncio
    async def test_get_model(self, connected_client: RedisClient) -> None:
        connected_client.client.get.return_value = SampleModel(id="u-1", name="Anna").model_dump_json()

        result = await connected_client.get_model("profile", SampleModel)

        assert result == SampleModel(id="u-1", name="Anna")

    @pytest.mark.asyncio
    async def test_get_model_missing(self, connected_client: RedisClient) -> None:
        connected_client.client.get.return_value = None
        assert await connected_client.get_model("profile", SampleModel) is None

    @pytest.mark.asyncio
    async def test_get_model_corrupted(self, connected_client: RedisClient) -> None:
        """Битые данные в кэше дают промах, а не исключение."""
        connected_client.client.get.return_value = "{not json"
        assert await connected_client.get_model("profile", SampleModel) is None

    @pytest.mark.asyncio
    async def test_delete(self, connected_client: RedisClient) -> None:
        connected_client.client.delete.return_value = 1
        assert await connected_client.delete("profile") == 1
        connected_client.client.delete.assert_awaited_once_with("easymove:profile")

    @pytest.mark.asyncio
    async def test_health_check_failure(self, connected_client: RedisClient) -> None:
        connected_client.client.ping.side_effect = ConnectionError("down")
        assert await connected_client.health_check() is False
