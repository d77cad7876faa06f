# easymove/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Секреты и адреса инфраструктуры переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from easymove.common.constants import PricingMode


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (можно переопределить EASYMOVE_CONFIG)."""
    override = os.getenv("EASYMOVE_CONFIG")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "easymove"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    RUN_DEV_MODE: bool = True
    STORE_BACKEND: str = "memory"
    SEED_DEMO_USERS: bool = True

    @field_validator("STORE_BACKEND")
    @classmethod
    def check_backend(cls, v: str) -> str:
        """Допустимы только memory и postgres."""
        value = v.lower()
        if value not in ("memory", "postgres"):
            raise ValueError(f"Неизвестный STORE_BACKEND: {v}")
        return value


class DeploymentSettings(BaseModel):
    """Настройки развертывания HTTP API."""
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8085
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760


class DomainSettings(BaseModel):
    """Настройки региона обслуживания."""
    DEFAULT_CITY: str = "Zurich"
    TIMEZONE: str = "Europe/Zurich"
    CURRENCY: str = "CHF"


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "easymove"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_DELAY: float = 1.0

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis (кэш публичных профилей)."""
    REDIS_ENABLED: bool = False
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "easymove"
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RedisTTLSettings(BaseModel):
    """Настройки TTL кэша."""
    PROFILE_TTL: int = 300


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ (доменные события)."""
    RABBITMQ_ENABLED: bool = False
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "easymove.events"

    @field_validator("RABBITMQ_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Пароль из окружения имеет приоритет."""
        env_pass = os.getenv("RABBITMQ_PASSWORD", "")
        if env_pass:
            return env_pass
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class FareSettings(BaseModel):
    """Настройки оценки стоимости трансфера."""
    BASE_PRICE: float = 35.0
    DISTANCE_FACTOR_MIN: float = 0.8
    DISTANCE_FACTOR_MAX: float = 1.3
    PASSENGER_SURCHARGE: float = 1.2
    SURCHARGE_PASSENGER_THRESHOLD: int = 2
    PRICING_MODE: PricingMode = PricingMode.HASHED
    PRICING_SEED: int | None = None

    @model_validator(mode="after")
    def check_factor_bounds(self) -> "FareSettings":
        """Нижняя граница коэффициента не может превышать верхнюю."""
        if self.DISTANCE_FACTOR_MIN > self.DISTANCE_FACTOR_MAX:
            raise ValueError("DISTANCE_FACTOR_MIN больше DISTANCE_FACTOR_MAX")
        return self


class OrderSettings(BaseModel):
    """Правила жизненного цикла и выдачи заказов."""
    MIN_PASSENGERS: int = 1
    MAX_PASSENGERS: int = 8
    MAX_LUGGAGE: int = 8
    URGENT_WINDOW_HOURS: int = 2
    RECENT_ORDERS_LIMIT: int = 5
    RELEASE_DRIVER_ON_CANCEL: bool = False
    CLAIM_TRANSIENT_RETRIES: int = 1


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    domain: DomainSettings = Field(default_factory=DomainSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    redis_ttl: RedisTTLSettings = Field(default_factory=RedisTTLSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    fares: FareSettings = Field(default_factory=FareSettings)
    orders: OrderSettings = Field(default_factory=OrderSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        """
        Создаёт Settings из плоского словаря config.json.
        Ключ попадает в ту секцию, где объявлено поле с таким именем;
        секреты и адреса переопределяются из переменных окружения.
        """
        env_overrides = (
            "STORE_BACKEND",
            "DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD",
            "REDIS_HOST", "REDIS_PORT", "REDIS_PASSWORD",
            "RABBITMQ_HOST", "RABBITMQ_PORT", "RABBITMQ_USER", "RABBITMQ_PASSWORD",
            "API_PORT", "LOG_LEVEL",
        )
        merged = dict(data)
        for key in env_overrides:
            value = os.getenv(key)
            if value:
                merged[key] = value

        sections: dict[str, Any] = {}
        for section_name, field_info in cls.model_fields.items():
            section_cls = field_info.annotation
            values = {
                key: merged[key]
                for key in section_cls.model_fields
                if key in merged
            }
            sections[section_name] = section_cls(**values)

        return cls(**sections)

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """Создаёт Settings из config.json."""
        return cls.from_dict(load_config_json(path))


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Без config.json используются значения по умолчанию.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    if not get_config_path().exists():
        return Settings.from_dict({})

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
