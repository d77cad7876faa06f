# easymove/infra/__init__.py
"""
Инфраструктурный слой.
Хранилища (PostgreSQL, в памяти), кэш Redis, шина событий RabbitMQ.
"""

from easymove.infra.database import DatabaseManager, get_db
from easymove.infra.event_bus import EventBus, get_event_bus
from easymove.infra.memory_store import InMemoryDocumentStore, get_memory_store
from easymove.infra.redis_client import RedisClient, get_redis

__all__ = [
    "DatabaseManager",
    "get_db",
    "InMemoryDocumentStore",
    "get_memory_store",
    "RedisClient",
    "get_redis",
    "EventBus",
    "get_event_bus",
]
