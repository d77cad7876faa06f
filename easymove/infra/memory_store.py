# easymove/infra/memory_store.py
"""
Документное хранилище в памяти процесса.

Используется в режиме разработки (STORE_BACKEND=memory) и в тестах.
Коллекции хранят документы по id, уникальные индексы проверяются
при вставке и обновлении. Все операции выполняются под одним asyncio.Lock:
транзакция оборачивает проверку и запись, поэтому условные обновления
(захват заказа водителем) атомарны относительно друг друга.
"""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable

from easymove.common.exceptions import DuplicateKeyError, NotFoundError


USERS = "users"
ORDERS = "orders"

Document = dict[str, Any]
Predicate = Callable[[Document], bool]


class StoreSession:
    """
    Операции над хранилищем внутри транзакции.
    Методы синхронные: между чтением и записью нет точек переключения.
    """

    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store

    def _collection(self, name: str) -> dict[str, Document]:
        return self._store._collections[name]

    def _check_unique(self, collection: str, doc: Document, skip_id: str | None = None) -> None:
        for field_name in self._store._unique.get(collection, ()):
            value = doc.get(field_name)
            if value is None:
                continue
            for other_id, other in self._collection(collection).items():
                if other_id != skip_id and other.get(field_name) == value:
                    raise DuplicateKeyError(
                        f"Duplicate value for {collection}.{field_name}",
                        field=field_name,
                    )

    def insert(self, collection: str, doc: Document) -> Document:
        """Вставляет документ; DuplicateKeyError при нарушении уникальности."""
        doc_id = doc["id"]
        if doc_id in self._collection(collection):
            raise DuplicateKeyError(f"Duplicate id in {collection}", field="id")
        self._check_unique(collection, doc)
        self._collection(collection)[doc_id] = copy.deepcopy(doc)
        return copy.deepcopy(doc)

    def get(self, collection: str, doc_id: str) -> Document | None:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def find(self, collection: str, predicate: Predicate | None = None) -> list[Document]:
        return [
            copy.deepcopy(doc)
            for doc in self._collection(collection).values()
            if predicate is None or predicate(doc)
        ]

    def count(self, collection: str, predicate: Predicate) -> int:
        return sum(1 for doc in self._collection(collection).values() if predicate(doc))

    def update(self, collection: str, doc_id: str, patch: Document) -> Document:
        """Частичное слияние верхнего уровня; NotFoundError если документа нет."""
        current = self._collection(collection).get(doc_id)
        if current is None:
            raise NotFoundError(f"{collection} {doc_id} not found", id=doc_id)

        merged = {**current, **copy.deepcopy(patch)}
        self._check_unique(collection, merged, skip_id=doc_id)
        self._collection(collection)[doc_id] = merged
        return copy.deepcopy(merged)

    def increment(self, collection: str, doc_id: str, path: str, delta: int = 1) -> Document:
        """Атомарно увеличивает числовое поле по пути вида 'driver_info.total_trips'."""
        current = self._collection(collection).get(doc_id)
        if current is None:
            raise NotFoundError(f"{collection} {doc_id} not found", id=doc_id)

        *parents, leaf = path.split(".")
        target = current
        for key in parents:
            target = target.get(key)
            if target is None:
                raise NotFoundError(f"{collection} {doc_id} has no {path}", id=doc_id)
        target[leaf] = (target.get(leaf) or 0) + delta
        return copy.deepcopy(current)


class InMemoryDocumentStore:
    """Хранилище документов с уникальными индексами и транзакциями."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = defaultdict(dict)
        self._unique: dict[str, list[str]] = {}
        self._lock = asyncio.Lock()

    def create_unique_index(self, collection: str, field_name: str) -> None:
        """Регистрирует уникальный индекс по полю коллекции."""
        fields = self._unique.setdefault(collection, [])
        if field_name not in fields:
            fields.append(field_name)

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[StoreSession, None]:
        """
        Эксклюзивная сессия: все операции внутри видят и пишут
        согласованное состояние.

        Example:
            async with store.transaction() as session:
                doc = session.get(ORDERS, order_id)
                if doc["status"] == "pending":
                    session.update(ORDERS, order_id, {"status": "accepted"})
        """
        async with self._lock:
            yield StoreSession(self)

    async def insert(self, collection: str, doc: Document) -> Document:
        async with self.transaction() as session:
            return session.insert(collection, doc)

    async def get(self, collection: str, doc_id: str) -> Document | None:
        async with self.transaction() as session:
            return session.get(collection, doc_id)

    async def find(self, collection: str, predicate: Predicate | None = None) -> list[Document]:
        async with self.transaction() as session:
            return session.find(collection, predicate)

    async def update(self, collection: str, doc_id: str, patch: Document) -> Document:
        async with self.transaction() as session:
            return session.update(collection, doc_id, patch)

    async def increment(self, collection: str, doc_id: str, path: str, delta: int = 1) -> Document:
        async with self.transaction() as session:
            return session.increment(collection, doc_id, path, delta)

    async def health_check(self) -> bool:
        """Хранилище в памяти всегда доступно."""
        return True


_memory_store: InMemoryDocumentStore | None = None


def get_memory_store() -> InMemoryDocumentStore:
    """Возвращает глобальный экземпляр хранилища в памяти."""
    global _memory_store
    if _memory_store is None:
        _memory_store = InMemoryDocumentStore()
        _memory_store.create_unique_index(USERS, "email")
    return _memory_store
