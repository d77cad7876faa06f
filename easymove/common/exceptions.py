# easymove/common/exceptions.py
"""
Типизированные ошибки доменного слоя.

Каждый вид ошибки подразумевает свою стратегию восстановления у вызывающей
стороны, поэтому сервисы никогда не подменяют один вид другим:

- InputValidationError: клиент должен исправить данные и отправить заново;
- ForbiddenError: у актора нет роли или владения, повтор бессмыслен;
- ConflictError: проиграна гонка или нарушено правило уникальности,
  можно повторить с другой целью (например, с другим заказом);
- PreconditionFailedError: состояние актора недостаточно (неполный профиль);
- NotFoundError: сущность отсутствует;
- InvalidTransitionError: переход статуса запрещён машиной состояний;
- TransientStoreError: временный конфликт хранилища, допускает один повтор.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Базовая ошибка доменного слоя."""

    code: str = "domain_error"
    status_code: int = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Полезная нагрузка ошибки для транспортного слоя."""
        payload: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InputValidationError(DomainError):
    """Некорректные или отсутствующие входные данные."""

    code = "validation_error"
    status_code = 422

    def __init__(self, message: str, errors: dict[str, str] | None = None) -> None:
        super().__init__(message, errors=errors or {})
        self.errors = errors or {}


class ForbiddenError(DomainError):
    """Актор не имеет нужной роли или не владеет сущностью."""

    code = "forbidden"
    status_code = 403


class ConflictError(DomainError):
    """Проигранная гонка или нарушение правила единственности."""

    code = "conflict"
    status_code = 409


class DuplicateKeyError(ConflictError):
    """Нарушено ограничение уникальности хранилища."""

    code = "duplicate_key"


class PreconditionFailedError(DomainError):
    """Состояние актора не позволяет выполнить операцию."""

    code = "precondition_failed"
    status_code = 412


class NotFoundError(DomainError):
    """Сущность не найдена."""

    code = "not_found"
    status_code = 404


class InvalidTransitionError(DomainError):
    """Переход статуса не разрешён из текущего состояния."""

    code = "invalid_transition"
    status_code = 409


class TransientStoreError(DomainError):
    """Временный конфликт записи в хранилище (serialization failure, deadlock)."""

    code = "transient_store_error"
    status_code = 503
