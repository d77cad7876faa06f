# tests/common/test_exceptions.py
"""
Тесты доменных ошибок.
"""

import pytest

from easymove.common.exceptions import (
    ConflictError,
    DomainError,
    DuplicateKeyError,
    ForbiddenError,
    InputValidationError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionFailedError,
    TransientStoreError,
)


class TestDomainErrors:
    """Коды ошибок и HTTP статусы."""

    @pytest.mark.parametrize(
        "error_cls,code,status_code",
        [
            (InputValidationError, "validation_error", 422),
            (ForbiddenError, "forbidden", 403),
            (ConflictError, "conflict", 409),
            (DuplicateKeyError, "duplicate_key", 409),
            (PreconditionFailedError, "precondition_failed", 412),
            (NotFoundError, "not_found", 404),
            (InvalidTransitionError, "invalid_transition", 409),
            (TransientStoreError, "transient_store_error", 503),
        ],
    )
    def test_codes(self, error_cls: type[DomainError], code: str, status_code: int) -> None:
        error = error_cls("message")

        assert isinstance(error, DomainError)
        assert error.code == code
        assert error.status_code == status_code

    def test_duplicate_key_is_conflict(self) -> None:
        """Нарушение уникальности обрабатывается как конфликт."""
        with pytest.raises(ConflictError):
            raise DuplicateKeyError("Email уже зарегистрирован", field="email")

    def test_to_dict_without_details(self) -> None:
        assert NotFoundError("Заказ не найден").to_dict() == {
            "error": "not_found",
            "message": "Заказ не найден",
        }

    def test_to_dict_with_details(self) -> None:
        error = InvalidTransitionError("Переход запрещён", current="completed", requested="cancelled")

        assert error.to_dict()["details"] == {"current": "completed", "requested": "cancelled"}
        assert str(error) == "Переход запрещён"

    def test_validation_errors_collected(self) -> None:
        error = InputValidationError(
            "Некорректный заказ",
            {"passenger_count": "от 1 до 8", "pickup.address": "обязательно"},
        )

        assert error.errors["passenger_count"] == "от 1 до 8"
        assert error.to_dict()["details"]["errors"] == error.errors

    def test_validation_errors_default_empty(self) -> None:
        assert InputValidationError("Некорректные данные").errors == {}
