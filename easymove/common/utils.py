# easymove/common/utils.py
"""
Мелкие вспомогательные функции.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone


def round_half_up(value: float) -> int:
    """
    Округление до целого, половина вверх: 2.5 -> 3, -1.5 -> -1.
    Встроенный round() округляет половину к чётному.
    """
    return math.floor(value + 0.5)


def utcnow() -> datetime:
    """Текущее время в UTC (часы по умолчанию для сервисов)."""
    return datetime.now(timezone.utc)
