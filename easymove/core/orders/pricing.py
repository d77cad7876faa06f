# easymove/core/orders/pricing.py
"""
Оценка стоимости трансфера.

Эталонная формула:
    base × коэффициент расстояния × надбавка за пассажиров

Коэффициент расстояния детерминирован: берётся из хэша нормализованной
пары адресов (одинаковый маршрут всегда стоит одинаково) либо из
генератора случайных чисел с заданным seed.
"""

from __future__ import annotations

import hashlib
import random
from typing import Callable

from easymove.common.constants import PricingMode
from easymove.common.utils import round_half_up
from easymove.config.loader import FareSettings
from easymove.core.orders.models import Address

# (pickup, destination, passenger_count) -> цена в целых единицах валюты
PricingFunction = Callable[[Address, Address, int], int]


class FareCalculator:
    """Эталонная реализация PricingFunction."""

    def __init__(
        self,
        base_price: float = 35.0,
        factor_min: float = 0.8,
        factor_max: float = 1.3,
        passenger_surcharge: float = 1.2,
        surcharge_threshold: int = 2,
        mode: PricingMode = PricingMode.HASHED,
        seed: int | None = None,
    ) -> None:
        if factor_min > factor_max:
            raise ValueError("factor_min больше factor_max")
        self.base_price = base_price
        self.factor_min = factor_min
        self.factor_max = factor_max
        self.passenger_surcharge = passenger_surcharge
        self.surcharge_threshold = surcharge_threshold
        self.mode = mode
        self._rng = random.Random(seed)

    @classmethod
    def from_config(cls, fares: FareSettings) -> "FareCalculator":
        """Создаёт калькулятор по секции fares конфигурации."""
        return cls(
            base_price=fares.BASE_PRICE,
            factor_min=fares.DISTANCE_FACTOR_MIN,
            factor_max=fares.DISTANCE_FACTOR_MAX,
            passenger_surcharge=fares.PASSENGER_SURCHARGE,
            surcharge_threshold=fares.SURCHARGE_PASSENGER_THRESHOLD,
            mode=fares.PRICING_MODE,
            seed=fares.PRICING_SEED,
        )

    def _unit_value(self, pickup: Address, destination: Address) -> float:
        """Число в [0, 1), из которого строится коэффициент расстояния."""
        if self.mode == PricingMode.SEEDED:
            return self._rng.random()
        key = f"{pickup.normalized()}->{destination.normalized()}".encode("utf-8")
        digest = hashlib.sha256(key).digest()
        return int.from_bytes(digest[:8], "big") / 2 ** 64

    def distance_factor(self, pickup: Address, destination: Address) -> float:
        unit = self._unit_value(pickup, destination)
        return self.factor_min + unit * (self.factor_max - self.factor_min)

    def surcharge(self, passenger_count: int) -> float:
        """Надбавка применяется, когда пассажиров больше порога."""
        if passenger_count > self.surcharge_threshold:
            return self.passenger_surcharge
        return 1.0

    def estimate(self, pickup: Address, destination: Address, passenger_count: int) -> int:
        price = (
            self.base_price
            * self.distance_factor(pickup, destination)
            * self.surcharge(passenger_count)
        )
        return round_half_up(price)

    def __call__(self, pickup: Address, destination: Address, passenger_count: int) -> int:
        return self.estimate(pickup, destination, passenger_count)
