# easymove/core/stats/__init__.py
"""
Статистика водителя.
"""

from easymove.core.stats.service import DriverStats, StatsService

__all__ = [
    "DriverStats",
    "StatsService",
]
