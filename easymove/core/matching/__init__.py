# easymove/core/matching/__init__.py
"""
Принятие заказов водителями и их готовность к работе.
"""

from easymove.core.matching.service import MatchingService

__all__ = [
    "MatchingService",
]
