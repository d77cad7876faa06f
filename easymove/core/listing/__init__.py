# easymove/core/listing/__init__.py
"""
Списки заказов по ролям.
"""

from easymove.core.listing.service import ListingService, OrderFilters

__all__ = [
    "ListingService",
    "OrderFilters",
]
