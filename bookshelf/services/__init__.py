"""
Services package.

Each service takes a ServiceContext; every operation takes the user id.
"""

from .context import ServiceContext, Settings
from .book_service import BookService
from .count_service import CountReconciliationService
from .duplicate_service import DuplicateDetector, DuplicateOverride
from .genre_service import GenreService
from .series_service import SeriesService
from .wishlist_service import WishlistService

__all__ = [
    'ServiceContext',
    'Settings',
    'BookService',
    'CountReconciliationService',
    'DuplicateDetector',
    'DuplicateOverride',
    'GenreService',
    'SeriesService',
    'WishlistService',
]
