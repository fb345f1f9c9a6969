"""
Duplicate detection for books and wishlist items.

Two tiers, first match wins:

1. Exact ISBN, as an indexed point query.
2. Normalized title + author, compared client-side over the most recent
   ``duplicate_check_limit`` records. Older records are not checked.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ..domain.models import Book, DuplicateCheckResult, MatchType, WishlistItem
from ..domain.repositories import BOOKS, WISHLIST
from ..utils.normalization import clean_isbn, normalize_text
from .context import ServiceContext

logger = logging.getLogger(__name__)


def _title_author_key(title: Optional[str], author: Optional[str]):
    return normalize_text(title).strip(), normalize_text(author).strip()


@dataclass(frozen=True)
class DuplicateOverride:
    """An "add anyway" grant for the title and author the user was warned about.

    Editing either field after the warning makes the grant stop applying, so
    the check has to run again.
    """
    title: str
    author: str

    @classmethod
    def grant(cls, title: str, author: str) -> "DuplicateOverride":
        normalized_title, normalized_author = _title_author_key(title, author)
        return cls(title=normalized_title, author=normalized_author)

    def applies_to(self, title: str, author: str) -> bool:
        return (self.title, self.author) == _title_author_key(title, author)


@dataclass
class WishlistDuplicate:
    """Where a wishlist candidate already exists."""
    source: str  # "wishlist" or "library"
    existing: Union[WishlistItem, Book]
    match_type: MatchType


class DuplicateDetector:
    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx

    async def _match_isbn(self, user_id: str, collection: str, isbn: Optional[str]) -> Optional[Dict[str, Any]]:
        isbn = clean_isbn(isbn)
        if not isbn:
            return None
        for doc in await self.ctx.store.find_by_field(user_id, collection, 'isbn', isbn):
            if not doc.get('deletedAt'):
                return doc
        return None

    async def _match_title_author(
        self, user_id: str, collection: str, title: str, author: str
    ) -> Optional[Dict[str, Any]]:
        key = _title_author_key(title, author)
        if not key[0]:
            return None
        recent: List[Dict[str, Any]] = await self.ctx.store.list_all(
            user_id, collection,
            order_by='createdAt', descending=True,
            limit=self.ctx.settings.duplicate_check_limit,
        )
        for doc in recent:
            if doc.get('deletedAt'):
                continue
            if _title_author_key(doc.get('title'), doc.get('author')) == key:
                return doc
        return None

    async def check_duplicate_book(
        self,
        user_id: str,
        isbn: Optional[str],
        title: str,
        author: str,
    ) -> DuplicateCheckResult:
        """Check a candidate book against the user's library."""
        existing = await self._match_isbn(user_id, BOOKS, isbn)
        if existing:
            return DuplicateCheckResult(True, MatchType.ISBN, Book.from_dict(existing))

        existing = await self._match_title_author(user_id, BOOKS, title, author)
        if existing:
            logger.debug(f"Book '{title}' matches existing book {existing['id']} by title and author")
            return DuplicateCheckResult(True, MatchType.TITLE_AUTHOR, Book.from_dict(existing))

        return DuplicateCheckResult()

    async def check_wishlist_duplicate(
        self,
        user_id: str,
        isbn: Optional[str],
        title: str,
        author: str,
        include_library: bool = True,
    ) -> Optional[WishlistDuplicate]:
        """Check a candidate wishlist item against the wishlist, then the library."""
        existing = await self._match_isbn(user_id, WISHLIST, isbn)
        if existing:
            return WishlistDuplicate('wishlist', WishlistItem.from_dict(existing), MatchType.ISBN)

        existing = await self._match_title_author(user_id, WISHLIST, title, author)
        if existing:
            return WishlistDuplicate('wishlist', WishlistItem.from_dict(existing), MatchType.TITLE_AUTHOR)

        if include_library:
            result = await self.check_duplicate_book(user_id, isbn, title, author)
            if result.is_duplicate:
                return WishlistDuplicate('library', result.existing_book, result.match_type)

        return None
