"""
Series management.

Series follow the genre rules for names (unique after normalization) and
counts (``bookCount`` of active member books), and add soft delete, expected
books and merge suggestions.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from ..domain.errors import FormValidationError, MergeError, NotFoundError, StoreError
from ..domain.models import ExpectedBook, Listing, MergeResult, Series, format_timestamp
from ..domain.repositories import BOOKS, SERIES
from ..utils.local_cache import CacheKind
from ..utils.normalization import normalize_series_name
from .context import ServiceContext
from .uniqueness import ensure_series_name_available

logger = logging.getLogger(__name__)

SERIES_NAME_SUFFIXES = ("series", "saga", "trilogy", "cycle", "chronicles")


def _strip_suffixes(name: str) -> str:
    for suffix in SERIES_NAME_SUFFIXES:
        name = re.sub(rf"\s*{suffix}\s*$", "", name).strip()
    return name


def are_similar_series_names(first: str, second: str) -> bool:
    """Whether two series names look like the same series."""
    a = normalize_series_name(first)
    b = normalize_series_name(second)
    if a == b:
        return True
    if a in b or b in a:
        return True
    stripped = _strip_suffixes(a)
    return stripped == _strip_suffixes(b) and len(stripped) > 3


def find_potential_duplicates(series: List[Series]) -> List[List[Series]]:
    """Group series whose names are similar enough to suggest a merge."""
    groups = []
    processed = set()
    for candidate in series:
        if candidate.id in processed:
            continue
        matches = [
            other for other in series
            if other.id != candidate.id and other.id not in processed
            and are_similar_series_names(candidate.name, other.name)
        ]
        if matches:
            group = [candidate] + matches
            processed.update(s.id for s in group)
            groups.append(group)
    return groups


def _sorted_expected(books: List[ExpectedBook]) -> List[ExpectedBook]:
    # Position order, unpositioned entries last.
    return sorted(books, key=lambda b: (b.position is None, b.position or 0))


def _is_same_expected(a: ExpectedBook, b: ExpectedBook) -> bool:
    return bool(a.isbn and a.isbn == b.isbn) or a.title.lower() == b.title.lower()


def _positive_or_none(value: Optional[int]) -> Optional[int]:
    return value if value and value > 0 else None


class SeriesService:
    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx

    async def _fresh_series(self, user_id: str, include_deleted: bool = False) -> List[Series]:
        docs = await self.ctx.store.list_all(user_id, SERIES, order_by='normalizedName')
        series = [Series.from_dict(doc) for doc in docs]
        return series if include_deleted else [s for s in series if not s.is_deleted]

    async def list_series(self, user_id: str, force_refresh: bool = False) -> Listing:
        """Active series sorted by name. Soft-deleted series are left out."""
        if not force_refresh:
            entry = self.ctx.cache.read_complete(user_id, CacheKind.SERIES)
            if entry is not None:
                return Listing([Series.from_dict(r) for r in entry.records], True, from_cache=True)
        try:
            series = await self._fresh_series(user_id)
        except StoreError as e:
            logger.error(f"Error loading series for user {user_id}: {e}")
            return Listing([], False, error=e.message)
        self.ctx.cache.write(user_id, CacheKind.SERIES, [s.to_dict() for s in series], is_complete=True)
        return Listing(series, True)

    async def get_series(self, user_id: str, series_id: str) -> Optional[Series]:
        """A series by id, soft-deleted ones included."""
        doc = await self.ctx.store.get(user_id, SERIES, series_id)
        return Series.from_dict(doc) if doc else None

    async def _require(self, user_id: str, series_id: str) -> Series:
        series = await self.get_series(user_id, series_id)
        if series is None:
            raise NotFoundError('series', series_id)
        return series

    async def find_series_by_name(self, user_id: str, name: str) -> Optional[Series]:
        normalized = normalize_series_name(name)
        listing = await self.list_series(user_id)
        return next((s for s in listing.records if s.normalized_name == normalized), None)

    async def create_series(
        self,
        user_id: str,
        name: str,
        description: Optional[str] = None,
        total_books: Optional[int] = None,
    ) -> Series:
        existing = await self._fresh_series(user_id)
        normalized = ensure_series_name_available(existing, name)
        now = self.ctx.now()
        series = Series(
            name=name.strip(),
            normalized_name=normalized,
            description=(description or "").strip() or None,
            total_books=_positive_or_none(total_books),
            created_at=now,
            updated_at=now,
        )
        series.id = await self.ctx.store.add(user_id, SERIES, series.to_dict())
        self.ctx.invalidate(user_id, CacheKind.SERIES)
        return series

    async def update_series(self, user_id: str, series_id: str, patch: Dict[str, Any]) -> Series:
        """Update name, description, total_books and/or expected_books."""
        existing = await self._fresh_series(user_id, include_deleted=True)
        current = next((s for s in existing if s.id == series_id), None)
        if current is None:
            raise NotFoundError('series', series_id)

        fields: Dict[str, Any] = {}
        if patch.get('name') is not None:
            active = [s for s in existing if not s.is_deleted]
            current.normalized_name = ensure_series_name_available(active, patch['name'], exclude_id=series_id)
            current.name = patch['name'].strip()
            fields['name'] = current.name
            fields['normalizedName'] = current.normalized_name
        if 'description' in patch:
            current.description = (patch['description'] or "").strip() or None
            fields['description'] = current.description
        if 'total_books' in patch:
            current.total_books = _positive_or_none(patch['total_books'])
            fields['totalBooks'] = current.total_books
        if 'expected_books' in patch:
            current.expected_books = list(patch['expected_books'] or [])
            fields['expectedBooks'] = [b.to_dict() for b in current.expected_books]

        current.updated_at = self.ctx.now()
        fields['updatedAt'] = format_timestamp(current.updated_at)
        await self.ctx.store.update(user_id, SERIES, series_id, fields)
        self.ctx.invalidate(user_id, CacheKind.SERIES)
        return current

    async def delete_series(self, user_id: str, series_id: str) -> int:
        """Hard-delete a series and unlink every book from it, in one batch.

        Returns the number of books unlinked.
        """
        await self._require(user_id, series_id)
        books = await self.ctx.store.find_by_field(user_id, BOOKS, 'seriesId', series_id)
        now = format_timestamp(self.ctx.now())
        batch = self.ctx.store.batch(user_id)
        for book in books:
            batch.update(BOOKS, book['id'], {'seriesId': None, 'seriesPosition': None, 'updatedAt': now})
        batch.delete(SERIES, series_id)
        await batch.commit()

        self.ctx.invalidate(user_id, CacheKind.SERIES)
        if books:
            self.ctx.invalidate(user_id, CacheKind.BOOKS)
        return len(books)

    async def soft_delete_series(self, user_id: str, series_id: str) -> None:
        now = format_timestamp(self.ctx.now())
        await self.ctx.store.update(user_id, SERIES, series_id, {'deletedAt': now, 'updatedAt': now})
        self.ctx.invalidate(user_id, CacheKind.SERIES)

    async def restore_series(self, user_id: str, series_id: str) -> None:
        now = format_timestamp(self.ctx.now())
        await self.ctx.store.update(user_id, SERIES, series_id, {'deletedAt': None, 'updatedAt': now})
        self.ctx.invalidate(user_id, CacheKind.SERIES)

    async def merge_series(self, user_id: str, source_id: str, target_id: str) -> MergeResult:
        """Move all books and expected books from ``source_id`` into ``target_id``."""
        if source_id == target_id:
            raise MergeError("Cannot merge a series into itself")
        source = await self._require(user_id, source_id)
        target = await self._require(user_id, target_id)

        books = await self.ctx.store.find_by_field(user_id, BOOKS, 'seriesId', source_id)
        now = format_timestamp(self.ctx.now())
        batch = self.ctx.store.batch(user_id)
        for book in books:
            batch.update(BOOKS, book['id'], {'seriesId': target_id, 'updatedAt': now})

        merged = list(target.expected_books)
        for candidate in source.expected_books:
            if not any(_is_same_expected(candidate, kept) for kept in merged):
                merged.append(candidate)

        moved_active = sum(1 for book in books if not book.get('deletedAt'))
        new_count = target.book_count + moved_active
        total_books = max(target.total_books or 0, source.total_books or 0, new_count + len(merged))
        if moved_active:
            batch.increment(SERIES, target_id, 'bookCount', moved_active)
        batch.update(SERIES, target_id, {
            'totalBooks': total_books or None,
            'expectedBooks': [b.to_dict() for b in _sorted_expected(merged)],
            'updatedAt': now,
        })
        batch.delete(SERIES, source_id)
        await batch.commit()

        self.ctx.invalidate(user_id, CacheKind.SERIES)
        if books:
            self.ctx.invalidate(user_id, CacheKind.BOOKS)
        return MergeResult(
            books_updated=len(books),
            expected_books_merged=len(merged) - len(target.expected_books),
        )

    async def add_expected_book(self, user_id: str, series_id: str, book: ExpectedBook) -> Series:
        series = await self._require(user_id, series_id)
        title = (book.title or "").strip()
        if not title:
            raise FormValidationError({'title': 'Title is required'})
        candidate = ExpectedBook(
            title=title,
            isbn=(book.isbn or "").strip() or None,
            position=book.position or None,
            source=book.source or 'manual',
        )
        if any(_is_same_expected(candidate, existing) for existing in series.expected_books):
            raise FormValidationError({'title': 'Book already exists in expected books'})
        expected = _sorted_expected(series.expected_books + [candidate])
        return await self.update_series(user_id, series_id, {'expected_books': expected})

    async def remove_expected_book(self, user_id: str, series_id: str, index: int) -> Series:
        series = await self._require(user_id, series_id)
        if not 0 <= index < len(series.expected_books):
            raise FormValidationError({'index': 'Invalid book index'})
        expected = list(series.expected_books)
        del expected[index]
        return await self.update_series(user_id, series_id, {'expected_books': expected})
