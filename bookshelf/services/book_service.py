"""
Book service: listing through the local cache, add/edit with duplicate checks
and counter deltas, the bin (soft delete), and reading-history updates.

Every write follows the same order: checks, the book write itself, counter
deltas, then cache invalidation. A failure at any step skips the rest, so a
failed write never invalidates a cache.
"""

import dataclasses
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..domain.errors import DuplicateBookError, FormValidationError, NotFoundError, StoreError
from ..domain.models import Book, Listing, RestoreResult, format_timestamp, now_utc, to_epoch_ms
from ..domain.repositories import BOOKS, GENRES
from ..utils.local_cache import CacheKind
from ..utils.library_search import group_authors, library_book_matches_query
from ..utils.normalization import clean_isbn, is_isbn
from .context import ServiceContext
from .count_service import CountReconciliationService
from .duplicate_service import DuplicateDetector, DuplicateOverride
from .genre_service import GenreService
from .reading_service import set_current_read_dates, start_reread
from .series_service import SeriesService

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000

# Fields a caller may change through update_book, by attribute name.
EDITABLE_FIELDS = (
    'title', 'author', 'isbn', 'genres', 'series_id', 'series_position', 'rating',
    'cover_image_url', 'publisher', 'published_date', 'page_count', 'notes',
)


def days_remaining(book: Book, retention_days: int, now: Optional[datetime] = None) -> int:
    """Whole days left before a binned book is purged (0 once expired)."""
    if book.deleted_at is None:
        return retention_days
    elapsed_ms = to_epoch_ms(now or now_utc()) - to_epoch_ms(book.deleted_at)
    return max(0, retention_days - math.floor(elapsed_ms / DAY_MS))


# Expected JSON types of raw form values, checked when no form validator is set.
FORM_FIELD_TYPES = {
    'title': (str,),
    'author': (str,),
    'isbn': (str,),
    'seriesId': (str,),
    'seriesPosition': (int, float),
    'rating': (int,),
    'coverImageUrl': (str,),
    'publisher': (str,),
    'publishedDate': (str,),
    'pageCount': (int,),
    'notes': (str,),
}


def _check_form_types(raw: Dict[str, Any]) -> None:
    errors = {}
    for name, types in FORM_FIELD_TYPES.items():
        value = raw.get(name)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, types):
            errors[name] = f"Invalid value for {name}"
    genres = raw.get('genres')
    if genres is not None and (not isinstance(genres, list) or not all(isinstance(g, str) for g in genres)):
        errors['genres'] = 'Genres must be a list of genre ids'
    if errors:
        raise FormValidationError(errors)


def _validated_isbn(isbn: Optional[str]) -> Optional[str]:
    if not isbn:
        return None
    if not is_isbn(isbn):
        raise FormValidationError({'isbn': 'ISBN must have 10 or 13 digits'})
    return clean_isbn(isbn)


class BookService:
    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.counts = CountReconciliationService(ctx)
        self.duplicates = DuplicateDetector(ctx)
        self.series = SeriesService(ctx)

    # Reads

    async def get_books(self, user_id: str, force_refresh: bool = False, limit: Optional[int] = None) -> Listing:
        """Active books, newest first.

        With ``limit`` only the first page is fetched and the listing (and
        the cache entry written for it) is marked incomplete unless the page
        held the whole collection. Without ``limit`` only a complete cache
        entry is trusted.

        A cached page is cut from the active books. A fresh page is cut from
        the stored documents, binned ones included, so it may hold fewer than
        ``limit`` books.
        """
        if not force_refresh:
            entry = self.ctx.cache.read(user_id, CacheKind.BOOKS)
            if entry is not None:
                active = [doc for doc in entry.records if not doc.get('deletedAt')]
                if entry.is_complete or (limit is not None and len(active) >= limit):
                    page = active if limit is None else active[:limit]
                    is_complete = entry.is_complete and (limit is None or len(active) <= limit)
                    return Listing(self._active(page), is_complete, from_cache=True)

        try:
            docs = await self.ctx.store.list_all(
                user_id, BOOKS, order_by='createdAt', descending=True,
                limit=limit + 1 if limit is not None else None,
            )
        except StoreError as e:
            logger.error(f"Error loading books for user {user_id}: {e}")
            return Listing([], False, error=e.message)

        is_complete = limit is None or len(docs) <= limit
        docs = docs if limit is None else docs[:limit]
        self.ctx.cache.write(user_id, CacheKind.BOOKS, docs, is_complete=is_complete)
        return Listing(self._active(docs), is_complete)

    async def get_all_books(self, user_id: str, include_deleted: bool = False) -> List[Book]:
        """The whole collection, for export and analysis.

        Never answered from a partial cache entry. Store errors propagate.
        """
        entry = self.ctx.cache.read_complete(user_id, CacheKind.BOOKS)
        if entry is not None:
            docs = list(entry.records)
        else:
            docs = await self.ctx.store.list_all(user_id, BOOKS, order_by='createdAt', descending=True)
            self.ctx.cache.write(user_id, CacheKind.BOOKS, docs, is_complete=True)
        books = [Book.from_dict(doc) for doc in docs]
        return books if include_deleted else [b for b in books if not b.is_deleted]

    @staticmethod
    def _active(docs: List[Dict[str, Any]]) -> List[Book]:
        return [Book.from_dict(doc) for doc in docs if not doc.get('deletedAt')]

    async def get_book(self, user_id: str, book_id: str) -> Book:
        doc = await self.ctx.store.get(user_id, BOOKS, book_id)
        if doc is None:
            raise NotFoundError('book', book_id)
        return Book.from_dict(doc)

    async def export_books(self, user_id: str) -> List[Dict[str, Any]]:
        return [book.to_dict() for book in await self.get_all_books(user_id)]

    async def search_books(self, user_id: str, query: str) -> List[Book]:
        """Free-text search over the whole library, genre and series names included."""
        books = await self.get_all_books(user_id)
        genre_names = {g.id: g.name for g in await GenreService(self.ctx).list_genres(user_id)}
        series_names = {s.id: s.name for s in await self.series.list_series(user_id)}

        matches = []
        for book in books:
            doc = book.to_dict()
            doc['genreNames'] = [genre_names[g] for g in book.genres if g in genre_names]
            doc['seriesName'] = series_names.get(book.series_id)
            if library_book_matches_query(doc, query):
                matches.append(book)
        return matches

    async def group_authors(self, user_id: str) -> List[Dict[str, Any]]:
        """Book counts per author over the most recent ``author_scan_limit`` books."""
        limit = self.ctx.settings.author_scan_limit
        listing = await self.get_books(user_id, limit=limit)
        return group_authors([book.to_dict() for book in listing.records], limit=limit)

    # Writes

    async def add_book(self, user_id: str, book: Book, override: Optional[DuplicateOverride] = None) -> Book:
        """Add a book after a duplicate check.

        Raises:
            DuplicateBookError: A matching book exists and ``override`` was not
                granted for this title and author.
        """
        if not book.title.strip():
            raise FormValidationError({'title': 'Title is required'})
        book.isbn = _validated_isbn(book.isbn)

        if override is None or not override.applies_to(book.title, book.author):
            result = await self.duplicates.check_duplicate_book(user_id, book.isbn, book.title, book.author)
            if result.is_duplicate:
                raise DuplicateBookError(result)

        now = self.ctx.now()
        book.created_at = now
        book.updated_at = now
        book.deleted_at = None
        book.id = await self.ctx.store.add(user_id, BOOKS, book.to_dict())

        await self.counts.apply_genre_delta(user_id, added=book.genres)
        await self.counts.apply_series_delta(user_id, added_series_id=book.series_id)
        self.ctx.invalidate(user_id, CacheKind.BOOKS)
        logger.info(f"Added book {book.id} for user {user_id}")
        return book

    async def add_book_from_form(
        self, user_id: str, raw: Dict[str, Any], override: Optional[DuplicateOverride] = None
    ) -> Book:
        """Validate raw form values with the form validator, then add the book."""
        if self.ctx.form_validator is None:
            _check_form_types(raw)
            data = raw
        else:
            result = self.ctx.form_validator.validate('book', raw)
            if not result.is_valid:
                raise FormValidationError(result.errors)
            data = result.data or {}
        try:
            book = Book.from_dict(data)
        except (TypeError, ValueError) as e:
            raise FormValidationError({'rating': str(e)}) from e
        return await self.add_book(user_id, book, override=override)

    async def update_book(self, user_id: str, book_id: str, changes: Dict[str, Any]) -> Book:
        """Apply field changes and move counters for any genre or series change."""
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise FormValidationError({name: 'Field cannot be edited' for name in sorted(unknown)})

        current = await self.get_book(user_id, book_id)
        if 'isbn' in changes:
            changes = dict(changes, isbn=_validated_isbn(changes['isbn']))
        try:
            updated = dataclasses.replace(current, **changes, updated_at=self.ctx.now())
        except (TypeError, ValueError) as e:
            raise FormValidationError({'rating': str(e)}) from e

        before = current.to_dict()
        after = updated.to_dict()
        fields = {k: v for k, v in after.items() if k != 'id' and before.get(k) != v}
        await self.ctx.store.update(user_id, BOOKS, book_id, fields)

        if not current.is_deleted:
            old_genres, new_genres = set(current.genres), set(updated.genres)
            await self.counts.apply_genre_delta(
                user_id, added=new_genres - old_genres, removed=old_genres - new_genres
            )
            if current.series_id != updated.series_id:
                await self.counts.apply_series_delta(
                    user_id, added_series_id=updated.series_id, removed_series_id=current.series_id
                )
        self.ctx.invalidate(user_id, CacheKind.BOOKS)
        return updated

    # Bin

    async def soft_delete_book(self, user_id: str, book_id: str) -> Book:
        """Move a book to the bin and release its genre and series counts."""
        book = await self.get_book(user_id, book_id)
        if book.is_deleted:
            return book
        book.deleted_at = self.ctx.now()
        book.updated_at = book.deleted_at
        await self.ctx.store.update(user_id, BOOKS, book_id, {
            'deletedAt': to_epoch_ms(book.deleted_at),
            'updatedAt': format_timestamp(book.updated_at),
        })
        await self.counts.apply_genre_delta(user_id, removed=book.genres)
        await self.counts.apply_series_delta(user_id, removed_series_id=book.series_id)
        self.ctx.invalidate(user_id, CacheKind.BOOKS)
        return book

    async def restore_book(self, user_id: str, book_id: str) -> RestoreResult:
        """Bring a book back from the bin.

        Genres deleted in the meantime are dropped with a warning. A series
        that was soft-deleted is restored with the book; one that is gone is
        unlinked with a warning.
        """
        book = await self.get_book(user_id, book_id)
        if not book.is_deleted:
            return RestoreResult(book=book)
        warnings: List[str] = []
        series_restored = False
        fields: Dict[str, Any] = {'deletedAt': None}

        if book.series_id:
            series = await self.series.get_series(user_id, book.series_id)
            if series is None:
                book.series_id = None
                book.series_position = None
                fields.update(seriesId=None, seriesPosition=None)
                warnings.append('Series no longer exists')
            elif series.is_deleted:
                await self.series.restore_series(user_id, series.id)
                series_restored = True

        if book.genres:
            existing_ids = {doc['id'] for doc in await self.ctx.store.list_all(user_id, GENRES)}
            valid = [g for g in book.genres if g in existing_ids]
            removed = len(book.genres) - len(valid)
            if removed:
                book.genres = valid
                fields['genres'] = valid
                warnings.append(f"{removed} genre{'s' if removed > 1 else ''} no longer "
                                f"exist{'s' if removed == 1 else ''}")

        book.deleted_at = None
        book.updated_at = self.ctx.now()
        fields['updatedAt'] = format_timestamp(book.updated_at)
        await self.ctx.store.update(user_id, BOOKS, book_id, fields)

        await self.counts.apply_genre_delta(user_id, added=book.genres)
        await self.counts.apply_series_delta(user_id, added_series_id=book.series_id)
        self.ctx.invalidate(user_id, CacheKind.BOOKS, CacheKind.GENRES, CacheKind.SERIES)
        return RestoreResult(book=book, warnings=warnings, series_restored=series_restored)

    async def permanently_delete_book(self, user_id: str, book_id: str) -> bool:
        doc = await self.ctx.store.get(user_id, BOOKS, book_id)
        if doc is None:
            return False
        book = Book.from_dict(doc)
        await self.ctx.store.delete(user_id, BOOKS, book_id)
        if not book.is_deleted:
            await self.counts.apply_genre_delta(user_id, removed=book.genres)
            await self.counts.apply_series_delta(user_id, removed_series_id=book.series_id)
        self.ctx.invalidate(user_id, CacheKind.BOOKS)
        return True

    async def list_bin(self, user_id: str) -> List[Book]:
        docs = await self.ctx.store.list_all(user_id, BOOKS, order_by='deletedAt', descending=True)
        return [Book.from_dict(doc) for doc in docs if doc.get('deletedAt')]

    async def _purge(self, user_id: str, books: List[Book]) -> int:
        if not books:
            return 0
        batch = self.ctx.store.batch(user_id)
        for book in books:
            batch.delete(BOOKS, book.id)
        await batch.commit()
        self.ctx.invalidate(user_id, CacheKind.BOOKS)
        return len(books)

    async def empty_bin(self, user_id: str) -> int:
        return await self._purge(user_id, await self.list_bin(user_id))

    async def purge_expired(self, user_id: str) -> int:
        """Permanently delete binned books older than the retention period."""
        retention_ms = self.ctx.settings.bin_retention_days * DAY_MS
        now_ms = to_epoch_ms(self.ctx.now())
        expired = [
            book for book in await self.list_bin(user_id)
            if now_ms - to_epoch_ms(book.deleted_at) > retention_ms
        ]
        purged = await self._purge(user_id, expired)
        if purged:
            logger.info(f"Purged {purged} expired books from the bin of user {user_id}")
        return purged

    # Reading history

    async def start_reread(self, user_id: str, book_id: str) -> Book:
        book = await self.get_book(user_id, book_id)
        book.reads = start_reread(book.reads, self.ctx.today())
        return await self._save_reads(user_id, book)

    async def update_reading_dates(
        self,
        user_id: str,
        book_id: str,
        started_at: Optional[datetime],
        finished_at: Optional[datetime],
    ) -> Book:
        book = await self.get_book(user_id, book_id)
        book.reads = set_current_read_dates(book.reads, started_at, finished_at)
        return await self._save_reads(user_id, book)

    async def _save_reads(self, user_id: str, book: Book) -> Book:
        book.updated_at = self.ctx.now()
        await self.ctx.store.update(user_id, BOOKS, book.id, {
            'reads': [r.to_dict() for r in book.reads],
            'updatedAt': format_timestamp(book.updated_at),
        })
        self.ctx.invalidate(user_id, CacheKind.BOOKS)
        return book
