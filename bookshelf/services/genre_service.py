"""
Genre management: listing, create/update with uniqueness checks, cascading
delete and merge.
"""

import logging
from typing import Any, Dict, List, Optional

from ..domain.errors import MergeError, NotFoundError, StoreError
from ..domain.models import Genre, Listing, MergeResult, format_timestamp
from ..domain.repositories import BOOKS, GENRES
from ..utils.local_cache import CacheKind
from .context import ServiceContext
from .uniqueness import (
    ensure_genre_color_available,
    ensure_genre_name_available,
    pick_genre_color,
)

logger = logging.getLogger(__name__)


class GenreService:
    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx

    async def _fresh_genres(self, user_id: str) -> List[Genre]:
        docs = await self.ctx.store.list_all(user_id, GENRES, order_by='normalizedName')
        return [Genre.from_dict(doc) for doc in docs]

    async def list_genres(self, user_id: str, force_refresh: bool = False) -> Listing:
        """All genres of a user, sorted by name. Served from the cache when possible."""
        if not force_refresh:
            entry = self.ctx.cache.read_complete(user_id, CacheKind.GENRES)
            if entry is not None:
                return Listing([Genre.from_dict(r) for r in entry.records], True, from_cache=True)
        try:
            genres = await self._fresh_genres(user_id)
        except StoreError as e:
            logger.error(f"Error loading genres for user {user_id}: {e}")
            return Listing([], False, error=e.message)
        self.ctx.cache.write(user_id, CacheKind.GENRES, [g.to_dict() for g in genres], is_complete=True)
        return Listing(genres, True)

    async def get_genre(self, user_id: str, genre_id: str) -> Genre:
        doc = await self.ctx.store.get(user_id, GENRES, genre_id)
        if doc is None:
            raise NotFoundError('genre', genre_id)
        return Genre.from_dict(doc)

    async def create_genre(self, user_id: str, name: str, color: Optional[str] = None) -> Genre:
        """Create a genre with a unique name and colour.

        Without an explicit colour the first free palette colour is assigned.

        Raises:
            GenreNameExistsError: Another genre normalizes to the same name.
            GenreColorInUseError: Another genre already uses ``color``.
            FormValidationError: Empty name or malformed colour.
        """
        genres = await self._fresh_genres(user_id)
        normalized = ensure_genre_name_available(genres, name)
        if color:
            ensure_genre_color_available(genres, color)
        else:
            color = pick_genre_color(genres)

        now = self.ctx.now()
        genre = Genre(
            name=name.strip(),
            normalized_name=normalized,
            color=color,
            book_count=0,
            created_at=now,
            updated_at=now,
        )
        genre.id = await self.ctx.store.add(user_id, GENRES, genre.to_dict())
        self.ctx.invalidate(user_id, CacheKind.GENRES)
        logger.info(f"Created genre {genre.id} ({genre.name}) for user {user_id}")
        return genre

    async def update_genre(self, user_id: str, genre_id: str, patch: Dict[str, Any]) -> Genre:
        """Rename and/or recolour a genre. Only ``name`` and ``color`` are accepted."""
        genres = await self._fresh_genres(user_id)
        current = next((g for g in genres if g.id == genre_id), None)
        if current is None:
            raise NotFoundError('genre', genre_id)

        fields: Dict[str, Any] = {}
        if patch.get('name') is not None:
            current.normalized_name = ensure_genre_name_available(genres, patch['name'], exclude_id=genre_id)
            current.name = patch['name'].strip()
            fields['name'] = current.name
            fields['normalizedName'] = current.normalized_name
        if patch.get('color') is not None:
            current.color = ensure_genre_color_available(genres, patch['color'], exclude_id=genre_id)
            fields['color'] = current.color
        if not fields:
            return current

        current.updated_at = self.ctx.now()
        fields['updatedAt'] = format_timestamp(current.updated_at)
        await self.ctx.store.update(user_id, GENRES, genre_id, fields)
        self.ctx.invalidate(user_id, CacheKind.GENRES)
        return current

    async def delete_genre(self, user_id: str, genre_id: str) -> int:
        """Delete a genre and remove it from every active book, in one batch.

        Returns the number of books that were updated. Binned books keep the
        stale id; restoring them drops it.
        """
        if await self.ctx.store.get(user_id, GENRES, genre_id) is None:
            raise NotFoundError('genre', genre_id)

        books = await self.ctx.store.find_by_field(user_id, BOOKS, 'genres', genre_id, contains=True)
        now = format_timestamp(self.ctx.now())
        batch = self.ctx.store.batch(user_id)
        touched = 0
        for book in books:
            if book.get('deletedAt'):
                continue
            remaining = [g for g in book.get('genres') or [] if g != genre_id]
            batch.update(BOOKS, book['id'], {'genres': remaining, 'updatedAt': now})
            touched += 1
        batch.delete(GENRES, genre_id)
        await batch.commit()

        self.ctx.invalidate(user_id, CacheKind.GENRES)
        if touched:
            self.ctx.invalidate(user_id, CacheKind.BOOKS)
        logger.info(f"Deleted genre {genre_id} for user {user_id}, {touched} books updated")
        return touched

    async def merge_genres(self, user_id: str, source_id: str, target_id: str) -> MergeResult:
        """Move every active book from ``source_id`` to ``target_id`` and delete the source."""
        if source_id == target_id:
            raise MergeError("Cannot merge a genre into itself")
        await self.get_genre(user_id, source_id)
        await self.get_genre(user_id, target_id)

        books = await self.ctx.store.find_by_field(user_id, BOOKS, 'genres', source_id, contains=True)
        now = format_timestamp(self.ctx.now())
        batch = self.ctx.store.batch(user_id)
        updated = 0
        gained = 0
        for book in books:
            if book.get('deletedAt'):
                continue
            genres = [g for g in book.get('genres') or [] if g != source_id]
            if target_id not in genres:
                genres.append(target_id)
                gained += 1
            batch.update(BOOKS, book['id'], {'genres': genres, 'updatedAt': now})
            updated += 1
        if gained:
            batch.increment(GENRES, target_id, 'bookCount', gained)
        batch.update(GENRES, target_id, {'updatedAt': now})
        batch.delete(GENRES, source_id)
        await batch.commit()

        self.ctx.invalidate(user_id, CacheKind.GENRES)
        if updated:
            self.ctx.invalidate(user_id, CacheKind.BOOKS)
        return MergeResult(books_updated=updated)
