"""
Wishlist service.

Items are duplicate-checked against the wishlist and the library. Moving an
item to the library enriches it from the metadata provider when it has an
ISBN; a slow or failing provider only means the book is added as-is.
"""

import logging
from typing import Any, Dict

from ..domain.errors import DuplicateWishlistItemError, FormValidationError, NotFoundError, StoreError
from ..domain.models import Book, Listing, WishlistItem, WishlistPriority, format_timestamp
from ..domain.repositories import WISHLIST
from ..utils.local_cache import CacheKind
from ..utils.normalization import clean_isbn
from .book_service import BookService
from .context import ServiceContext
from .duplicate_service import DuplicateDetector, DuplicateOverride

logger = logging.getLogger(__name__)

# update_item only touches these; everything else is fixed at creation.
UPDATABLE_FIELDS = {'priority': 'priority', 'notes': 'notes', 'cover_image_url': 'coverImageUrl'}


class WishlistService:
    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.duplicates = DuplicateDetector(ctx)
        self.books = BookService(ctx)

    async def list_items(self, user_id: str, force_refresh: bool = False) -> Listing:
        if not force_refresh:
            entry = self.ctx.cache.read_complete(user_id, CacheKind.WISHLIST)
            if entry is not None:
                return Listing([WishlistItem.from_dict(r) for r in entry.records], True, from_cache=True)
        try:
            docs = await self.ctx.store.list_all(user_id, WISHLIST, order_by='createdAt', descending=True)
        except StoreError as e:
            logger.error(f"Error loading wishlist for user {user_id}: {e}")
            return Listing([], False, error=e.message)
        self.ctx.cache.write(user_id, CacheKind.WISHLIST, docs, is_complete=True)
        return Listing([WishlistItem.from_dict(doc) for doc in docs], True)

    async def get_item(self, user_id: str, item_id: str) -> WishlistItem:
        doc = await self.ctx.store.get(user_id, WISHLIST, item_id)
        if doc is None:
            raise NotFoundError('wishlist item', item_id)
        return WishlistItem.from_dict(doc)

    async def add_item(self, user_id: str, item: WishlistItem) -> WishlistItem:
        """Add an item unless it is already wishlisted or owned.

        Raises:
            DuplicateWishlistItemError: With ``source`` "wishlist" or "library".
        """
        item.title = item.title.strip()
        item.author = item.author.strip()
        if not item.title:
            raise FormValidationError({'title': 'Title is required'})
        item.isbn = clean_isbn(item.isbn) or None

        duplicate = await self.duplicates.check_wishlist_duplicate(user_id, item.isbn, item.title, item.author)
        if duplicate is not None:
            raise DuplicateWishlistItemError(duplicate.existing, duplicate.source)

        now = self.ctx.now()
        item.created_at = now
        item.updated_at = now
        item.id = await self.ctx.store.add(user_id, WISHLIST, item.to_dict())
        self.ctx.invalidate(user_id, CacheKind.WISHLIST)
        return item

    async def update_item(self, user_id: str, item_id: str, updates: Dict[str, Any]) -> WishlistItem:
        """Change priority, notes or cover. Other keys are ignored."""
        item = await self.get_item(user_id, item_id)
        fields: Dict[str, Any] = {}
        for name, stored_name in UPDATABLE_FIELDS.items():
            if name not in updates:
                continue
            value = updates[name]
            if name == 'priority':
                try:
                    value = WishlistPriority(value) if value else None
                except ValueError as e:
                    raise FormValidationError({'priority': 'Priority must be high, medium or low'}) from e
                fields[stored_name] = value.value if value else None
            else:
                fields[stored_name] = value
            setattr(item, name, value)
        if not fields:
            return item

        item.updated_at = self.ctx.now()
        fields['updatedAt'] = format_timestamp(item.updated_at)
        await self.ctx.store.update(user_id, WISHLIST, item_id, fields)
        self.ctx.invalidate(user_id, CacheKind.WISHLIST)
        return item

    async def remove_item(self, user_id: str, item_id: str) -> bool:
        removed = await self.ctx.store.delete(user_id, WISHLIST, item_id)
        if removed:
            self.ctx.invalidate(user_id, CacheKind.WISHLIST)
        return removed

    async def move_to_library(self, user_id: str, item_id: str) -> Book:
        """Create a library book from a wishlist item, then drop the item.

        The library duplicate check is skipped for the item's title and author.
        """
        item = await self.get_item(user_id, item_id)
        metadata = await self.ctx.lookup_isbn(item.isbn) if item.isbn else None

        book = Book(
            title=item.title,
            author=item.author,
            isbn=item.isbn,
            cover_image_url=item.cover_image_url,
            publisher=item.publisher,
            published_date=item.published_date,
            page_count=item.page_count,
            notes=item.notes,
        )
        if metadata is not None:
            book.cover_image_url = metadata.cover_url or book.cover_image_url
            book.publisher = metadata.publisher or book.publisher
            book.published_date = metadata.published_date or book.published_date
            book.page_count = metadata.page_count or book.page_count

        book = await self.books.add_book(user_id, book, override=DuplicateOverride.grant(item.title, item.author))
        await self.ctx.store.delete(user_id, WISHLIST, item_id)
        self.ctx.invalidate(user_id, CacheKind.WISHLIST)
        logger.info(f"Moved wishlist item {item_id} to library as book {book.id}")
        return book

