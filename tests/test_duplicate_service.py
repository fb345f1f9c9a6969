"""Tests for two-tier duplicate detection."""
import asyncio
from datetime import datetime, timedelta, timezone

from conftest import USER, make_context
from bookshelf.domain.models import Book, MatchType, WishlistItem
from bookshelf.domain.repositories import BOOKS, WISHLIST
from bookshelf.services.duplicate_service import DuplicateDetector, DuplicateOverride

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _seed_book(store, title, author, isbn=None, minutes=0, deleted=False):
    book = Book(title=title, author=author, isbn=isbn, created_at=BASE + timedelta(minutes=minutes))
    if deleted:
        book.deleted_at = BASE + timedelta(days=1)
    return asyncio.run(store.add(USER, BOOKS, book.to_dict()))


def test_isbn_match(ctx, store):
    book_id = _seed_book(store, 'The Martian', 'Andy Weir', isbn='9780143127550')

    result = asyncio.run(DuplicateDetector(ctx).check_duplicate_book(
        USER, '978-0-14-312755-0', 'Something Else', 'Someone Else'))

    assert result.is_duplicate
    assert result.match_type is MatchType.ISBN
    assert result.existing_book.id == book_id
    assert '9780143127550' in result.message


def test_title_author_match_ignores_case_and_diacritics(ctx, store):
    _seed_book(store, 'Jane Eyre', 'Charlotte Brontë')

    result = asyncio.run(DuplicateDetector(ctx).check_duplicate_book(
        USER, None, '  jane eyre', 'CHARLOTTE BRONTE'))

    assert result.is_duplicate
    assert result.match_type is MatchType.TITLE_AUTHOR


def test_no_match(ctx, store):
    _seed_book(store, 'The Martian', 'Andy Weir', isbn='9780143127550')

    result = asyncio.run(DuplicateDetector(ctx).check_duplicate_book(
        USER, '9780553418026', 'Artemis', 'Andy Weir'))

    assert not result.is_duplicate
    assert result.match_type is None
    assert result.message == ''


def test_binned_book_does_not_hide_live_isbn_match(ctx, store):
    _seed_book(store, 'The Martian', 'Andy Weir', isbn='9780143127550', deleted=True)
    live_id = _seed_book(store, 'The Martian (2nd copy)', 'Andy Weir', isbn='9780143127550', minutes=5)

    result = asyncio.run(DuplicateDetector(ctx).check_duplicate_book(USER, '9780143127550', 'X', 'Y'))

    assert result.is_duplicate
    assert result.existing_book.id == live_id


def test_binned_book_is_not_a_duplicate(ctx, store):
    _seed_book(store, 'The Martian', 'Andy Weir', isbn='9780143127550', deleted=True)

    result = asyncio.run(DuplicateDetector(ctx).check_duplicate_book(USER, '9780143127550', 'The Martian', 'Andy Weir'))

    assert not result.is_duplicate


def test_title_author_tier_only_scans_recent_books(store, clock):
    ctx = make_context(store, clock, duplicate_check_limit=2)
    _seed_book(store, 'Oldest', 'Author', minutes=0)
    _seed_book(store, 'Middle', 'Author', minutes=1)
    _seed_book(store, 'Newest', 'Author', minutes=2)
    detector = DuplicateDetector(ctx)

    assert asyncio.run(detector.check_duplicate_book(USER, None, 'Newest', 'Author')).is_duplicate
    assert asyncio.run(detector.check_duplicate_book(USER, None, 'Middle', 'Author')).is_duplicate
    assert not asyncio.run(detector.check_duplicate_book(USER, None, 'Oldest', 'Author')).is_duplicate


def test_wishlist_duplicate_sources(ctx, store):
    item = WishlistItem(title='Piranesi', author='Susanna Clarke', isbn='9781635575637')
    asyncio.run(store.add(USER, WISHLIST, item.to_dict()))
    _seed_book(store, 'Circe', 'Madeline Miller')
    detector = DuplicateDetector(ctx)

    in_wishlist = asyncio.run(detector.check_wishlist_duplicate(USER, '9781635575637', 'Other', 'Other'))
    assert in_wishlist.source == 'wishlist'
    assert in_wishlist.match_type is MatchType.ISBN

    owned = asyncio.run(detector.check_wishlist_duplicate(USER, None, 'circe', 'madeline miller'))
    assert owned.source == 'library'
    assert owned.existing.title == 'Circe'

    assert asyncio.run(detector.check_wishlist_duplicate(
        USER, None, 'Circe', 'Madeline Miller', include_library=False)) is None


def test_override_applies_only_to_the_warned_title_and_author():
    override = DuplicateOverride.grant('The Martian', 'Andy Weir')

    assert override.applies_to('the martian ', 'ANDY WEIR')
    assert not override.applies_to('The Martian 2', 'Andy Weir')
    assert not override.applies_to('The Martian', 'A. Weir')
