"""Tests for bookCount deltas and the full recount."""
import asyncio

import pytest

from conftest import USER, FailingBatchStore, make_context
from bookshelf.domain.errors import BatchCommitError
from bookshelf.domain.models import Book, CountKind, Genre, Series
from bookshelf.domain.repositories import BOOKS, GENRES, SERIES
from bookshelf.services.count_service import CountReconciliationService
from bookshelf.utils.local_cache import CacheKind


def _seed(store):
    """Two genres with drifted counts and two active books plus one binned."""
    asyncio.run(store.add(USER, GENRES, Genre(id='g1', name='Fiction', book_count=0).to_dict()))
    asyncio.run(store.add(USER, GENRES, Genre(id='g2', name='Drama', book_count=5).to_dict()))
    asyncio.run(store.add(USER, BOOKS, Book(id='b1', title='One', genres=['g1', 'g2']).to_dict()))
    asyncio.run(store.add(USER, BOOKS, Book(id='b2', title='Two', genres=['g1']).to_dict()))
    binned = Book(id='b3', title='Three', genres=['g1', 'g2'])
    binned.deleted_at = binned.created_at
    asyncio.run(store.add(USER, BOOKS, binned.to_dict()))


def _count(store, collection, doc_id):
    return asyncio.run(store.get(USER, collection, doc_id))['bookCount']


def test_recalculate_repairs_drift_then_reports_nothing(ctx, store):
    _seed(store)
    service = CountReconciliationService(ctx)

    report = asyncio.run(service.recalculate_counts(USER, CountKind.GENRES))

    assert (report.scanned, report.corrected) == (2, 2)
    assert _count(store, GENRES, 'g1') == 2
    assert _count(store, GENRES, 'g2') == 1

    again = asyncio.run(service.recalculate_counts(USER, 'genres'))
    assert (again.scanned, again.corrected) == (2, 0)
    assert again.to_dict() == {'kind': 'genres', 'scanned': 2, 'corrected': 0}


def test_recalculate_series(ctx, store):
    asyncio.run(store.add(USER, SERIES, Series(id='s1', name='Dune', book_count=7).to_dict()))
    asyncio.run(store.add(USER, SERIES, Series(id='s2', name='Empty', book_count=0).to_dict()))
    asyncio.run(store.add(USER, BOOKS, Book(id='b1', title='Dune', series_id='s1').to_dict()))
    asyncio.run(store.add(USER, BOOKS, Book(id='b2', title='Messiah', series_id='s1').to_dict()))

    report = asyncio.run(CountReconciliationService(ctx).recalculate_counts(USER, CountKind.SERIES))

    assert report.corrected == 1
    assert _count(store, SERIES, 's1') == 2
    assert _count(store, SERIES, 's2') == 0


def test_failed_recount_changes_nothing(clock):
    store = FailingBatchStore()
    ctx = make_context(store, clock)
    _seed(store)
    ctx.cache.write(USER, CacheKind.GENRES, [{'id': 'g1', 'bookCount': 0}], is_complete=True)

    with pytest.raises(BatchCommitError):
        asyncio.run(CountReconciliationService(ctx).recalculate_counts(USER, CountKind.GENRES))

    assert _count(store, GENRES, 'g1') == 0
    assert _count(store, GENRES, 'g2') == 5
    assert ctx.cache.read(USER, CacheKind.GENRES) is not None


def test_genre_delta_skips_missing_genres_and_does_not_clamp(ctx, store):
    asyncio.run(store.add(USER, GENRES, Genre(id='g1', name='Fiction', book_count=0).to_dict()))
    service = CountReconciliationService(ctx)

    applied = asyncio.run(service.apply_genre_delta(USER, added=['gone'], removed=['g1']))

    assert applied == 1
    assert _count(store, GENRES, 'g1') == -1


def test_genre_delta_nets_out_unchanged_membership(ctx, store):
    asyncio.run(store.add(USER, GENRES, Genre(id='g1', name='Fiction', book_count=3).to_dict()))
    ctx.cache.write(USER, CacheKind.GENRES, [], is_complete=True)

    applied = asyncio.run(CountReconciliationService(ctx).apply_genre_delta(USER, added=['g1'], removed=['g1']))

    assert applied == 0
    assert _count(store, GENRES, 'g1') == 3
    assert ctx.cache.read(USER, CacheKind.GENRES) is not None


def test_series_delta_moves_one_book(ctx, store):
    asyncio.run(store.add(USER, SERIES, Series(id='s1', name='Old', book_count=1).to_dict()))
    asyncio.run(store.add(USER, SERIES, Series(id='s2', name='New', book_count=0).to_dict()))

    asyncio.run(CountReconciliationService(ctx).apply_series_delta(USER, added_series_id='s2', removed_series_id='s1'))

    assert _count(store, SERIES, 's1') == 0
    assert _count(store, SERIES, 's2') == 1
