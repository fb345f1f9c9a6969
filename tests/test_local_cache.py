"""Tests for the local snapshot cache."""
import json

import pytest

from bookshelf.utils.local_cache import (
    CACHE_SCHEMA_VERSION,
    DAY_SECONDS,
    CacheEntry,
    CacheKind,
    FileCacheStore,
    LocalCacheStore,
)

USER = 'user-1'


class Ticker:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def ticker():
    return Ticker()


@pytest.fixture
def cache(ticker):
    return LocalCacheStore(clock=ticker)


def test_write_then_read_returns_entry(cache):
    cache.write(USER, CacheKind.GENRES, [{'id': 'g1', 'name': 'Fiction'}], is_complete=True)

    entry = cache.read(USER, CacheKind.GENRES)
    assert entry is not None
    assert entry.records == ({'id': 'g1', 'name': 'Fiction'},)
    assert entry.schema_version == CACHE_SCHEMA_VERSION
    assert entry.is_complete


def test_incomplete_entry_never_serves_full_collection_callers(cache):
    cache.write(USER, CacheKind.BOOKS, [{'id': 'b1'}, {'id': 'b2'}], is_complete=False)

    assert cache.read(USER, CacheKind.BOOKS) is not None
    assert cache.read_complete(USER, CacheKind.BOOKS) is None


def test_schema_version_mismatch_reads_as_absent(cache):
    cache.write(USER, CacheKind.BOOKS, [{'id': 'b1'}], is_complete=True)
    cache.schema_version = CACHE_SCHEMA_VERSION + 1

    assert cache.read(USER, CacheKind.BOOKS) is None
    # The old entry is dropped, not kept around.
    cache.schema_version = CACHE_SCHEMA_VERSION
    assert cache.read(USER, CacheKind.BOOKS) is None


def test_malformed_payload_reads_as_absent(cache):
    cache._save(USER, CacheKind.BOOKS, {'kind': 'books', 'version': CACHE_SCHEMA_VERSION})
    assert cache.read(USER, CacheKind.BOOKS) is None

    cache._save(USER, CacheKind.BOOKS, ['not', 'an', 'entry'])
    assert cache.read(USER, CacheKind.BOOKS) is None


def test_ttl_applies_only_to_bounded_kinds(cache, ticker):
    cache.write(USER, CacheKind.RECOMMENDATIONS, [{'id': 'r1'}], is_complete=True)
    cache.write(USER, CacheKind.BOOKS, [{'id': 'b1'}], is_complete=True)

    ticker.now += DAY_SECONDS - 1
    assert cache.read(USER, CacheKind.RECOMMENDATIONS) is not None

    ticker.now += 2
    assert cache.read(USER, CacheKind.RECOMMENDATIONS) is None
    assert cache.read(USER, CacheKind.BOOKS) is not None


def test_invalidate_and_clear_user(cache):
    for kind in (CacheKind.BOOKS, CacheKind.GENRES, CacheKind.SERIES):
        cache.write(USER, kind, [], is_complete=True)
    cache.write('other-user', CacheKind.BOOKS, [], is_complete=True)

    cache.invalidate(USER, CacheKind.BOOKS)
    assert cache.read(USER, CacheKind.BOOKS) is None
    assert cache.read(USER, CacheKind.GENRES) is not None

    cache.clear_user(USER)
    assert cache.read(USER, CacheKind.GENRES) is None
    assert cache.read(USER, CacheKind.SERIES) is None
    assert cache.read('other-user', CacheKind.BOOKS) is not None


def test_entries_are_per_user(cache):
    cache.write(USER, CacheKind.BOOKS, [{'id': 'b1'}], is_complete=True)
    assert cache.read('someone-else', CacheKind.BOOKS) is None


def test_from_payload_rejects_other_kind():
    entry = CacheEntry(CacheKind.GENRES, (), CACHE_SCHEMA_VERSION, 1.0, True)
    with pytest.raises(ValueError):
        CacheEntry.from_payload(entry.to_payload(), CacheKind.SERIES)


def test_file_cache_store_persists_between_instances(tmp_path, ticker):
    first = FileCacheStore(tmp_path, clock=ticker)
    first.write(USER, CacheKind.WISHLIST, [{'id': 'w1', 'title': 'Piranesi'}], is_complete=True)

    second = FileCacheStore(tmp_path, clock=ticker)
    entry = second.read_complete(USER, CacheKind.WISHLIST)
    assert entry is not None
    assert entry.records[0]['title'] == 'Piranesi'


def test_file_cache_store_discards_corrupt_file(tmp_path, ticker):
    cache = FileCacheStore(tmp_path, clock=ticker)
    cache.write(USER, CacheKind.BOOKS, [{'id': 'b1'}], is_complete=True)
    path = cache._path(USER, CacheKind.BOOKS)
    path.write_text('{not json', encoding='utf-8')

    assert cache.read(USER, CacheKind.BOOKS) is None
    assert not path.exists()


def test_file_cache_store_layout(tmp_path, ticker):
    cache = FileCacheStore(tmp_path, clock=ticker)
    cache.write(USER, CacheKind.GRAVATAR_PROBE, [{'exists': True}], is_complete=True)

    files = list(tmp_path.glob('*/gravatar-probe.json'))
    assert len(files) == 1
    assert files[0].parent.name != USER
    payload = json.loads(files[0].read_text(encoding='utf-8'))
    assert payload['version'] == CACHE_SCHEMA_VERSION
    assert payload['kind'] == 'gravatar-probe'
