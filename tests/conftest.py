from datetime import datetime, timedelta, timezone

import pytest

from bookshelf.domain.errors import BatchCommitError, StoreError
from bookshelf.infrastructure.memory_store import InMemoryDocumentStore, InMemoryWriteBatch
from bookshelf.services.context import ServiceContext, Settings
from bookshelf.utils.local_cache import LocalCacheStore

USER = 'user-1'


class FakeClock:
    """Settable clock shared by the services and the cache."""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)

    def timestamp(self):
        return self.current.timestamp()


class FailingBatch(InMemoryWriteBatch):
    async def commit(self):
        raise BatchCommitError("Simulated commit failure")


class FailingBatchStore(InMemoryDocumentStore):
    """Every batch commit fails; single-document writes still work."""

    def batch(self, user_id):
        return FailingBatch(self, user_id)


class UnavailableStore(InMemoryDocumentStore):
    """Collection reads fail as if the network were down."""

    async def list_all(self, *args, **kwargs):
        raise StoreError("Connection refused")


def make_context(store, clock, **settings):
    cache = LocalCacheStore(clock=clock.timestamp)
    return ServiceContext(store=store, cache=cache, settings=Settings(**settings), clock=clock)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def ctx(store, clock):
    return make_context(store, clock)
