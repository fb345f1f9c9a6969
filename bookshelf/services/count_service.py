"""
Denormalized ``bookCount`` maintenance for genres and series.

Two mechanisms keep the counters honest:

* Incremental deltas, applied after every book write. Each affected genre or
  series gets one atomic increment, so interleaved operations from several
  clients commute. A crash between the book write and the increments leaves
  drift behind; counters are not clamped and may read negative until repaired.
* A full recalculation that tallies membership over all non-deleted books and
  rewrites only the documents whose stored count differs. This is the only
  path that repairs drift.
"""

import logging
from collections import Counter
from typing import Iterable, Optional, Union

from ..domain.errors import NotFoundError
from ..domain.models import CountKind, RecalculationReport, format_timestamp
from ..domain.repositories import BOOKS, GENRES, SERIES
from ..utils.local_cache import CacheKind
from .context import ServiceContext

logger = logging.getLogger(__name__)


class CountReconciliationService:
    """Applies counter deltas and runs the full recount."""

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx

    async def _apply(self, user_id: str, collection: str, deltas: Counter) -> int:
        applied = 0
        for doc_id, delta in sorted(deltas.items()):
            if not delta:
                continue
            try:
                await self.ctx.store.increment(user_id, collection, doc_id, 'bookCount', delta)
            except NotFoundError:
                logger.debug(f"Skipping count update for missing {collection}/{doc_id}")
                continue
            applied += 1
        return applied

    async def apply_genre_delta(
        self,
        user_id: str,
        added: Iterable[str] = (),
        removed: Iterable[str] = (),
    ) -> int:
        """Increment ``added`` genres and decrement ``removed`` ones.

        Returns the number of genre documents changed. Genres that no longer
        exist are skipped.
        """
        deltas = Counter()
        for genre_id in set(added):
            deltas[genre_id] += 1
        for genre_id in set(removed):
            deltas[genre_id] -= 1
        applied = await self._apply(user_id, GENRES, deltas)
        if applied:
            self.ctx.invalidate(user_id, CacheKind.GENRES)
        return applied

    async def apply_series_delta(
        self,
        user_id: str,
        added_series_id: Optional[str] = None,
        removed_series_id: Optional[str] = None,
    ) -> int:
        """Move one book's membership from ``removed_series_id`` to ``added_series_id``."""
        deltas = Counter()
        if added_series_id:
            deltas[added_series_id] += 1
        if removed_series_id:
            deltas[removed_series_id] -= 1
        applied = await self._apply(user_id, SERIES, deltas)
        if applied:
            self.ctx.invalidate(user_id, CacheKind.SERIES)
        return applied

    async def recalculate_counts(self, user_id: str, kind: Union[CountKind, str]) -> RecalculationReport:
        """Recount ``bookCount`` for every genre or series from the books themselves.

        Reads go straight to the store. Only documents whose stored count
        differs from the tally are written, in a single batch.
        """
        kind = CountKind(kind)
        books = await self.ctx.store.list_all(user_id, BOOKS)
        active = [b for b in books if not b.get('deletedAt')]
        targets = await self.ctx.store.list_all(user_id, kind.value)

        tally = Counter({doc['id']: 0 for doc in targets})
        for book in active:
            if kind is CountKind.GENRES:
                member_of = set(book.get('genres') or [])
            else:
                member_of = {book['seriesId']} if book.get('seriesId') else set()
            for target_id in member_of:
                if target_id in tally:
                    tally[target_id] += 1

        batch = self.ctx.store.batch(user_id)
        now = format_timestamp(self.ctx.now())
        for doc in targets:
            actual = tally[doc['id']]
            if (doc.get('bookCount') or 0) != actual:
                batch.update(kind.value, doc['id'], {'bookCount': actual, 'updatedAt': now})

        corrected = len(batch)
        if corrected:
            await batch.commit()
            self.ctx.invalidate(user_id, CacheKind(kind.value))

        logger.info(f"Recalculated {kind.value} counts for user {user_id}: "
                    f"{len(active)} books scanned, {corrected} corrected")
        return RecalculationReport(kind=kind, scanned=len(active), corrected=corrected)
