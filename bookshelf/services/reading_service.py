"""
Reading history helpers.

A book's reading state is never stored directly; it is derived from its
``reads`` list, oldest first. Only the last entry (the current read) decides
the status, earlier entries are history and are never rewritten.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..domain.errors import ReadingHistoryError
from ..domain.models import ReadEntry, ReadingStatus

LEGACY_READING_FIELDS = ("startedAt", "finishedAt", "status")


def migrate_reads(book: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of a stored book with the ``reads`` list in place.

    Books written before multi-read support kept a single ``startedAt`` /
    ``finishedAt`` pair (and sometimes a ``status``) at the top level. Those are
    folded into a one-entry ``reads`` list and the legacy fields are dropped.
    Books that already have ``reads`` are returned unchanged.
    """
    if isinstance(book.get("reads"), list):
        return dict(book)

    migrated = {k: v for k, v in book.items() if k not in LEGACY_READING_FIELDS}
    started_at = book.get("startedAt")
    finished_at = book.get("finishedAt")
    if started_at or finished_at:
        migrated["reads"] = [{"startedAt": started_at or None, "finishedAt": finished_at or None}]
    else:
        migrated["reads"] = []
    return migrated


def current_read(book: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    reads = migrate_reads(book)["reads"]
    return reads[-1] if reads else None


def book_status(book: Dict[str, Any]) -> Optional[str]:
    """"reading", "finished" or None (never read)."""
    current = current_read(book)
    if current is None:
        return None
    if current.get("finishedAt"):
        return ReadingStatus.FINISHED.value
    return ReadingStatus.READING.value


def start_reread(reads: List[ReadEntry], today: datetime) -> List[ReadEntry]:
    """Append a new in-progress read starting ``today``.

    Raises:
        ReadingHistoryError: If the current read has not been finished.
    """
    if reads and not reads[-1].is_finished:
        raise ReadingHistoryError("Finish the current read before starting a new one")
    return list(reads) + [ReadEntry(started_at=today, finished_at=None)]


def set_current_read_dates(
    reads: List[ReadEntry],
    started_at: Optional[datetime],
    finished_at: Optional[datetime],
) -> List[ReadEntry]:
    """Replace the dates of the current (last) read only.

    An empty history gets its first entry. Historical entries are kept as-is.

    Raises:
        ReadingHistoryError: On a finish date without a start date, or a
            finish date before the start date.
    """
    if finished_at is not None and started_at is None:
        raise ReadingHistoryError("A finish date needs a start date")
    if started_at is not None and finished_at is not None and finished_at < started_at:
        raise ReadingHistoryError("Finish date cannot be before the start date")

    updated = list(reads)
    entry = ReadEntry(started_at=started_at, finished_at=finished_at)
    if not updated:
        if started_at is None:
            return []
        return [entry]
    updated[-1] = entry
    return updated
