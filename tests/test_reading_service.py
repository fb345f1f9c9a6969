"""Tests for reading history: status, legacy migration and transitions."""
from datetime import datetime, timezone

import pytest

from bookshelf.domain.errors import ReadingHistoryError
from bookshelf.domain.models import Book, ReadEntry, ReadingStatus
from bookshelf.services.reading_service import (
    book_status,
    migrate_reads,
    set_current_read_dates,
    start_reread,
)


def _day(day, month=1):
    return datetime(2024, month, day, tzinfo=timezone.utc)


def test_status_depends_only_on_the_last_read():
    finished_then_rereading = {'reads': [
        {'startedAt': '2023-01-01', 'finishedAt': '2023-01-10'},
        {'startedAt': '2024-01-01', 'finishedAt': None},
    ]}
    unfinished_then_finished = {'reads': [
        {'startedAt': '2022-01-01', 'finishedAt': None},
        {'startedAt': '2024-01-01', 'finishedAt': '2024-01-09'},
    ]}
    assert book_status(finished_then_rereading) == 'reading'
    assert book_status(unfinished_then_finished) == 'finished'
    assert book_status({'reads': []}) is None
    assert book_status({}) is None


def test_finish_date_without_start_still_counts_as_finished():
    assert book_status({'reads': [{'startedAt': None, 'finishedAt': '2024-01-09'}]}) == 'finished'


def test_migrate_reads_folds_legacy_fields():
    legacy = {'id': 'b1', 'title': 'Dune', 'startedAt': '2024-01-01', 'finishedAt': '2024-01-05', 'status': 'finished'}

    migrated = migrate_reads(legacy)

    assert migrated['reads'] == [{'startedAt': '2024-01-01', 'finishedAt': '2024-01-05'}]
    assert 'startedAt' not in migrated
    assert 'finishedAt' not in migrated
    assert 'status' not in migrated
    assert migrated['title'] == 'Dune'
    assert 'reads' not in legacy


def test_migrate_reads_without_dates_gives_empty_history():
    assert migrate_reads({'title': 'Unread', 'status': 'to-read'})['reads'] == []


def test_migrate_reads_is_idempotent():
    legacy = {'startedAt': '2024-01-01', 'finishedAt': None}
    once = migrate_reads(legacy)
    assert migrate_reads(once) == once


def test_book_from_dict_migrates_legacy_document():
    book = Book.from_dict({'id': 'b1', 'title': 'Dune', 'startedAt': '2024-01-01T00:00:00+00:00'})
    assert len(book.reads) == 1
    assert book.reads[0].started_at == _day(1)
    assert book.status is ReadingStatus.READING


def test_start_reread_appends_new_read():
    reads = [ReadEntry(_day(1), _day(5))]
    updated = start_reread(reads, _day(20))

    assert updated == [ReadEntry(_day(1), _day(5)), ReadEntry(_day(20), None)]
    assert reads == [ReadEntry(_day(1), _day(5))]


def test_start_reread_requires_finished_current_read():
    with pytest.raises(ReadingHistoryError):
        start_reread([ReadEntry(_day(1), None)], _day(20))


def test_start_reread_on_empty_history():
    assert start_reread([], _day(3)) == [ReadEntry(_day(3), None)]


def test_set_current_read_dates_rewrites_only_the_last_entry():
    reads = [ReadEntry(_day(1), _day(5)), ReadEntry(_day(10), None)]
    updated = set_current_read_dates(reads, _day(11), _day(15))

    assert updated[0] == ReadEntry(_day(1), _day(5))
    assert updated[1] == ReadEntry(_day(11), _day(15))


def test_set_current_read_dates_rejects_invalid_combinations():
    with pytest.raises(ReadingHistoryError):
        set_current_read_dates([], None, _day(5))
    with pytest.raises(ReadingHistoryError):
        set_current_read_dates([ReadEntry(_day(10), None)], _day(10), _day(2))


def test_set_current_read_dates_on_empty_history():
    assert set_current_read_dates([], None, None) == []
    assert set_current_read_dates([], _day(4), None) == [ReadEntry(_day(4), None)]
