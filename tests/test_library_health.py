"""Tests for library health analysis."""
import asyncio

from conftest import USER
from bookshelf.domain.models import Book
from bookshelf.services.book_service import BookService
from bookshelf.services.library_health import (
    analyze_books,
    analyze_library_health,
    book_completeness,
    library_completeness,
    missing_fields,
)


def _complete_book(title='Complete', **overrides):
    fields = dict(
        title=title, author='Author', isbn='9780143127550', genres=['g1'],
        cover_image_url='https://covers.example/c.jpg', page_count=300,
        publisher='Penguin', published_date='2014-02-11',
    )
    fields.update(overrides)
    return Book(**fields)


def test_book_completeness_weights_fields():
    assert book_completeness(_complete_book()) == 100
    # page_count weighs 1 of 7
    assert book_completeness(_complete_book(page_count=None)) == 86
    assert book_completeness(Book(title='Bare')) == 0
    # ISBN is tracked but not scored
    assert book_completeness(_complete_book(isbn=None)) == 100


def test_missing_fields():
    assert missing_fields(_complete_book()) == []
    assert missing_fields(_complete_book(genres=[], isbn=None)) == ['genres', 'isbn']


def test_library_completeness_is_capped_while_anything_is_missing():
    books = [_complete_book(f'Book {i}') for i in range(50)]
    books.append(_complete_book('Short', page_count=None))

    assert library_completeness(books) == 99
    assert library_completeness(books[:50]) == 100
    assert library_completeness([]) == 100


def test_analyze_books_counts_issues_and_fixable_books():
    books = [
        _complete_book('Complete'),
        _complete_book('No cover', cover_image_url=None),
        _complete_book('No cover, no ISBN', cover_image_url=None, isbn=None),
        _complete_book('No pages', page_count=None),
    ]

    report = analyze_books(books)

    assert report.total_books == 4
    assert report.total_issues == 3
    # Only books with an ISBN and a field a lookup can fill are fixable.
    assert report.fixable_books == 1
    assert [b.title for b in report.issues['missing_cover']] == ['No cover', 'No cover, no ISBN']
    assert report.to_dict()['issues']['missing_isbn'] == [None]


def test_analyze_library_health_uses_whole_library(ctx, clock):
    service = BookService(ctx)
    for i in range(3):
        clock.advance(minutes=1)
        asyncio.run(service.add_book(USER, Book(title=f'Bare {i}', author='Author')))
    asyncio.run(service.get_books(USER, limit=1))

    report = asyncio.run(analyze_library_health(ctx, USER))

    assert report.total_books == 3
    assert report.completeness_score == 0
