"""Tests for the library_search utility."""
from bookshelf.utils.library_search import group_authors, library_book_matches_query


def test_library_book_matches_query_with_title():
    """Test that search matches book title."""
    book = {
        'title': 'The Great Gatsby',
        'author': 'F. Scott Fitzgerald',
        'notes': 'A classic novel'
    }
    assert library_book_matches_query(book, 'gatsby')
    assert library_book_matches_query(book, 'great')
    assert library_book_matches_query(book, 'GATSBY')  # Case insensitive
    assert not library_book_matches_query(book, 'tolstoy')


def test_library_book_matches_query_with_author():
    """Test that search matches book author."""
    book = {
        'title': 'War and Peace',
        'author': 'Leo Tolstoy',
        'notes': 'Epic novel'
    }
    assert library_book_matches_query(book, 'tolstoy')
    assert library_book_matches_query(book, 'leo')
    assert not library_book_matches_query(book, 'dickens')


def test_library_book_matches_query_with_notes():
    """Test that search matches the reader's notes."""
    book = {
        'title': '1984',
        'author': 'George Orwell',
        'notes': 'A dystopian social science fiction novel'
    }
    assert library_book_matches_query(book, 'dystopian')
    assert library_book_matches_query(book, 'fiction')
    assert not library_book_matches_query(book, 'romance')


def test_library_book_matches_query_with_publisher_and_isbn():
    """Test that search matches publisher and ISBN."""
    book = {
        'title': 'Sapiens',
        'author': 'Yuval Noah Harari',
        'publisher': 'Harper Perennial',
        'isbn': '9780062316110'
    }
    assert library_book_matches_query(book, 'perennial')
    assert library_book_matches_query(book, '9780062316110')
    assert library_book_matches_query(book, 'sapiens harper')


def test_library_book_matches_query_with_series_and_genre_names():
    """Test that search matches denormalized series and genre names."""
    book = {
        'title': 'The Fellowship of the Ring',
        'author': 'J.R.R. Tolkien',
        'seriesName': 'The Lord of the Rings',
        'genreNames': ['Fantasy', 'Classics']
    }
    assert library_book_matches_query(book, 'rings')
    assert library_book_matches_query(book, 'fantasy')
    assert not library_book_matches_query(book, 'horror')


def test_library_book_matches_query_requires_every_word():
    book = {'title': 'Dune', 'author': 'Frank Herbert'}
    assert library_book_matches_query(book, 'dune herbert')
    assert not library_book_matches_query(book, 'dune asimov')


def test_library_book_matches_query_ignores_diacritics_and_apostrophes():
    book = {'title': 'Wuthering Heights', 'author': 'Emily Brontë'}
    assert library_book_matches_query(book, 'bronte')
    book = {'title': 'At Swim-Two-Birds', 'author': 'Flann O’Brien'}
    assert library_book_matches_query(book, "o'brien")


def test_library_book_matches_query_empty_search():
    """Test that empty search matches everything."""
    book = {
        'title': 'Any Book',
        'author': 'Any Author'
    }
    assert library_book_matches_query(book, '')
    assert library_book_matches_query(book, None)
    assert library_book_matches_query(book, '   ')


def test_library_book_matches_query_missing_fields():
    """Test that search works with missing fields."""
    book = {
        'title': 'Only Title'
    }
    assert library_book_matches_query(book, 'title')
    assert not library_book_matches_query(book, 'author')


def test_library_book_matches_query_non_dict():
    """Test that non-dict returns False."""
    assert not library_book_matches_query("not a dict", 'search')
    assert not library_book_matches_query(None, 'search')
    assert not library_book_matches_query(123, 'search')


def test_library_book_matches_query_none_values():
    """Test that None values in fields are handled."""
    book = {
        'title': 'Test Book',
        'author': None,
        'notes': None
    }
    assert library_book_matches_query(book, 'test')
    assert not library_book_matches_query(book, 'unknown')


def test_group_authors_merges_case_and_diacritic_variants():
    books = [
        {'title': 'A', 'author': 'Emily Brontë'},
        {'title': 'B', 'author': 'emily bronte'},
        {'title': 'C', 'author': 'Jane Austen'},
        {'title': 'D', 'author': ''},
    ]
    groups = group_authors(books)
    assert groups == [
        {'name': 'Emily Brontë', 'normalizedName': 'emily bronte', 'count': 2},
        {'name': 'Jane Austen', 'normalizedName': 'jane austen', 'count': 1},
    ]


def test_group_authors_scans_at_most_limit_books():
    books = [{'title': str(i), 'author': 'Ann Leckie'} for i in range(5)]
    books.append({'title': 'late', 'author': 'Iain Banks'})
    groups = group_authors(books, limit=5)
    assert groups == [{'name': 'Ann Leckie', 'normalizedName': 'ann leckie', 'count': 5}]
