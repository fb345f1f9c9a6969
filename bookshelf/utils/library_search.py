from __future__ import annotations

from collections import Counter
from typing import Any, Iterable

from .normalization import normalize_text


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple, set)):
        return " ".join(_as_text(v) for v in value)
    return str(value)


def library_book_matches_query(book: dict[str, Any], query: str | None) -> bool:
    """Return True if every word of `query` occurs in the book's searchable text.

    Matching ignores case, diacritics and apostrophe style, so "bronte" finds
    "Brontë" and "o'brien" finds "O’Brien". Works on stored book documents or
    ``Book.to_dict()`` output.
    """
    if not isinstance(book, dict):
        return False
    if not query:
        return True

    tokens = [normalize_text(t.strip()) for t in query.split() if t.strip()]
    if not tokens:
        return True

    haystack_parts: Iterable[Any] = (
        book.get("title"),
        book.get("author"),
        book.get("isbn"),
        book.get("publisher"),
        book.get("notes"),
        book.get("seriesName"),
        book.get("genreNames"),
    )

    haystack = normalize_text(" ".join(_as_text(p) for p in haystack_parts))
    return all(token in haystack for token in tokens)


def group_authors(books: Iterable[dict[str, Any]], limit: int | None = None) -> list[dict[str, Any]]:
    """Count books per author, treating case and diacritic variants as one author.

    The display name is the first spelling seen. Only the first ``limit`` books
    are scanned. Result is sorted by count, then name.
    """
    counts: Counter[str] = Counter()
    display: dict[str, str] = {}
    for index, book in enumerate(books):
        if limit is not None and index >= limit:
            break
        author = (book.get("author") or "").strip()
        if not author:
            continue
        key = normalize_text(author)
        display.setdefault(key, author)
        counts[key] += 1

    groups = [{"name": display[key], "normalizedName": key, "count": count} for key, count in counts.items()]
    groups.sort(key=lambda g: (-g["count"], g["normalizedName"]))
    return groups
