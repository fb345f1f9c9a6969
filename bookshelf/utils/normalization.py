"""
Text normalization helpers used for search, grouping and uniqueness checks.

Pure functions with no store or Flask dependency.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

_APOSTROPHES = re.compile(r"[‘’`]")
_WHITESPACE = re.compile(r"\s+")
_HEX_COLOR = re.compile(r"#[0-9A-Fa-f]{6}")
_ISBN_PREFIX = re.compile(r"^isbn[-:\s]*(10|13)?[-:\s]*", re.IGNORECASE)
_ISBN_SEPARATORS = re.compile(r"[-\s]")
_ISBN_DIGITS = re.compile(r"[0-9]{10}|[0-9]{13}")


def _strip_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(value: Any) -> str:
    """Normalize free text for case/diacritic-insensitive comparison.

    Lower-cases, canonicalizes apostrophe variants (curly quotes, backtick) to a
    straight quote and strips diacritics. ``None`` and empty input yield ``""``.
    """
    if not value:
        return ""
    text = str(value).lower()
    text = _APOSTROPHES.sub("'", text)
    return _strip_diacritics(text)


def normalize_genre_name(name: Any) -> str:
    """Canonical form of a genre name: lower-cased, trimmed, whitespace collapsed.

    Two genre names are the same genre iff their normalized forms are equal.
    """
    if not name:
        return ""
    return _WHITESPACE.sub(" ", str(name).lower().strip())


def normalize_series_name(name: Any) -> str:
    """Canonical form of a series name (genre rules plus apostrophe folding)."""
    if not name:
        return ""
    text = _APOSTROPHES.sub("'", str(name).lower())
    return _WHITESPACE.sub(" ", text).strip()


def is_valid_hex_color(color: Any) -> bool:
    """True iff ``color`` is ``#`` followed by exactly six hex digits."""
    if not color or not isinstance(color, str):
        return False
    return _HEX_COLOR.fullmatch(color) is not None


def clean_isbn(value: Any) -> str:
    """Strip an ``ISBN``/``ISBN-13:`` prefix, dashes and spaces."""
    if not value:
        return ""
    cleaned = _ISBN_PREFIX.sub("", str(value).strip())
    return _ISBN_SEPARATORS.sub("", cleaned)


def is_isbn(value: Any) -> bool:
    """True if the value looks like a 10 or 13 digit ISBN once cleaned."""
    cleaned = clean_isbn(value)
    return _ISBN_DIGITS.fullmatch(cleaned) is not None
