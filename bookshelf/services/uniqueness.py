"""
Cross-record uniqueness rules for genres and series.

Checks run against a fresh store read supplied by the caller, never the local
cache. They are best-effort: the store cannot enforce uniqueness, so two
concurrent creations can still both pass the check before either write lands.
That narrow race window is a known limitation.
"""

from typing import Iterable, List, Optional, Set

from ..domain.errors import (
    FormValidationError,
    GenreColorInUseError,
    GenreNameExistsError,
    SeriesNameExistsError,
)
from ..domain.models import Genre, Series
from ..utils.normalization import is_valid_hex_color, normalize_genre_name, normalize_series_name

# Tailwind 200-800 shades in rainbow order, neutrals last.
GENRE_COLORS = [
    # Reds
    '#fecaca', '#fca5a5', '#f87171', '#ef4444', '#dc2626', '#b91c1c', '#991b1b',
    # Roses
    '#fecdd3', '#fda4af', '#fb7185', '#f43f5e', '#e11d48', '#be123c',
    # Oranges
    '#fed7aa', '#fdba74', '#fb923c', '#f97316', '#ea580c', '#c2410c', '#9a3412',
    # Ambers
    '#fde68a', '#fcd34d', '#fbbf24', '#f59e0b', '#d97706', '#b45309',
    # Yellows
    '#fef08a', '#fde047', '#facc15', '#eab308', '#ca8a04',
    # Limes
    '#d9f99d', '#bef264', '#a3e635', '#84cc16', '#65a30d', '#4d7c0f',
    # Greens
    '#bbf7d0', '#86efac', '#4ade80', '#22c55e', '#16a34a', '#15803d', '#166534',
    # Emeralds
    '#a7f3d0', '#6ee7b7', '#34d399', '#10b981', '#059669', '#047857',
    # Teals
    '#99f6e4', '#5eead4', '#2dd4bf', '#14b8a6', '#0d9488', '#0f766e',
    # Cyans
    '#a5f3fc', '#67e8f9', '#22d3ee', '#06b6d4', '#0891b2', '#0e7490',
    # Skys
    '#bae6fd', '#7dd3fc', '#38bdf8', '#0ea5e9', '#0284c7', '#0369a1',
    # Blues
    '#bfdbfe', '#93c5fd', '#60a5fa', '#3b82f6', '#2563eb', '#1d4ed8', '#1e40af',
    # Indigos
    '#c7d2fe', '#a5b4fc', '#818cf8', '#6366f1', '#4f46e5', '#4338ca',
    # Violets
    '#ddd6fe', '#c4b5fd', '#a78bfa', '#8b5cf6', '#7c3aed', '#6d28d9', '#5b21b6',
    # Purples
    '#e9d5ff', '#d8b4fe', '#c084fc', '#a855f7', '#9333ea', '#7e22ce', '#6b21a8',
    # Fuchsias
    '#f5d0fe', '#f0abfc', '#e879f9', '#d946ef', '#c026d3', '#a21caf',
    # Pinks
    '#fbcfe8', '#f9a8d4', '#f472b6', '#ec4899', '#db2777', '#be185d',
    # Stone
    '#e7e5e4', '#d6d3d1', '#a8a29e', '#78716c', '#57534e',
    # Zinc
    '#e4e4e7', '#d4d4d8', '#a1a1aa', '#71717a', '#52525b',
    # Slate
    '#e2e8f0', '#cbd5e1', '#94a3b8', '#64748b', '#475569',
]


def used_colors(genres: Iterable[Genre], exclude_id: Optional[str] = None) -> Set[str]:
    return {g.color.lower() for g in genres if g.color and g.id != exclude_id}


def available_colors(genres: Iterable[Genre], exclude_id: Optional[str] = None) -> List[str]:
    used = used_colors(genres, exclude_id)
    return [c for c in GENRE_COLORS if c.lower() not in used]


def pick_genre_color(genres: Iterable[Genre]) -> str:
    """First palette colour not in use; the first palette entry once all are taken."""
    free = available_colors(genres)
    return free[0] if free else GENRE_COLORS[0]


def ensure_genre_name_available(genres: Iterable[Genre], name: str, exclude_id: Optional[str] = None) -> str:
    """Return the normalized name, or raise if another genre already has it."""
    if name is not None and not isinstance(name, str):
        raise FormValidationError({"name": "Genre name must be text"})
    normalized = normalize_genre_name(name)
    if not normalized:
        raise FormValidationError({"name": "Genre name is required"})
    for genre in genres:
        if genre.id != exclude_id and (genre.normalized_name or normalize_genre_name(genre.name)) == normalized:
            raise GenreNameExistsError(genre.name, genre.id)
    return normalized


def ensure_genre_color_available(genres: Iterable[Genre], color: str, exclude_id: Optional[str] = None) -> str:
    if not is_valid_hex_color(color):
        raise FormValidationError({"color": "Colour must be a hex value like #a1b2c3"})
    for genre in genres:
        if genre.id != exclude_id and genre.color and genre.color.lower() == color.lower():
            raise GenreColorInUseError(color, genre.id)
    return color


def ensure_series_name_available(series: Iterable[Series], name: str, exclude_id: Optional[str] = None) -> str:
    if name is not None and not isinstance(name, str):
        raise FormValidationError({"name": "Series name must be text"})
    normalized = normalize_series_name(name)
    if not normalized:
        raise FormValidationError({"name": "Series name is required"})
    for existing in series:
        if existing.id != exclude_id and (existing.normalized_name or normalize_series_name(existing.name)) == normalized:
            raise SeriesNameExistsError(existing.name, existing.id)
    return normalized
