"""
Domain models for the bookshelf core.

These models represent the core business entities independent of persistence
concerns. Stored documents use the camelCase field names shared with the web
client; ``to_dict``/``from_dict`` convert between the two shapes.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.normalization import normalize_genre_name, normalize_series_name


def now_utc() -> datetime:
    """Timezone-aware UTC now for default timestamps."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp.

    Accepts ISO 8601 strings, epoch milliseconds (as written by the web
    client), ``date`` and ``datetime`` objects. Naive values are taken as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def to_epoch_ms(value: Optional[datetime]) -> Optional[int]:
    """Epoch milliseconds, the shape the web client uses for the bin marker."""
    return int(value.timestamp() * 1000) if value else None


class ReadingStatus(Enum):
    READING = "reading"
    FINISHED = "finished"


class WishlistPriority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AddedFrom(Enum):
    SEARCH = "search"
    ISBN = "isbn"
    MANUAL = "manual"


class MatchType(Enum):
    ISBN = "isbn"
    TITLE_AUTHOR = "title-author"


class CountKind(Enum):
    """Collections that carry a denormalized ``bookCount``."""
    GENRES = "genres"
    SERIES = "series"


@dataclass
class ReadEntry:
    """One reading interval. ``finished_at`` is None while the read is in progress."""
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startedAt": format_timestamp(self.started_at),
            "finishedAt": format_timestamp(self.finished_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReadEntry":
        return cls(
            started_at=parse_timestamp(data.get("startedAt")),
            finished_at=parse_timestamp(data.get("finishedAt")),
        )


@dataclass
class Book:
    """Book domain model. Status is derived from the last ``reads`` entry only."""
    id: Optional[str] = None
    title: str = ""
    author: str = ""
    isbn: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    series_id: Optional[str] = None
    series_position: Optional[float] = None
    rating: Optional[int] = None
    reads: List[ReadEntry] = field(default_factory=list)
    cover_image_url: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    page_count: Optional[int] = None
    notes: Optional[str] = None
    deleted_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        # Genre membership is a set; keep first-seen order for stable output.
        self.genres = list(dict.fromkeys(g for g in self.genres if g))
        if self.rating is not None and not 0 <= self.rating <= 5:
            raise ValueError(f"Rating must be between 0 and 5, got {self.rating}")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def current_read(self) -> Optional[ReadEntry]:
        return self.reads[-1] if self.reads else None

    @property
    def status(self) -> Optional[ReadingStatus]:
        current = self.current_read
        if current is None:
            return None
        return ReadingStatus.FINISHED if current.is_finished else ReadingStatus.READING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn or None,
            "genres": list(self.genres),
            "seriesId": self.series_id,
            "seriesPosition": self.series_position,
            "rating": self.rating,
            "reads": [r.to_dict() for r in self.reads],
            "coverImageUrl": self.cover_image_url,
            "publisher": self.publisher,
            "publishedDate": self.published_date,
            "pageCount": self.page_count,
            "notes": self.notes,
            "deletedAt": to_epoch_ms(self.deleted_at),
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Book":
        """Build a Book from a stored document, migrating legacy reading fields."""
        from ..services.reading_service import migrate_reads

        migrated = migrate_reads(data)
        return cls(
            id=migrated.get("id"),
            title=migrated.get("title") or "",
            author=migrated.get("author") or "",
            isbn=migrated.get("isbn") or None,
            genres=list(migrated.get("genres") or []),
            series_id=migrated.get("seriesId"),
            series_position=migrated.get("seriesPosition"),
            rating=migrated.get("rating"),
            reads=[ReadEntry.from_dict(r) for r in migrated.get("reads") or []],
            cover_image_url=migrated.get("coverImageUrl"),
            publisher=migrated.get("publisher"),
            published_date=migrated.get("publishedDate"),
            page_count=migrated.get("pageCount"),
            notes=migrated.get("notes"),
            deleted_at=parse_timestamp(migrated.get("deletedAt")),
            created_at=parse_timestamp(migrated.get("createdAt")) or now_utc(),
            updated_at=parse_timestamp(migrated.get("updatedAt")) or now_utc(),
        )


@dataclass
class Genre:
    """Genre domain model with a denormalized book count."""
    id: Optional[str] = None
    name: str = ""
    normalized_name: str = ""
    color: Optional[str] = None
    book_count: int = 0
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        if not self.normalized_name and self.name:
            self.normalized_name = normalize_genre_name(self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "normalizedName": self.normalized_name,
            "color": self.color,
            "bookCount": self.book_count,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Genre":
        return cls(
            id=data.get("id"),
            name=data.get("name") or "",
            normalized_name=data.get("normalizedName") or "",
            color=data.get("color"),
            book_count=int(data.get("bookCount") or 0),
            created_at=parse_timestamp(data.get("createdAt")) or now_utc(),
            updated_at=parse_timestamp(data.get("updatedAt")) or now_utc(),
        )


@dataclass
class ExpectedBook:
    """A series entry the user does not own yet."""
    title: str
    isbn: Optional[str] = None
    position: Optional[float] = None
    source: str = "manual"  # "api" or "manual"

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "isbn": self.isbn, "position": self.position, "source": self.source}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExpectedBook":
        return cls(
            title=data.get("title") or "",
            isbn=data.get("isbn") or None,
            position=data.get("position"),
            source=data.get("source") or "manual",
        )


@dataclass
class Series:
    """Series domain model with a denormalized book count."""
    id: Optional[str] = None
    name: str = ""
    normalized_name: str = ""
    description: Optional[str] = None
    total_books: Optional[int] = None
    book_count: int = 0
    expected_books: List[ExpectedBook] = field(default_factory=list)
    deleted_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        if not self.normalized_name and self.name:
            self.normalized_name = normalize_series_name(self.name)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "normalizedName": self.normalized_name,
            "description": self.description,
            "totalBooks": self.total_books,
            "bookCount": self.book_count,
            "expectedBooks": [b.to_dict() for b in self.expected_books],
            "deletedAt": format_timestamp(self.deleted_at),
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Series":
        return cls(
            id=data.get("id"),
            name=data.get("name") or "",
            normalized_name=data.get("normalizedName") or "",
            description=data.get("description"),
            total_books=data.get("totalBooks"),
            book_count=int(data.get("bookCount") or 0),
            expected_books=[ExpectedBook.from_dict(b) for b in data.get("expectedBooks") or []],
            deleted_at=parse_timestamp(data.get("deletedAt")),
            created_at=parse_timestamp(data.get("createdAt")) or now_utc(),
            updated_at=parse_timestamp(data.get("updatedAt")) or now_utc(),
        )


@dataclass
class WishlistItem:
    """A book the user wants but does not own."""
    id: Optional[str] = None
    title: str = ""
    author: str = ""
    isbn: Optional[str] = None
    priority: Optional[WishlistPriority] = None
    added_from: AddedFrom = AddedFrom.MANUAL
    notes: Optional[str] = None
    cover_image_url: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    page_count: Optional[int] = None
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn or None,
            "priority": self.priority.value if self.priority else None,
            "addedFrom": self.added_from.value,
            "notes": self.notes,
            "coverImageUrl": self.cover_image_url,
            "publisher": self.publisher,
            "publishedDate": self.published_date,
            "pageCount": self.page_count,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WishlistItem":
        priority = data.get("priority")
        return cls(
            id=data.get("id"),
            title=data.get("title") or "",
            author=data.get("author") or "",
            isbn=data.get("isbn") or None,
            priority=WishlistPriority(priority) if priority else None,
            added_from=AddedFrom(data.get("addedFrom") or AddedFrom.MANUAL.value),
            notes=data.get("notes"),
            cover_image_url=data.get("coverImageUrl"),
            publisher=data.get("publisher"),
            published_date=data.get("publishedDate"),
            page_count=data.get("pageCount"),
            created_at=parse_timestamp(data.get("createdAt")) or now_utc(),
            updated_at=parse_timestamp(data.get("updatedAt")) or now_utc(),
        )


@dataclass
class BookMetadata:
    """Metadata returned by an external lookup provider."""
    title: str = ""
    author: str = ""
    isbn: Optional[str] = None
    cover_urls: Dict[str, str] = field(default_factory=dict)
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    page_count: Optional[int] = None
    genre_hints: List[str] = field(default_factory=list)

    @property
    def cover_url(self) -> Optional[str]:
        return next(iter(self.cover_urls.values()), None)


@dataclass
class DuplicateCheckResult:
    is_duplicate: bool = False
    match_type: Optional[MatchType] = None
    existing_book: Optional[Book] = None

    @property
    def message(self) -> str:
        if not self.is_duplicate or self.existing_book is None:
            return ""
        existing = self.existing_book
        if self.match_type is MatchType.ISBN:
            return f'A book with ISBN {existing.isbn} already exists: "{existing.title}" by {existing.author}'
        return f'"{existing.title}" by {existing.author} is already in your library'

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isDuplicate": self.is_duplicate,
            "matchType": self.match_type.value if self.match_type else None,
            "existingBook": self.existing_book.to_dict() if self.existing_book else None,
            "message": self.message,
        }


@dataclass
class RecalculationReport:
    """Outcome of a full count sweep. Zero corrections is a normal result."""
    kind: CountKind
    scanned: int = 0
    corrected: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "scanned": self.scanned, "corrected": self.corrected}


@dataclass
class RestoreResult:
    book: Book
    warnings: List[str] = field(default_factory=list)
    series_restored: bool = False


@dataclass
class MergeResult:
    books_updated: int = 0
    expected_books_merged: int = 0


@dataclass
class Listing:
    """Result of a read path.

    ``is_complete`` is False when only a page of the collection was fetched.
    Read failures do not raise: they come back as an empty listing with
    ``error`` set.
    """
    records: List[Any] = field(default_factory=list)
    is_complete: bool = False
    error: Optional[str] = None
    from_cache: bool = False

    def __iter__(self):
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "records": [r.to_dict() if hasattr(r, "to_dict") else r for r in self.records],
            "isComplete": self.is_complete,
            "error": self.error,
        }
