"""
Domain exceptions.

Validation and uniqueness errors are user-recoverable and carry enough detail
for the caller to show which field or record is involved. Store errors are
transient and may be retried by the user.
"""

from typing import Any, Dict, Optional


class BookshelfError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class FormValidationError(BookshelfError):
    """Raised when raw form input does not validate. Errors are keyed by field."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()) or "Invalid input")


class UniquenessError(BookshelfError):
    """A per-user uniqueness constraint would be violated.

    ``field`` names the violated constraint ("name" or "color").
    """

    def __init__(self, field: str, message: str, conflicting_id: Optional[str] = None):
        self.field = field
        self.conflicting_id = conflicting_id
        super().__init__(message)


class GenreNameExistsError(UniquenessError):
    def __init__(self, existing_name: str, conflicting_id: Optional[str] = None):
        super().__init__("name", f'Genre "{existing_name}" already exists', conflicting_id)


class GenreColorInUseError(UniquenessError):
    def __init__(self, color: str, conflicting_id: Optional[str] = None):
        self.color = color
        super().__init__("color", "This colour is already used by another genre", conflicting_id)


class SeriesNameExistsError(UniquenessError):
    def __init__(self, existing_name: str, conflicting_id: Optional[str] = None):
        super().__init__("name", f'Series "{existing_name}" already exists', conflicting_id)


class DuplicateBookError(BookshelfError):
    """Raised when adding a book that matches an existing one without an override."""

    def __init__(self, result: Any):
        self.result = result
        super().__init__(result.message)


class DuplicateWishlistItemError(BookshelfError):
    """Raised when a wishlist item matches an existing wishlist item or book."""

    def __init__(self, existing: Any, source: str):
        self.existing = existing
        self.source = source
        title = getattr(existing, "title", "") or ""
        where = "your wishlist" if source == "wishlist" else "your library"
        super().__init__(f'"{title}" is already in {where}')


class ReadingHistoryError(BookshelfError):
    """Raised for an invalid reading-history transition or date combination."""


class NotFoundError(BookshelfError):
    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind.capitalize()} not found: {record_id}")


class MergeError(BookshelfError):
    """Raised when two records cannot be merged."""


class StoreError(BookshelfError):
    """A remote document store operation failed. Retryable by the user."""


class BatchCommitError(StoreError):
    """An atomic batch failed to commit. Nothing from the batch was applied."""
