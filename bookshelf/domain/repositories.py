"""
Collaborator interfaces for the domain layer.

These interfaces define the contracts for data access and external lookups
without coupling to specific implementations. Services depend on them; the
infrastructure package provides Redis and in-process implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .models import BookMetadata


# Collection names under a user's namespace
BOOKS = "books"
GENRES = "genres"
SERIES = "series"
WISHLIST = "wishlist"


@dataclass
class BatchOperation:
    """One queued write inside a WriteBatch."""
    op: str  # "update", "delete" or "increment"
    collection: str
    doc_id: str
    fields: Dict[str, Any] = field(default_factory=dict)


class WriteBatch(ABC):
    """Queue of document writes committed as one all-or-nothing unit."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        self.operations: List[BatchOperation] = []

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> "WriteBatch":
        """Queue a partial-field update."""
        self.operations.append(BatchOperation("update", collection, doc_id, dict(fields)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        """Queue a document deletion."""
        self.operations.append(BatchOperation("delete", collection, doc_id))
        return self

    def increment(self, collection: str, doc_id: str, field_name: str, delta: int) -> "WriteBatch":
        """Queue an atomic numeric increment (negative delta decrements)."""
        self.operations.append(BatchOperation("increment", collection, doc_id, {field_name: delta}))
        return self

    def __len__(self) -> int:
        return len(self.operations)

    @abstractmethod
    async def commit(self) -> None:
        """Apply every queued operation atomically.

        Raises:
            BatchCommitError: If the batch could not be applied. Nothing from
                the batch is applied in that case.
        """
        pass


class DocumentStore(ABC):
    """Remote document store, namespaced per user and collection.

    Documents are plain dicts; every returned document carries its ``id``.
    No cross-collection transactions with read isolation are offered: the only
    atomic units are a single-document write, a single-field increment, and a
    WriteBatch.
    """

    @abstractmethod
    async def get(self, user_id: str, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Get a document by ID."""
        pass

    @abstractmethod
    async def find_by_field(
        self,
        user_id: str,
        collection: str,
        field_name: str,
        value: Any,
        limit: Optional[int] = None,
        contains: bool = False,
    ) -> List[Dict[str, Any]]:
        """Documents whose ``field_name`` equals ``value``.

        With ``contains=True`` the field is a list and matches when it holds
        ``value``.
        """
        pass

    @abstractmethod
    async def list_all(
        self,
        user_id: str,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """All documents of a collection, optionally ordered and limited."""
        pass

    @abstractmethod
    async def add(self, user_id: str, collection: str, data: Dict[str, Any]) -> str:
        """Create a document and return its new ID."""
        pass

    @abstractmethod
    async def update(self, user_id: str, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Update specific fields of an existing document.

        Raises:
            NotFoundError: If the document does not exist.
        """
        pass

    @abstractmethod
    async def delete(self, user_id: str, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def increment(self, user_id: str, collection: str, doc_id: str, field_name: str, delta: int) -> None:
        """Atomically add ``delta`` to a numeric field of one document."""
        pass

    @abstractmethod
    def batch(self, user_id: str) -> WriteBatch:
        """Start a new atomic write batch for a user's documents."""
        pass


class MetadataProvider(ABC):
    """External book metadata lookup (ISBN and free-text search)."""

    @abstractmethod
    async def lookup_isbn(self, isbn: str) -> Optional[BookMetadata]:
        """Metadata for an ISBN, or None when the provider has no record."""
        pass

    @abstractmethod
    async def search(self, query: str, page: int = 0) -> Tuple[List[BookMetadata], bool]:
        """A page of candidate matches plus a "more available" flag."""
        pass


@dataclass
class FormValidationResult:
    data: Optional[Dict[str, Any]] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class FormValidator(ABC):
    """Schema-driven validation of raw form values."""

    @abstractmethod
    def validate(self, schema_id: str, raw: Dict[str, Any]) -> FormValidationResult:
        """Parsed data, or a field-keyed error map."""
        pass
