"""
Local snapshot cache for remote collections.

Entries are keyed by (user id, cache kind) and carry a schema version, a
capture timestamp and an ``is_complete`` flag. An entry is only trusted when
its version matches the running code, its TTL has not elapsed and, for
"everything" queries, it was captured complete. Entries are snapshots, not
sources of truth: concurrent repopulation is last-writer-wins.
"""

import json
import time
import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Bump whenever the shape of cached records changes.
CACHE_SCHEMA_VERSION = 7

DAY_SECONDS = 24 * 60 * 60


class CacheKind(Enum):
    BOOKS = "books"
    GENRES = "genres"
    SERIES = "series"
    WISHLIST = "wishlist"
    RECOMMENDATIONS = "recommendations"
    GRAVATAR_PROBE = "gravatar-probe"


# None means no hard TTL: the entry lives until a write path invalidates it.
CACHE_TTLS: Dict[CacheKind, Optional[int]] = {
    CacheKind.BOOKS: None,
    CacheKind.GENRES: None,
    CacheKind.SERIES: None,
    CacheKind.WISHLIST: None,
    CacheKind.RECOMMENDATIONS: DAY_SECONDS,
    CacheKind.GRAVATAR_PROBE: DAY_SECONDS,
}


@dataclass(frozen=True)
class CacheEntry:
    """A versioned snapshot of one remote collection (or one page of it)."""
    kind: CacheKind
    records: Tuple[Dict[str, Any], ...]
    schema_version: int
    captured_at: float
    is_complete: bool

    def age(self, now: float) -> float:
        return now - self.captured_at

    def is_stale(self, now: float, ttl: Optional[int]) -> bool:
        if ttl is None:
            return False
        return self.age(now) > ttl

    def to_payload(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "version": self.schema_version,
            "capturedAt": self.captured_at,
            "isComplete": self.is_complete,
            "records": list(self.records),
        }

    @classmethod
    def from_payload(cls, payload: Any, expected_kind: CacheKind) -> "CacheEntry":
        """Validate a stored payload.

        Raises:
            ValueError: If the payload is not a well-formed entry of ``expected_kind``.
        """
        if not isinstance(payload, dict):
            raise ValueError("cache payload is not a mapping")
        if payload.get("kind") != expected_kind.value:
            raise ValueError(f"cache payload kind {payload.get('kind')!r} != {expected_kind.value!r}")
        version = payload.get("version")
        captured_at = payload.get("capturedAt")
        records = payload.get("records")
        if not isinstance(version, int) or isinstance(version, bool):
            raise ValueError("cache payload has no integer version")
        if not isinstance(captured_at, (int, float)):
            raise ValueError("cache payload has no capture timestamp")
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise ValueError("cache payload records must be a list of mappings")
        return cls(
            kind=expected_kind,
            records=tuple(records),
            schema_version=version,
            captured_at=float(captured_at),
            is_complete=bool(payload.get("isComplete", False)),
        )


class CacheStore(ABC):
    """Synchronous per-user, per-kind cache. Readers never block on the network."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        schema_version: int = CACHE_SCHEMA_VERSION,
        ttls: Optional[Dict[CacheKind, Optional[int]]] = None,
    ):
        self.clock = clock
        self.schema_version = schema_version
        self.ttls = dict(CACHE_TTLS if ttls is None else ttls)

    @abstractmethod
    def _load(self, user_id: str, kind: CacheKind) -> Optional[Any]:
        pass

    @abstractmethod
    def _save(self, user_id: str, kind: CacheKind, payload: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def _remove(self, user_id: str, kind: CacheKind) -> None:
        pass

    def read(self, user_id: str, kind: CacheKind) -> Optional[CacheEntry]:
        """A trusted entry, or None if absent, malformed, from another schema version or stale."""
        payload = self._load(user_id, kind)
        if payload is None:
            return None
        try:
            entry = CacheEntry.from_payload(payload, kind)
        except ValueError as e:
            logger.warning(f"Discarding malformed {kind.value} cache entry for user {user_id}: {e}")
            self._remove(user_id, kind)
            return None
        if entry.schema_version != self.schema_version:
            logger.debug(f"Discarding {kind.value} cache entry with schema version {entry.schema_version}")
            self._remove(user_id, kind)
            return None
        if entry.is_stale(self.clock(), self.ttls.get(kind)):
            self._remove(user_id, kind)
            return None
        return entry

    def read_complete(self, user_id: str, kind: CacheKind) -> Optional[CacheEntry]:
        """Like ``read`` but only for entries that captured the whole collection."""
        entry = self.read(user_id, kind)
        if entry is None or not entry.is_complete:
            return None
        return entry

    def write(self, user_id: str, kind: CacheKind, records: List[Dict[str, Any]], is_complete: bool) -> CacheEntry:
        entry = CacheEntry(
            kind=kind,
            records=tuple(records),
            schema_version=self.schema_version,
            captured_at=self.clock(),
            is_complete=is_complete,
        )
        self._save(user_id, kind, entry.to_payload())
        return entry

    def invalidate(self, user_id: str, kind: CacheKind) -> None:
        self._remove(user_id, kind)

    def clear_user(self, user_id: str) -> None:
        """Drop every entry of a user (logout or user switch)."""
        for kind in CacheKind:
            self._remove(user_id, kind)


class LocalCacheStore(CacheStore):
    """In-process cache suitable for a single worker."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._store: Dict[Tuple[str, CacheKind], Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _load(self, user_id: str, kind: CacheKind) -> Optional[Any]:
        with self._lock:
            return self._store.get((user_id, kind))

    def _save(self, user_id: str, kind: CacheKind, payload: Dict[str, Any]) -> None:
        with self._lock:
            self._store[(user_id, kind)] = payload

    def _remove(self, user_id: str, kind: CacheKind) -> None:
        with self._lock:
            self._store.pop((user_id, kind), None)


class FileCacheStore(CacheStore):
    """JSON-file cache, one file per user and kind under ``cache_dir``.

    Layout: ``<cache_dir>/<md5(user_id)>/<kind>.json``. Write failures are
    logged and leave the entry absent.
    """

    def __init__(self, cache_dir: Path, **kwargs):
        super().__init__(**kwargs)
        self.cache_dir = Path(cache_dir)

    def _path(self, user_id: str, kind: CacheKind) -> Path:
        user_dir = hashlib.md5(user_id.encode("utf-8")).hexdigest()
        return self.cache_dir / user_dir / f"{kind.value}.json"

    def _load(self, user_id: str, kind: CacheKind) -> Optional[Any]:
        path = self._path(user_id, kind)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Error reading cache file {path}: {e}")
            return {}

    def _save(self, user_id: str, kind: CacheKind, payload: Dict[str, Any]) -> None:
        path = self._path(user_id, kind)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        except (OSError, TypeError) as e:
            logger.warning(f"Error writing cache file {path}: {e}")

    def _remove(self, user_id: str, kind: CacheKind) -> None:
        path = self._path(user_id, kind)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Error deleting cache file {path}: {e}")
