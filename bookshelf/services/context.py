"""
Service context: the collaborators and settings every service works with.

There is no module-level "current user" or collection cache. Each service
receives a ServiceContext and each operation takes the user id explicitly.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

import pytz

from ..domain.models import BookMetadata, now_utc
from ..domain.repositories import DocumentStore, FormValidator, MetadataProvider
from ..utils.local_cache import CacheKind, CacheStore

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Tunable limits. Defaults match the values the web client ships with."""
    duplicate_check_limit: int = 200
    author_scan_limit: int = 200
    bin_retention_days: int = 30
    metadata_lookup_timeout: float = 5.0
    timezone: str = "UTC"

    @classmethod
    def from_config(cls, config: Any) -> "Settings":
        """Build settings from a Flask config mapping or a Config class."""
        if isinstance(config, Mapping):
            get = config.get
        else:
            def get(key, default=None):
                return getattr(config, key, default)

        return cls(
            duplicate_check_limit=int(get('DUPLICATE_CHECK_LIMIT', cls.duplicate_check_limit)),
            author_scan_limit=int(get('AUTHOR_SCAN_LIMIT', cls.author_scan_limit)),
            bin_retention_days=int(get('BIN_RETENTION_DAYS', cls.bin_retention_days)),
            metadata_lookup_timeout=float(get('METADATA_LOOKUP_TIMEOUT', cls.metadata_lookup_timeout)),
            timezone=get('TIMEZONE', cls.timezone) or cls.timezone,
        )


@dataclass
class ServiceContext:
    store: DocumentStore
    cache: CacheStore
    settings: Settings = field(default_factory=Settings)
    clock: Callable[[], datetime] = now_utc
    metadata_provider: Optional[MetadataProvider] = None
    form_validator: Optional[FormValidator] = None

    def now(self) -> datetime:
        return self.clock()

    def today(self) -> datetime:
        """Midnight of the current day in the configured timezone."""
        tz = pytz.timezone(self.settings.timezone)
        local = self.clock().astimezone(tz)
        return tz.localize(datetime(local.year, local.month, local.day))

    def invalidate(self, user_id: str, *kinds: CacheKind) -> None:
        for kind in kinds:
            self.cache.invalidate(user_id, kind)

    async def lookup_isbn(self, isbn: str) -> Optional[BookMetadata]:
        """Metadata for an ISBN, or None on timeout, provider failure or no provider."""
        if self.metadata_provider is None or not isbn:
            return None
        try:
            return await asyncio.wait_for(
                self.metadata_provider.lookup_isbn(isbn),
                timeout=self.settings.metadata_lookup_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Metadata lookup for ISBN {isbn} timed out")
            return None
        except Exception as e:
            logger.warning(f"Metadata lookup for ISBN {isbn} failed: {e}")
            return None
