"""Tests for settings, the service context and the async bridge."""
import asyncio
from datetime import datetime, timezone

import pytest

from conftest import FakeClock, make_context
from bookshelf.infrastructure.memory_store import InMemoryDocumentStore
from bookshelf.services.async_helper import run_async
from bookshelf.services.context import Settings


class SettingsConfig:
    DUPLICATE_CHECK_LIMIT = '50'
    BIN_RETENTION_DAYS = 7
    TIMEZONE = ''


def test_settings_from_mapping_and_class():
    settings = Settings.from_config({'AUTHOR_SCAN_LIMIT': '120', 'METADATA_LOOKUP_TIMEOUT': '2.5'})
    assert settings.author_scan_limit == 120
    assert settings.metadata_lookup_timeout == 2.5
    assert settings.duplicate_check_limit == 200

    settings = Settings.from_config(SettingsConfig)
    assert settings.duplicate_check_limit == 50
    assert settings.bin_retention_days == 7
    assert settings.timezone == 'UTC'


def test_today_is_local_midnight():
    clock = FakeClock(datetime(2024, 3, 1, 2, 30, tzinfo=timezone.utc))
    ctx = make_context(InMemoryDocumentStore(), clock, timezone='America/New_York')

    today = ctx.today()

    assert today.isoformat() == '2024-02-29T00:00:00-05:00'


def test_lookup_isbn_without_provider_is_none(ctx):
    assert asyncio.run(ctx.lookup_isbn('9780143127550')) is None


async def _double(value):
    return value * 2


def test_run_async_runs_coroutines_and_wraps_functions():
    assert run_async(_double(4)) == 8
    assert run_async(_double)(5) == 10


def test_run_async_inside_running_loop():
    async def outer():
        return run_async(_double(3))

    assert asyncio.run(outer()) == 6


def test_run_async_rejects_other_values():
    with pytest.raises(TypeError):
        run_async(42)
