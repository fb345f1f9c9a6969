import os
from dotenv import load_dotenv

# Load environment variables from .env file(s)
load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def _int_env(name, default):
    value = os.environ.get(name)
    return int(value) if value else default


def _float_env(name, default):
    value = os.environ.get(name)
    return float(value) if value else default


class Config:
    # Data directory (file cache lives under it)
    DATA_DIR = os.environ.get('DATA_DIR') or os.path.join(basedir, 'data')

    # Document store: 'redis' (RedisJSON) or 'memory' (in-process, not persisted)
    STORE_BACKEND = os.environ.get('STORE_BACKEND', 'redis').lower()
    REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')

    # Local cache: 'memory' or 'file'
    CACHE_BACKEND = os.environ.get('CACHE_BACKEND', 'memory').lower()
    CACHE_DIR = os.environ.get('CACHE_DIR') or os.path.join(DATA_DIR, 'cache')

    # Scan bounds for duplicate detection and author grouping
    DUPLICATE_CHECK_LIMIT = _int_env('DUPLICATE_CHECK_LIMIT', 200)
    AUTHOR_SCAN_LIMIT = _int_env('AUTHOR_SCAN_LIMIT', 200)

    # Days a binned book is kept before purge_expired removes it
    BIN_RETENTION_DAYS = _int_env('BIN_RETENTION_DAYS', 30)

    # Seconds to wait for the metadata provider
    METADATA_LOOKUP_TIMEOUT = _float_env('METADATA_LOOKUP_TIMEOUT', 5.0)

    # Application settings
    TIMEZONE = os.environ.get('TIMEZONE') or 'UTC'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'ERROR').upper()
