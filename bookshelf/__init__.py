import logging

from flask import Flask

from config import Config


def _build_store(config):
    backend = config.get('STORE_BACKEND', 'redis')
    if backend == 'memory':
        from .infrastructure.memory_store import InMemoryDocumentStore
        return InMemoryDocumentStore()
    if backend == 'redis':
        from .infrastructure.redis_store import RedisConnection, RedisDocumentStore
        return RedisDocumentStore(RedisConnection(config.get('REDIS_URL')))
    raise ValueError(f"Unknown STORE_BACKEND: {backend}")


def _build_cache(config):
    from .utils.local_cache import FileCacheStore, LocalCacheStore

    backend = config.get('CACHE_BACKEND', 'memory')
    if backend == 'file':
        return FileCacheStore(config['CACHE_DIR'])
    if backend == 'memory':
        return LocalCacheStore()
    raise ValueError(f"Unknown CACHE_BACKEND: {backend}")


def create_app(config_object=None, context=None):
    """Application factory.

    ``context`` replaces the ServiceContext built from configuration, which
    lets tests run the API against an in-process store.
    """
    from .routes import register_blueprints
    from .services.context import ServiceContext, Settings

    app = Flask(__name__, static_folder=None)
    app.config.from_object(config_object or Config)

    # Configure Python logging level from LOG_LEVEL (default ERROR)
    log_level_name = str(app.config.get('LOG_LEVEL') or 'ERROR').upper()
    log_level = getattr(logging, log_level_name, logging.ERROR)
    logging.getLogger().setLevel(log_level)
    app.logger.setLevel(log_level)

    # Suppress asyncio debug logging unless explicitly needed
    logging.getLogger('asyncio').setLevel(logging.INFO)

    if context is None:
        context = ServiceContext(
            store=_build_store(app.config),
            cache=_build_cache(app.config),
            settings=Settings.from_config(app.config),
        )
    app.extensions['bookshelf'] = context

    register_blueprints(app)
    app.logger.info(f"Bookshelf API ready ({app.config.get('STORE_BACKEND')} store)")
    return app
