"""
Infrastructure layer: DocumentStore implementations.
"""

from .memory_store import InMemoryDocumentStore
from .redis_store import RedisConnection, RedisDocumentStore

__all__ = ['InMemoryDocumentStore', 'RedisConnection', 'RedisDocumentStore']
