"""
Redis document store connection and implementation.

Handles Redis connection setup and maps the DocumentStore contract onto
RedisJSON documents plus one Redis Set per collection used as an ID index:

    doc:{user_id}:{collection}:{doc_id}   JSON document
    index:{user_id}:{collection}          Set of document IDs

Field queries are evaluated client-side over the collection index. Batches run
as WATCH + MULTI/EXEC so they apply completely or not at all.
"""

import os
import uuid
import logging
from typing import Any, Dict, List, Optional

import redis
import redis.asyncio as aioredis

from ..domain.errors import BatchCommitError, NotFoundError, StoreError
from ..domain.repositories import DocumentStore, WriteBatch


logger = logging.getLogger(__name__)


def doc_key(user_id: str, collection: str, doc_id: str) -> str:
    return f"doc:{user_id}:{collection}:{doc_id}"


def index_key(user_id: str, collection: str) -> str:
    return f"index:{user_id}:{collection}"


def _first(result: Any) -> Optional[Dict[str, Any]]:
    """Unwrap a JSONPath ``$`` result (a one-element list) into the document."""
    if result and isinstance(result, list):
        return result[0]
    if isinstance(result, dict):
        return result
    return None


class RedisConnection:
    """Redis connection manager for document operations."""

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or os.getenv('REDIS_URL', 'redis://localhost:6379/0')
        self._client: Optional[aioredis.Redis] = None

    async def connect(self) -> aioredis.Redis:
        """Establish the Redis connection and verify it with a PING."""
        if self._client is None:
            client = aioredis.from_url(self.redis_url, decode_responses=True)
            try:
                await client.ping()
            except redis.RedisError as e:
                logger.error(f"Failed to connect to Redis: {e}")
                raise StoreError(f"Could not connect to the document store: {e}") from e
            self._client = client
            logger.info("Redis connection established successfully")
        return self._client

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")

    @property
    def client(self) -> aioredis.Redis:
        """Lazily created client; the first command opens the connection."""
        if self._client is None:
            self._client = aioredis.from_url(self.redis_url, decode_responses=True)
        return self._client


class RedisWriteBatch(WriteBatch):
    def __init__(self, store: "RedisDocumentStore", user_id: str):
        super().__init__(user_id)
        self.store = store

    async def commit(self) -> None:
        if not self.operations:
            return
        keys = [doc_key(self.user_id, op.collection, op.doc_id) for op in self.operations]
        must_exist = [
            doc_key(self.user_id, op.collection, op.doc_id)
            for op in self.operations if op.op in ("update", "increment")
        ]
        try:
            async with self.store.redis.pipeline(transaction=True) as pipe:
                await pipe.watch(*set(keys))
                for key in set(must_exist):
                    if not await pipe.exists(key):
                        raise BatchCommitError(f"Cannot update missing document {key}")
                pipe.multi()
                for op, key in zip(self.operations, keys):
                    if op.op == "update":
                        for field_name, value in op.fields.items():
                            pipe.json().set(key, f"$.{field_name}", value)
                    elif op.op == "increment":
                        for field_name, delta in op.fields.items():
                            pipe.json().numincrby(key, f"$.{field_name}", delta)
                    elif op.op == "delete":
                        pipe.delete(key)
                        pipe.srem(index_key(self.user_id, op.collection), op.doc_id)
                await pipe.execute()
        except redis.WatchError as e:
            logger.error(f"Batch for user {self.user_id} aborted by a concurrent write")
            raise BatchCommitError("Batch aborted because a document changed concurrently") from e
        except redis.RedisError as e:
            logger.error(f"Failed to commit batch of {len(self.operations)} operations: {e}")
            raise BatchCommitError(f"Failed to commit batch: {e}") from e


class RedisDocumentStore(DocumentStore):
    """Redis-based DocumentStore implementation (requires the RedisJSON module)."""

    def __init__(self, connection: RedisConnection):
        self.connection = connection
        self.redis = connection.client

    async def get(self, user_id: str, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            data = _first(await self.redis.json().get(doc_key(user_id, collection, doc_id), '$'))
        except redis.RedisError as e:
            logger.error(f"Failed to get {collection}/{doc_id}: {e}")
            raise StoreError(f"Failed to read {collection}: {e}") from e
        if data is None:
            return None
        data['id'] = doc_id
        return data

    async def _load_collection(self, user_id: str, collection: str) -> List[Dict[str, Any]]:
        try:
            doc_ids = sorted(await self.redis.smembers(index_key(user_id, collection)))
            if not doc_ids:
                return []
            keys = [doc_key(user_id, collection, doc_id) for doc_id in doc_ids]
            results = await self.redis.json().mget(keys, '$')
        except redis.RedisError as e:
            logger.error(f"Failed to load collection {collection}: {e}")
            raise StoreError(f"Failed to read {collection}: {e}") from e

        docs = []
        for doc_id, result in zip(doc_ids, results):
            data = _first(result)
            if data is not None:
                data['id'] = doc_id
                docs.append(data)
        return docs

    async def find_by_field(
        self,
        user_id: str,
        collection: str,
        field_name: str,
        value: Any,
        limit: Optional[int] = None,
        contains: bool = False,
    ) -> List[Dict[str, Any]]:
        matches = []
        for doc in await self._load_collection(user_id, collection):
            current = doc.get(field_name)
            hit = value in (current or []) if contains else current == value
            if hit:
                matches.append(doc)
                if limit is not None and len(matches) >= limit:
                    break
        return matches

    async def list_all(
        self,
        user_id: str,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        docs = await self._load_collection(user_id, collection)
        if order_by:
            present = [d for d in docs if d.get(order_by) is not None]
            missing = [d for d in docs if d.get(order_by) is None]
            present.sort(key=lambda d: d[order_by], reverse=descending)
            docs = present + missing
        return docs[:limit] if limit is not None else docs

    async def add(self, user_id: str, collection: str, data: Dict[str, Any]) -> str:
        doc_id = data.get('id') or str(uuid.uuid4())
        document = dict(data)
        document['id'] = doc_id
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.json().set(doc_key(user_id, collection, doc_id), '$', document)
                pipe.sadd(index_key(user_id, collection), doc_id)
                await pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Failed to add document to {collection}: {e}")
            raise StoreError(f"Failed to write {collection}: {e}") from e
        return doc_id

    async def update(self, user_id: str, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        key = doc_key(user_id, collection, doc_id)
        try:
            if not await self.redis.exists(key):
                raise NotFoundError(collection, doc_id)
            async with self.redis.pipeline(transaction=True) as pipe:
                for field_name, value in fields.items():
                    pipe.json().set(key, f'$.{field_name}', value)
                await pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Failed to update {collection}/{doc_id}: {e}")
            raise StoreError(f"Failed to write {collection}: {e}") from e

    async def delete(self, user_id: str, collection: str, doc_id: str) -> bool:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.delete(doc_key(user_id, collection, doc_id))
                pipe.srem(index_key(user_id, collection), doc_id)
                deleted, _ = await pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Failed to delete {collection}/{doc_id}: {e}")
            raise StoreError(f"Failed to delete from {collection}: {e}") from e
        return deleted > 0

    async def increment(self, user_id: str, collection: str, doc_id: str, field_name: str, delta: int) -> None:
        key = doc_key(user_id, collection, doc_id)
        try:
            if not await self.redis.exists(key):
                raise NotFoundError(collection, doc_id)
            await self.redis.json().numincrby(key, f'$.{field_name}', delta)
        except redis.RedisError as e:
            logger.error(f"Failed to increment {field_name} on {collection}/{doc_id}: {e}")
            raise StoreError(f"Failed to update counter: {e}") from e

    def batch(self, user_id: str) -> WriteBatch:
        return RedisWriteBatch(self, user_id)
