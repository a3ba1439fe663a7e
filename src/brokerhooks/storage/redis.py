"""
Redis Storage Backend.

Production storage backend using Redis for persistence.
Requires redis-py package.
"""

from __future__ import annotations

import functools
import json
import os
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from brokerhooks.core.exceptions import StorageError
from brokerhooks.storage.base import StorageBackend, register_storage_backend

T = TypeVar("T")


def _storage_errors(method: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Re-raise redis-py failures as StorageError so callers see one error type."""

    @functools.wraps(method)
    async def wrapper(self: RedisStorage, collection: str, *args: Any, **kwargs: Any) -> T:
        try:
            return await method(self, collection, *args, **kwargs)
        except RedisError as e:
            raise StorageError(
                f"Redis {method.__name__} failed: {e}",
                details={"collection": collection},
            ) from e

    return wrapper


class RedisStorage(StorageBackend):
    """
    Redis storage backend.

    Each record is one JSON string key; a per-collection set indexes the keys.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        prefix: str = "brokerhooks",
        client: Any = None,
    ) -> None:
        """
        Initialize Redis storage.

        Args:
            redis_url: Redis connection URL (or from BROKERHOOKS_REDIS_URL env)
            prefix: Key prefix for all storage keys
            client: Pre-built ``redis.asyncio`` client (tests, shared pools)
        """
        self._redis_url = redis_url or os.environ.get(
            "BROKERHOOKS_REDIS_URL",
            "redis://localhost:6379/0",
        )
        self._prefix = prefix
        self._client = client

    def _get_client(self):
        """Lazy-create the Redis client."""
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def _make_key(self, collection: str, key: str) -> str:
        return f"{self._prefix}:{collection}:{key}"

    def _index_key(self, collection: str) -> str:
        return f"{self._prefix}:{collection}:_index"

    @_storage_errors
    async def save(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
    ) -> None:
        """Save data to Redis."""
        client = self._get_client()
        await client.set(self._make_key(collection, key), json.dumps(data))
        await client.sadd(self._index_key(collection), key)

    @_storage_errors
    async def get(
        self,
        collection: str,
        key: str,
    ) -> dict[str, Any] | None:
        """Get data from Redis."""
        client = self._get_client()
        data = await client.get(self._make_key(collection, key))

        if data is None:
            return None

        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt record {collection}:{key}") from e

    @_storage_errors
    async def delete(
        self,
        collection: str,
        key: str,
    ) -> bool:
        """Delete data from Redis."""
        client = self._get_client()
        result = await client.delete(self._make_key(collection, key))
        await client.srem(self._index_key(collection), key)
        return result > 0

    @_storage_errors
    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Query data with optional filters."""
        client = self._get_client()
        keys = await client.smembers(self._index_key(collection))

        results = []
        for key in sorted(keys):
            data = await self.get(collection, key)
            if data is None:
                continue

            if filters and any(data.get(k) != v for k, v in filters.items()):
                continue

            data["_key"] = key
            results.append(data)

        results = results[offset:]
        if limit is not None:
            results = results[:limit]

        return results

    @_storage_errors
    async def update(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
    ) -> bool:
        """Update existing data."""
        existing = await self.get(collection, key)
        if existing is None:
            return False

        existing.update(data)
        await self.save(collection, key, existing)
        return True

    @_storage_errors
    async def upsert(
        self,
        collection: str,
        key: str,
        create: dict[str, Any],
        update: dict[str, Any],
    ) -> tuple[dict[str, Any], bool]:
        """
        Insert or merge a record.

        Creation is claimed with ``SET NX`` so only one concurrent caller can
        create a given key. The merge path is last-writer-wins.
        """
        client = self._get_client()
        redis_key = self._make_key(collection, key)

        created = await client.set(redis_key, json.dumps(create), nx=True)
        if created:
            await client.sadd(self._index_key(collection), key)
            return dict(create), True

        existing = await self.get(collection, key) or {}
        existing.update(update)
        await self.save(collection, key, existing)
        return existing, False

    @_storage_errors
    async def count(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> int:
        """Count records in collection."""
        if filters:
            results = await self.query(collection, filters)
            return len(results)

        client = self._get_client()
        return await client.scard(self._index_key(collection))

    @_storage_errors
    async def clear(self, collection: str) -> int:
        """Clear all records from a collection."""
        client = self._get_client()
        keys = await client.smembers(self._index_key(collection))

        for key in keys:
            await self.delete(collection, key)

        return len(keys)

    async def health_check(self) -> bool:
        """Check Redis connection."""
        try:
            client = self._get_client()
            await client.ping()
            return True
        except RedisError:
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


# Register backend
register_storage_backend("redis", RedisStorage)
