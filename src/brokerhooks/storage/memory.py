"""
In-Memory Storage Backend.

Default storage backend that keeps all data in memory.
Suitable for development and testing, but not for production.
"""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from brokerhooks.storage.base import StorageBackend, register_storage_backend


class InMemoryStorage(StorageBackend):
    """
    In-memory storage backend.

    Stores all data in Python dicts. Data is lost when process ends.
    No method awaits between reading and writing a key, so every operation,
    ``upsert`` included, is atomic with respect to other coroutines.
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {}

    def _ensure_collection(self, collection: str) -> dict[str, dict[str, Any]]:
        """Ensure collection exists and return it."""
        if collection not in self._data:
            self._data[collection] = {}
        return self._data[collection]

    async def save(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
    ) -> None:
        """Save data to memory."""
        coll = self._ensure_collection(collection)
        coll[key] = deepcopy(data)

    async def get(
        self,
        collection: str,
        key: str,
    ) -> dict[str, Any] | None:
        """Get data from memory."""
        coll = self._ensure_collection(collection)
        data = coll.get(key)
        return deepcopy(data) if data is not None else None

    async def delete(
        self,
        collection: str,
        key: str,
    ) -> bool:
        """Delete data from memory."""
        coll = self._ensure_collection(collection)
        if key in coll:
            del coll[key]
            return True
        return False

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Query data with optional filters."""
        coll = self._ensure_collection(collection)

        results = []
        for key, data in coll.items():
            if filters and any(data.get(k) != v for k, v in filters.items()):
                continue

            result = deepcopy(data)
            result["_key"] = key
            results.append(result)

        results = results[offset:]
        if limit is not None:
            results = results[:limit]

        return results

    async def update(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
    ) -> bool:
        """Update existing data."""
        coll = self._ensure_collection(collection)
        if key not in coll:
            return False

        coll[key].update(deepcopy(data))
        return True

    async def upsert(
        self,
        collection: str,
        key: str,
        create: dict[str, Any],
        update: dict[str, Any],
    ) -> tuple[dict[str, Any], bool]:
        """Insert or merge without yielding in between."""
        coll = self._ensure_collection(collection)
        if key in coll:
            coll[key].update(deepcopy(update))
            return deepcopy(coll[key]), False

        coll[key] = deepcopy(create)
        return deepcopy(create), True

    async def count(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> int:
        """Count records in collection."""
        if filters:
            results = await self.query(collection, filters)
            return len(results)

        coll = self._ensure_collection(collection)
        return len(coll)

    async def clear(self, collection: str) -> int:
        """Clear all records from a collection."""
        coll = self._ensure_collection(collection)
        count = len(coll)
        coll.clear()
        return count


# Register as default backend
register_storage_backend("memory", InMemoryStorage)
