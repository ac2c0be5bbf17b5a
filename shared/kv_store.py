"""
Key-value store used for session context, progress logs, conversation history
and short-lived bucket caches.

Two implementations share the same async get/set/delete contract:
- CosmosKeyValueStore: one Cosmos DB item per key, expiry via per-item ``ttl``
- InMemoryKeyValueStore: process-local dict, used for local runs and tests

Callers must treat a miss as a cold start; there is no locking and reads may
be stale.
"""

import re
import time
import asyncio
import logging
import threading
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

from azure.cosmos import CosmosClient
from azure.cosmos.exceptions import CosmosResourceNotFoundError
from azure.identity import DefaultAzureCredential

from shared import config

logger = logging.getLogger(__name__)

# Thread-safe lazy singleton for the worker process
_client = None
_lock = threading.Lock()


def get_client() -> CosmosClient:
    global _client
    if _client is None:
        with _lock:
            if _client is None:
                _client = CosmosClient(
                    f"https://{config.AZURE_DB_ID}.documents.azure.com:443/",
                    credential=DefaultAzureCredential(),
                    consistency_level="Session",
                )
    return _client


@lru_cache(maxsize=16)
def get_container(db_name: str, container_name: str):
    return get_client().get_database_client(db_name).get_container_client(container_name)


class KeyValueStore:
    """Async get/set/delete with a TTL. Subclasses implement the storage."""

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, clock=time.time):
        self._items: Dict[str, Tuple[Any, float]] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[Any]:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= self._clock():
            self._items.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._items[key] = (value, self._clock() + max(1, int(ttl_seconds)))

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)


class CosmosKeyValueStore(KeyValueStore):
    """
    Stores each key as ``{"id": <sanitized key>, "key": key, "value": value,
    "ttl": seconds, "expires_at": epoch}``. The container must have TTL
    enabled (default TTL -1). ``expires_at`` is checked on read as well.
    """

    def __init__(self, db_name: str, container_name: str):
        self.db_name = db_name
        self.container_name = container_name
        logger.info(f"[KVStore] Using Cosmos container {db_name}/{container_name}")

    @staticmethod
    def _item_id(key: str) -> str:
        # '/', '\\', '?' and '#' are not allowed in Cosmos ids
        return re.sub(r"[/\\?#]", "_", key)

    def _container(self):
        return get_container(self.db_name, self.container_name)

    def _read(self, key: str) -> Optional[Any]:
        item_id = self._item_id(key)
        try:
            item = self._container().read_item(item=item_id, partition_key=item_id)
        except CosmosResourceNotFoundError:
            return None
        if item.get("expires_at", 0) <= time.time():
            return None
        return item.get("value")

    def _write(self, key: str, value: Any, ttl_seconds: int) -> None:
        item_id = self._item_id(key)
        ttl = max(1, int(ttl_seconds))
        self._container().upsert_item(
            {
                "id": item_id,
                "key": key,
                "value": value,
                "ttl": ttl,
                "expires_at": time.time() + ttl,
            }
        )

    def _remove(self, key: str) -> None:
        item_id = self._item_id(key)
        try:
            self._container().delete_item(item=item_id, partition_key=item_id)
        except CosmosResourceNotFoundError:
            pass

    async def get(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await asyncio.to_thread(self._write, key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)


_default_store: Optional[KeyValueStore] = None


def get_kv_store() -> KeyValueStore:
    """Cosmos-backed store when AZURE_DB_ID/AZURE_DB_NAME are set, else in-memory."""
    global _default_store
    if _default_store is None:
        if config.AZURE_DB_ID and config.AZURE_DB_NAME:
            _default_store = CosmosKeyValueStore(
                config.AZURE_DB_NAME, config.AZURE_KV_CONTAINER
            )
        else:
            logger.warning(
                "[KVStore] AZURE_DB_ID not configured, using in-memory store"
            )
            _default_store = InMemoryKeyValueStore()
    return _default_store
