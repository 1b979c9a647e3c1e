"""
NewsRAG - Expiring Key-Value Store (MongoDB)
=============================================
The storage primitive behind ``ResponseCache`` and ``SessionStore``:
``get`` / ``set``-with-expiry over string keys and JSON string values.

Collection schema (``kv_store``)::

    {
        "_id": "session:<id>" | "query:<...>",
        "value": str,            # JSON document
        "expiresAt": datetime    # UTC
    }

Expiry is delegated to MongoDB: a TTL index on ``expiresAt`` removes
expired documents in the background.  Because the TTL monitor only runs
about once a minute, reads also filter on ``expiresAt > now`` so an
expired key is never returned.  Nothing in this process scans for
expired keys.

Every ``set`` is a single atomic ``replace_one(upsert=True)``, the only
coordination primitive the cache and session store rely on.

``delete_prefix`` and ``count_prefix`` match keys with an anchored ``_id``
regex, which MongoDB serves from the ``_id`` index.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable

import motor.motor_asyncio

from newsrag.config.settings import settings
from newsrag.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Structural type for an expiring string key-value store."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int) -> None: ...

    async def ping(self) -> bool: ...

    async def delete_prefix(self, prefix: str) -> int: ...

    async def count_prefix(self, prefix: str) -> int: ...


def create_mongo_client(uri: str | None = None) -> motor.motor_asyncio.AsyncIOMotorClient:
    """Create the async MongoDB client (one per process, built at startup)."""
    client = motor.motor_asyncio.AsyncIOMotorClient(uri or settings.MONGO_URI.get_secret_value(), tz_aware=True)
    logger.info("MongoDB async client created.")
    return client


class MongoKeyValueStore:
    """
    ``KeyValueStore`` backed by a MongoDB collection via ``motor``.

    Parameters
    ----------
    client
        Shared ``AsyncIOMotorClient``.  Ignored when ``collection`` is given.
    collection
        Pre-built collection (tests inject a mock here).
    """

    __slots__ = ("_client", "_collection")

    def __init__(self, client: motor.motor_asyncio.AsyncIOMotorClient | None = None, collection: motor.motor_asyncio.AsyncIOMotorCollection | None = None, db_name: str | None = None, collection_name: str | None = None) -> None:
        if collection is not None:
            self._client = None
            self._collection = collection
            return
        self._client = client or create_mongo_client()
        db = self._client[db_name or settings.MONGO_DB_NAME]
        self._collection = db[collection_name or settings.MONGO_KV_COLLECTION]


    async def ensure_indexes(self) -> None:
        """Create the TTL index that lets MongoDB expire keys on its own."""
        await self._collection.create_index("expiresAt", expireAfterSeconds=0, name="expiresAt_ttl")
        logger.info("[KV] TTL index ensured on '%s'.", self._collection.name)


    async def get(self, key: str) -> str | None:
        now = datetime.now(timezone.utc)
        doc = await self._collection.find_one({"_id": key, "expiresAt": {"$gt": now}}, {"value": 1})
        if doc is None:
            return None
        return doc.get("value")


    async def set(self, key: str, value: str, ttl: int) -> None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
        await self._collection.replace_one({"_id": key}, {"_id": key, "value": value, "expiresAt": expires_at}, upsert=True)


    async def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``; returns the number removed."""
        result = await self._collection.delete_many({"_id": {"$regex": f"^{re.escape(prefix)}"}})
        logger.info("[KV] Deleted %d key(s) under '%s'.", result.deleted_count, prefix)
        return result.deleted_count


    async def count_prefix(self, prefix: str) -> int:
        """Count live (unexpired) keys starting with ``prefix``."""
        now = datetime.now(timezone.utc)
        return await self._collection.count_documents({"_id": {"$regex": f"^{re.escape(prefix)}"}, "expiresAt": {"$gt": now}})


    async def ping(self) -> bool:
        database = self._collection.database
        result = await database.command("ping")
        return bool(result.get("ok"))


    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("MongoDB client closed.")
