"""Durable key-value stores backing the persistence gateway.

The chat core only needs string get/set by key. ``MongoKeyValueStore``
keeps one document per key::

    {
        "_id": "geminiChatSessions",
        "value": "[...]",
        "updated_at": "2026-02-08T10:30:00Z"
    }

``InMemoryKeyValueStore`` is used by tests and ``STORAGE_BACKEND=memory``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from pymongo import MongoClient
from pymongo.collection import Collection

from gemchat.config import Settings

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class KeyValueStore(ABC):
    """Contract for string values stored under string keys."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under ``key`` or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        """Release underlying resources."""


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class MongoKeyValueStore(KeyValueStore):
    """MongoDB store, one document per key.

    Uses **pymongo** (synchronous) because the gateway contract is
    synchronous from the chat core's point of view.
    """

    def __init__(
        self,
        connection_string: str,
        database_name: str,
        collection_name: str,
    ) -> None:
        self._client: MongoClient = MongoClient(
            connection_string,
            serverSelectionTimeoutMS=5_000,
        )
        self._collection: Collection = self._client[database_name][collection_name]

    def get(self, key: str) -> Optional[str]:
        doc = self._collection.find_one({"_id": key}, {"value": 1})
        if not doc:
            return None
        value = doc.get("value")
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        self._collection.update_one(
            {"_id": key},
            {"$set": {"value": value, "updated_at": _now_iso()}},
            upsert=True,
        )

    def delete(self, key: str) -> None:
        self._collection.delete_one({"_id": key})

    def ping(self) -> bool:
        try:
            self._client.admin.command("ping")
            return True
        except Exception as exc:
            logger.warning("MongoDB ping failed: %s", exc)
            return False

    def close(self) -> None:
        self._client.close()
        logger.info("MongoDB connection closed")


def create_store(config: Settings) -> KeyValueStore:
    """Build the store selected by ``STORAGE_BACKEND``."""
    if config.uses_memory_storage:
        logger.info("Using in-memory storage; chats will not survive a restart")
        return InMemoryKeyValueStore()

    logger.info("Using MongoDB storage at %s", config.mongodb_uri)
    return MongoKeyValueStore(
        connection_string=config.mongodb_uri,
        database_name=config.mongodb_database,
        collection_name=config.mongodb_collection,
    )
