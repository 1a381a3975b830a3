# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Key-value storage for OAuth state and user tokens.

The bot only needs single-key get/set/delete, so storage is hidden behind
the small KVStore interface. InMemoryKVStore serves development and tests;
RedisKVStore is used when REDIS_URL is configured.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError


logger = logging.getLogger(__name__)


class KVStoreError(Exception):
    """Raised when the underlying store fails."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.message = message
        self.key = key
        super().__init__(message)


class KeyNotFoundError(KVStoreError):
    """Raised when a key has no value."""


class KVStore(ABC):
    """Single-key atomic get/set/delete over byte values."""

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """
        Fetch the value stored under key.

        Raises:
            KeyNotFoundError: If nothing is stored under key
            KVStoreError: If the store fails
        """

    @abstractmethod
    async def set(self, key: str, value: bytes) -> None:
        """
        Store value under key, replacing any previous value.

        Raises:
            KVStoreError: If the store fails
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """
        Remove key.

        Raises:
            KeyNotFoundError: If nothing is stored under key
            KVStoreError: If the store fails
        """

    async def close(self) -> None:
        """Release store resources."""


class InMemoryKVStore(KVStore):
    """Dictionary-backed store for development and testing."""

    def __init__(self, data: Optional[Dict[str, bytes]] = None):
        self._data = data if data is not None else {}

    async def get(self, key: str) -> bytes:
        try:
            return self._data[key]
        except KeyError:
            raise KeyNotFoundError(f"Key not found: {key}", key=key) from None

    async def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        if self._data.pop(key, None) is None:
            raise KeyNotFoundError(f"Key not found: {key}", key=key)


class RedisKVStore(KVStore):
    """
    Redis-backed store.

    Every key is prefixed with a namespace so the bot can share a Redis
    instance with other services.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        namespace: str = "telemost:",
        client: Optional[redis.Redis] = None
    ):
        """
        Initialize Redis store.

        Args:
            redis_url: Redis connection URL
            namespace: Prefix applied to every key
            client: Optional pre-built client (for testing)
        """
        self.redis_url = redis_url
        self.namespace = namespace
        self.client = client if client is not None else redis.from_url(redis_url)

        logger.info("Initialized RedisKVStore", extra={'namespace': namespace})

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    async def get(self, key: str) -> bytes:
        try:
            value = await self.client.get(self._key(key))
        except RedisError as e:
            raise KVStoreError(f"Failed to read key: {e}", key=key) from e

        if value is None:
            raise KeyNotFoundError(f"Key not found: {key}", key=key)
        return value

    async def set(self, key: str, value: bytes) -> None:
        try:
            await self.client.set(self._key(key), value)
        except RedisError as e:
            raise KVStoreError(f"Failed to write key: {e}", key=key) from e

    async def delete(self, key: str) -> None:
        try:
            removed = await self.client.delete(self._key(key))
        except RedisError as e:
            raise KVStoreError(f"Failed to delete key: {e}", key=key) from e

        if not removed:
            raise KeyNotFoundError(f"Key not found: {key}", key=key)

    async def close(self) -> None:
        await self.client.aclose()
