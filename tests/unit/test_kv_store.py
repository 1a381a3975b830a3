# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Unit tests for the key-value stores.
"""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from telemost_bot.kv_store import (
    InMemoryKVStore,
    KeyNotFoundError,
    KVStoreError,
    RedisKVStore,
)


class TestInMemoryKVStore:

    @pytest.mark.asyncio
    async def test_set_get_delete(self):
        store = InMemoryKVStore()

        await store.set("k", b"v1")
        await store.set("k", b"v2")

        assert await store.get("k") == b"v2"

        await store.delete("k")

        with pytest.raises(KeyNotFoundError):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_delete_missing_key(self):
        with pytest.raises(KeyNotFoundError) as exc_info:
            await InMemoryKVStore().delete("missing")

        assert exc_info.value.key == "missing"


@pytest.fixture
def redis_client():
    return AsyncMock()


@pytest.fixture
def store(redis_client):
    return RedisKVStore(namespace="test:", client=redis_client)


class TestRedisKVStore:

    @pytest.mark.asyncio
    async def test_keys_are_namespaced(self, store, redis_client):
        redis_client.get.return_value = b"value"

        await store.set("user_token_U1", b"value")
        value = await store.get("user_token_U1")

        redis_client.set.assert_awaited_once_with("test:user_token_U1", b"value")
        redis_client.get.assert_awaited_once_with("test:user_token_U1")
        assert value == b"value"

    @pytest.mark.asyncio
    async def test_missing_key(self, store, redis_client):
        redis_client.get.return_value = None

        with pytest.raises(KeyNotFoundError):
            await store.get("absent")

    @pytest.mark.asyncio
    async def test_delete_missing_key(self, store, redis_client):
        redis_client.delete.return_value = 0

        with pytest.raises(KeyNotFoundError):
            await store.delete("absent")

    @pytest.mark.asyncio
    async def test_delete_existing_key(self, store, redis_client):
        redis_client.delete.return_value = 1

        await store.delete("present")

        redis_client.delete.assert_awaited_once_with("test:present")

    @pytest.mark.asyncio
    async def test_redis_errors_are_wrapped(self, store, redis_client):
        redis_client.get.side_effect = RedisConnectionError("down")
        redis_client.set.side_effect = RedisConnectionError("down")

        with pytest.raises(KVStoreError) as exc_info:
            await store.get("k")
        assert not isinstance(exc_info.value, KeyNotFoundError)

        with pytest.raises(KVStoreError):
            await store.set("k", b"v")

    @pytest.mark.asyncio
    async def test_close(self, store, redis_client):
        await store.close()

        redis_client.aclose.assert_awaited_once()
