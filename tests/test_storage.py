"""
Local storage engines.

1. SQL engine against in-memory SQLite (aiosqlite).
2. Redis engine against a mocked ``redis.asyncio`` client.
3. Engine selection from the storage URL.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from xdrive_driver.infrastructure.storage import (
    RedisStorage,
    SqlStorage,
    StorageKeys,
    build_storage,
)


class TestSqlStorage:
    @pytest.mark.asyncio
    async def test_missing_key_is_none(self, sql_storage):
        assert await sql_storage.get(StorageKeys.AUTH_TOKEN) is None

    @pytest.mark.asyncio
    async def test_roundtrips_json_values(self, sql_storage):
        profile = {"id": 1, "name": "Admin XDrive", "isAvailable": False}
        await sql_storage.set(StorageKeys.DRIVER_PROFILE, profile)
        await sql_storage.set(StorageKeys.DRIVER_AVAILABLE, True)

        assert await sql_storage.get(StorageKeys.DRIVER_PROFILE) == profile
        assert await sql_storage.get(StorageKeys.DRIVER_AVAILABLE) is True

    @pytest.mark.asyncio
    async def test_set_overwrites(self, sql_storage):
        await sql_storage.set(StorageKeys.AUTH_TOKEN, "a.b.c")
        await sql_storage.set(StorageKeys.AUTH_TOKEN, "d.e.f")
        assert await sql_storage.get(StorageKeys.AUTH_TOKEN) == "d.e.f"
        assert await sql_storage.all_keys() == [StorageKeys.AUTH_TOKEN]

    @pytest.mark.asyncio
    async def test_delete_many(self, sql_storage):
        await sql_storage.set(StorageKeys.AUTH_TOKEN, "a.b.c")
        await sql_storage.set(StorageKeys.DRIVER_ID, "1")
        await sql_storage.set(StorageKeys.PUSH_TOKEN, "push")

        await sql_storage.delete(StorageKeys.AUTH_TOKEN, StorageKeys.DRIVER_ID)

        assert await sql_storage.all_keys() == [StorageKeys.PUSH_TOKEN]

    @pytest.mark.asyncio
    async def test_delete_nothing_is_noop(self, sql_storage):
        await sql_storage.delete()
        await sql_storage.delete(StorageKeys.LOGIN_TIME)


class TestRedisStorage:
    """Redis engine logic with a mocked client."""

    @pytest.mark.asyncio
    async def test_get_decodes_json(self):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(return_value=json.dumps({"latitude": 43.7}))

        storage = RedisStorage(mock_redis)
        assert await storage.get(StorageKeys.LAST_POSITION) == {"latitude": 43.7}
        mock_redis.get.assert_called_once_with("xdrive:last_position")

    @pytest.mark.asyncio
    async def test_get_missing(self):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(return_value=None)

        storage = RedisStorage(mock_redis)
        assert await storage.get(StorageKeys.AUTH_TOKEN) is None

    @pytest.mark.asyncio
    async def test_set_encodes_json_with_prefix(self):
        mock_redis = AsyncMock()

        storage = RedisStorage(mock_redis, prefix="driver-7:")
        await storage.set(StorageKeys.DRIVER_AVAILABLE, True)

        mock_redis.set.assert_called_once_with("driver-7:driver_available", "true")

    @pytest.mark.asyncio
    async def test_delete_prefixes_every_key(self):
        mock_redis = AsyncMock()

        storage = RedisStorage(mock_redis)
        await storage.delete(StorageKeys.AUTH_TOKEN, StorageKeys.DRIVER_ID)

        mock_redis.delete.assert_called_once_with("xdrive:auth_token", "xdrive:driver_id")

    @pytest.mark.asyncio
    async def test_close_closes_client(self):
        mock_redis = AsyncMock()

        await RedisStorage(mock_redis).close()
        mock_redis.aclose.assert_called_once()


class TestBuildStorage:
    def test_sqlite_url(self):
        assert isinstance(build_storage("sqlite+aiosqlite:///:memory:"), SqlStorage)

    def test_redis_url(self):
        assert isinstance(build_storage("redis://localhost:6379/0"), RedisStorage)
