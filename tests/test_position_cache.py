"""Position cache: overwrite semantics and failure tolerance."""

import pytest

from xdrive_driver.domain.entities import PositionSample
from xdrive_driver.infrastructure.storage import StorageKeys
from xdrive_driver.services.position_cache import PositionCache
from tests.conftest import NOW, sample_at


class TestPositionCache:
    @pytest.mark.asyncio
    async def test_empty(self, sql_storage):
        assert await PositionCache(sql_storage).get() is None

    @pytest.mark.asyncio
    async def test_latest_write_wins(self, sql_storage):
        cache = PositionCache(sql_storage)
        await cache.save(sample_at(43.70, 7.26))
        await cache.save(sample_at(43.71, 7.27, seconds=60))

        cached = await cache.get()
        assert (cached.latitude, cached.longitude) == (43.71, 7.27)
        assert cached.age(NOW).total_seconds() == -60

    @pytest.mark.asyncio
    async def test_roundtrip_keeps_capture_time(self, sql_storage):
        cache = PositionCache(sql_storage)
        sample = PositionSample(43.7, 7.26, captured_at=NOW, accuracy=12.5)
        await cache.save(sample)
        assert await cache.get() == sample

    @pytest.mark.asyncio
    async def test_legacy_timestamp_field(self, memory_storage):
        memory_storage.data[StorageKeys.LAST_POSITION] = {
            "latitude": 43.7,
            "longitude": 7.26,
            "timestamp": "2026-05-04T12:00:00Z",
        }
        cached = await PositionCache(memory_storage).get()
        assert cached.captured_at == NOW

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, memory_storage):
        memory_storage.fail_writes = True
        await PositionCache(memory_storage).save(sample_at())

    @pytest.mark.asyncio
    async def test_unreadable_value_is_none(self, memory_storage):
        memory_storage.data[StorageKeys.LAST_POSITION] = {"latitude": "north"}
        assert await PositionCache(memory_storage).get() is None

    @pytest.mark.asyncio
    async def test_read_failure_is_none(self, memory_storage):
        memory_storage.fail_reads = True
        assert await PositionCache(memory_storage).get() is None
