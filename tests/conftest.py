"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) for the persisted client
state, the in-process simulated location provider for device positions, and
the FastAPI stub server mounted through ``httpx.ASGITransport`` in place of
the remote API, so tests run without network, GPS or Redis.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Optional

import httpx
import pytest
import pytest_asyncio

from xdrive_driver.app import DriverApp, create_driver_app
from xdrive_driver.config import Settings
from xdrive_driver.domain.entities import PositionSample
from xdrive_driver.infrastructure.location_provider import SimulatedLocationProvider
from xdrive_driver.infrastructure.storage import LocalStorage, SqlStorage
from xdrive_driver.stub.server import create_stub_app

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"
BASE_URL = "http://testserver"

# Fixed "now" for everything driven by an injected clock
NOW = datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)

# Nice, Promenade des Anglais
NICE = (43.6950, 7.2650)


def sample_at(
    lat: float = NICE[0],
    lng: float = NICE[1],
    *,
    seconds: float = 0,
) -> PositionSample:
    """A fix captured *seconds* after ``NOW``."""
    return PositionSample(lat, lng, captured_at=NOW + timedelta(seconds=seconds))


def north_of(sample: PositionSample, metres: float, seconds: float) -> PositionSample:
    """A fix *metres* north of *sample*, *seconds* later."""
    # one degree of latitude is ~111.2 km
    return PositionSample(
        sample.latitude + metres / 111_195.0,
        sample.longitude,
        captured_at=sample.captured_at + timedelta(seconds=seconds),
    )


async def eventually(predicate, timeout: float = 2.0) -> None:
    """Wait until *predicate()* is truthy (awaiting it if needed)."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        result = predicate()
        if asyncio.iscoroutine(result):
            result = await result
        if result:
            return
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class MemoryStorage(LocalStorage):
    """Dict-backed storage for unit tests; can be told to fail."""

    def __init__(self):
        self.data: dict[str, Any] = {}
        self.fail_writes = False
        self.fail_reads = False

    async def get(self, key: str) -> Optional[Any]:
        if self.fail_reads:
            raise OSError("storage read failed")
        return self.data.get(key)

    async def set(self, key: str, value: Any) -> None:
        if self.fail_writes:
            raise OSError("storage write failed")
        self.data[key] = value

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self.data.pop(key, None)



class GatedProvider(SimulatedLocationProvider):
    """Simulated provider that holds every one-shot fix until ``gate`` is set."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.gate = asyncio.Event()

    async def current_position(self) -> PositionSample:
        await self.gate.wait()
        return await super().current_position()

# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest_asyncio.fixture
async def sql_storage() -> AsyncGenerator[SqlStorage, None]:
    """Fresh in-memory SQLite store with the ``local_state`` table created."""
    storage = SqlStorage.from_url(TEST_DB_URL)
    await storage.init()
    yield storage
    await storage.close()


@pytest.fixture
def provider() -> SimulatedLocationProvider:
    return SimulatedLocationProvider(fix=sample_at())


@pytest.fixture
def stub_app():
    return create_stub_app()


@pytest.fixture
def stub(stub_app):
    return stub_app.state.stub


@pytest.fixture
def transport(stub_app) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=stub_app)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        api_base_url=BASE_URL,
        storage_url=TEST_DB_URL,
        voucher_dir=str(tmp_path / "vouchers"),
        offer_poll_interval_seconds=1,
        _env_file=None,
    )


@pytest_asyncio.fixture
async def driver_app(
    test_settings, provider, transport, sql_storage
) -> AsyncGenerator[DriverApp, None]:
    """Fully wired client talking to the stub server."""
    app = create_driver_app(
        test_settings,
        provider=provider,
        storage=sql_storage,
        transport=transport,
        clock=lambda: NOW,
    )
    await app.start()
    yield app
    await app.close()
