"""
Key/value store for persisted client state.

Repository Pattern -- components talk to ``LocalStorage`` and never to a
concrete engine.  Two engines are available:

* ``SqlStorage``   -- SQLAlchemy async session over the ``local_state`` table
  (SQLite file by default, the on-device case).
* ``RedisStorage`` -- ``redis.asyncio`` with a key prefix, for shared or
  headless deployments.

Values are JSON documents.  Each key has exactly one owning component that
performs all writes to it (see ``StorageKeys``).
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Optional

import redis.asyncio as aioredis
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .database import Base, build_engine, build_session_factory
from .models import LocalStateModel
from .redis_client import build_redis


class StorageKeys:
    """Persisted key names, grouped by owning component."""

    # Session store
    AUTH_TOKEN = "auth_token"
    DRIVER_ID = "driver_id"
    DRIVER_PROFILE = "driver_profile"
    LOGIN_TIME = "login_time"
    # Position cache
    LAST_POSITION = "last_position"
    # Availability controller
    DRIVER_AVAILABLE = "driver_available"
    # Location tracker
    IS_TRACKING = "is_tracking"
    # Push token store
    PUSH_TOKEN = "push_token"


class LocalStorage(ABC):
    async def init(self) -> None:
        """Prepare the backing engine (create tables, open pools)."""

    async def close(self) -> None:
        """Release engine resources."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]: ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None: ...

    @abstractmethod
    async def delete(self, *keys: str) -> None: ...


class SqlStorage(LocalStorage):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ):
        self.session_factory = session_factory
        self.engine = engine

    @classmethod
    def from_url(cls, url: str) -> "SqlStorage":
        engine = build_engine(url)
        return cls(build_session_factory(engine), engine)

    async def init(self) -> None:
        if self.engine is not None:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()

    async def get(self, key: str) -> Optional[Any]:
        async with self.session_factory() as session:
            row = await session.get(LocalStateModel, key)
            return json.loads(row.value) if row is not None else None

    async def set(self, key: str, value: Any) -> None:
        async with self.session_factory() as session:
            row = await session.get(LocalStateModel, key)
            encoded = json.dumps(value)
            if row is None:
                session.add(LocalStateModel(key=key, value=encoded))
            else:
                row.value = encoded
            await session.commit()

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        async with self.session_factory() as session:
            await session.execute(
                delete(LocalStateModel).where(LocalStateModel.key.in_(keys))
            )
            await session.commit()

    async def all_keys(self) -> list[str]:
        async with self.session_factory() as session:
            result = await session.execute(select(LocalStateModel.key))
            return list(result.scalars().all())


class RedisStorage(LocalStorage):
    def __init__(self, client: aioredis.Redis, prefix: str = "xdrive:"):
        self.redis = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisStorage":
        return cls(build_redis(url))

    async def close(self) -> None:
        await self.redis.aclose()

    def _k(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.redis.get(self._k(key))
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        await self.redis.set(self._k(key), json.dumps(value))

    async def delete(self, *keys: str) -> None:
        if keys:
            await self.redis.delete(*(self._k(k) for k in keys))


def build_storage(url: str) -> LocalStorage:
    """Pick the engine from the URL scheme."""
    if url.startswith(("redis://", "rediss://", "unix://")):
        return RedisStorage.from_url(url)
    return SqlStorage.from_url(url)
