"""
Availability Controller
=======================

Single source of truth for the driver's on/off-duty flag.

Invariant: the persisted flag is ``True`` only while the location tracker
runs.  A denied permission leaves the flag untouched; a tracker that fails
to start (or later loses its position stream) forces it back to ``False``.
Changes are serialized, so an "off" requested while an "on" is still
starting is applied after it and wins.

Every change is pushed to the server best-effort: with the cached position
when it is fresh, otherwise as a flag-only update.  Listeners registered
with :meth:`add_listener` hear about every change of the flag.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from xdrive_driver.api.endpoints import DriverApi
from xdrive_driver.domain.errors import (
    DriverClientError,
    LocationUnavailable,
    PermissionDenied,
)
from xdrive_driver.infrastructure.location_provider import LocationProvider
from xdrive_driver.infrastructure.storage import LocalStorage, StorageKeys

from .position_cache import PositionCache
from .session import SessionStore
from .tracker import LocationTracker, PositionObserver

logger = logging.getLogger(__name__)

AvailabilityListener = Callable[[bool], Awaitable[None]]


class AvailabilityController:
    def __init__(
        self,
        storage: LocalStorage,
        tracker: LocationTracker,
        provider: LocationProvider,
        cache: PositionCache,
        api: DriverApi,
        session: SessionStore,
        *,
        on_update: Optional[PositionObserver] = None,
    ):
        self.storage = storage
        self.tracker = tracker
        self.provider = provider
        self.cache = cache
        self.api = api
        self.session = session
        self.on_update = on_update
        self.last_error: Optional[DriverClientError] = None
        self._lock = asyncio.Lock()
        self._listeners: list[AvailabilityListener] = []

        tracker.availability_source = self.get
        tracker.on_stream_lost = self._tracking_lost

    def add_listener(self, listener: AvailabilityListener) -> None:
        self._listeners.append(listener)

    async def get(self) -> bool:
        return bool(await self.storage.get(StorageKeys.DRIVER_AVAILABLE))

    async def set_available(self, value: bool) -> bool:
        async with self._lock:
            self.last_error = None
            if value:
                if not await self.provider.request_permission():
                    logger.info("Cannot go available: location permission denied")
                    self.last_error = PermissionDenied()
                    return False
                if not await self._start_tracking(announce_available=True):
                    await self._store(False)
                    return False
            else:
                await self.tracker.stop()

            await self._store(value)
            logger.info("Driver is now %s", "available" if value else "unavailable")
            await self._push(value)
            return True

    async def restore(self) -> bool:
        """Bring tracking back after a restart if the flag says available."""
        async with self._lock:
            if not await self.get():
                return False
            if await self.tracker.is_active():
                return True
            if await self._start_tracking():
                await self._notify(True)
                return True
            logger.info("Could not resume tracking, switching to unavailable")
            await self._store(False)
            await self._push(False)
            return False

    async def reset(self) -> None:
        """Logout hook."""
        await self.storage.delete(StorageKeys.DRIVER_AVAILABLE)
        await self._notify(False)

    # ── Internals ─────────────────────────────────────────────────────

    async def _start_tracking(
        self, announce_available: Optional[bool] = None
    ) -> bool:
        driver_id = await self.session.driver_id()
        if not driver_id:
            self.last_error = LocationUnavailable("No driver session to track")
            return False
        started = await self.tracker.start(
            driver_id, self.on_update, announce_available=announce_available
        )
        if started:
            return True
        error = self.tracker.last_error
        if isinstance(error, DriverClientError):
            self.last_error = error
        else:
            self.last_error = LocationUnavailable()
        return False

    async def _tracking_lost(self) -> None:
        if await self.get():
            logger.warning("Position stream lost, switching to unavailable")
            await self._store(False)
            await self._push(False)

    async def _store(self, value: bool) -> None:
        await self.storage.set(StorageKeys.DRIVER_AVAILABLE, value)
        await self._notify(value)

    async def _notify(self, value: bool) -> None:
        for listener in self._listeners:
            try:
                await listener(value)
            except Exception:
                logger.exception("Availability listener failed")

    async def _push(self, value: bool) -> None:
        position = await self.cache.get()
        freshness = self.tracker.options.freshness
        if position is not None and position.age(self.tracker.clock()) >= freshness:
            logger.debug("Cached position is stale, sending the flag alone")
            position = None
        try:
            if position is not None:
                await self.api.update_location(
                    position.latitude, position.longitude, value, position.captured_at
                )
            else:
                await self.api.update_availability(value)
        except DriverClientError as exc:
            logger.warning("Availability push failed: %s", exc.message)
