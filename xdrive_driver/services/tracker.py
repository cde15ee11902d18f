"""
Location Tracker
================

STOPPED -> STARTING -> RUNNING -> STOPPED   (STARTING -> STOPPED on
permission or provider failure).

``start`` replays the cached fix, forwards one fresh fix, then consumes the
provider's position stream in a background task.  A stream sample is
accepted only when it is at least ``min_distance_m`` away from *and*
``min_interval`` after the last accepted one.  Accepted samples go to the
position cache, the optional observer and the server (tagged with the
current availability flag), strictly one at a time.

Only one subscription exists at a time.  Each subscription lives in a
``TrackingContext`` with a generation number; ``stop`` cancels the task and
bumps the generation so anything still in flight for an older context is
dropped instead of written.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

from xdrive_driver.api.endpoints import DriverApi
from xdrive_driver.domain.distance import haversine_m
from xdrive_driver.domain.entities import PositionSample, utcnow
from xdrive_driver.domain.enums import TrackerState
from xdrive_driver.domain.errors import DriverClientError, PermissionDenied
from xdrive_driver.infrastructure.location_provider import LocationProvider
from xdrive_driver.infrastructure.storage import LocalStorage, StorageKeys

from .position_cache import PositionCache

logger = logging.getLogger(__name__)

PositionObserver = Callable[[PositionSample], Any]


@dataclass
class TrackingOptions:
    min_distance_m: float = 50.0
    min_interval: timedelta = timedelta(seconds=30)
    freshness: timedelta = timedelta(minutes=5)


@dataclass
class TrackingContext:
    driver_id: str
    generation: int
    on_update: Optional[PositionObserver] = None
    stream: Any = None
    task: Optional[asyncio.Task] = None
    last_accepted: Optional[PositionSample] = None
    announce_available: Optional[bool] = None


class LocationTracker:
    def __init__(
        self,
        provider: LocationProvider,
        cache: PositionCache,
        api: DriverApi,
        storage: LocalStorage,
        *,
        options: TrackingOptions | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.provider = provider
        self.cache = cache
        self.api = api
        self.storage = storage
        self.options = options or TrackingOptions()
        self.clock = clock
        self.state = TrackerState.STOPPED
        self.last_error: Optional[Exception] = None
        # set by the availability controller
        self.availability_source: Optional[Callable[[], Awaitable[bool]]] = None
        self.on_stream_lost: Optional[Callable[[], Awaitable[None]]] = None
        self._ctx: Optional[TrackingContext] = None
        self._generation = 0

    # ── Public API ────────────────────────────────────────────────────

    async def start(
        self,
        driver_id: str,
        on_update: Optional[PositionObserver] = None,
        *,
        announce_available: Optional[bool] = None,
    ) -> bool:
        """Start tracking for *driver_id*.

        ``announce_available`` tags the pushes made while starting (cached
        replay and fresh fix) instead of the persisted flag, for a driver
        who is going available right now.

        Returns False when permission is denied, the stream cannot be
        opened, or a ``stop`` superseded this start while it was running.
        """
        await self.stop()

        self.state = TrackerState.STARTING
        self.last_error = None
        if not await self.provider.request_permission():
            logger.info("Location permission denied, tracking not started")
            self.last_error = PermissionDenied()
            self.state = TrackerState.STOPPED
            return False

        self._generation += 1
        ctx = TrackingContext(
            driver_id=driver_id,
            generation=self._generation,
            on_update=on_update,
            announce_available=announce_available,
        )
        self._ctx = ctx

        await self._replay_cached(ctx)
        if self._is_current(ctx):
            await self._forward_fresh_fix(ctx)
        if not self._is_current(ctx):
            return self._superseded(ctx)

        try:
            stream = await self.provider.watch()
        except Exception as exc:
            logger.warning("Could not subscribe to position updates: %s", exc)
            if not self._is_current(ctx):
                return self._superseded(ctx)
            self.last_error = exc
            self._ctx = None
            self.state = TrackerState.STOPPED
            return False

        ctx.stream = stream
        if not self._is_current(ctx):
            await self._teardown(ctx)
            return self._superseded(ctx)

        ctx.task = asyncio.create_task(self._consume(ctx))
        await self.storage.set(StorageKeys.IS_TRACKING, True)
        if not self._is_current(ctx):
            await self._teardown(ctx)
            if self._ctx is None:
                await self.storage.set(StorageKeys.IS_TRACKING, False)
            return self._superseded(ctx)

        ctx.announce_available = None
        self.state = TrackerState.RUNNING
        logger.info(
            "Tracking started for driver %s (min %.0fm / %.0fs)",
            driver_id,
            self.options.min_distance_m,
            self.options.min_interval.total_seconds(),
        )
        return True

    async def stop(self) -> None:
        ctx, self._ctx = self._ctx, None
        self._generation += 1
        if ctx is not None:
            await self._teardown(ctx)
            logger.info("Tracking stopped for driver %s", ctx.driver_id)
        self.state = TrackerState.STOPPED
        await self.storage.set(StorageKeys.IS_TRACKING, False)

    async def is_active(self) -> bool:
        flag = await self.storage.get(StorageKeys.IS_TRACKING)
        ctx = self._ctx
        return bool(flag) and ctx is not None and ctx.task is not None and not ctx.task.done()

    async def reset(self) -> None:
        """Logout hook: stop and forget the persisted flag."""
        await self.stop()
        await self.storage.delete(StorageKeys.IS_TRACKING)

    # ── Internals ─────────────────────────────────────────────────────

    def _is_current(self, ctx: TrackingContext) -> bool:
        return self._ctx is ctx and ctx.generation == self._generation

    def _superseded(self, ctx: TrackingContext) -> bool:
        logger.info("Tracking start for driver %s superseded by a stop", ctx.driver_id)
        return False

    async def _teardown(self, ctx: TrackingContext) -> None:
        task = ctx.task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        aclose = getattr(ctx.stream, "aclose", None)
        if aclose is not None:
            await aclose()

    async def _replay_cached(self, ctx: TrackingContext) -> None:
        cached = await self.cache.get()
        if cached is None:
            return
        await self._notify(ctx, cached)
        if cached.age(self.clock()) < self.options.freshness:
            await self._push(ctx, cached)
        else:
            logger.debug("Cached position is stale, not forwarded")

    async def _forward_fresh_fix(self, ctx: TrackingContext) -> None:
        try:
            sample = await self.provider.current_position()
        except Exception as exc:
            logger.warning("Could not get a fresh position fix: %s", exc)
            return
        if not self._is_current(ctx):
            return
        await self._accept(ctx, sample)

    async def _consume(self, ctx: TrackingContext) -> None:
        try:
            async for sample in ctx.stream:
                if not self._is_current(ctx):
                    return
                if self._passes_gate(ctx, sample):
                    await self._accept(ctx, sample)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Position stream failed for driver %s", ctx.driver_id)
            await self._stream_lost(ctx)
            return
        # stream ended on its own
        if self._is_current(ctx):
            await self._stream_lost(ctx)

    async def _stream_lost(self, ctx: TrackingContext) -> None:
        if not self._is_current(ctx):
            return
        await self.stop()
        if self.on_stream_lost is not None:
            await self.on_stream_lost()

    def _passes_gate(self, ctx: TrackingContext, sample: PositionSample) -> bool:
        last = ctx.last_accepted
        if last is None:
            return True
        moved = haversine_m(last.latitude, last.longitude, sample.latitude, sample.longitude)
        waited = sample.captured_at - last.captured_at
        return moved >= self.options.min_distance_m and waited >= self.options.min_interval

    async def _accept(self, ctx: TrackingContext, sample: PositionSample) -> None:
        ctx.last_accepted = sample
        await self.cache.save(sample)
        await self._notify(ctx, sample)
        await self._push(ctx, sample)

    async def _notify(self, ctx: TrackingContext, sample: PositionSample) -> None:
        if ctx.on_update is None:
            return
        try:
            result = ctx.on_update(sample)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Position observer failed")

    async def _push(self, ctx: TrackingContext, sample: PositionSample) -> None:
        if not self._is_current(ctx):
            return
        try:
            if ctx.announce_available is not None:
                available = ctx.announce_available
            elif self.availability_source is not None:
                available = await self.availability_source()
            else:
                available = None
            await self.api.update_location(
                sample.latitude, sample.longitude, available, sample.captured_at
            )
        except DriverClientError as exc:
            logger.warning("Position push failed: %s", exc.message)
