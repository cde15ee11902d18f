"""
Background Offer Poller
=======================

Polls ``GET /api/driver/available-rides`` every
``offer_poll_interval_seconds`` (default 30 s) while the driver is
available, and hands the offers to a callback.  Cycles run while the driver
is unavailable are skipped without a network call.

Failures in a cycle are logged and the loop carries on; nothing is retried
inside a cycle.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from xdrive_driver.api.endpoints import DriverApi
from xdrive_driver.domain.entities import Ride
from xdrive_driver.domain.errors import DriverClientError

logger = logging.getLogger(__name__)

OffersCallback = Callable[[list[Ride]], Any]


class OfferPoller:
    def __init__(
        self,
        api: DriverApi,
        is_available: Callable[[], Awaitable[bool]],
        *,
        interval_seconds: float = 30,
        on_offers: Optional[OffersCallback] = None,
    ):
        self.api = api
        self.is_available = is_available
        self.interval_seconds = interval_seconds
        self.on_offers = on_offers
        self.offers: list[Ride] = []
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Public API ────────────────────────────────────────────────────

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info("Offer poller started (interval=%ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._stop_event:
            self._stop_event.set()
        task, self._task = self._task, None
        if task is None:
            return
        # a cycle may stop its own loop (logout on a 401)
        if task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Offer poller stopped")

    async def run_cycle(self) -> Optional[list[Ride]]:
        """Fetch offers once.  ``None`` when skipped or failed."""
        if not await self.is_available():
            return None
        try:
            offers = await self.api.get_available_rides()
        except DriverClientError as exc:
            logger.warning("Could not fetch ride offers: %s", exc.message)
            return None

        self.offers = offers
        logger.debug("%d ride offers", len(offers))
        if self.on_offers is not None:
            result = self.on_offers(offers)
            if inspect.isawaitable(result):
                await result
        return offers

    # ── Internals ─────────────────────────────────────────────────────

    async def _loop(self) -> None:
        """Periodic loop: run a cycle then sleep."""
        stop_event = self._stop_event
        assert stop_event is not None
        while not stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("Unhandled error in offer poll cycle")
            # Wait for the interval or until stop is signalled
            try:
                await asyncio.wait_for(
                    stop_event.wait(), timeout=self.interval_seconds
                )
                break
            except asyncio.TimeoutError:
                pass  # next cycle
