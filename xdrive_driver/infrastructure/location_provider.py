"""
Device location provider seam.

The OS geolocation stack (permission prompt, one-shot fix, continuous
updates) sits behind ``LocationProvider``.  ``SimulatedLocationProvider``
implements it in-process: fixes are pushed with :meth:`emit` and fanned out
to every open :meth:`watch` stream.  It backs local development and tests.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Iterable, Optional

from xdrive_driver.domain.entities import PositionSample
from xdrive_driver.domain.errors import LocationUnavailable

logger = logging.getLogger(__name__)


class LocationProvider(ABC):
    @abstractmethod
    async def request_permission(self) -> bool:
        """Ask for foreground location permission.  True when granted."""

    @abstractmethod
    async def current_position(self) -> PositionSample:
        """Return one fresh fix or raise ``LocationUnavailable``."""

    @abstractmethod
    async def watch(self) -> AsyncIterator[PositionSample]:
        """Open a continuous position stream.

        Raises ``LocationUnavailable`` if the stream cannot be opened.  The
        returned iterator ends (or raises) when the device stops reporting.
        """


_CLOSED = object()


class _QueueStream:
    """Async iterator over one subscriber queue; ``aclose`` unsubscribes."""

    def __init__(self, registry: set[asyncio.Queue]):
        self.queue: asyncio.Queue = asyncio.Queue()
        self._registry = registry

    def __aiter__(self) -> "_QueueStream":
        return self

    async def __anext__(self) -> PositionSample:
        item = await self.queue.get()
        if item is _CLOSED:
            await self.aclose()
            raise StopAsyncIteration
        if isinstance(item, Exception):
            await self.aclose()
            raise item
        return item

    async def aclose(self) -> None:
        self._registry.discard(self.queue)


class SimulatedLocationProvider(LocationProvider):
    def __init__(
        self,
        *,
        permission_granted: bool = True,
        fix: Optional[PositionSample] = None,
        available: bool = True,
    ):
        self.permission_granted = permission_granted
        self.fix = fix
        self.available = available
        self.permission_requests = 0
        self._subscribers: set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        return self.permission_granted

    async def current_position(self) -> PositionSample:
        if not self.available or self.fix is None:
            raise LocationUnavailable("No position fix available")
        return self.fix

    async def watch(self) -> AsyncIterator[PositionSample]:
        if not self.available:
            raise LocationUnavailable("Location updates are unavailable")
        stream = _QueueStream(self._subscribers)
        self._subscribers.add(stream.queue)
        return stream

    async def emit(self, sample: PositionSample) -> None:
        """Deliver *sample* to every open stream and make it the current fix."""
        self.fix = sample
        for queue in list(self._subscribers):
            await queue.put(sample)

    async def emit_many(self, samples: Iterable[PositionSample]) -> None:
        for sample in samples:
            await self.emit(sample)

    async def fail(self, error: Exception | None = None) -> None:
        """Make every open stream raise, as a lost GPS provider would."""
        err = error or LocationUnavailable("Location provider stopped")
        for queue in list(self._subscribers):
            await queue.put(err)

    async def close(self) -> None:
        for queue in list(self._subscribers):
            await queue.put(_CLOSED)
