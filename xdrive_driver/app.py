"""
Driver client application factory.

* Builds every component from ``Settings`` and wires the callbacks that
  would otherwise be circular (token provider, auth-failure hook, logout
  hooks, availability source).
* ``start`` opens local storage and resumes tracking when the driver was
  left available; ``close`` stops the background work and releases the
  HTTP client and storage.
* The offer poller runs while the driver is available: it is started and
  stopped by availability changes (including stream loss and logout).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx

from xdrive_driver.api.endpoints import DriverApi
from xdrive_driver.api.gateway import ApiGateway
from xdrive_driver.config import Settings, settings as default_settings
from xdrive_driver.domain.entities import utcnow
from xdrive_driver.infrastructure.location_provider import LocationProvider
from xdrive_driver.infrastructure.storage import LocalStorage, build_storage
from xdrive_driver.services.availability import AvailabilityController
from xdrive_driver.services.notifications import NotificationService, PushTokenStore
from xdrive_driver.services.position_cache import PositionCache
from xdrive_driver.services.ride_lifecycle import RideLifecycle
from xdrive_driver.services.session import SessionStore
from xdrive_driver.services.tracker import LocationTracker, TrackingOptions
from xdrive_driver.services.vouchers import VoucherStore
from xdrive_driver.workers.offer_poller import OfferPoller

logger = logging.getLogger(__name__)


@dataclass
class DriverApp:
    settings: Settings
    storage: LocalStorage
    gateway: ApiGateway
    api: DriverApi
    session: SessionStore
    position_cache: PositionCache
    tracker: LocationTracker
    availability: AvailabilityController
    push_tokens: PushTokenStore
    notifications: NotificationService
    vouchers: VoucherStore
    poller: OfferPoller
    rides: dict[str, RideLifecycle] = field(default_factory=dict)

    async def start(self) -> None:
        await self.storage.init()
        if await self.session.can_auto_login():
            await self.availability.restore()
        logger.info("Driver client ready (%s)", self.settings.api_base_url)

    async def close(self) -> None:
        await self.poller.stop()
        await self.tracker.stop()
        await self.gateway.aclose()
        await self.storage.close()

    async def __aenter__(self) -> "DriverApp":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Rides ─────────────────────────────────────────────────────────

    async def open_ride(self, ride_id: str) -> RideLifecycle:
        """Lifecycle for *ride_id*, in step with the server.

        An open machine is refreshed and reused, a missing one is rebuilt
        from the server.  Machines whose ride ended are not kept.
        """
        ride_id = str(ride_id)
        self._discard_finished()
        machine = self.rides.get(ride_id)
        if machine is not None:
            await machine.refresh()
            if machine.ride.is_terminal:
                del self.rides[ride_id]
            return machine
        machine = await RideLifecycle.resume(ride_id, self.api, self.vouchers)
        self.rides[ride_id] = machine
        return machine

    def close_ride(self, ride_id: str) -> None:
        """The ride view went away: forget its lifecycle."""
        self.rides.pop(str(ride_id), None)

    def _discard_finished(self) -> None:
        for ride_id, machine in list(self.rides.items()):
            if machine.ride.is_terminal:
                del self.rides[ride_id]

    # ── Offer polling ─────────────────────────────────────────────────

    async def _availability_changed(self, available: bool) -> None:
        if available:
            await self.poller.start()
        else:
            await self.poller.stop()


def create_driver_app(
    config: Optional[Settings] = None,
    *,
    provider: LocationProvider,
    storage: Optional[LocalStorage] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], datetime] = utcnow,
) -> DriverApp:
    config = config or default_settings
    logging.basicConfig(level=config.log_level)

    storage = storage or build_storage(config.storage_url)
    gateway = ApiGateway(
        config.api_base_url,
        timeout=config.request_timeout_seconds,
        retry_attempts=config.retry_attempts,
        retry_backoff=config.retry_backoff_seconds,
        transport=transport,
    )
    api = DriverApi(gateway)
    push_tokens = PushTokenStore(storage)
    session = SessionStore(
        storage,
        api,
        ttl=timedelta(hours=config.session_ttl_hours),
        device_token=push_tokens.get,
        clock=clock,
    )
    position_cache = PositionCache(storage)
    tracker = LocationTracker(
        provider,
        position_cache,
        api,
        storage,
        options=TrackingOptions(
            min_distance_m=config.location_min_distance_m,
            min_interval=timedelta(seconds=config.location_min_interval_seconds),
            freshness=timedelta(seconds=config.position_freshness_seconds),
        ),
        clock=clock,
    )
    availability = AvailabilityController(
        storage, tracker, provider, position_cache, api, session
    )

    async def _auth_failed(error) -> None:
        await session.logout()

    gateway.token_provider = session.token
    gateway.on_auth_failure = _auth_failed

    session.add_logout_hook(tracker.reset)
    session.add_logout_hook(availability.reset)
    session.add_logout_hook(push_tokens.clear)

    app = DriverApp(
        settings=config,
        storage=storage,
        gateway=gateway,
        api=api,
        session=session,
        position_cache=position_cache,
        tracker=tracker,
        availability=availability,
        push_tokens=push_tokens,
        notifications=NotificationService(api, push_tokens),
        vouchers=VoucherStore(config.voucher_dir),
        poller=OfferPoller(
            api,
            availability.get,
            interval_seconds=config.offer_poll_interval_seconds,
        ),
    )
    availability.add_listener(app._availability_changed)
    return app
