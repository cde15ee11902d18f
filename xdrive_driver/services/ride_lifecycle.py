"""
Ride Lifecycle Machine
======================

One instance per ride the driver is looking at.

PENDING --accept--> ASSIGNED --> EN_ROUTE --> ARRIVED --> IN_PROGRESS
--> COMPLETED [--> CASH_COLLECTED, cash rides only]
PENDING --decline--> DECLINED

Every transition except cash collection is confirmed by the server before
the local state moves; a failed call leaves the state where it was and the
error goes back to the caller (also kept in ``last_error``).  Illegal
targets raise ``InvalidStateTransition`` before anything is sent, and so
does a second transition requested while one still waits for the server.

The local state is a cache of server truth: :meth:`refresh` and
:meth:`resume` re-derive it from ``GET /api/ride/{id}``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from xdrive_driver.api.endpoints import DriverApi
from xdrive_driver.api.schemas import AcceptRideResponse
from xdrive_driver.domain.entities import InvalidStateTransition, Ride
from xdrive_driver.domain.enums import RideStatus
from xdrive_driver.domain.errors import DriverClientError

from .vouchers import VoucherStore

logger = logging.getLogger(__name__)

# Statuses set through PUT /api/ride/{id}/status
SERVER_STEPS = (
    RideStatus.EN_ROUTE,
    RideStatus.ARRIVED,
    RideStatus.IN_PROGRESS,
    RideStatus.COMPLETED,
)


class RideLifecycle:
    def __init__(
        self,
        ride: Ride,
        api: DriverApi,
        vouchers: Optional[VoucherStore] = None,
    ):
        self.ride = ride
        self.api = api
        self.vouchers = vouchers
        self.last_error: Optional[DriverClientError] = None
        self.voucher_path: Optional[Path] = None
        self.voucher_error: Optional[Exception] = None
        self._in_flight: Optional[RideStatus] = None

    @classmethod
    async def resume(
        cls, ride_id: str, api: DriverApi, vouchers: Optional[VoucherStore] = None
    ) -> "RideLifecycle":
        """Rebuild the machine for *ride_id* from the server's current view."""
        ride = await api.get_ride(ride_id)
        machine = cls(ride, api, vouchers)
        if vouchers is not None and vouchers.path_for(ride.id).exists():
            machine.voucher_path = vouchers.path_for(ride.id)
        return machine

    @property
    def status(self) -> RideStatus:
        return self.ride.status

    # ── Transitions ───────────────────────────────────────────────────

    async def accept(self) -> AcceptRideResponse:
        response = await self._transition(
            RideStatus.ASSIGNED, lambda: self.api.accept_ride(self.ride.id)
        )
        logger.info("Ride %s accepted", self.ride.id)

        if response.bon_commande:
            await self._save_voucher(response.bon_commande)
        return response

    async def decline(self, reason: str = "") -> None:
        await self._transition(
            RideStatus.DECLINED, lambda: self.api.decline_ride(self.ride.id, reason)
        )
        logger.info("Ride %s declined", self.ride.id)

    async def advance(self, target: RideStatus) -> None:
        """Server-confirmed move to one of the in-ride statuses."""
        if target not in SERVER_STEPS:
            raise InvalidStateTransition(
                f"{target.value} is not set through a status update"
            )
        await self._transition(
            target, lambda: self.api.update_ride_status(self.ride.id, target)
        )
        logger.info("Ride %s is now %s", self.ride.id, target.value)

    async def start_en_route(self) -> None:
        await self.advance(RideStatus.EN_ROUTE)

    async def mark_arrived(self) -> None:
        await self.advance(RideStatus.ARRIVED)

    async def start_trip(self) -> None:
        await self.advance(RideStatus.IN_PROGRESS)

    async def complete(self) -> None:
        await self.advance(RideStatus.COMPLETED)

    def confirm_cash_collected(self) -> None:
        """Driver's attestation that the fare was paid in cash.  Local only."""
        self.ride.transition_to(RideStatus.CASH_COLLECTED)
        logger.info("Cash collected for ride %s (%s)", self.ride.id, self.ride.price)

    # ── Server sync & side tasks ──────────────────────────────────────

    async def refresh(self) -> RideStatus:
        remote = await self._call(self.api.get_ride(self.ride.id))
        self.ride.adopt_server_status(remote.status)
        return self.ride.status

    async def fetch_voucher(self) -> Optional[Path]:
        voucher = await self._call(self.api.get_voucher(self.ride.id))
        if not voucher.document_url:
            return None
        return await self._save_voucher(voucher.document_url)

    async def log_event(self, event_type: str, **data: Any) -> Any:
        return await self._call(self.api.log_ride_event(self.ride.id, event_type, **data))

    # ── Internals ─────────────────────────────────────────────────────

    async def _transition(
        self, target: RideStatus, send: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Check *target*, send through *send()*, then move locally on success.

        Only one server-confirmed transition runs at a time; another one
        requested meanwhile is rejected before anything is sent.
        """
        if self._in_flight is not None:
            raise InvalidStateTransition(
                f"Ride {self.ride.id} is already moving to {self._in_flight.value}"
            )
        self.ride.check_transition(target)
        self._in_flight = target
        try:
            result = await self._call(send())
        finally:
            self._in_flight = None
        self.ride.transition_to(target)
        return result

    async def _call(self, awaitable):
        self.last_error = None
        try:
            return await awaitable
        except DriverClientError as exc:
            self.last_error = exc
            logger.warning("Ride %s: %s", self.ride.id, exc.message)
            raise

    async def _save_voucher(self, url: str) -> Optional[Path]:
        if self.vouchers is None:
            return None
        try:
            content = await self.api.download(url)
            self.voucher_path = await self.vouchers.save(self.ride.id, content)
        except Exception as exc:
            # the ride stays accepted
            logger.warning("Voucher download for ride %s failed: %s", self.ride.id, exc)
            self.voucher_error = exc
            return None
        self.voucher_error = None
        return self.voucher_path
