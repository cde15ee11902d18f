"""
Driver API
==========

Typed wrappers over :class:`ApiGateway`, one method per server endpoint.

POST /api/driver/login                -- authenticate
GET  /api/driver/profile              -- liveness check / profile
PUT  /api/driver/profile              -- profile update
GET|PUT /api/driver/availability      -- availability flag
POST /api/driver/location             -- position telemetry
GET  /api/driver/available-rides      -- open ride offers
POST /api/ride/accept | /api/ride/decline
PUT  /api/ride/{id}/status            -- lifecycle transition
GET  /api/ride/{id}                   -- ride detail
GET  /api/ride/bon-commande/{id}      -- order voucher reference
POST /api/ride/event                  -- ride event log
GET  /api/driver/ride-history | /api/driver/stats
POST /api/driver/register-push-token | /api/driver/register
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from xdrive_driver.domain.entities import Ride, utcnow
from xdrive_driver.domain.enums import RideStatus
from xdrive_driver.domain.errors import MalformedResponse

from .gateway import ApiGateway
from .schemas import (
    AcceptRideResponse,
    Driver,
    LoginResponse,
    ProfileResponse,
    RideHistoryPage,
    RidePayload,
    VoucherResponse,
)

M = TypeVar("M", bound=BaseModel)


def _parse(model: type[M], data: Any) -> M:
    try:
        return model.model_validate(data if data is not None else {})
    except ValidationError as exc:
        raise MalformedResponse() from exc


def _rides_from(data: Any) -> list[Ride]:
    if isinstance(data, dict):
        data = data.get("rides", data.get("pendingRides", []))
    if not isinstance(data, list):
        raise MalformedResponse()
    return [_parse(RidePayload, item).to_entity() for item in data]


class DriverApi:
    def __init__(self, gateway: ApiGateway):
        self.gateway = gateway

    # ── Account ───────────────────────────────────────────────────────

    async def login(
        self, email: str, password: str, device_token: Optional[str] = None
    ) -> LoginResponse:
        body: dict[str, Any] = {"email": email, "password": password}
        if device_token:
            body["deviceToken"] = device_token
        data = await self.gateway.request(
            "/api/driver/login", "POST", body, authenticated=False
        )
        return _parse(LoginResponse, data)

    async def register(self, form: dict[str, Any]) -> Any:
        return await self.gateway.request(
            "/api/driver/register", "POST", form, authenticated=False
        )

    async def get_profile(self) -> Driver:
        return _parse(ProfileResponse, await self.gateway.request("/api/driver/profile")).driver

    async def update_profile(self, profile: dict[str, Any]) -> Driver:
        data = await self.gateway.request("/api/driver/profile", "PUT", profile)
        return _parse(ProfileResponse, data).driver

    async def register_push_token(self, push_token: str) -> Any:
        return await self.gateway.request(
            "/api/driver/register-push-token", "POST", {"pushToken": push_token}
        )

    # ── Availability & location ───────────────────────────────────────

    async def get_availability(self) -> Any:
        return await self.gateway.request("/api/driver/availability")

    async def update_availability(self, available: bool) -> Any:
        return await self.gateway.request(
            "/api/driver/availability", "PUT", {"available": available}
        )

    async def update_location(
        self,
        latitude: float,
        longitude: float,
        is_available: Optional[bool] = None,
        timestamp: Optional[datetime] = None,
    ) -> Any:
        body: dict[str, Any] = {
            "latitude": latitude,
            "longitude": longitude,
            "timestamp": (timestamp or utcnow()).isoformat(),
        }
        if is_available is not None:
            body["isAvailable"] = is_available
        return await self.gateway.request("/api/driver/location", "POST", body)

    # ── Rides ─────────────────────────────────────────────────────────

    async def get_available_rides(self) -> list[Ride]:
        return _rides_from(await self.gateway.request("/api/driver/available-rides"))

    get_pending_rides = get_available_rides

    async def get_ride(self, ride_id: str) -> Ride:
        data = await self.gateway.request(f"/api/ride/{ride_id}")
        if isinstance(data, dict) and isinstance(data.get("ride"), dict):
            data = data["ride"]
        return _parse(RidePayload, data).to_entity()

    async def accept_ride(self, ride_id: str) -> AcceptRideResponse:
        data = await self.gateway.request("/api/ride/accept", "POST", {"rideId": ride_id})
        return _parse(AcceptRideResponse, data if isinstance(data, dict) else {})

    async def decline_ride(self, ride_id: str, reason: str = "") -> Any:
        return await self.gateway.request(
            "/api/ride/decline", "POST", {"rideId": ride_id, "reason": reason}
        )

    async def update_ride_status(self, ride_id: str, status: RideStatus) -> Any:
        return await self.gateway.request(
            f"/api/ride/{ride_id}/status", "PUT", {"status": status.value}
        )

    async def get_voucher(self, ride_id: str) -> VoucherResponse:
        data = await self.gateway.request(f"/api/ride/bon-commande/{ride_id}")
        if isinstance(data, str):
            data = {"url": data}
        return _parse(VoucherResponse, data)

    async def log_ride_event(self, ride_id: str, event_type: str, **event_data: Any) -> Any:
        return await self.gateway.request(
            "/api/ride/event",
            "POST",
            {"rideId": ride_id, "eventType": event_type, **event_data},
        )

    # ── History & stats ───────────────────────────────────────────────

    async def get_ride_history(self, page: int = 1, limit: int = 10) -> RideHistoryPage:
        data = await self.gateway.request(
            "/api/driver/ride-history", params={"page": page, "limit": limit}
        )
        return _parse(RideHistoryPage, data)

    async def get_stats(self, period: str = "week") -> Any:
        return await self.gateway.request("/api/driver/stats", params={"period": period})

    async def download(self, url: str) -> bytes:
        return await self.gateway.download(url)
