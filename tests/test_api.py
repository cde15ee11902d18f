"""
Driver API wrappers: request shapes and payload parsing.

Uses ``httpx.MockTransport`` with a tiny router so each test can assert the
exact method, path and body sent for an endpoint.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from xdrive_driver.api.endpoints import DriverApi
from xdrive_driver.api.gateway import ApiGateway
from xdrive_driver.domain.entities import Location
from xdrive_driver.domain.enums import PaymentMethod, RideStatus
from xdrive_driver.domain.errors import MalformedResponse

RIDE = {
    "id": 2,
    "pickupLocation": "Gare de Cannes",
    "dropoffLocation": "Hôtel Martinez, Cannes",
    "pickupLatitude": 43.5534,
    "pickupLongitude": 7.0196,
    "price": 22.5,
    "paymentMethod": "cash",
    "distance": 3.2,
    "duration": 12,
    "pickupTime": "15:45",
    "status": "pending",
    "passengerName": "Marie",
}


class Recorder:
    """Records requests and answers from a ``{(method, path): response}`` map."""

    def __init__(self, routes):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes[(request.method, request.url.path)]
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json=answer)

    @property
    def last_body(self):
        return json.loads(self.requests[-1].content)


def make_api(routes) -> tuple[DriverApi, Recorder]:
    recorder = Recorder(routes)
    gateway = ApiGateway("http://api.test", transport=httpx.MockTransport(recorder))
    return DriverApi(gateway), recorder


class TestAccount:
    @pytest.mark.asyncio
    async def test_login_sends_device_token(self):
        api, rec = make_api(
            {("POST", "/api/driver/login"): {"token": "a.b.c", "driver": {"id": 7}}}
        )
        data = await api.login("admin@xdrive.com", "admin123", "expo-token")

        assert rec.last_body == {
            "email": "admin@xdrive.com",
            "password": "admin123",
            "deviceToken": "expo-token",
        }
        assert data.token == "a.b.c"
        assert data.driver.id == 7

    @pytest.mark.asyncio
    async def test_profile_keeps_unknown_fields(self):
        api, _ = make_api(
            {("GET", "/api/driver/profile"): {"driver": {"id": "7", "isAvailable": True, "rating": 4.9}}}
        )
        driver = await api.get_profile()
        assert driver.is_available is True
        assert driver.model_dump(by_alias=True)["rating"] == 4.9

    @pytest.mark.asyncio
    async def test_profile_without_driver_is_malformed(self):
        api, _ = make_api({("GET", "/api/driver/profile"): {"ok": True}})
        with pytest.raises(MalformedResponse):
            await api.get_profile()

    @pytest.mark.asyncio
    async def test_register_push_token(self):
        api, rec = make_api({("POST", "/api/driver/register-push-token"): {"success": True}})
        await api.register_push_token("expo-token")
        assert rec.last_body == {"pushToken": "expo-token"}


class TestLocation:
    @pytest.mark.asyncio
    async def test_update_location_body(self):
        api, rec = make_api({("POST", "/api/driver/location"): {"success": True}})
        at = datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)

        await api.update_location(43.7, 7.26, True, at)

        assert rec.last_body == {
            "latitude": 43.7,
            "longitude": 7.26,
            "isAvailable": True,
            "timestamp": "2026-05-04T12:00:00+00:00",
        }

    @pytest.mark.asyncio
    async def test_availability_flag_omitted_when_unknown(self):
        api, rec = make_api({("POST", "/api/driver/location"): {"success": True}})
        await api.update_location(43.7, 7.26)
        assert "isAvailable" not in rec.last_body

    @pytest.mark.asyncio
    async def test_update_availability(self):
        api, rec = make_api({("PUT", "/api/driver/availability"): {"available": False}})
        await api.update_availability(False)
        assert rec.last_body == {"available": False}


class TestRides:
    @pytest.mark.parametrize(
        "payload", [[RIDE], {"rides": [RIDE]}, {"pendingRides": [RIDE]}]
    )
    @pytest.mark.asyncio
    async def test_available_rides_shapes(self, payload):
        api, _ = make_api({("GET", "/api/driver/available-rides"): payload})
        rides = await api.get_available_rides()

        assert len(rides) == 1
        ride = rides[0]
        assert ride.id == "2"
        assert ride.payment_method is PaymentMethod.CASH
        assert ride.pickup == Location(43.5534, 7.0196)
        assert ride.dropoff is None
        assert ride.status is RideStatus.PENDING

    @pytest.mark.asyncio
    async def test_pending_rides_alias(self):
        api, _ = make_api({("GET", "/api/driver/available-rides"): []})
        assert await api.get_pending_rides() == []

    @pytest.mark.asyncio
    async def test_unexpected_rides_shape(self):
        api, _ = make_api({("GET", "/api/driver/available-rides"): {"rides": "none"}})
        with pytest.raises(MalformedResponse):
            await api.get_available_rides()

    @pytest.mark.asyncio
    async def test_get_ride_unwraps_envelope(self):
        api, _ = make_api(
            {("GET", "/api/ride/2"): {"ride": dict(RIDE, status="en_cours")}}
        )
        ride = await api.get_ride("2")
        assert ride.status is RideStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_accept_without_voucher(self):
        api, rec = make_api({("POST", "/api/ride/accept"): {"success": True}})
        response = await api.accept_ride("42")
        assert rec.last_body == {"rideId": "42"}
        assert response.bon_commande is None

    @pytest.mark.asyncio
    async def test_accept_with_voucher(self):
        api, _ = make_api(
            {("POST", "/api/ride/accept"): {"bonCommande": "/files/bon_commande_1.pdf"}}
        )
        response = await api.accept_ride("1")
        assert response.bon_commande == "/files/bon_commande_1.pdf"

    @pytest.mark.asyncio
    async def test_status_update_uses_wire_value(self):
        api, rec = make_api({("PUT", "/api/ride/1/status"): {"success": True}})
        await api.update_ride_status("1", RideStatus.EN_ROUTE)
        assert rec.last_body == {"status": "en_route"}

    @pytest.mark.asyncio
    async def test_voucher_as_plain_text(self):
        api, _ = make_api(
            {("GET", "/api/ride/bon-commande/1"): httpx.Response(200, text="/files/x.pdf")}
        )
        voucher = await api.get_voucher("1")
        assert voucher.document_url == "/files/x.pdf"

    @pytest.mark.asyncio
    async def test_log_event(self):
        api, rec = make_api({("POST", "/api/ride/event"): {"success": True}})
        await api.log_ride_event("1", "arrived_at_pickup", note="gate B")
        assert rec.last_body == {
            "rideId": "1",
            "eventType": "arrived_at_pickup",
            "note": "gate B",
        }

    @pytest.mark.asyncio
    async def test_history_page(self):
        api, rec = make_api(
            {("GET", "/api/driver/ride-history"): {"rides": [RIDE], "page": 2, "limit": 5, "total": 6}}
        )
        page = await api.get_ride_history(page=2, limit=5)

        assert rec.requests[-1].url.params["limit"] == "5"
        assert page.total == 6
        assert page.rides[0].to_entity().price == 22.5
