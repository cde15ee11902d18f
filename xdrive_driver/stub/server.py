"""
Development stub of the remote driver API
=========================================

In-memory FastAPI implementation of every endpoint the client calls, for
local runs (``python main.py``) and end-to-end tests (mounted through
``httpx.ASGITransport``).  Nothing is persisted; each ``create_stub_app()``
call gets its own state, reachable as ``app.state.stub``.

Demo account: ``admin@xdrive.com`` / ``admin123``.
Errors are returned as ``{"message": ...}`` like the real server.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse, Response

from xdrive_driver.domain.entities import utcnow
from xdrive_driver.domain.enums import RideStatus

DEMO_EMAIL = "admin@xdrive.com"
DEMO_PASSWORD = "admin123"

_PDF = b"%PDF-1.4\n% bon de commande\n%%EOF\n"


class StubError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message


def _demo_rides() -> dict[str, dict[str, Any]]:
    rides = [
        {
            "id": "1",
            "pickupLocation": "123 Rue de Paris, Nice",
            "dropoffLocation": "Aéroport de Nice Côte d'Azur",
            "pickupLatitude": 43.7031,
            "pickupLongitude": 7.2661,
            "dropoffLatitude": 43.6584,
            "dropoffLongitude": 7.2159,
            "pickupTime": "14:30",
            "price": 35.0,
            "distance": 7.5,
            "duration": 20,
            "paymentMethod": "card",
            "status": "pending",
            "hasVoucher": True,
        },
        {
            "id": "2",
            "pickupLocation": "Gare de Cannes",
            "dropoffLocation": "Hôtel Martinez, Cannes",
            "pickupLatitude": 43.5534,
            "pickupLongitude": 7.0196,
            "dropoffLatitude": 43.5486,
            "dropoffLongitude": 7.0339,
            "pickupTime": "15:45",
            "price": 22.5,
            "distance": 3.2,
            "duration": 12,
            "paymentMethod": "cash",
            "status": "pending",
            "hasVoucher": True,
        },
        {
            "id": "42",
            "pickupLocation": "Promenade des Anglais, Nice",
            "dropoffLocation": "Monaco-Ville",
            "pickupTime": "17:00",
            "price": 60.0,
            "distance": 21.0,
            "duration": 35,
            "paymentMethod": "card",
            "status": "pending",
            "hasVoucher": False,
        },
    ]
    return {ride["id"]: ride for ride in rides}


@dataclass
class StubState:
    drivers: dict[str, dict[str, Any]] = field(default_factory=dict)
    passwords: dict[str, str] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)  # token -> driver id
    rides: dict[str, dict[str, Any]] = field(default_factory=_demo_rides)
    availability: dict[str, bool] = field(default_factory=dict)
    locations: list[dict[str, Any]] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)
    push_tokens: dict[str, str] = field(default_factory=dict)
    declines: list[dict[str, Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.drivers:
            self.add_driver(
                DEMO_EMAIL,
                DEMO_PASSWORD,
                name="Admin XDrive",
                phone="+33600000000",
                vehicle="Mercedes Classe E",
            )

    def add_driver(self, email: str, password: str, **profile: Any) -> dict[str, Any]:
        driver_id = str(len(self.drivers) + 1)
        driver = {"id": driver_id, "email": email, "isAvailable": False, **profile}
        self.drivers[driver_id] = driver
        self.passwords[email] = password
        return driver

    def find_by_email(self, email: str) -> Optional[dict[str, Any]]:
        for driver in self.drivers.values():
            if driver["email"] == email:
                return driver
        return None

    def issue_token(self, driver_id: str) -> str:
        token = ".".join(secrets.token_urlsafe(12) for _ in range(3))
        self.tokens[token] = driver_id
        return token

    def revoke_all(self) -> None:
        self.tokens.clear()

    def ride(self, ride_id: str) -> dict[str, Any]:
        ride = self.rides.get(str(ride_id))
        if ride is None:
            raise StubError(404, "Course introuvable")
        return ride


def _public(ride: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in ride.items() if k != "hasVoucher"}


def create_stub_app(state: StubState | None = None) -> FastAPI:
    app = FastAPI(
        title="XDrive Driver API (stub)",
        description="In-memory stand-in for the remote driver API.",
        version="1.0.0",
    )
    app.state.stub = state or StubState()

    @app.exception_handler(StubError)
    async def _stub_error(request: Request, exc: StubError):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    def get_state(request: Request) -> StubState:
        return request.app.state.stub

    def current_driver(
        request: Request, authorization: Optional[str] = Header(default=None)
    ) -> dict[str, Any]:
        stub: StubState = request.app.state.stub
        if not authorization or not authorization.startswith("Bearer "):
            raise StubError(401, "Authentification requise")
        driver_id = stub.tokens.get(authorization[len("Bearer "):])
        if driver_id is None:
            raise StubError(401, "Session expirée")
        return stub.drivers[driver_id]

    # ── Account ───────────────────────────────────────────────────────

    @app.post("/api/driver/login")
    async def login(body: dict, stub: StubState = Depends(get_state)):
        email = str(body.get("email", "")).strip().lower()
        driver = stub.find_by_email(email)
        if driver is None or stub.passwords.get(email) != body.get("password"):
            raise StubError(401, "Email ou mot de passe incorrect")
        if body.get("deviceToken"):
            stub.push_tokens[driver["id"]] = body["deviceToken"]
        return {"token": stub.issue_token(driver["id"]), "driver": driver}

    @app.post("/api/driver/register", status_code=201)
    async def register(body: dict, stub: StubState = Depends(get_state)):
        email = str(body.get("email", "")).strip().lower()
        if stub.find_by_email(email) is not None:
            raise StubError(409, "Cet email est déjà utilisé")
        profile = {k: body.get(k) for k in ("name", "phone", "vehicle")}
        driver = stub.add_driver(email, str(body.get("password", "")), **profile)
        return {"message": "Inscription réussie", "driver": driver}

    @app.get("/api/driver/profile")
    async def get_profile(driver: dict = Depends(current_driver)):
        return {"driver": driver}

    @app.put("/api/driver/profile")
    async def update_profile(body: dict, driver: dict = Depends(current_driver)):
        for key in ("name", "phone", "vehicle"):
            if key in body:
                driver[key] = body[key]
        return {"driver": driver}

    @app.post("/api/driver/register-push-token")
    async def register_push_token(
        body: dict,
        driver: dict = Depends(current_driver),
        stub: StubState = Depends(get_state),
    ):
        stub.push_tokens[driver["id"]] = body.get("pushToken", "")
        return {"success": True}

    # ── Availability & location ───────────────────────────────────────

    @app.get("/api/driver/availability")
    async def get_availability(
        driver: dict = Depends(current_driver), stub: StubState = Depends(get_state)
    ):
        return {"available": stub.availability.get(driver["id"], False)}

    @app.put("/api/driver/availability")
    async def update_availability(
        body: dict,
        driver: dict = Depends(current_driver),
        stub: StubState = Depends(get_state),
    ):
        available = bool(body.get("available"))
        stub.availability[driver["id"]] = available
        driver["isAvailable"] = available
        return {"available": available}

    @app.post("/api/driver/location")
    async def update_location(
        body: dict,
        driver: dict = Depends(current_driver),
        stub: StubState = Depends(get_state),
    ):
        stub.locations.append({"driverId": driver["id"], **body})
        if "isAvailable" in body:
            stub.availability[driver["id"]] = bool(body["isAvailable"])
            driver["isAvailable"] = bool(body["isAvailable"])
        return {"success": True}

    # ── Rides ─────────────────────────────────────────────────────────

    @app.get("/api/driver/available-rides")
    async def available_rides(
        driver: dict = Depends(current_driver), stub: StubState = Depends(get_state)
    ):
        return {
            "rides": [
                _public(r) for r in stub.rides.values()
                if r["status"] == RideStatus.PENDING.value
            ]
        }

    @app.post("/api/ride/accept")
    async def accept_ride(
        body: dict,
        driver: dict = Depends(current_driver),
        stub: StubState = Depends(get_state),
    ):
        ride = stub.ride(body.get("rideId"))
        if ride["status"] != RideStatus.PENDING.value:
            raise StubError(409, "Cette course n'est plus disponible")
        ride["status"] = RideStatus.ASSIGNED.value
        ride["driverId"] = driver["id"]
        response: dict[str, Any] = {"success": True, "ride": _public(ride)}
        if ride["hasVoucher"]:
            response["bonCommande"] = f"/files/bon_commande_{ride['id']}.pdf"
        return response

    @app.post("/api/ride/decline")
    async def decline_ride(
        body: dict,
        driver: dict = Depends(current_driver),
        stub: StubState = Depends(get_state),
    ):
        ride = stub.ride(body.get("rideId"))
        stub.declines.append(
            {"rideId": ride["id"], "driverId": driver["id"], "reason": body.get("reason", "")}
        )
        return {"success": True}

    @app.get("/api/ride/bon-commande/{ride_id}")
    async def get_voucher(
        ride_id: str,
        driver: dict = Depends(current_driver),
        stub: StubState = Depends(get_state),
    ):
        ride = stub.ride(ride_id)
        if not ride["hasVoucher"]:
            raise StubError(404, "Aucun bon de commande pour cette course")
        return {"url": f"/files/bon_commande_{ride['id']}.pdf"}

    @app.post("/api/ride/event")
    async def log_event(
        body: dict,
        driver: dict = Depends(current_driver),
        stub: StubState = Depends(get_state),
    ):
        stub.ride(body.get("rideId"))
        stub.events.append({"driverId": driver["id"], **body})
        return {"success": True}

    @app.get("/api/ride/{ride_id}")
    async def get_ride(
        ride_id: str,
        driver: dict = Depends(current_driver),
        stub: StubState = Depends(get_state),
    ):
        return {"ride": _public(stub.ride(ride_id))}

    @app.put("/api/ride/{ride_id}/status")
    async def update_ride_status(
        ride_id: str,
        body: dict,
        driver: dict = Depends(current_driver),
        stub: StubState = Depends(get_state),
    ):
        ride = stub.ride(ride_id)
        try:
            status = RideStatus(body.get("status"))
        except ValueError:
            raise StubError(400, "Statut inconnu")
        ride["status"] = status.value
        if status is RideStatus.COMPLETED:
            ride["completedAt"] = utcnow().isoformat()
        return {"success": True, "ride": _public(ride)}

    @app.get("/files/{name}")
    async def download(name: str, driver: dict = Depends(current_driver)):
        return Response(content=_PDF, media_type="application/pdf")

    # ── History & stats ───────────────────────────────────────────────

    @app.get("/api/driver/ride-history")
    async def ride_history(
        page: int = 1,
        limit: int = 10,
        driver: dict = Depends(current_driver),
        stub: StubState = Depends(get_state),
    ):
        done = [
            _public(r) for r in stub.rides.values()
            if r.get("driverId") == driver["id"]
            and r["status"] == RideStatus.COMPLETED.value
        ]
        start = (max(page, 1) - 1) * limit
        return {"rides": done[start:start + limit], "page": page, "limit": limit, "total": len(done)}

    @app.get("/api/driver/stats")
    async def stats(
        period: str = "week",
        driver: dict = Depends(current_driver),
        stub: StubState = Depends(get_state),
    ):
        done = [
            r for r in stub.rides.values()
            if r.get("driverId") == driver["id"]
            and r["status"] == RideStatus.COMPLETED.value
        ]
        return {
            "period": period,
            "rides": len(done),
            "earnings": round(sum(r.get("price") or 0 for r in done), 2),
        }

    return app
