"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride``: enforces the driver-side lifecycle
  (PENDING -> ASSIGNED -> EN_ROUTE -> ARRIVED -> IN_PROGRESS -> COMPLETED
  [-> CASH_COLLECTED]) with no backward moves.
- ``Session`` owns the expiry policy; ``PositionSample`` is an immutable
  value object replaced wholesale on every fix.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .enums import RIDE_TRANSITIONS, TERMINAL_STATUSES, PaymentMethod, RideStatus


class InvalidStateTransition(Exception):
    """Raised when a ride status change violates the state machine."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_instant(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class PositionSample:
    latitude: float
    longitude: float
    captured_at: datetime = field(default_factory=utcnow)
    accuracy: Optional[float] = None

    def age(self, now: datetime) -> timedelta:
        return now - self.captured_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "captured_at": self.captured_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PositionSample":
        # older snapshots stored the capture time under "timestamp"
        raw = data.get("captured_at") or data.get("timestamp")
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            accuracy=data.get("accuracy"),
            captured_at=_parse_instant(raw) if raw else utcnow(),
        )


# ── Entities ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Session:
    auth_token: str
    driver_id: str
    login_timestamp: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.login_timestamp

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return self.age(now) >= ttl


@dataclass
class Ride:
    id: str
    pickup_address: str = ""
    dropoff_address: str = ""
    pickup: Optional[Location] = None
    dropoff: Optional[Location] = None
    price: Optional[float] = None
    payment_method: PaymentMethod = PaymentMethod.CARD
    distance_km: Optional[float] = None
    duration_min: Optional[float] = None
    pickup_time: Optional[str] = None
    status: RideStatus = RideStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def check_transition(self, new_status: RideStatus) -> None:
        """Raise if moving to *new_status* is not legal from here."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        if (
            new_status is RideStatus.CASH_COLLECTED
            and self.payment_method is not PaymentMethod.CASH
        ):
            raise InvalidStateTransition(
                f"Ride {self.id} is paid by {self.payment_method.value}; "
                "there is no cash to collect"
            )

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        self.check_transition(new_status)
        self.status = new_status

    def adopt_server_status(self, server_status: RideStatus) -> None:
        """Take the server's status as truth, keeping a local cash attestation."""
        if (
            self.status is RideStatus.CASH_COLLECTED
            and server_status is RideStatus.COMPLETED
        ):
            return
        self.status = server_status

    def copy(self) -> "Ride":
        return replace(self)
