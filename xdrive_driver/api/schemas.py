"""Pydantic schemas for the remote driver API payloads (camelCase on the wire)."""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from xdrive_driver.domain.entities import Location, Ride
from xdrive_driver.domain.enums import NotificationType, PaymentMethod, RideStatus

_wire = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


# ── Driver ────────────────────────────────────────────────────────────


class Driver(BaseModel):
    model_config = _wire

    id: Union[int, str]
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    vehicle: Optional[Union[str, dict]] = None
    is_available: Optional[bool] = None


class LoginResponse(BaseModel):
    model_config = _wire

    token: Optional[str] = None
    driver: Optional[Driver] = None


class ProfileResponse(BaseModel):
    model_config = _wire

    driver: Driver


# ── Rides ─────────────────────────────────────────────────────────────


class RidePayload(BaseModel):
    model_config = _wire

    id: Union[int, str]
    pickup_location: str = ""
    dropoff_location: str = ""
    pickup_latitude: Optional[float] = None
    pickup_longitude: Optional[float] = None
    dropoff_latitude: Optional[float] = None
    dropoff_longitude: Optional[float] = None
    price: Optional[float] = None
    payment_method: PaymentMethod = PaymentMethod.CARD
    distance: Optional[float] = None
    duration: Optional[float] = None
    pickup_time: Optional[str] = None
    status: RideStatus = RideStatus.PENDING

    def to_entity(self) -> Ride:
        pickup = dropoff = None
        if self.pickup_latitude is not None and self.pickup_longitude is not None:
            pickup = Location(self.pickup_latitude, self.pickup_longitude)
        if self.dropoff_latitude is not None and self.dropoff_longitude is not None:
            dropoff = Location(self.dropoff_latitude, self.dropoff_longitude)
        return Ride(
            id=str(self.id),
            pickup_address=self.pickup_location,
            dropoff_address=self.dropoff_location,
            pickup=pickup,
            dropoff=dropoff,
            price=self.price,
            payment_method=self.payment_method,
            distance_km=self.distance,
            duration_min=self.duration,
            pickup_time=self.pickup_time,
            status=self.status,
        )


class AcceptRideResponse(BaseModel):
    model_config = _wire

    bon_commande: Optional[str] = None


class VoucherResponse(BaseModel):
    model_config = _wire

    url: Optional[str] = None
    bon_commande: Optional[str] = None

    @property
    def document_url(self) -> Optional[str]:
        return self.url or self.bon_commande


class RideHistoryPage(BaseModel):
    model_config = _wire

    rides: list[RidePayload] = []
    page: int = 1
    limit: int = 10
    total: Optional[int] = None


# ── Notifications ─────────────────────────────────────────────────────


class PushNotificationData(BaseModel):
    """Data contract carried by push notifications."""

    model_config = _wire

    type: NotificationType = NotificationType.SYSTEM
    ride_id: Optional[Union[int, str]] = None
    title: Optional[str] = None
    body: Optional[str] = None
