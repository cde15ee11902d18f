"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "accepted"
    EN_ROUTE = "en_route"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CASH_COLLECTED = "cash_collected"
    DECLINED = "declined"
    CANCELLED = "cancelled"

    @classmethod
    def _missing_(cls, value):
        # Labels used by older builds of the driver app
        if isinstance(value, str):
            return _LEGACY_STATUS_LABELS.get(value.strip().lower())
        return None


_LEGACY_STATUS_LABELS = {
    "assigned": RideStatus.ASSIGNED,
    "arrivé": RideStatus.ARRIVED,
    "en_cours": RideStatus.IN_PROGRESS,
    "terminé": RideStatus.COMPLETED,
}


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.PENDING: {RideStatus.ASSIGNED, RideStatus.DECLINED},
    RideStatus.ASSIGNED: {RideStatus.EN_ROUTE},
    RideStatus.EN_ROUTE: {RideStatus.ARRIVED},
    RideStatus.ARRIVED: {RideStatus.IN_PROGRESS},
    RideStatus.IN_PROGRESS: {RideStatus.COMPLETED},
    RideStatus.COMPLETED: {RideStatus.CASH_COLLECTED},
    RideStatus.CASH_COLLECTED: set(),
    RideStatus.DECLINED: set(),
    RideStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset(
    status for status, nxt in RIDE_TRANSITIONS.items() if not nxt
)


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"


class TrackerState(str, enum.Enum):
    STOPPED = "STOPPED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"


class NotificationType(str, enum.Enum):
    NEW_RIDE = "new_ride"
    RIDE_UPDATE = "ride_update"
    SYSTEM = "system"


class ErrorKind(str, enum.Enum):
    INVALID_INPUT = "INVALID_INPUT"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    LOCATION_UNAVAILABLE = "LOCATION_UNAVAILABLE"
    NETWORK = "NETWORK"
    AUTH = "AUTH"
    SERVER = "SERVER"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
