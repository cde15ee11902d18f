"""
Client error taxonomy.

Every failure that can reach a caller is a ``DriverClientError`` carrying a
structured ``kind``.  Components branch on ``kind`` (never on message text)
and the UI shows ``message``.
"""

from __future__ import annotations

from .enums import ErrorKind

NETWORK_ERROR = "Network problem. Please check your internet connection."
AUTH_ERROR = "Session expired. Please log in again."
LOCATION_PERMISSION_DENIED = (
    "Location permission denied. It is required to receive rides."
)
LOCATION_UNAVAILABLE = "Unable to track your position. Please try again."
SERVER_ERROR = "Server error. Please try again later."
INVALID_CREDENTIALS = "Incorrect email or password."
RIDE_UNAVAILABLE = "This ride is no longer available."
MALFORMED_RESPONSE = "Unexpected response from the server."


class DriverClientError(Exception):
    kind: ErrorKind = ErrorKind.SERVER
    default_message: str = SERVER_ERROR

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(DriverClientError):
    """Local validation failed; nothing was sent."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class PermissionDenied(DriverClientError):
    kind = ErrorKind.PERMISSION_DENIED
    default_message = LOCATION_PERMISSION_DENIED


class LocationUnavailable(DriverClientError):
    kind = ErrorKind.LOCATION_UNAVAILABLE
    default_message = LOCATION_UNAVAILABLE


class NetworkError(DriverClientError):
    kind = ErrorKind.NETWORK
    default_message = NETWORK_ERROR


class AuthError(DriverClientError):
    kind = ErrorKind.AUTH
    default_message = AUTH_ERROR


class ServerError(DriverClientError):
    kind = ErrorKind.SERVER

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class MalformedResponse(DriverClientError):
    kind = ErrorKind.MALFORMED_RESPONSE
    default_message = MALFORMED_RESPONSE
