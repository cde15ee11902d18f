"""
Push notifications: token ownership, server registration, payload parsing.

Transport (OS registration, display) is out of scope; this module only
keeps the device push token and understands the data the server puts in a
notification.  It sits above the API layer, which knows nothing about it.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from xdrive_driver.api.endpoints import DriverApi
from xdrive_driver.api.schemas import PushNotificationData
from xdrive_driver.domain.enums import NotificationType
from xdrive_driver.domain.errors import DriverClientError
from xdrive_driver.infrastructure.storage import LocalStorage, StorageKeys

logger = logging.getLogger(__name__)


class PushTokenStore:
    def __init__(self, storage: LocalStorage):
        self.storage = storage

    async def get(self) -> Optional[str]:
        return await self.storage.get(StorageKeys.PUSH_TOKEN)

    async def save(self, token: str) -> None:
        await self.storage.set(StorageKeys.PUSH_TOKEN, token)

    async def clear(self) -> None:
        await self.storage.delete(StorageKeys.PUSH_TOKEN)


class NotificationService:
    def __init__(self, api: DriverApi, tokens: PushTokenStore):
        self.api = api
        self.tokens = tokens

    async def register(self, push_token: str) -> bool:
        """Keep *push_token* locally and tell the server.  True if the server took it."""
        await self.tokens.save(push_token)
        try:
            await self.api.register_push_token(push_token)
        except DriverClientError as exc:
            logger.warning("Push token not registered with the server yet: %s", exc.message)
            return False
        return True

    @staticmethod
    def parse(payload: dict[str, Any]) -> Optional[PushNotificationData]:
        try:
            return PushNotificationData.model_validate(payload or {})
        except ValidationError:
            logger.warning("Ignoring unrecognised notification payload")
            return None

    @classmethod
    def ride_offer_id(cls, payload: dict[str, Any]) -> Optional[str]:
        """Ride id of a new-ride notification, else ``None``."""
        data = cls.parse(payload)
        if data is None or data.type is not NotificationType.NEW_RIDE:
            return None
        return str(data.ride_id) if data.ride_id is not None else None
