"""Last known device position, persisted.  Losing it is never fatal."""

from __future__ import annotations

import logging
from typing import Optional

from xdrive_driver.domain.entities import PositionSample
from xdrive_driver.infrastructure.storage import LocalStorage, StorageKeys

logger = logging.getLogger(__name__)


class PositionCache:
    def __init__(self, storage: LocalStorage):
        self.storage = storage

    async def save(self, sample: PositionSample) -> None:
        try:
            await self.storage.set(StorageKeys.LAST_POSITION, sample.to_dict())
        except Exception:
            logger.warning("Could not persist last position", exc_info=True)

    async def get(self) -> Optional[PositionSample]:
        try:
            raw = await self.storage.get(StorageKeys.LAST_POSITION)
            return PositionSample.from_dict(raw) if raw else None
        except Exception:
            logger.warning("Could not read last position", exc_info=True)
            return None
