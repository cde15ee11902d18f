"""Order voucher ("bon de commande") documents saved next to the app data."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

# ride ids come from the server; anything else is replaced in file names
_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")


class VoucherStore:
    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def path_for(self, ride_id: str) -> Path:
        safe_id = _UNSAFE.sub("_", str(ride_id)) or "_"
        return self.directory / f"bon_commande_{safe_id}.pdf"

    async def save(self, ride_id: str, content: bytes) -> Path:
        path = self.path_for(ride_id)
        await asyncio.to_thread(self._write, path, content)
        return path

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
