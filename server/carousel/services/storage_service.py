import logging
import os
from typing import Optional

import aiofiles

from carousel.config import settings

logger = logging.getLogger(__name__)


class StorageService:
    """Local filesystem storage for exported slides and archives.

    Files are stored under ``settings.storage_dir`` and served by FastAPI
    via the ``/api/files/{path}`` route defined in ``main.py``.  The same
    prefix is accepted as a same-origin background image reference.
    """

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = base_dir or settings.storage_dir
        os.makedirs(self.base_dir, exist_ok=True)

    def _full_path(self, key: str) -> str:
        return os.path.join(self.base_dir, key)

    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Write *data* to ``{storage_dir}/{key}``."""
        full_path = self._full_path(key)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        async with aiofiles.open(full_path, "wb") as f:
            await f.write(data)
        logger.debug(f"Stored {len(data)} bytes ({content_type}) at {full_path}")
        return key

    async def get_url(self, key: str) -> str:
        """Return the URL path served by FastAPI's static file route."""
        return f"/api/files/{key}"

