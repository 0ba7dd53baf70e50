import base64
import binascii
import logging
import time
from typing import Optional

import httpx

from carousel.config import settings

logger = logging.getLogger(__name__)


def is_embedded(ref: Optional[str]) -> bool:
    return bool(ref) and ref.startswith("data:")


def is_remote(ref: Optional[str]) -> bool:
    return bool(ref) and ref.startswith(("http://", "https://"))


def to_data_url(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_url(ref: str) -> bytes:
    """Decode a ``data:<mime>;base64,...`` URL into raw bytes."""
    header, sep, payload = ref.partition(",")
    if not sep or not header.startswith("data:"):
        raise ValueError("Not a data URL")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=False)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 payload: {e}") from e
    return payload.encode("utf-8")


def _cache_busted(url: str) -> str:
    # Some CDNs cache responses without CORS headers; a unique query avoids them
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}t={int(time.time() * 1000)}"


class ImageEmbedder:
    """Turns remote background references into self-contained data URLs.

    Results are cached per slide index for the lifetime of the editing
    session, so exporting the same carousel twice does not refetch images.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport
        # slide index -> (source ref, embedded data URL)
        self._cache: dict[int, tuple[str, str]] = {}

    async def embed(self, ref: Optional[str]) -> Optional[str]:
        """Return an embedded form of ``ref``, or ``ref`` itself when that fails."""
        if not ref or is_embedded(ref) or not is_remote(ref):
            return ref
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=settings.image_fetch_timeout_secs,
                follow_redirects=True,
            ) as client:
                response = await client.get(_cache_busted(ref))
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to embed image {ref}: {e}")
            return ref

        mime = response.headers.get("content-type", "").split(";")[0].strip()
        if not mime.startswith("image/"):
            logger.error(f"Failed to embed image {ref}: unexpected content type {mime!r}")
            return ref
        return to_data_url(response.content, mime)

    async def embed_for_slide(self, index: int, ref: Optional[str]) -> Optional[str]:
        cached = self._cache.get(index)
        if cached and cached[0] == ref:
            return cached[1]
        embedded = await self.embed(ref)
        if ref and is_embedded(embedded) and embedded != ref:
            self._cache[index] = (ref, embedded)
        return embedded

    def cached(self, index: int, ref: Optional[str]) -> Optional[str]:
        entry = self._cache.get(index)
        if entry and entry[0] == ref:
            return entry[1]
        return None

    def invalidate(self, index: Optional[int] = None) -> None:
        if index is None:
            self._cache.clear()
        else:
            self._cache.pop(index, None)
