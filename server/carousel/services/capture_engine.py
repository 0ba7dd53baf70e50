import asyncio
import logging
from typing import Optional

from PIL import Image

from carousel.config import settings
from carousel.services.errors import CaptureError
from carousel.services.rasterizer import Rasterizer
from carousel.services.render_tree import SurfaceNode

logger = logging.getLogger(__name__)

# Export output is never device-pixel-ratio scaled
PIXEL_RATIO = 1.0


class CaptureEngine:
    """Snapshots export surfaces into PNG bitmaps.

    Every capture is a two-step protocol:

    1. a warm-up capture with the exact same parameters whose result is
       thrown away.  Some rasterizers only have embedded fonts and images
       hot after a first pass, and the first real capture of a session
       would otherwise come out with missing glyphs or a blank background;
    2. a fixed delay, then the real capture.

    Do not drop the warm-up pass: the failure it prevents is silent and
    intermittent.
    """

    def __init__(self, rasterizer: Rasterizer, warmup_delay_ms: Optional[int] = None):
        self.rasterizer = rasterizer
        self.warmup_delay_ms = (
            settings.capture_warmup_delay_ms if warmup_delay_ms is None else warmup_delay_ms
        )

    async def capture(self, node: Optional[SurfaceNode], width: int, height: int) -> bytes:
        if node is None:
            raise CaptureError("Export surface is not rendered")

        # Pass 1: warm-up, result discarded
        await self._snapshot(node, width, height)

        await asyncio.sleep(self.warmup_delay_ms / 1000)

        # Pass 2: the capture that is actually kept
        image = await self._snapshot(node, width, height)
        if image.size != (width, height):
            raise CaptureError(f"Capture produced {image.size}, expected {(width, height)}")
        return await asyncio.to_thread(self.rasterizer.to_png, image)

    async def _snapshot(self, node: SurfaceNode, width: int, height: int) -> Image.Image:
        try:
            return await asyncio.to_thread(
                self.rasterizer.rasterize,
                node,
                width,
                height,
                pixel_ratio=PIXEL_RATIO,
                auto_scale=False,
            )
        except CaptureError:
            raise
        except (OSError, ValueError) as e:
            raise CaptureError(f"Rasterization failed: {e}") from e
