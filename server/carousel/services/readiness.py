"""Resource readiness gates that must clear before any capture.

1. Fonts: every distinct font of the target slides is requested, then the
   environment-wide ``settled()`` signal is awaited.  The preview stays
   locked while this gate is pending.
2. Images: remote backgrounds are embedded as data URLs.  Each slide is
   handled on its own; a failure keeps the original reference.
"""

import asyncio
import logging
from typing import Iterable, Optional, Sequence

from carousel.config import settings
from carousel.schemas.slide import Slide
from carousel.services.font_environment import FontEnvironment
from carousel.services.image_embedder import ImageEmbedder, is_remote
from carousel.services.slide_renderer import PreviewSurface

logger = logging.getLogger(__name__)


def fonts_of(slides: Iterable[Slide]) -> list[str]:
    seen: dict[str, None] = {}
    for slide in slides:
        seen.setdefault(slide.font)
        if not slide.use_only_main and slide.secondary_text:
            seen.setdefault(slide.secondary_font)
    return list(seen)


class ReadinessPipeline:
    def __init__(
        self,
        fonts: FontEnvironment,
        embedder: ImageEmbedder,
        preview: Optional[PreviewSurface] = None,
        settle_delay_ms: Optional[int] = None,
    ):
        self.fonts = fonts
        self.embedder = embedder
        self.preview = preview
        self.settle_delay_ms = (
            settings.resource_settle_delay_ms if settle_delay_ms is None else settle_delay_ms
        )

    async def fonts_ready(self, slides: Iterable[Slide]) -> None:
        font_ids = fonts_of(slides)
        if self.preview is not None:
            self.preview.lock()
        try:
            for font_id in font_ids:
                self.fonts.request(font_id)
            await self.fonts.settled()
        finally:
            if self.preview is not None:
                self.preview.unlock()
        logger.debug(f"Fonts settled: {', '.join(font_ids)}")

    async def images_ready(self, targets: dict[int, Slide]) -> dict[int, Slide]:
        """Embed remote backgrounds of ``targets``; returns the slides that changed."""
        pending = {
            index: slide for index, slide in targets.items() if is_remote(slide.bg_image)
        }
        if not pending:
            return {}

        results = await asyncio.gather(
            *(self.embedder.embed_for_slide(i, s.bg_image) for i, s in pending.items()),
            return_exceptions=True,
        )
        changed = {}
        for (index, slide), result in zip(pending.items(), results):
            if isinstance(result, Exception):
                logger.error(f"Slide {index}: image embedding failed: {result}")
                continue
            if result and result != slide.bg_image:
                changed[index] = slide.model_copy(update={"bg_image": result})
            else:
                logger.warning(f"Slide {index}: keeping remote background, capture may fail")
        return changed

    async def prepare(
        self, slides: Sequence[Slide], indices: Optional[Iterable[int]] = None
    ) -> list[Slide]:
        """Run both gates for ``indices`` (all slides by default).

        Returns the full slide list with embedded backgrounds substituted in.
        """
        indices = list(range(len(slides))) if indices is None else list(indices)
        targets = {i: slides[i] for i in indices}

        await self.fonts_ready(targets.values())
        changed = await self.images_ready(targets)

        if self.settle_delay_ms:
            await asyncio.sleep(self.settle_delay_ms / 1000)

        prepared = list(slides)
        for index, slide in changed.items():
            prepared[index] = slide
        return prepared
