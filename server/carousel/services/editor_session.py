"""Editing sessions: one rendering/export stack per open carousel.

The hosting layer (the API routers) looks sessions up through an
``EditorSessionRegistry`` it receives as a dependency; nothing reaches into
ambient global state to drive an editor.
"""

import asyncio
import logging
from typing import Callable, Optional

from carousel.schemas.slide import Carousel, StylePreset
from carousel.services import slide_template
from carousel.services.capture_engine import CaptureEngine
from carousel.services.delivery import DeliveryService, Platform, StorageDownloadPlatform
from carousel.services.errors import ExportBusyError
from carousel.services.event_bus import EventBus
from carousel.services.export_orchestrator import ExportOrchestrator
from carousel.services.font_environment import FontEnvironment
from carousel.services.image_embedder import ImageEmbedder
from carousel.services.rasterizer import Rasterizer
from carousel.services.readiness import ReadinessPipeline
from carousel.services.slide_renderer import SlideRenderer

logger = logging.getLogger(__name__)


class EditorSession:
    def __init__(
        self,
        carousel: Carousel,
        fonts: Optional[FontEnvironment] = None,
        platform: Optional[Platform] = None,
        embedder: Optional[ImageEmbedder] = None,
    ):
        self.fonts = fonts or FontEnvironment()
        self.carousel = slide_template.hydrate_document(carousel)
        self.bus = EventBus(self.carousel.id or "draft")
        self.renderer = SlideRenderer(self.fonts)
        self.rasterizer = Rasterizer(self.fonts)
        self.embedder = embedder or ImageEmbedder()
        self.readiness = ReadinessPipeline(self.fonts, self.embedder, self.renderer.preview)
        self.orchestrator = ExportOrchestrator(
            renderer=self.renderer,
            readiness=self.readiness,
            capture=CaptureEngine(self.rasterizer),
            delivery=DeliveryService(platform or StorageDownloadPlatform()),
            bus=self.bus,
        )
        self.renderer.sync(self.carousel.slides)

    @property
    def current_index(self) -> int:
        return self.renderer.current_index

    def ensure_idle(self) -> None:
        """Raise ``ExportBusyError`` while an export owns the export surfaces."""
        if self.orchestrator.busy:
            raise ExportBusyError("Slides cannot change while an export is in progress")

    def replace(self, carousel: Carousel) -> None:
        """Swap in a new version of the document and re-render both trees."""
        self.ensure_idle()
        previous = self.carousel.slides
        self.carousel = slide_template.hydrate_document(carousel)
        for index, slide in enumerate(self.carousel.slides):
            if index >= len(previous) or previous[index].bg_image != slide.bg_image:
                self.embedder.invalidate(index)
        self.renderer.sync(self.carousel.slides)

    # -- editing -----------------------------------------------------------

    def update_slide(self, index: int, updates: dict) -> Carousel:
        self.replace(slide_template.update_slide(self.carousel, index, updates))
        return self.carousel

    def apply_style_to_all(self, source_index: int) -> Carousel:
        self.replace(slide_template.apply_style_to_all(self.carousel, source_index))
        return self.carousel

    def apply_preset(self, preset: StylePreset) -> Carousel:
        slides = [slide_template.apply_preset(s, preset) for s in self.carousel.slides]
        self.replace(self.carousel.model_copy(update={"slides": slides}))
        return self.carousel

    def select(self, index: int) -> None:
        self.renderer.select(index)

    # -- preview -----------------------------------------------------------

    async def preview_png(self, index: int, container_width: float) -> bytes:
        self.ensure_idle()
        self.select(index)
        self.renderer.preview.observe(container_width)
        await self.readiness.fonts_ready([self.carousel.slides[index]])
        # Fonts may have arrived after the last layout; an export may have
        # started while they loaded
        self.ensure_idle()
        self.renderer.sync(self.carousel.slides)
        image = await asyncio.to_thread(self.renderer.preview.render, self.rasterizer)
        return await asyncio.to_thread(self.rasterizer.to_png, image)


class EditorSessionRegistry:
    """Open editing sessions, keyed by carousel id."""

    def __init__(
        self,
        fonts: Optional[FontEnvironment] = None,
        platform_factory: Optional[Callable[[], Platform]] = None,
    ):
        # Fonts are shared by every session of the process
        self.fonts = fonts or FontEnvironment()
        self._platform_factory = platform_factory
        self._sessions: dict[str, EditorSession] = {}

    def open(self, carousel: Carousel) -> EditorSession:
        session = self._sessions.get(carousel.id)
        if session is None:
            platform = self._platform_factory() if self._platform_factory else None
            session = EditorSession(carousel, fonts=self.fonts, platform=platform)
            self._sessions[carousel.id] = session
            logger.info(f"Opened editor session for carousel {carousel.id}")
        elif not session.orchestrator.busy:
            session.replace(carousel)
        return session

    def get(self, carousel_id: str) -> Optional[EditorSession]:
        return self._sessions.get(carousel_id)

    def close(self, carousel_id: str) -> None:
        session = self._sessions.pop(carousel_id, None)
        if session is not None:
            session.orchestrator.discard()
            logger.info(f"Closed editor session for carousel {carousel_id}")


editor_sessions = EditorSessionRegistry()


def get_editor_sessions() -> EditorSessionRegistry:
    return editor_sessions
