"""Dual-resolution rendering: a scaled preview plus full-size export surfaces."""

import logging
from typing import Optional, Sequence

from PIL import Image

from carousel.config import settings
from carousel.schemas.slide import Slide
from carousel.services.errors import PreviewLockedError
from carousel.services.font_environment import FontEnvironment
from carousel.services.render_tree import SurfaceNode, build_render_tree

logger = logging.getLogger(__name__)


def preview_scale(container_width: float, full_width: int) -> float:
    """Scale factor of the preview. Only ever scales down, never up."""
    if container_width <= 0 or full_width <= 0:
        return 0.0
    return min(container_width / full_width, 1.0)


class ExportArena:
    """Fixed-size slots of export surfaces, addressed by slide index."""

    def __init__(self) -> None:
        self._nodes: list[Optional[SurfaceNode]] = []

    def resize(self, count: int) -> None:
        if count < len(self._nodes):
            del self._nodes[count:]
        else:
            self._nodes.extend([None] * (count - len(self._nodes)))

    def __setitem__(self, index: int, node: SurfaceNode) -> None:
        self._nodes[index] = node

    def __getitem__(self, index: int) -> Optional[SurfaceNode]:
        return self._nodes[index]

    def __len__(self) -> int:
        return len(self._nodes)


class ExportArenaView:
    """Read-only window on the arena, handed to the capture engine."""

    def __init__(self, arena: ExportArena):
        self._arena = arena

    def __getitem__(self, index: int) -> Optional[SurfaceNode]:
        if not 0 <= index < len(self._arena):
            raise IndexError(f"No export surface for slide {index}")
        return self._arena[index]

    def __len__(self) -> int:
        return len(self._arena)


class PreviewSurface:
    """The on-screen node for the slide being edited.

    Tracks its container width and holds the stability lock that keeps a
    half-styled preview from being shown while fonts are still loading.
    """

    def __init__(self, full_width: int, full_height: int):
        self.full_width = full_width
        self.full_height = full_height
        self.container_width: float = full_width
        self.locked = False
        self.node: Optional[SurfaceNode] = None

    @property
    def scale(self) -> float:
        return preview_scale(self.container_width, self.full_width)

    def observe(self, container_width: float) -> float:
        """Record a new container width and rescale the current node."""
        self.container_width = container_width
        if self.node is not None:
            self.node.scale = self.scale
        return self.scale

    def lock(self) -> None:
        self.locked = True

    def unlock(self) -> None:
        self.locked = False

    def render(self, rasterizer) -> Image.Image:
        if self.locked:
            raise PreviewLockedError("Preview is loading fonts")
        if self.node is None or self.scale == 0.0:
            return Image.new("RGBA", (0, 0))
        return rasterizer.render_preview(self.node)


class SlideRenderer:
    """Owns both render trees of every slide of one carousel."""

    def __init__(
        self,
        fonts: FontEnvironment,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ):
        self.fonts = fonts
        self.width = width or settings.export_width
        self.height = height or settings.export_height
        self.preview = PreviewSurface(self.width, self.height)
        self._arena = ExportArena()
        self._current = 0
        self._slides: list[Slide] = []

    @property
    def arena(self) -> ExportArenaView:
        return ExportArenaView(self._arena)

    @property
    def current_index(self) -> int:
        return self._current

    def sync(self, slides: Sequence[Slide], current: Optional[int] = None) -> None:
        """Re-render every export surface and the preview from ``slides``."""
        self._slides = list(slides)
        self._arena.resize(len(self._slides))
        for index, slide in enumerate(self._slides):
            self._arena[index] = self._export_tree(slide)
        if current is not None:
            self._current = current
        self._current = max(0, min(self._current, len(self._slides) - 1))
        self._render_preview()

    def render_slide(self, index: int, slide: Slide) -> None:
        """Re-render one slot, e.g. after its background image got embedded."""
        self._slides[index] = slide
        self._arena[index] = self._export_tree(slide)
        if index == self._current:
            self._render_preview()

    def select(self, index: int) -> None:
        if not 0 <= index < len(self._slides):
            raise IndexError(f"Slide index out of range: {index}")
        self._current = index
        self._render_preview()

    def preview_tree(self) -> Optional[SurfaceNode]:
        return self.preview.node

    def _export_tree(self, slide: Slide) -> SurfaceNode:
        return build_render_tree(slide, self.fonts, self.width, self.height, offscreen=True)

    def _render_preview(self) -> None:
        if not self._slides:
            self.preview.node = None
            return
        self.preview.node = build_render_tree(
            self._slides[self._current],
            self.fonts,
            self.width,
            self.height,
            scale=self.preview.scale,
        )
