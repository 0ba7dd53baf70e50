"""Pillow painter for render trees.

This is the raw raster primitive: it serializes a surface node into a
bitmap.  It knows nothing about warm-up passes or delays; those live in the
capture engine.
"""

import io
import logging
import os
from typing import Optional

from PIL import Image, ImageColor, ImageDraw, UnidentifiedImageError

from carousel.config import settings
from carousel.services.errors import CaptureError, TaintedSurfaceError
from carousel.services.font_environment import FontEnvironment
from carousel.services.image_embedder import decode_data_url, is_embedded, is_remote
from carousel.services.render_tree import RenderNode, SurfaceNode

logger = logging.getLogger(__name__)

# Horizontal shear used for synthetic italics
ITALIC_SHEAR = 0.2

_FILES_PREFIX = "/api/files/"


def parse_color(value: Optional[str], opacity: float = 1.0) -> tuple[int, int, int, int]:
    if not value or value == "transparent":
        return (0, 0, 0, 0)
    try:
        r, g, b, a = ImageColor.getcolor(value, "RGBA")
    except ValueError:
        logger.warning(f"Unreadable color {value!r}, painting black")
        r, g, b, a = (0, 0, 0, 255)
    return (r, g, b, round(a * max(0.0, min(opacity, 1.0))))


class Rasterizer:
    def __init__(self, fonts: FontEnvironment, storage_dir: Optional[str] = None):
        self.fonts = fonts
        self.storage_dir = storage_dir or settings.storage_dir

    def rasterize(
        self,
        node: SurfaceNode,
        width: int,
        height: int,
        *,
        pixel_ratio: float = 1.0,
        auto_scale: bool = False,
    ) -> Image.Image:
        """Paint ``node`` into an RGBA bitmap of ``width*pixel_ratio`` x ``height*pixel_ratio``.

        With ``auto_scale`` off the node is painted at its own resolution and
        cropped/padded to the requested size, never resampled.
        """
        if node is None:
            raise CaptureError("No render node to capture")
        full_w, full_h = node.full_size
        canvas = Image.new("RGBA", (full_w, full_h), parse_color(node.style.get("bg_color")))
        for child in node.children:
            self._paint(canvas, child)

        out_w, out_h = round(width * pixel_ratio), round(height * pixel_ratio)
        if auto_scale or pixel_ratio != 1.0:
            return canvas.resize((out_w, out_h), Image.LANCZOS)
        if (full_w, full_h) != (out_w, out_h):
            framed = Image.new("RGBA", (out_w, out_h), (0, 0, 0, 0))
            framed.paste(canvas, (0, 0))
            return framed
        return canvas

    def render_preview(self, node: SurfaceNode) -> Image.Image:
        """Paint at full resolution, then scale down to the node's display size."""
        full = self.rasterize(node, *node.full_size)
        display = node.display_size
        if display == node.full_size:
            return full
        return full.resize(display, Image.LANCZOS)

    @staticmethod
    def to_png(image: Image.Image) -> bytes:
        buf = io.BytesIO()
        image.save(buf, format="PNG")
        return buf.getvalue()

    # -- layers ------------------------------------------------------------

    def _paint(self, canvas: Image.Image, node: RenderNode) -> None:
        if node.kind == "image":
            self._paint_image(canvas, node)
        elif node.kind == "overlay":
            color = parse_color(node.style.get("color"), node.style.get("opacity", 0.0))
            if color[3]:
                canvas.alpha_composite(Image.new("RGBA", canvas.size, color))
        elif node.kind == "box":
            self._paint_box(canvas, node)
        elif node.kind == "text":
            self._paint_text(canvas, node)
        for child in node.children:
            self._paint(canvas, child)

    def _paint_box(self, canvas: Image.Image, node: RenderNode) -> None:
        color = parse_color(node.style.get("color"), node.style.get("opacity", 0.0))
        if not color[3]:
            return
        x, y, w, h = node.box
        layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        ImageDraw.Draw(layer).rounded_rectangle(
            (x, y, x + w, y + h), radius=node.style.get("radius", 0), fill=color
        )
        canvas.alpha_composite(layer)

    def _paint_text(self, canvas: Image.Image, node: RenderNode) -> None:
        style = node.style
        font = self.fonts.get_font(style["font_id"], style["weight"], style["size"])
        fill = parse_color(style["color"])
        layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        half = style["line_px"] // 2
        for line in style["lines"]:
            if line.text:
                draw.text((line.x, line.y + half), line.text, font=font, fill=fill, anchor="lm")
        if style.get("italic"):
            _, y, _, h = node.box
            center = y + h / 2
            layer = layer.transform(
                layer.size,
                Image.Transform.AFFINE,
                (1, ITALIC_SHEAR, -ITALIC_SHEAR * center, 0, 1, 0),
                resample=Image.Resampling.BICUBIC,
            )
        canvas.alpha_composite(layer)

    def _paint_image(self, canvas: Image.Image, node: RenderNode) -> None:
        ref = node.style["ref"]
        try:
            source = Image.open(io.BytesIO(self._load_image_bytes(ref)))
            source.load()
        except (UnidentifiedImageError, OSError) as e:
            raise CaptureError(f"Background image could not be decoded: {e}") from e
        source = source.convert("RGBA")

        # Cover fit, then zoom around the center
        x, y, w, h = node.box
        iw, ih = source.size
        factor = max(w / iw, h / ih) * node.style.get("zoom", 1.0)
        sw, sh = max(1, round(iw * factor)), max(1, round(ih * factor))
        scaled = source.resize((sw, sh), Image.LANCZOS)
        left, top = (sw - w) // 2, (sh - h) // 2
        # zoom below 100% leaves the background color visible around the image
        piece = scaled.crop((max(left, 0), max(top, 0), min(left + w, sw), min(top + h, sh)))
        canvas.alpha_composite(piece, (x + max(-left, 0), y + max(-top, 0)))

    def _load_image_bytes(self, ref: str) -> bytes:
        if is_embedded(ref):
            try:
                return decode_data_url(ref)
            except ValueError as e:
                raise CaptureError(f"Invalid embedded image: {e}") from e
        if is_remote(ref):
            raise TaintedSurfaceError(f"Cross-origin image was not embedded: {ref}")
        if ref.startswith(_FILES_PREFIX):
            return self._read_storage(ref[len(_FILES_PREFIX):])
        raise CaptureError(f"Unsupported image reference: {ref[:80]}")

    def _read_storage(self, key: str) -> bytes:
        full_path = os.path.realpath(os.path.join(self.storage_dir, key))
        storage_real = os.path.realpath(self.storage_dir)
        if not full_path.startswith(storage_real):
            raise CaptureError(f"Image path escapes storage: {key}")
        try:
            with open(full_path, "rb") as f:
                return f.read()
        except OSError as e:
            raise CaptureError(f"Stored image unavailable: {key}") from e
