"""Layout of one slide into a tree of paint layers.

The tree is always laid out at full export resolution.  The preview and
export surfaces hold the same children and differ only in ``scale`` and
visibility flags, so wrapping, line height and font weight can never
diverge between what the user edits and what gets exported.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from carousel.schemas.slide import Slide
from carousel.services.font_environment import FontEnvironment, resolve_weight

logger = logging.getLogger(__name__)

# Slide sizes (font_size, box_padding) are authored against the 360px-wide editor
DESIGN_WIDTH = 360
CONTENT_INSET = 32
SECONDARY_GAP = 12
BOX_RADIUS = 8


@dataclass
class TextLine:
    text: str
    x: int
    y: int
    width: int


@dataclass
class RenderNode:
    kind: str  # surface | image | overlay | box | text
    box: tuple[int, int, int, int]  # x, y, width, height at full resolution
    style: dict = field(default_factory=dict)
    children: list["RenderNode"] = field(default_factory=list)

    def walk(self) -> Iterator["RenderNode"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, kind: str, role: Optional[str] = None) -> Optional["RenderNode"]:
        for node in self.walk():
            if node.kind == kind and (role is None or node.style.get("role") == role):
                return node
        return None


@dataclass
class SurfaceNode(RenderNode):
    """Root of a render tree: a preview or an export surface."""

    scale: float = 1.0
    offscreen: bool = False
    interactive: bool = True

    @property
    def full_size(self) -> tuple[int, int]:
        return self.box[2], self.box[3]

    @property
    def display_size(self) -> tuple[int, int]:
        return round(self.box[2] * self.scale), round(self.box[3] * self.scale)


def wrap_text(text: str, font, max_width: float) -> list[str]:
    """Greedy word wrap using the font's advance widths.

    Explicit newlines are kept; a single word wider than ``max_width`` is
    broken between characters.
    """
    lines: list[str] = []
    for paragraph in text.split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if font.getlength(candidate) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
            current = ""
            # Hard-break words that do not fit on their own
            for char in word:
                if current and font.getlength(current + char) > max_width:
                    lines.append(current)
                    current = ""
                current += char
        lines.append(current)
    return lines


@dataclass
class _TextBlock:
    role: str
    font_id: str
    weight: int
    size: int
    italic: bool
    color: str
    align: str
    line_px: int
    lines: list[str]
    widths: list[int]

    @property
    def height(self) -> int:
        return self.line_px * len(self.lines)

    @property
    def width(self) -> int:
        return max(self.widths, default=0)


def _text_block(
    role: str,
    text: str,
    font_id: str,
    is_bold: bool,
    italic: bool,
    size_units: int,
    line_height: float,
    color: str,
    align: str,
    unit: float,
    max_width: float,
    fonts: FontEnvironment,
) -> _TextBlock:
    weight = resolve_weight(font_id, is_bold)
    size = max(1, round(size_units * unit))
    font = fonts.get_font(font_id, weight, size)
    lines = wrap_text(text, font, max_width)
    return _TextBlock(
        role=role,
        font_id=font_id,
        weight=weight,
        size=size,
        italic=italic,
        color=color,
        align=align,
        line_px=max(1, round(size * line_height)),
        lines=lines,
        widths=[round(font.getlength(line)) for line in lines],
    )


def _text_align(position: str, align: str) -> str:
    if position == "left":
        return "left"
    if position == "right":
        return "right"
    return align


def _layout_text(block: _TextBlock, x: int, y: int, width: int) -> RenderNode:
    lines = []
    for i, (text, line_w) in enumerate(zip(block.lines, block.widths)):
        if block.align == "center":
            lx = x + (width - line_w) // 2
        elif block.align == "right":
            lx = x + width - line_w
        else:
            lx = x
        lines.append(TextLine(text=text, x=lx, y=y + i * block.line_px, width=line_w))
    return RenderNode(
        kind="text",
        box=(x, y, width, block.height),
        style={
            "role": block.role,
            "font_id": block.font_id,
            "weight": block.weight,
            "size": block.size,
            "italic": block.italic,
            "color": block.color,
            "align": block.align,
            "line_px": block.line_px,
            "lines": lines,
        },
    )


def build_layers(slide: Slide, fonts: FontEnvironment, width: int, height: int) -> list[RenderNode]:
    """Lay out the paint layers of ``slide`` at ``width`` x ``height``.

    Order: background image, overlay, content box (holding primary text and
    the optional secondary text).  The background color lives on the surface.
    """
    unit = width / DESIGN_WIDTH
    layers: list[RenderNode] = []

    if slide.bg_image:
        layers.append(
            RenderNode(
                kind="image",
                box=(0, 0, width, height),
                style={"ref": slide.bg_image, "zoom": slide.bg_zoom / 100.0},
            )
        )

    layers.append(
        RenderNode(
            kind="overlay",
            box=(0, 0, width, height),
            style={"color": slide.overlay_color, "opacity": slide.overlay_opacity},
        )
    )

    inset = round(CONTENT_INSET * unit)
    area_x, area_y = inset, inset
    area_w, area_h = width - 2 * inset, height - 2 * inset
    pad = round(slide.box_padding * unit)
    text_w = max(1, area_w - 2 * pad)
    position = slide.text_position

    blocks = [
        _text_block(
            "primary", slide.text, slide.font, slide.is_bold, slide.is_italic,
            slide.font_size, slide.line_height, slide.text_color,
            _text_align(position, slide.alignment), unit, text_w, fonts,
        )
    ]
    # use_only_main removes the block from the tree, it is not just hidden
    if not slide.use_only_main and slide.secondary_text:
        secondary = slide.secondary_text.upper() if slide.secondary_uppercase else slide.secondary_text
        blocks.append(
            _text_block(
                "secondary", secondary, slide.secondary_font, slide.secondary_is_bold,
                slide.secondary_is_italic, slide.secondary_font_size,
                slide.secondary_line_height, slide.secondary_text_color,
                _text_align(position, slide.secondary_alignment), unit, text_w, fonts,
            )
        )

    gap = round(SECONDARY_GAP * unit)
    inner_h = sum(b.height for b in blocks) + gap * (len(blocks) - 1)
    box_h = min(area_h, inner_h + 2 * pad)
    if position in ("top", "bottom"):
        box_w = area_w
    else:
        box_w = min(area_w, max(b.width for b in blocks) + 2 * pad)

    if position == "top":
        box_x, box_y = area_x, area_y
    elif position == "bottom":
        box_x, box_y = area_x, area_y + area_h - box_h
    elif position == "left":
        box_x, box_y = area_x, area_y + (area_h - box_h) // 2
    elif position == "right":
        box_x, box_y = area_x + area_w - box_w, area_y + (area_h - box_h) // 2
    else:
        box_x, box_y = area_x + (area_w - box_w) // 2, area_y + (area_h - box_h) // 2

    box = RenderNode(
        kind="box",
        box=(box_x, box_y, box_w, box_h),
        style={
            "color": slide.box_bg_color,
            "opacity": slide.box_opacity,
            "padding": pad,
            "radius": round(BOX_RADIUS * unit),
            "position": position,
        },
    )
    cursor = box_y + pad
    for block in blocks:
        box.children.append(_layout_text(block, box_x + pad, cursor, box_w - 2 * pad))
        cursor += block.height + gap
    layers.append(box)
    return layers


def build_render_tree(
    slide: Slide,
    fonts: FontEnvironment,
    width: int,
    height: int,
    *,
    scale: float = 1.0,
    offscreen: bool = False,
) -> SurfaceNode:
    return SurfaceNode(
        kind="surface",
        box=(0, 0, width, height),
        style={"bg_color": slide.bg_color},
        children=build_layers(slide, fonts, width, height),
        scale=scale,
        offscreen=offscreen,
        interactive=not offscreen,
    )
