"""Pure transforms over slides and carousels.

Nothing here mutates its inputs: every operation returns new model
instances, so callers can keep the previous document around for undo or
compare-and-save.
"""

import logging
from typing import Any, Iterable, Union

from carousel.schemas.slide import (
    CONTENT_FIELDS,
    CURRENT_VERSION,
    STYLE_FIELDS,
    Carousel,
    GeneratedSlideText,
    Slide,
    StylePreset,
)

logger = logging.getLogger(__name__)

# Legacy records stored sizes as tokens instead of pixels
_PRIMARY_SIZE_TOKENS = {"sm": 24, "md": 32, "lg": 40}
_SECONDARY_SIZE_TOKENS = {"xs": 14, "sm": 20, "md": 24, "lg": 28}

# Legacy safety clamp: (threshold, replacement)
_LEGACY_FONT_CLAMP = (35, 32)
_LEGACY_SECONDARY_FONT_CLAMP = (25, 20)

_SLIDE_KEYS: dict[str, str] = {}
for _name, _field in Slide.model_fields.items():
    _SLIDE_KEYS[_name] = _name
    if _field.alias:
        _SLIDE_KEYS[_field.alias] = _name


def _normalize_keys(raw: dict) -> dict:
    """Map camelCase/snake_case keys to field names, dropping unknown and null values."""
    out = {}
    for key, value in raw.items():
        name = _SLIDE_KEYS.get(key)
        if name is None or value is None:
            continue
        out[name] = value
    return out


def _to_px(value: Any, tokens: dict[str, int]) -> Any:
    if isinstance(value, str):
        if value in tokens:
            return tokens[value]
        try:
            return int(float(value))
        except ValueError:
            return None
    if isinstance(value, float):
        return int(round(value))
    return value


def hydrate(raw: Union[dict, Slide]) -> Slide:
    """Return a complete Slide from a possibly partial record.

    Missing attributes take the current defaults. The font-size clamp only
    runs for records older than ``CURRENT_VERSION`` so that deliberate
    large-type designs saved by the current editor are kept as-is.
    """
    if isinstance(raw, Slide):
        raw = raw.model_dump()
    data = _normalize_keys(raw)

    version = data.get("version")
    is_legacy = not isinstance(version, int) or version < CURRENT_VERSION

    for key, tokens in (
        ("font_size", _PRIMARY_SIZE_TOKENS),
        ("secondary_font_size", _SECONDARY_SIZE_TOKENS),
    ):
        if key in data:
            px = _to_px(data[key], tokens)
            if px is None:
                logger.warning(f"Dropping unreadable {key}={data[key]!r}")
                del data[key]
            else:
                data[key] = px

    for key in ("line_height", "secondary_line_height"):
        if key in data:
            try:
                data[key] = float(data[key])
            except (TypeError, ValueError):
                logger.warning(f"Dropping unreadable {key}={data[key]!r}")
                del data[key]

    if is_legacy:
        limit, safe = _LEGACY_FONT_CLAMP
        if data.get("font_size", 0) > limit:
            data["font_size"] = safe
        limit, safe = _LEGACY_SECONDARY_FONT_CLAMP
        if data.get("secondary_font_size", 0) > limit:
            data["secondary_font_size"] = safe

    data["version"] = CURRENT_VERSION
    return Slide.model_validate(data)


def hydrate_document(raw: Union[dict, Carousel]) -> Carousel:
    """Hydrate every slide of a stored carousel record."""
    if isinstance(raw, Carousel):
        raw = raw.model_dump()
    raw = dict(raw)
    slides = [hydrate(s) for s in raw.pop("slides", None) or []]
    carousel = Carousel.model_validate(raw)
    return carousel.model_copy(update={"slides": slides})


def style_of(slide: Slide) -> dict:
    return {name: getattr(slide, name) for name in STYLE_FIELDS}


def capture_preset(slide: Slide, name: str) -> StylePreset:
    """Snapshot a slide's style fields into a named preset."""
    return StylePreset(name=name, **style_of(slide))


def apply_preset(slide: Slide, preset: Union[StylePreset, dict]) -> Slide:
    """Overwrite style fields of ``slide``; content and background image always survive."""
    if isinstance(preset, StylePreset):
        values = preset.model_dump(exclude={"name"})
    else:
        values = _normalize_keys(preset)
    updates = {k: v for k, v in values.items() if k in STYLE_FIELDS}
    merged = {**slide.model_dump(), **updates}
    for name in CONTENT_FIELDS:
        merged[name] = getattr(slide, name)
    return Slide.model_validate(merged)


def apply_style_to_all(carousel: Carousel, source_index: int) -> Carousel:
    """Copy the style of one slide onto every other slide of the carousel."""
    source = _slide_at(carousel, source_index)
    preset = capture_preset(source, name="__apply_all__")
    slides = [
        s if i == source_index else apply_preset(s, preset)
        for i, s in enumerate(carousel.slides)
    ]
    return carousel.model_copy(update={"slides": slides})


def update_slide(carousel: Carousel, index: int, updates: dict) -> Carousel:
    """Update one or more fields of the slide at ``index``."""
    current = _slide_at(carousel, index)
    normalized = {}
    for key, value in updates.items():
        name = _SLIDE_KEYS.get(key)
        if name is None or name == "version":
            raise ValueError(f"Unknown slide field: {key}")
        normalized[name] = value
    slide = Slide.model_validate({**current.model_dump(), **normalized})
    return _replace(carousel, index, slide)


def seed_slides(pairs: Iterable[Union[dict, GeneratedSlideText]]) -> list[Slide]:
    """Create fresh slides from generated text; style always comes from defaults."""
    slides = []
    for pair in pairs:
        if not isinstance(pair, GeneratedSlideText):
            pair = GeneratedSlideText.model_validate(pair)
        secondary = pair.secondary_text.strip()
        slides.append(
            Slide(
                text=pair.primary_text.strip(),
                secondary_text=secondary,
                use_only_main=not secondary,
            )
        )
    return slides


def add_slide(carousel: Carousel, after: int | None = None) -> Carousel:
    """Insert an empty slide styled like its neighbour."""
    slides = list(carousel.slides)
    position = len(slides) if after is None else after + 1
    if slides:
        neighbour = slides[min(max(position - 1, 0), len(slides) - 1)]
        new = Slide(**style_of(neighbour))
    else:
        new = Slide()
    slides.insert(position, new)
    return carousel.model_copy(update={"slides": slides})


def duplicate_slide(carousel: Carousel, index: int) -> Carousel:
    slide = _slide_at(carousel, index)
    slides = list(carousel.slides)
    slides.insert(index + 1, slide.model_copy())
    return carousel.model_copy(update={"slides": slides})


def remove_slide(carousel: Carousel, index: int) -> Carousel:
    _slide_at(carousel, index)
    slides = [s for i, s in enumerate(carousel.slides) if i != index]
    return carousel.model_copy(update={"slides": slides})


def move_slide(carousel: Carousel, src: int, dst: int) -> Carousel:
    slide = _slide_at(carousel, src)
    if not 0 <= dst < len(carousel.slides):
        raise IndexError(f"Slide index out of range: {dst}")
    slides = list(carousel.slides)
    slides.pop(src)
    slides.insert(dst, slide)
    return carousel.model_copy(update={"slides": slides})


def _slide_at(carousel: Carousel, index: int) -> Slide:
    if not 0 <= index < len(carousel.slides):
        raise IndexError(f"Slide index out of range: {index}")
    return carousel.slides[index]


def _replace(carousel: Carousel, index: int, slide: Slide) -> Carousel:
    slides = list(carousel.slides)
    slides[index] = slide
    return carousel.model_copy(update={"slides": slides})
