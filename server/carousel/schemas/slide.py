from datetime import datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Records written before this generation get the legacy font-size clamp on load.
CURRENT_VERSION = 2

Alignment = Literal["left", "center", "right"]
TextPosition = Literal["top", "center", "bottom", "left", "right"]


class _CamelModel(BaseModel):
    # Stored/wire shape is camelCase; Python code uses snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SlideStyle(_CamelModel):
    """Every visual attribute of a slide. Shared by Slide and StylePreset."""

    # Primary text block
    font: str = "font-sans"
    font_size: int = 32
    alignment: Alignment = "center"
    is_bold: bool = True
    is_italic: bool = False
    line_height: float = 1.2
    text_color: str = "#FFFFFF"

    # Secondary text block
    secondary_font: str = "font-sans"
    secondary_font_size: int = 20
    secondary_alignment: Alignment = "center"
    secondary_is_bold: bool = False
    secondary_is_italic: bool = False
    secondary_line_height: float = 1.4
    secondary_text_color: str = "#A1A1AA"
    secondary_uppercase: bool = False

    # Background
    bg_color: str = "#09090B"
    bg_zoom: int = Field(default=100, ge=10, le=400)

    # Overlay between background and text
    overlay_color: str = "#000000"
    overlay_opacity: float = Field(default=0.2, ge=0.0, le=1.0)

    # Content box
    box_bg_color: str = "transparent"
    box_opacity: float = Field(default=0.0, ge=0.0, le=1.0)
    box_padding: int = Field(default=20, ge=0)
    text_position: TextPosition = "center"


class Slide(SlideStyle):
    text: str = ""
    secondary_text: str = ""
    use_only_main: bool = False
    bg_image: Optional[str] = None
    version: int = CURRENT_VERSION


# Fields a preset never carries: per-slide content and the background image.
CONTENT_FIELDS = ("text", "secondary_text", "use_only_main", "bg_image", "version")
STYLE_FIELDS = tuple(SlideStyle.model_fields)


class StylePreset(SlideStyle):
    name: str


class Carousel(_CamelModel):
    """Ordered slides plus the metadata used by the text generator."""

    id: Optional[str] = None
    mode: Literal["editorial", "cultural"] = "editorial"
    topic: str = ""
    objective: str = "atração"
    emotion: str = "identificação"
    slides: list[Slide] = []
    updated_at: Optional[datetime] = None


class GeneratedSlideText(_CamelModel):
    """One {primaryText, secondaryText} pair from the text generator."""

    primary_text: str = Field(
        default="", validation_alias=AliasChoices("primaryText", "primary_text", "text")
    )
    secondary_text: str = Field(
        default="", validation_alias=AliasChoices("secondaryText", "secondary_text")
    )
