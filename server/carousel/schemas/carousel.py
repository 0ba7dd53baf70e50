from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel

from carousel.schemas.slide import GeneratedSlideText, Slide, SlideStyle


class CarouselCreate(BaseModel):
    mode: Literal["editorial", "cultural"] = "editorial"
    topic: str = ""
    objective: str = "atração"
    emotion: str = "identificação"
    brand_id: Optional[str] = None
    # Seed pairs from the text generator; styles always come from defaults
    slides: list[GeneratedSlideText] = []


class CarouselGenerate(BaseModel):
    mode: Literal["editorial", "cultural"] = "editorial"
    topic: str
    objective: str = "atração"
    emotion: str = "identificação"
    brand_id: Optional[str] = None
    brand_context: str = ""


class CarouselUpdate(BaseModel):
    mode: Optional[Literal["editorial", "cultural"]] = None
    topic: Optional[str] = None
    objective: Optional[str] = None
    emotion: Optional[str] = None
    slides: Optional[list[dict[str, Any]]] = None


class CarouselResponse(BaseModel):
    id: str
    mode: str
    topic: str
    objective: str
    emotion: str
    slides: list[Slide]
    created_at: datetime
    updated_at: datetime


class SlideMove(BaseModel):
    to_index: int


class SlideAdd(BaseModel):
    after: Optional[int] = None


class PresetCreate(BaseModel):
    name: str
    carousel_id: str
    slide_index: int
    brand_id: Optional[str] = None


class PresetResponse(BaseModel):
    id: str
    name: str
    style: SlideStyle
    created_at: datetime


class ExportResponse(BaseModel):
    state: str
    message: str = ""
    filenames: list[str] = []
    outcome: Optional[str] = None
    shared: list[str] = []
    downloads: list[str] = []
    error: Optional[str] = None
