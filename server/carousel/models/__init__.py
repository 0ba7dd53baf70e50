from carousel.models.base import Base
from carousel.models.carousel import CarouselRecord, StylePresetRecord

__all__ = ["Base", "CarouselRecord", "StylePresetRecord"]
