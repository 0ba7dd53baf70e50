from typing import Optional

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from carousel.models.base import Base, TimestampMixin, UUIDMixin


class CarouselRecord(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "carousels"

    mode: Mapped[str] = mapped_column(String(20), default="editorial", nullable=False)
    topic: Mapped[str] = mapped_column(Text, default="", nullable=False)
    objective: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    emotion: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    # Slides are stored in their camelCase wire shape and hydrated on load
    slides: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    brand_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)


class StylePresetRecord(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "style_presets"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    style: Mapped[dict] = mapped_column(JSON, nullable=False)
    brand_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
