import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carousel.api.carousels import load_record, store_document, to_document, to_response
from carousel.models.base import get_db
from carousel.models.carousel import StylePresetRecord
from carousel.schemas.carousel import CarouselResponse, PresetCreate, PresetResponse
from carousel.schemas.slide import SlideStyle, StylePreset
from carousel.services import slide_template
from carousel.services.editor_session import EditorSessionRegistry, get_editor_sessions
from carousel.services.errors import ExportBusyError

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(record: StylePresetRecord) -> PresetResponse:
    return PresetResponse(
        id=record.id,
        name=record.name,
        style=SlideStyle.model_validate(record.style),
        created_at=record.created_at,
    )


async def _load_preset(db: AsyncSession, preset_id: str) -> StylePresetRecord:
    result = await db.execute(select(StylePresetRecord).where(StylePresetRecord.id == preset_id))
    record = result.scalar_one_or_none()
    if not record:
        raise HTTPException(status_code=404, detail="Preset not found")
    return record


@router.get("/", response_model=list[PresetResponse])
async def list_presets(
    brand_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    query = select(StylePresetRecord).order_by(StylePresetRecord.created_at.desc())
    if brand_id:
        query = query.where(StylePresetRecord.brand_id == brand_id)
    result = await db.execute(query)
    return [_to_response(r) for r in result.scalars().all()]


@router.post("/", response_model=PresetResponse, status_code=201)
async def create_preset(
    payload: PresetCreate,
    db: AsyncSession = Depends(get_db),
):
    """Save the style of one slide as a named preset."""
    if not payload.name.strip():
        raise HTTPException(status_code=400, detail="Preset name is required")
    carousel = to_document(await load_record(db, payload.carousel_id))
    if not 0 <= payload.slide_index < len(carousel.slides):
        raise HTTPException(status_code=404, detail="Slide not found")

    preset = slide_template.capture_preset(carousel.slides[payload.slide_index], payload.name.strip())
    record = StylePresetRecord(
        name=preset.name,
        style=preset.model_dump(by_alias=True, exclude={"name"}),
        brand_id=payload.brand_id,
    )
    db.add(record)
    await db.flush()
    await db.refresh(record)
    logger.info(f"Saved style preset '{record.name}' from carousel {payload.carousel_id}")
    return _to_response(record)


@router.delete("/{preset_id}", status_code=204)
async def delete_preset(
    preset_id: str,
    db: AsyncSession = Depends(get_db),
):
    await db.delete(await _load_preset(db, preset_id))


@router.post("/{preset_id}/apply/{carousel_id}", response_model=CarouselResponse)
async def apply_preset(
    preset_id: str,
    carousel_id: str,
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    """Apply a preset to every slide; text and background images are kept."""
    preset_record = await _load_preset(db, preset_id)
    preset = StylePreset.model_validate({**preset_record.style, "name": preset_record.name})

    record = await load_record(db, carousel_id)
    session = sessions.open(to_document(record))
    try:
        carousel = session.apply_preset(preset)
    except ExportBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    store_document(record, carousel)
    await db.flush()
    await db.refresh(record)
    return to_response(record)
