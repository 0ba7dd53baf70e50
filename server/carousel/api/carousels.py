import logging
import os
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carousel.models.base import get_db
from carousel.models.carousel import CarouselRecord
from carousel.schemas.carousel import (
    CarouselCreate,
    CarouselGenerate,
    CarouselResponse,
    CarouselUpdate,
    SlideAdd,
    SlideMove,
)
from carousel.schemas.slide import Carousel
from carousel.services import slide_template
from carousel.services.editor_session import EditorSessionRegistry, get_editor_sessions
from carousel.services.errors import ExportBusyError, MissingCredentialError, PreviewLockedError

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_BACKGROUND_BYTES = 15 * 1024 * 1024


# ---------------------------------------------------------------------------
# Record <-> document helpers (shared with the preset and export routers)
# ---------------------------------------------------------------------------

async def load_record(db: AsyncSession, carousel_id: str) -> CarouselRecord:
    result = await db.execute(select(CarouselRecord).where(CarouselRecord.id == carousel_id))
    record = result.scalar_one_or_none()
    if not record:
        raise HTTPException(status_code=404, detail="Carousel not found")
    return record


def to_document(record: CarouselRecord) -> Carousel:
    return slide_template.hydrate_document(
        {
            "id": record.id,
            "mode": record.mode,
            "topic": record.topic,
            "objective": record.objective,
            "emotion": record.emotion,
            "slides": record.slides or [],
            "updated_at": record.updated_at,
        }
    )


def store_document(record: CarouselRecord, carousel: Carousel) -> None:
    record.mode = carousel.mode
    record.topic = carousel.topic
    record.objective = carousel.objective
    record.emotion = carousel.emotion
    record.slides = [s.model_dump(by_alias=True) for s in carousel.slides]


def to_response(record: CarouselRecord) -> CarouselResponse:
    doc = to_document(record)
    return CarouselResponse(
        id=record.id,
        mode=doc.mode,
        topic=doc.topic,
        objective=doc.objective,
        emotion=doc.emotion,
        slides=doc.slides,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


async def _save(db: AsyncSession, record: CarouselRecord, carousel: Carousel) -> CarouselResponse:
    store_document(record, carousel)
    await db.flush()
    await db.refresh(record)
    return to_response(record)


async def _edit(
    db: AsyncSession,
    sessions: EditorSessionRegistry,
    carousel_id: str,
    operation,
) -> CarouselResponse:
    """Run ``operation(session)`` on the open editor session and persist the result."""
    record = await load_record(db, carousel_id)
    session = sessions.open(to_document(record))
    try:
        carousel = operation(session)
    except ExportBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await _save(db, record, carousel)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

@router.post("/", response_model=CarouselResponse, status_code=201)
async def create_carousel(
    payload: CarouselCreate,
    db: AsyncSession = Depends(get_db),
):
    record = CarouselRecord(
        mode=payload.mode,
        topic=payload.topic,
        objective=payload.objective,
        emotion=payload.emotion,
        brand_id=payload.brand_id,
        slides=[
            s.model_dump(by_alias=True) for s in slide_template.seed_slides(payload.slides)
        ],
    )
    db.add(record)
    await db.flush()
    await db.refresh(record)
    return to_response(record)


@router.post("/generate", response_model=CarouselResponse, status_code=201)
async def generate_carousel(
    payload: CarouselGenerate,
    db: AsyncSession = Depends(get_db),
):
    if not payload.topic.strip():
        raise HTTPException(status_code=400, detail="Topic is required")

    from carousel.services.slide_text_generator import SlideTextGenerator

    try:
        generator = SlideTextGenerator()
    except MissingCredentialError as e:
        raise HTTPException(status_code=503, detail=str(e))

    pairs = await generator.generate(
        mode=payload.mode,
        topic=payload.topic,
        objective=payload.objective,
        emotion=payload.emotion,
        brand_context=payload.brand_context,
    )
    if not pairs:
        raise HTTPException(status_code=502, detail="Text generation returned no slides")

    return await create_carousel(
        CarouselCreate(
            mode=payload.mode,
            topic=payload.topic,
            objective=payload.objective,
            emotion=payload.emotion,
            brand_id=payload.brand_id,
            slides=pairs,
        ),
        db=db,
    )


@router.get("/", response_model=list[CarouselResponse])
async def list_carousels(
    brand_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    query = select(CarouselRecord).order_by(CarouselRecord.updated_at.desc())
    if brand_id:
        query = query.where(CarouselRecord.brand_id == brand_id)
    result = await db.execute(query)
    return [to_response(r) for r in result.scalars().all()]


@router.get("/{carousel_id}", response_model=CarouselResponse)
async def get_carousel(
    carousel_id: str,
    db: AsyncSession = Depends(get_db),
):
    return to_response(await load_record(db, carousel_id))


@router.put("/{carousel_id}", response_model=CarouselResponse)
async def update_carousel(
    carousel_id: str,
    payload: CarouselUpdate,
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    record = await load_record(db, carousel_id)
    current = to_document(record)
    updates = payload.model_dump(exclude_none=True)
    try:
        carousel = slide_template.hydrate_document({**current.model_dump(), **updates})
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    session = sessions.open(current)
    try:
        session.replace(carousel)
    except ExportBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return await _save(db, record, carousel)


@router.delete("/{carousel_id}", status_code=204)
async def delete_carousel(
    carousel_id: str,
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    record = await load_record(db, carousel_id)
    sessions.close(carousel_id)
    await db.delete(record)


# ---------------------------------------------------------------------------
# Slides
# ---------------------------------------------------------------------------

@router.patch("/{carousel_id}/slides/{index}", response_model=CarouselResponse)
async def update_slide(
    carousel_id: str,
    index: int,
    updates: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    return await _edit(db, sessions, carousel_id, lambda s: s.update_slide(index, updates))


@router.post("/{carousel_id}/slides/{index}/apply-style-to-all", response_model=CarouselResponse)
async def apply_style_to_all(
    carousel_id: str,
    index: int,
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    return await _edit(db, sessions, carousel_id, lambda s: s.apply_style_to_all(index))


def _replace_with(transform):
    def run(session):
        session.replace(transform(session.carousel))
        return session.carousel

    return run


@router.post("/{carousel_id}/slides", response_model=CarouselResponse, status_code=201)
async def add_slide(
    carousel_id: str,
    payload: SlideAdd,
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    return await _edit(
        db, sessions, carousel_id,
        _replace_with(lambda c: slide_template.add_slide(c, payload.after)),
    )


@router.post("/{carousel_id}/slides/{index}/duplicate", response_model=CarouselResponse)
async def duplicate_slide(
    carousel_id: str,
    index: int,
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    return await _edit(
        db, sessions, carousel_id,
        _replace_with(lambda c: slide_template.duplicate_slide(c, index)),
    )


@router.post("/{carousel_id}/slides/{index}/move", response_model=CarouselResponse)
async def move_slide(
    carousel_id: str,
    index: int,
    payload: SlideMove,
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    return await _edit(
        db, sessions, carousel_id,
        _replace_with(lambda c: slide_template.move_slide(c, index, payload.to_index)),
    )


@router.delete("/{carousel_id}/slides/{index}", response_model=CarouselResponse)
async def remove_slide(
    carousel_id: str,
    index: int,
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    return await _edit(
        db, sessions, carousel_id,
        _replace_with(lambda c: slide_template.remove_slide(c, index)),
    )


@router.post("/{carousel_id}/slides/{index}/background", response_model=CarouselResponse)
async def upload_background(
    carousel_id: str,
    index: int,
    image: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    if not (image.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files are supported")
    data = await image.read()
    if len(data) > MAX_BACKGROUND_BYTES:
        raise HTTPException(status_code=400, detail="Image exceeds 15MB limit")

    from carousel.services.storage_service import StorageService

    storage = StorageService()
    ext = os.path.splitext(image.filename or "")[1].lower() or ".png"
    key = await storage.upload(f"backgrounds/{carousel_id}/{uuid.uuid4()}{ext}", data, image.content_type)
    url = await storage.get_url(key)
    return await _edit(db, sessions, carousel_id, lambda s: s.update_slide(index, {"bgImage": url}))


@router.get("/{carousel_id}/slides/{index}/preview")
async def preview_slide(
    carousel_id: str,
    index: int,
    container_width: float = Query(360, gt=0),
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    record = await load_record(db, carousel_id)
    session = sessions.open(to_document(record))
    if not 0 <= index < len(session.carousel.slides):
        raise HTTPException(status_code=404, detail="Slide not found")
    try:
        png = await session.preview_png(index, container_width)
    except (PreviewLockedError, ExportBusyError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    return Response(content=png, media_type="image/png")
