import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from carousel.api.carousels import load_record, to_document
from carousel.models.base import get_db
from carousel.schemas.carousel import ExportResponse
from carousel.services.editor_session import (
    EditorSession,
    EditorSessionRegistry,
    get_editor_sessions,
)
from carousel.services.errors import CarouselError, ExportBusyError
from carousel.services.export_orchestrator import ExportResult
from carousel.ws.events import bridge_export_events

logger = logging.getLogger(__name__)

router = APIRouter()


async def _open(
    db: AsyncSession, sessions: EditorSessionRegistry, carousel_id: str
) -> EditorSession:
    session = sessions.open(to_document(await load_record(db, carousel_id)))
    bridge_export_events(carousel_id, session)
    return session


def _take_downloads(session: EditorSession) -> list[str]:
    take = getattr(session.orchestrator.delivery.platform, "take_downloads", None)
    return take() if take is not None else []


def _respond(session: EditorSession, result: ExportResult) -> ExportResponse:
    downloads = _take_downloads(session)
    if not result.ok:
        raise HTTPException(status_code=500, detail=result.error)
    return ExportResponse(
        state=result.state.value,
        message=session.orchestrator.message,
        filenames=result.filenames,
        outcome=result.delivery.outcome.value if result.delivery else None,
        shared=result.delivery.shared if result.delivery else [],
        downloads=downloads,
    )


@router.post("/{carousel_id}/slides/{index}", response_model=ExportResponse)
async def export_slide(
    carousel_id: str,
    index: int,
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    """Capture one slide and deliver it immediately."""
    session = await _open(db, sessions, carousel_id)
    try:
        result = await session.orchestrator.export_slide(session.carousel, index)
    except ExportBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _respond(session, result)


@router.post("/{carousel_id}", response_model=ExportResponse)
async def export_document(
    carousel_id: str,
    db: AsyncSession = Depends(get_db),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    """Capture every slide; the artifacts wait for ``/confirm``."""
    session = await _open(db, sessions, carousel_id)
    try:
        result = await session.orchestrator.export_document(session.carousel)
    except CarouselError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _respond(session, result)


@router.post("/{carousel_id}/confirm", response_model=ExportResponse)
async def confirm_export(
    carousel_id: str,
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    session = sessions.get(carousel_id)
    if session is None:
        raise HTTPException(status_code=404, detail="No export session for this carousel")
    try:
        result = await session.orchestrator.confirm_delivery()
    except CarouselError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _respond(session, result)


@router.delete("/{carousel_id}", status_code=204)
async def discard_export(
    carousel_id: str,
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    session = sessions.get(carousel_id)
    if session is not None and not session.orchestrator.busy:
        session.orchestrator.discard()


@router.get("/{carousel_id}", response_model=ExportResponse)
async def export_status(
    carousel_id: str,
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    session = sessions.get(carousel_id)
    if session is None:
        return ExportResponse(state="idle")
    orchestrator = session.orchestrator
    return ExportResponse(
        state=orchestrator.state.value,
        message=orchestrator.message,
        filenames=orchestrator.held,
    )
