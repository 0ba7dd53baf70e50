import logging
import weakref

from carousel.schemas.websocket import ExportStatusEvent
from carousel.services.editor_session import EditorSession
from carousel.services.event_bus import Event, EventBus
from carousel.ws.handler import room_for, sio

logger = logging.getLogger(__name__)

# Buses already forwarding to Socket.IO
_bridged: "weakref.WeakSet[EventBus]" = weakref.WeakSet()


def bridge_export_events(carousel_id: str, session: EditorSession) -> None:
    """Forward the session's export progress to the editor's Socket.IO room."""
    if session.bus in _bridged:
        return

    async def forward(event: Event) -> None:
        payload = ExportStatusEvent(carousel_id=carousel_id, type=event.type.value, **event.data)
        try:
            await sio.emit("export_status", payload.model_dump(), room=room_for(carousel_id))
        except Exception as e:
            logger.warning(f"Carousel {carousel_id}: failed to emit export status: {e}")

    session.bus.subscribe_all(forward)
    _bridged.add(session.bus)
