import logging

import socketio

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    logger=False,
    engineio_logger=False,
)

# Store active editor mappings: sid -> carousel_id
active_editors: dict[str, str] = {}


def room_for(carousel_id: str) -> str:
    return f"carousel_{carousel_id}"


@sio.event
async def connect(sid, environ, auth):
    carousel_id = None
    if auth and isinstance(auth, dict):
        carousel_id = auth.get("carouselId")

    if carousel_id:
        active_editors[sid] = carousel_id
        await sio.enter_room(sid, room_for(carousel_id))
        logger.info(f"Client {sid} connected to carousel {carousel_id}")
    else:
        logger.info(f"Client {sid} connected without carousel ID")


@sio.event
async def disconnect(sid):
    carousel_id = active_editors.pop(sid, None)
    if carousel_id:
        logger.info(f"Client {sid} disconnected from carousel {carousel_id}")
