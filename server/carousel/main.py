import logging
import os

import socketio
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from carousel.config import settings
from carousel.api import carousels, exports, presets
from carousel.ws.handler import sio

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

# Suppress noisy third-party loggers
logging.getLogger("google_genai").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("PIL").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    from carousel.models.base import init_db
    await init_db()
    logger.info("Database tables created / verified")

    os.makedirs(settings.storage_dir, exist_ok=True)
    os.makedirs(settings.font_cache_dir, exist_ok=True)
    yield


app = FastAPI(
    title="Carousel Studio API",
    description="Social media carousel editor and image export backend",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount REST routes
app.include_router(carousels.router, prefix="/api/carousels", tags=["carousels"])
app.include_router(presets.router, prefix="/api/presets", tags=["presets"])
app.include_router(exports.router, prefix="/api/exports", tags=["exports"])


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": VERSION}


# ---------------------------------------------------------------------------
# Static file serving for exports and uploaded backgrounds
# ---------------------------------------------------------------------------
MIME_MAP = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".zip": "application/zip",
}


@app.get("/api/files/{file_path:path}")
async def serve_file(file_path: str):
    """Serve files from the local storage directory."""
    full_path = os.path.realpath(os.path.join(settings.storage_dir, file_path))
    storage_real = os.path.realpath(settings.storage_dir)
    # Prevent directory traversal
    if not full_path.startswith(storage_real + os.sep):
        raise HTTPException(status_code=403, detail="Access denied")
    if not os.path.isfile(full_path):
        raise HTTPException(status_code=404, detail="File not found")

    ext = os.path.splitext(full_path)[1].lower()
    media_type = MIME_MAP.get(ext, "application/octet-stream")
    return FileResponse(full_path, media_type=media_type, filename=os.path.basename(full_path))


# Mount Socket.IO as ASGI sub-app
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
