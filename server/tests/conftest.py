"""
Shared fixtures for the carousel test suite.

Settings are read from the environment at import time, so the database,
storage and font directories are pointed at a scratch directory before any
``carousel`` module is imported.
"""

import io
import os
import tempfile

_SCRATCH = tempfile.mkdtemp(prefix="carousel-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_SCRATCH}/carousel.db"
os.environ["STORAGE_DIR"] = os.path.join(_SCRATCH, "storage")
os.environ["FONTS_DIR"] = os.path.join(_SCRATCH, "fonts")
os.environ["FONT_CACHE_DIR"] = os.path.join(_SCRATCH, "font_cache")
os.environ["GEMINI_API_KEY"] = ""
os.environ["DEBUG"] = "false"

import httpx
import pytest
from PIL import Image

from carousel.config import settings
from carousel.schemas.slide import Carousel, Slide
from carousel.services.errors import ShareCancelledError, ShareRejectedError
from carousel.services.font_environment import FontEnvironment


@pytest.fixture(autouse=True)
def no_delays(monkeypatch):
    """Stabilization delays only slow the suite down."""
    monkeypatch.setattr(settings, "resource_settle_delay_ms", 0)
    monkeypatch.setattr(settings, "capture_warmup_delay_ms", 0)
    monkeypatch.setattr(settings, "share_chunk_delay_ms", 0)


@pytest.fixture
def storage_dir(tmp_path, monkeypatch):
    path = tmp_path / "storage"
    path.mkdir()
    monkeypatch.setattr(settings, "storage_dir", str(path))
    return path


@pytest.fixture
def offline_fonts(tmp_path):
    """Font environment whose downloads always fail (Pillow's default font is used)."""
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    return FontEnvironment(
        fonts_dir=str(tmp_path / "fonts"),
        cache_dir=str(tmp_path / "font_cache"),
        transport=transport,
    )


@pytest.fixture
def make_png():
    def _make(color=(255, 0, 0), size=(10, 10)) -> bytes:
        buf = io.BytesIO()
        Image.new("RGB", size, color).save(buf, format="PNG")
        return buf.getvalue()

    return _make


@pytest.fixture
def carousel():
    return Carousel(
        id="c-1",
        topic="Ansiedade & Foco",
        slides=[
            Slide(text="one", secondary_text="first"),
            Slide(text="two", secondary_text="second"),
            Slide(text="three", use_only_main=True, secondary_text="hidden"),
        ],
    )


class FakePlatform:
    """Records share and download calls instead of talking to a device."""

    def __init__(
        self,
        can_share_natively=False,
        is_handheld=False,
        max_files=None,
        cancel=False,
        reject=False,
        accepted_shares=None,
    ):
        self.can_share_natively = can_share_natively
        self.is_handheld = is_handheld
        self.max_files = max_files
        self.cancel = cancel
        self.reject = reject
        # Share calls accepted before the platform starts refusing them
        self.accepted_shares = accepted_shares
        self.shares: list[list[str]] = []
        self.downloads: list[tuple[str, bytes, str]] = []

    def can_share(self, files) -> bool:
        if not self.can_share_natively:
            return False
        return self.max_files is None or len(files) <= self.max_files

    async def share(self, files, title, text) -> None:
        if self.cancel:
            raise ShareCancelledError("dismissed")
        if self.reject:
            raise ShareRejectedError("not allowed")
        if self.accepted_shares is not None and len(self.shares) >= self.accepted_shares:
            raise ShareRejectedError("share sheet refused another call")
        self.shares.append([f.filename for f in files])

    async def download(self, filename, data, content_type) -> None:
        self.downloads.append((filename, data, content_type))


@pytest.fixture
def fake_platform():
    return FakePlatform
