"""Font loading for the render environment.

Slides reference fonts by identifier (``font-sans``, ``font-serif``, ...).
Each identifier maps to a Google Fonts family.  ``request()`` schedules the
download of a family's TTF files into the font cache; ``settled()`` is the
environment-wide "fonts ready" signal the capture pipeline waits on.

Families that cannot be loaded fall back to Pillow's bundled font so a
missing font never aborts an export.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles
import httpx
from PIL import ImageFont

from carousel.config import settings

logger = logging.getLogger(__name__)

REGULAR = 400
BOLD = 700

# A plain UA makes the CSS API answer with TrueType sources, which FreeType reads
_CSS_USER_AGENT = "Mozilla/5.0 (compatible; carousel-renderer)"

_FONT_FACE_RE = re.compile(r"@font-face\s*{([^}]*)}", re.S)
_WEIGHT_RE = re.compile(r"font-weight:\s*(\d+)")
_SRC_URL_RE = re.compile(r"url\((https?://[^)]+)\)")
_BOLD_HINT_RE = re.compile(r"\b(bold|black|heavy)\b", re.I)


@dataclass(frozen=True)
class FontFace:
    family: str
    display_name: str
    weights: tuple[int, ...] = (REGULAR, BOLD)

    @property
    def file_stem(self) -> str:
        return self.family.replace(" ", "")


FONT_CATALOG: dict[str, FontFace] = {
    "font-sans": FontFace("Inter", "Inter (Sans)"),
    "font-serif": FontFace("Playfair Display", "Playfair Display (Serif)"),
    "font-outfit": FontFace("Outfit", "Outfit (Modern)"),
    "font-montserrat": FontFace("Montserrat", "Montserrat (Clean)"),
    "font-archivo-black": FontFace("Archivo Black", "Archivo Black (Impact)", (REGULAR,)),
    "font-anton": FontFace("Anton", "Anton (Bold Display)", (REGULAR,)),
}

DEFAULT_FONT_ID = "font-sans"


def font_face(font_id: str) -> FontFace:
    face = FONT_CATALOG.get(font_id)
    if face is None:
        # Unknown identifiers are treated as a bare family name
        family = font_id.removeprefix("font-").replace("-", " ").title()
        face = FontFace(family, family)
    return face


def is_bold_only(font_id: str) -> bool:
    """True when the identifier or display name names a bold-only family."""
    face = font_face(font_id)
    return bool(
        _BOLD_HINT_RE.search(font_id.replace("-", " "))
        or _BOLD_HINT_RE.search(face.display_name)
    )


def resolve_weight(font_id: str, is_bold: bool) -> int:
    return BOLD if is_bold or is_bold_only(font_id) else REGULAR


class FontEnvironment:
    """Loaded fonts plus the pending-load bookkeeping behind ``settled()``."""

    def __init__(
        self,
        fonts_dir: Optional[str] = None,
        cache_dir: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.fonts_dir = Path(fonts_dir or settings.fonts_dir)
        self.cache_dir = Path(cache_dir or settings.font_cache_dir)
        self._transport = transport
        # family -> {weight: path}; an empty dict means "tried and failed"
        self._files: dict[str, dict[int, Path]] = {}
        self._pending: dict[str, asyncio.Task] = {}
        self._fonts: dict[tuple, ImageFont.ImageFont] = {}

    # -- readiness ---------------------------------------------------------

    def request(self, font_id: str) -> None:
        """Schedule loading of the family behind ``font_id`` (idempotent)."""
        face = font_face(font_id)
        if face.family in self._files or face.family in self._pending:
            return
        task = asyncio.create_task(self._load_family(face))
        self._pending[face.family] = task
        task.add_done_callback(lambda _t, family=face.family: self._pending.pop(family, None))

    @property
    def is_settled(self) -> bool:
        return not self._pending

    async def settled(self) -> None:
        """Wait until every requested family has finished loading (or failed)."""
        while self._pending:
            await asyncio.gather(*list(self._pending.values()), return_exceptions=True)

    def is_loaded(self, font_id: str) -> bool:
        return bool(self._files.get(font_face(font_id).family))

    # -- lookup ------------------------------------------------------------

    def get_font(self, font_id: str, weight: int, size: int) -> ImageFont.ImageFont:
        face = font_face(font_id)
        key = (face.family, weight, size)
        font = self._fonts.get(key)
        if font is None:
            path = self._pick_file(face, weight)
            if path is not None:
                font = ImageFont.truetype(str(path), size)
            else:
                font = ImageFont.load_default(size=size)
            self._fonts[key] = font
        return font

    def _pick_file(self, face: FontFace, weight: int) -> Optional[Path]:
        files = self._files.get(face.family) or {}
        if not files:
            return None
        if weight in files:
            return files[weight]
        nearest = min(files, key=lambda w: abs(w - weight))
        return files[nearest]

    # -- loading -----------------------------------------------------------

    async def _load_family(self, face: FontFace) -> None:
        files: dict[int, Path] = {}
        missing = []
        for weight in face.weights:
            path = self._local_file(face, weight)
            if path is not None:
                files[weight] = path
            else:
                missing.append(weight)

        if missing:
            try:
                files.update(await self._download(face, missing))
            except (httpx.HTTPError, OSError) as e:
                logger.warning(f"Font {face.family}: download failed, using fallback ({e})")

        self._files[face.family] = files
        # Drop fonts built from the fallback before this family arrived
        for key in [k for k in self._fonts if k[0] == face.family]:
            del self._fonts[key]
        if files:
            logger.debug(f"Font {face.family} ready: weights {sorted(files)}")

    def _local_file(self, face: FontFace, weight: int) -> Optional[Path]:
        name = f"{face.file_stem}-{weight}.ttf"
        for base in (self.fonts_dir, self.cache_dir):
            path = base / name
            if path.is_file():
                return path
        return None

    async def _download(self, face: FontFace, weights: list[int]) -> dict[int, Path]:
        family_query = face.family.replace(" ", "+")
        if face.weights == (REGULAR,):
            query = f"family={family_query}"
        else:
            query = f"family={family_query}:wght@{';'.join(str(w) for w in weights)}"
        url = f"{settings.google_fonts_css_url}?{query}&display=swap"

        result: dict[int, Path] = {}
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=settings.image_fetch_timeout_secs,
            headers={"User-Agent": _CSS_USER_AGENT},
            follow_redirects=True,
        ) as client:
            css = await client.get(url)
            css.raise_for_status()

            self.cache_dir.mkdir(parents=True, exist_ok=True)
            for block in _FONT_FACE_RE.findall(css.text):
                weight_match = _WEIGHT_RE.search(block)
                src_match = _SRC_URL_RE.search(block)
                if not weight_match or not src_match:
                    continue
                weight = int(weight_match.group(1))
                if weight not in weights or weight in result:
                    continue
                font_res = await client.get(src_match.group(1))
                font_res.raise_for_status()
                path = self.cache_dir / f"{face.file_stem}-{weight}.ttf"
                async with aiofiles.open(path, "wb") as f:
                    await f.write(font_res.content)
                result[weight] = path
        return result
