"""Artifact packaging and platform-adaptive delivery.

Strategies are tried in order until one succeeds:

1. native share of every file at once, on handheld devices;
2. native share when the platform says it can share this exact file set;
3. two half-sized share calls when a large batch was refused; when only
   the first half goes through, the rest falls back to a download;
4. a single-file download when there is exactly one artifact;
5. a ZIP archive download otherwise.

A share the user cancels counts as delivered.
"""

import asyncio
import io
import logging
import math
import re
import unicodedata
import uuid
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol, Sequence

from carousel.config import settings
from carousel.services.errors import DeliveryError, ShareCancelledError
from carousel.services.storage_service import StorageService

logger = logging.getLogger(__name__)

_TOPIC_MAX_LEN = 40
_DEFAULT_TOPIC = "carrossel"


def sanitize_topic(topic: Optional[str]) -> str:
    normalized = unicodedata.normalize("NFKD", topic or "")
    ascii_topic = normalized.encode("ascii", "ignore").decode("ascii").lower()
    slug = re.sub(r"[^a-z0-9]+", "_", ascii_topic).strip("_")
    return slug[:_TOPIC_MAX_LEN].rstrip("_") or _DEFAULT_TOPIC


def artifact_filename(index: int, topic: Optional[str], batch: bool) -> str:
    """Deterministic file name for the slide at 0-based ``index``."""
    number = f"{index + 1:02d}" if batch else str(index + 1)
    return f"slide_{number}_{sanitize_topic(topic)}.png"


def archive_filename(topic: Optional[str]) -> str:
    return f"carrossel-{sanitize_topic(topic)}.zip"


@dataclass
class ExportArtifact:
    filename: str
    index: int
    data: bytes
    width: int
    height: int
    content_type: str = "image/png"

    @property
    def released(self) -> bool:
        return not self.data

    def release(self) -> None:
        self.data = b""


class Platform(Protocol):
    """Sharing/download capabilities of the device receiving the artifacts."""

    can_share_natively: bool
    is_handheld: bool

    def can_share(self, files: Sequence[ExportArtifact]) -> bool: ...

    async def share(self, files: Sequence[ExportArtifact], title: str, text: str) -> None: ...

    async def download(self, filename: str, data: bytes, content_type: str) -> None: ...


class DeliveryOutcome(str, Enum):
    SHARED = "shared"
    SHARED_IN_CHUNKS = "shared_in_chunks"
    CANCELLED = "cancelled"
    DOWNLOADED = "downloaded"
    ARCHIVE_DOWNLOADED = "archive_downloaded"


@dataclass
class DeliveryResult:
    outcome: DeliveryOutcome
    filenames: list[str] = field(default_factory=list)
    # Files already shared when a chunked share stopped halfway
    shared: list[str] = field(default_factory=list)

    @property
    def fallback(self) -> bool:
        return self.outcome in (DeliveryOutcome.DOWNLOADED, DeliveryOutcome.ARCHIVE_DOWNLOADED)


def build_archive(artifacts: Sequence[ExportArtifact]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for artifact in artifacts:
            zf.writestr(artifact.filename, artifact.data)
    return buf.getvalue()


class DeliveryService:
    def __init__(
        self,
        platform: Platform,
        batch_limit: Optional[int] = None,
        chunk_delay_ms: Optional[int] = None,
    ):
        self.platform = platform
        self.batch_limit = settings.share_batch_limit if batch_limit is None else batch_limit
        self.chunk_delay_ms = (
            settings.share_chunk_delay_ms if chunk_delay_ms is None else chunk_delay_ms
        )

    async def deliver(
        self,
        artifacts: Sequence[ExportArtifact],
        title: str,
        text: str = "",
        archive_name: Optional[str] = None,
    ) -> DeliveryResult:
        """Hand ``artifacts`` to the user, then release them whatever happened."""
        if not artifacts:
            raise DeliveryError("Nothing to deliver")
        try:
            return await self._deliver(list(artifacts), title, text, archive_name)
        finally:
            for artifact in artifacts:
                artifact.release()

    async def _deliver(
        self,
        files: list[ExportArtifact],
        title: str,
        text: str,
        archive_name: Optional[str],
    ) -> DeliveryResult:
        names = [f.filename for f in files]
        platform = self.platform

        if platform.can_share_natively:
            if platform.is_handheld:
                outcome = await self._try_share(files, title, text)
                if outcome is not None:
                    return DeliveryResult(outcome, names)

            if platform.can_share(files):
                outcome = await self._try_share(files, title, text)
                if outcome is not None:
                    return DeliveryResult(outcome, names)

            if len(files) > self.batch_limit:
                outcome, shared = await self._try_share_in_halves(files, title, text)
                if outcome is not None:
                    return DeliveryResult(outcome, names)
                if shared:
                    # Only what the share sheet never received falls back
                    remaining = files[len(shared):]
                    outcome = await self._download(remaining, archive_name)
                    return DeliveryResult(outcome, names, shared=[f.filename for f in shared])

        return DeliveryResult(await self._download(files, archive_name), names)

    async def _download(
        self, files: list[ExportArtifact], archive_name: Optional[str]
    ) -> DeliveryOutcome:
        if len(files) == 1:
            artifact = files[0]
            await self.platform.download(artifact.filename, artifact.data, artifact.content_type)
            return DeliveryOutcome.DOWNLOADED

        data = await asyncio.to_thread(build_archive, files)
        await self.platform.download(archive_name or "carrossel.zip", data, "application/zip")
        return DeliveryOutcome.ARCHIVE_DOWNLOADED

    async def _try_share(
        self, files: list[ExportArtifact], title: str, text: str
    ) -> Optional[DeliveryOutcome]:
        try:
            await self.platform.share(files, title, text)
        except ShareCancelledError:
            logger.info("Share cancelled by user")
            return DeliveryOutcome.CANCELLED
        except DeliveryError as e:
            logger.warning(f"Share of {len(files)} files failed: {e}")
            return None
        return DeliveryOutcome.SHARED

    async def _try_share_in_halves(
        self, files: list[ExportArtifact], title: str, text: str
    ) -> tuple[Optional[DeliveryOutcome], list[ExportArtifact]]:
        """Share ``files`` in two calls.

        Returns the outcome, or ``None`` when a half could not be shared,
        together with the files that did reach the share sheet.
        """
        middle = math.ceil(len(files) / 2)
        halves = [files[:middle], files[middle:]]
        shared: list[ExportArtifact] = []
        for i, half in enumerate(halves):
            if i:
                # Some share sheets refuse a call while the previous one is closing
                await asyncio.sleep(self.chunk_delay_ms / 1000)
            if not self.platform.can_share(half):
                logger.warning(f"Platform cannot share chunk of {len(half)} files")
                return None, shared
            outcome = await self._try_share(half, f"{title} ({i + 1}/2)", text)
            if outcome is not DeliveryOutcome.SHARED:
                return outcome, shared
            shared.extend(half)
        return DeliveryOutcome.SHARED_IN_CHUNKS, shared


class StorageDownloadPlatform:
    """Server-side delivery: no share sheet, downloads land in storage."""

    can_share_natively = False
    is_handheld = False

    def __init__(self, prefix: str = "exports"):
        self.storage = StorageService()
        self.prefix = f"{prefix}/{uuid.uuid4()}"
        self.downloads: list[str] = []

    def can_share(self, files: Sequence[ExportArtifact]) -> bool:
        return False

    async def share(self, files: Sequence[ExportArtifact], title: str, text: str) -> None:
        raise DeliveryError("Sharing is not available on this platform")

    async def download(self, filename: str, data: bytes, content_type: str) -> None:
        key = await self.storage.upload(f"{self.prefix}/{filename}", data, content_type)
        self.downloads.append(await self.storage.get_url(key))

    def take_downloads(self) -> list[str]:
        """Return the URLs stored since the last call and forget them."""
        downloads, self.downloads = self.downloads, []
        return downloads
