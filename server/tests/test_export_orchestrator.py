"""
Tests for the export orchestrator and the editor session that wires it.
"""

import asyncio
import io

import httpx
import pytest
from PIL import Image

from carousel.schemas.slide import Carousel, Slide
from carousel.services.editor_session import EditorSession, EditorSessionRegistry
from carousel.services.errors import CaptureError, CarouselError, ExportBusyError
from carousel.services.event_bus import EventType
from carousel.services.export_orchestrator import FAILURE_MESSAGE, ExportState
from carousel.services.image_embedder import ImageEmbedder


class RecordingCapture:
    """Capture engine double that records which slide each call rendered."""

    def __init__(self, fail_at=None, gate=None):
        self.texts: list[str] = []
        self.fail_at = fail_at
        self.gate = gate

    async def capture(self, node, width, height):
        if self.gate is not None:
            await self.gate.wait()
        lines = node.find("text", "primary").style["lines"]
        self.texts.append(" ".join(line.text for line in lines))
        if self.fail_at is not None and len(self.texts) == self.fail_at:
            raise CaptureError("boom")
        return f"png:{self.texts[-1]}".encode()


@pytest.fixture
def session(carousel, offline_fonts, fake_platform, storage_dir):
    return EditorSession(carousel, fonts=offline_fonts, platform=fake_platform())


def _platform(session):
    return session.orchestrator.delivery.platform


class TestDocumentExport:
    @pytest.mark.asyncio
    async def test_one_artifact_per_slide_in_order(self, session, carousel):
        result = await session.orchestrator.export_document(carousel)

        assert result.state is ExportState.READY
        assert result.filenames == [
            "slide_01_ansiedade_foco.png",
            "slide_02_ansiedade_foco.png",
            "slide_03_ansiedade_foco.png",
        ]
        assert session.orchestrator.held == result.filenames
        assert session.orchestrator.busy is False

    @pytest.mark.asyncio
    async def test_artifacts_are_full_resolution_pngs(self, session, carousel):
        await session.orchestrator.export_document(carousel)
        for artifact in session.orchestrator._held:
            image = Image.open(io.BytesIO(artifact.data))
            assert image.size == (1080, 1350)

    @pytest.mark.asyncio
    async def test_slides_are_captured_sequentially(self, session, carousel):
        recorder = RecordingCapture()
        session.orchestrator.capture = recorder
        await session.orchestrator.export_document(carousel)
        assert recorder.texts == ["one", "two", "three"]

    @pytest.mark.asyncio
    async def test_confirm_delivers_held_artifacts(self, session, carousel):
        await session.orchestrator.export_document(carousel)
        result = await session.orchestrator.confirm_delivery()

        assert result.state is ExportState.FALLBACK_DELIVERED
        assert session.orchestrator.held == []
        (name, data, content_type), = _platform(session).downloads
        assert name == "carrossel-ansiedade_foco.zip"
        assert content_type == "application/zip"

    @pytest.mark.asyncio
    async def test_native_share_is_a_plain_delivery(self, carousel, offline_fonts, fake_platform, storage_dir):
        session = EditorSession(
            carousel, fonts=offline_fonts, platform=fake_platform(can_share_natively=True)
        )
        session.orchestrator.capture = RecordingCapture()
        await session.orchestrator.export_document(carousel)
        result = await session.orchestrator.confirm_delivery()
        assert result.state is ExportState.DELIVERED
        assert _platform(session).shares == [result.filenames]

    @pytest.mark.asyncio
    async def test_confirm_without_export(self, session):
        with pytest.raises(CarouselError):
            await session.orchestrator.confirm_delivery()

    @pytest.mark.asyncio
    async def test_repeat_export_gives_same_names(self, session, carousel):
        session.orchestrator.capture = RecordingCapture()
        first = await session.orchestrator.export_document(carousel)
        second = await session.orchestrator.export_document(carousel)
        assert first.filenames == second.filenames

    @pytest.mark.asyncio
    async def test_empty_carousel(self, session):
        with pytest.raises(CarouselError):
            await session.orchestrator.export_document(Carousel(id="c-1"))

    @pytest.mark.asyncio
    async def test_progress_events(self, session, carousel):
        session.orchestrator.capture = RecordingCapture()
        await session.orchestrator.export_document(carousel)

        progress = session.bus.get_recent_events(EventType.EXPORT_PROGRESS)
        assert [e.data["message"] for e in progress] == [
            "Generating slide 1 of 3",
            "Generating slide 2 of 3",
            "Generating slide 3 of 3",
        ]
        states = [e.data["state"] for e in session.bus.get_recent_events(EventType.EXPORT_STATE)]
        assert states == ["preparing", "capturing", "ready"]
        assert session.bus.get_recent_events(EventType.EXPORT_READY)


class TestSingleSlideExport:
    @pytest.mark.asyncio
    async def test_single_slide_is_delivered_immediately(self, session, carousel):
        session.orchestrator.capture = RecordingCapture()
        result = await session.orchestrator.export_slide(carousel, 1)

        assert result.state is ExportState.FALLBACK_DELIVERED
        assert result.filenames == ["slide_2_ansiedade_foco.png"]
        assert _platform(session).downloads == [
            ("slide_2_ansiedade_foco.png", b"png:two", "image/png")
        ]
        assert session.orchestrator.held == []

    @pytest.mark.asyncio
    async def test_out_of_range(self, session, carousel):
        with pytest.raises(IndexError):
            await session.orchestrator.export_slide(carousel, 3)
        assert session.orchestrator.busy is False


class TestFailures:
    @pytest.mark.asyncio
    async def test_concurrent_export_is_rejected(self, session, carousel):
        gate = asyncio.Event()
        session.orchestrator.capture = RecordingCapture(gate=gate)
        running = asyncio.create_task(session.orchestrator.export_document(carousel))
        while session.orchestrator.state is not ExportState.CAPTURING:
            await asyncio.sleep(0)

        with pytest.raises(ExportBusyError):
            await session.orchestrator.export_slide(carousel, 0)

        gate.set()
        result = await running
        assert result.state is ExportState.READY

    @pytest.mark.asyncio
    async def test_capture_failure_fails_the_whole_export(self, session, carousel):
        session.orchestrator.capture = RecordingCapture(fail_at=2)
        result = await session.orchestrator.export_document(carousel)

        assert result.state is ExportState.FAILED
        assert not result.ok
        assert result.error == FAILURE_MESSAGE
        assert session.orchestrator.message == FAILURE_MESSAGE
        assert session.orchestrator.held == []
        assert session.orchestrator.busy is False
        assert session.bus.get_recent_events(EventType.EXPORT_FAILED)
        assert _platform(session).downloads == []

    @pytest.mark.asyncio
    async def test_failure_discards_previous_export(self, session, carousel):
        session.orchestrator.capture = RecordingCapture()
        await session.orchestrator.export_document(carousel)
        previous = list(session.orchestrator._held)

        session.orchestrator.capture = RecordingCapture(fail_at=1)
        await session.orchestrator.export_document(carousel)
        assert all(a.released for a in previous)
        assert session.orchestrator.held == []

    @pytest.mark.asyncio
    async def test_unembeddable_background_fails_export(self, offline_fonts, fake_platform, storage_dir):
        carousel = Carousel(
            id="c-2",
            topic="x",
            slides=[Slide(text="a", bg_image="https://cdn.example.com/blocked.jpg")],
        )
        embedder = ImageEmbedder(httpx.MockTransport(lambda r: httpx.Response(403)))
        session = EditorSession(
            carousel, fonts=offline_fonts, platform=fake_platform(), embedder=embedder
        )
        result = await session.orchestrator.export_slide(carousel, 0)
        assert result.state is ExportState.FAILED
        assert _platform(session).downloads == []

    @pytest.mark.asyncio
    async def test_remote_background_is_embedded_before_capture(
        self, offline_fonts, fake_platform, storage_dir, make_png
    ):
        ref = "https://cdn.example.com/bg.png"
        carousel = Carousel(id="c-3", topic="x", slides=[Slide(text="a", bg_image=ref)])
        embedder = ImageEmbedder(
            httpx.MockTransport(
                lambda r: httpx.Response(200, content=make_png(), headers={"content-type": "image/png"})
            )
        )
        session = EditorSession(
            carousel, fonts=offline_fonts, platform=fake_platform(), embedder=embedder
        )
        result = await session.orchestrator.export_slide(carousel, 0)
        assert result.state is ExportState.FALLBACK_DELIVERED
        assert embedder.cached(0, ref).startswith("data:image/png")
        # The document keeps the original reference
        assert session.carousel.slides[0].bg_image == ref


class TestEditorSession:
    @pytest.mark.asyncio
    async def test_preview_png(self, session):
        png = await session.preview_png(1, 540)
        image = Image.open(io.BytesIO(png))
        assert image.size == (540, 675)
        assert session.current_index == 1
        assert session.renderer.preview.locked is False

    def test_edits_rerender_both_trees(self, session):
        session.update_slide(0, {"secondaryText": "", "text": "changed"})
        assert session.renderer.preview_tree().find("text", "secondary") is None
        lines = session.renderer.arena[0].find("text", "primary").style["lines"]
        assert lines[0].text == "changed"

    def test_changed_background_invalidates_embedding(self, session):
        session.embedder._cache[0] = ("https://a.example/x.png", "data:image/png;base64,AA")
        session.update_slide(0, {"bgImage": "https://a.example/y.png"})
        assert session.embedder.cached(0, "https://a.example/x.png") is None

    def test_registry_reuses_sessions(self, carousel, offline_fonts, fake_platform, storage_dir):
        registry = EditorSessionRegistry(fonts=offline_fonts, platform_factory=fake_platform)
        first = registry.open(carousel)
        edited = carousel.model_copy(update={"topic": "new"})
        assert registry.open(edited) is first
        assert first.carousel.topic == "new"
        registry.close(carousel.id)
        assert registry.get(carousel.id) is None


# ---------------------------------------------------------------------------
# Editing while an export owns the export surfaces
# ---------------------------------------------------------------------------

class GatedCapture:
    """Real capture engine that waits on ``gate`` before every slide."""

    def __init__(self, engine, gate):
        self.engine = engine
        self.gate = gate

    async def capture(self, node, width, height):
        await self.gate.wait()
        return await self.engine.capture(node, width, height)


async def _start_export(session, carousel):
    running = asyncio.create_task(session.orchestrator.export_document(carousel))
    while session.orchestrator.state is not ExportState.CAPTURING:
        await asyncio.sleep(0)
    return running


class TestEditsDuringExport:
    @pytest.mark.asyncio
    async def test_edits_are_rejected_and_arena_is_untouched(self, session, carousel):
        gate = asyncio.Event()
        session.orchestrator.capture = RecordingCapture(gate=gate)
        running = await _start_export(session, carousel)
        nodes = [session.renderer.arena[i] for i in range(3)]

        with pytest.raises(ExportBusyError):
            session.update_slide(0, {"text": "edited"})
        with pytest.raises(ExportBusyError):
            session.apply_style_to_all(1)
        with pytest.raises(ExportBusyError):
            await session.preview_png(0, 540)

        assert all(session.renderer.arena[i] is node for i, node in enumerate(nodes))
        assert session.carousel.slides[0].text == "one"

        gate.set()
        result = await running
        assert result.state is ExportState.READY
        assert session.orchestrator.capture.texts == ["one", "two", "three"]

        session.update_slide(0, {"text": "edited"})
        assert session.carousel.slides[0].text == "edited"

    @pytest.mark.asyncio
    async def test_remote_backgrounds_survive_an_attempted_edit(
        self, offline_fonts, fake_platform, storage_dir, make_png
    ):
        carousel = Carousel(
            id="c-4",
            topic="x",
            slides=[
                Slide(text=str(i), bg_image=f"https://cdn.example.com/{i}.png") for i in range(3)
            ],
        )
        embedder = ImageEmbedder(
            httpx.MockTransport(
                lambda r: httpx.Response(200, content=make_png(), headers={"content-type": "image/png"})
            )
        )
        session = EditorSession(
            carousel, fonts=offline_fonts, platform=fake_platform(), embedder=embedder
        )
        gate = asyncio.Event()
        session.orchestrator.capture = GatedCapture(session.orchestrator.capture, gate)
        running = await _start_export(session, carousel)

        with pytest.raises(ExportBusyError):
            session.update_slide(0, {"text": "edited"})

        gate.set()
        result = await running
        assert result.state is ExportState.READY
        assert len(session.orchestrator.held) == 3

    @pytest.mark.asyncio
    async def test_registry_keeps_document_while_exporting(
        self, carousel, offline_fonts, fake_platform, storage_dir
    ):
        registry = EditorSessionRegistry(fonts=offline_fonts, platform_factory=fake_platform)
        session = registry.open(carousel)
        gate = asyncio.Event()
        session.orchestrator.capture = RecordingCapture(gate=gate)
        running = await _start_export(session, carousel)

        registry.open(carousel.model_copy(update={"topic": "new"}))
        assert session.carousel.topic == "Ansiedade & Foco"

        gate.set()
        await running
