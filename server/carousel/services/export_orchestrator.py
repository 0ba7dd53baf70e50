import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from carousel.schemas.slide import Carousel
from carousel.services.capture_engine import CaptureEngine
from carousel.services.delivery import (
    DeliveryResult,
    DeliveryService,
    ExportArtifact,
    archive_filename,
    artifact_filename,
)
from carousel.services.errors import CarouselError, ExportBusyError
from carousel.services.event_bus import Event, EventBus, EventType
from carousel.services.readiness import ReadinessPipeline
from carousel.services.slide_renderer import SlideRenderer

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "Export failed. Please try again."


class ExportState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    CAPTURING = "capturing"
    READY = "ready"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    FALLBACK_DELIVERED = "fallback_delivered"
    FAILED = "failed"


@dataclass
class ExportResult:
    state: ExportState
    filenames: list[str] = field(default_factory=list)
    delivery: Optional[DeliveryResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state is not ExportState.FAILED


class ExportOrchestrator:
    """Sequences readiness, capture and delivery for one editing session.

    Only one export runs at a time: the export surfaces are shared, and a
    second run would race the first over them.
    """

    def __init__(
        self,
        renderer: SlideRenderer,
        readiness: ReadinessPipeline,
        capture: CaptureEngine,
        delivery: DeliveryService,
        bus: Optional[EventBus] = None,
    ):
        self.renderer = renderer
        self.readiness = readiness
        self.capture = capture
        self.delivery = delivery
        self.bus = bus
        self.state = ExportState.IDLE
        self.message = ""
        self.busy = False
        self._held: list[ExportArtifact] = []
        self._held_topic = ""

    @property
    def held(self) -> list[str]:
        return [a.filename for a in self._held]

    async def export_slide(self, carousel: Carousel, index: int) -> ExportResult:
        """Capture one slide and deliver it right away."""
        if not 0 <= index < len(carousel.slides):
            raise IndexError(f"Slide index out of range: {index}")
        self._acquire()
        try:
            artifacts = await self._generate(carousel, [index], batch=False)
            if artifacts is None:
                return await self._failed()
            return await self._deliver(artifacts, carousel.topic)
        finally:
            self.busy = False

    async def export_document(self, carousel: Carousel) -> ExportResult:
        """Capture every slide and hold the artifacts until ``confirm_delivery``.

        Delivery is a separate step because some platforms only open the
        share sheet from a direct user gesture, not after a long async job.
        """
        if not carousel.slides:
            raise CarouselError("Carousel has no slides")
        self._acquire()
        try:
            self.discard()
            indices = list(range(len(carousel.slides)))
            artifacts = await self._generate(carousel, indices, batch=True)
            if artifacts is None:
                return await self._failed()
            self._held = artifacts
            self._held_topic = carousel.topic
            await self._transition(ExportState.READY, f"{len(artifacts)} slides ready")
            await self._publish(EventType.EXPORT_READY, {"filenames": self.held})
            return ExportResult(ExportState.READY, filenames=self.held)
        finally:
            self.busy = False

    async def confirm_delivery(self) -> ExportResult:
        if not self._held:
            raise CarouselError("No export is ready for delivery")
        self._acquire()
        try:
            artifacts, self._held = self._held, []
            return await self._deliver(artifacts, self._held_topic)
        finally:
            self.busy = False

    def discard(self) -> None:
        for artifact in self._held:
            artifact.release()
        self._held = []

    # -- internals ---------------------------------------------------------

    def _acquire(self) -> None:
        if self.busy:
            raise ExportBusyError("An export is already in progress")
        self.busy = True

    async def _generate(
        self, carousel: Carousel, indices: list[int], batch: bool
    ) -> Optional[list[ExportArtifact]]:
        artifacts: list[ExportArtifact] = []
        try:
            await self._transition(ExportState.PREPARING, "Optimizing resources...")
            prepared = await self.readiness.prepare(carousel.slides, indices)
            # Re-render with embedded images and settled fonts before capturing
            self.renderer.sync(prepared)

            await self._transition(ExportState.CAPTURING, "Generating slides...")
            width, height = self.renderer.width, self.renderer.height
            total = len(indices)
            for position, index in enumerate(indices, start=1):
                message = f"Generating slide {position} of {total}"
                self.message = message
                await self._publish(
                    EventType.EXPORT_PROGRESS,
                    {"current": position, "total": total, "message": message},
                )
                data = await self.capture.capture(self.renderer.arena[index], width, height)
                artifacts.append(
                    ExportArtifact(
                        filename=artifact_filename(index, carousel.topic, batch),
                        index=index,
                        data=data,
                        width=width,
                        height=height,
                    )
                )
            return artifacts
        except Exception as e:
            logger.error(f"Export of carousel {carousel.id} failed: {e}")
            for artifact in artifacts:
                artifact.release()
            return None

    async def _deliver(self, artifacts: list[ExportArtifact], topic: str) -> ExportResult:
        filenames = [a.filename for a in artifacts]
        await self._transition(ExportState.DELIVERING, "Delivering...")
        try:
            result = await self.delivery.deliver(
                artifacts,
                title=topic or "Carrossel",
                archive_name=archive_filename(topic),
            )
        except Exception as e:
            logger.error(f"Delivery of {len(artifacts)} artifacts failed: {e}")
            return await self._failed()

        state = ExportState.FALLBACK_DELIVERED if result.fallback else ExportState.DELIVERED
        await self._transition(state, "Export complete")
        await self._publish(
            EventType.EXPORT_DELIVERED,
            {"outcome": result.outcome.value, "filenames": filenames, "shared": result.shared},
        )
        return ExportResult(state, filenames=filenames, delivery=result)

    async def _failed(self) -> ExportResult:
        await self._transition(ExportState.FAILED, FAILURE_MESSAGE)
        await self._publish(EventType.EXPORT_FAILED, {"message": FAILURE_MESSAGE})
        return ExportResult(ExportState.FAILED, error=FAILURE_MESSAGE)

    async def _transition(self, state: ExportState, message: str) -> None:
        self.state = state
        self.message = message
        logger.debug(f"Export state -> {state.value}: {message}")
        await self._publish(EventType.EXPORT_STATE, {"state": state.value, "message": message})

    async def _publish(self, event_type: EventType, data: dict) -> None:
        if self.bus is not None:
            await self.bus.publish(Event(event_type, data))
