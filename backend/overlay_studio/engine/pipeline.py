"""Overlay orchestrator — locate → resolve → synthesise → enforce transparency.

One pipeline serves both delivery modes. Callers pass a ProgressReporter; the
buffered endpoint just reads ``reporter.lines`` at the end, the streaming
endpoint gives the reporter a sink that forwards every line as it is written.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from overlay_studio.config import Settings
from overlay_studio.engine import geometry
from overlay_studio.engine.errors import (
    ConfigurationError,
    InputValidationError,
    RequestCancelled,
    classify_failure,
)
from overlay_studio.engine.transparency import TransparencyEnforcer
from overlay_studio.llm.client import Transport
from overlay_studio.llm.stages import (
    LocateAndSpecStage,
    LocateInput,
    OverlaySynthesisStage,
    SynthesisInput,
)
from overlay_studio.models.overlay import Anchor, ImageSize, Placement
from overlay_studio.utils.image_io import png_size, split_data_url, to_data_url
from overlay_studio.utils.math_helpers import round_half_up

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_WARNING = (
    "Placement confidence is low; adjust the position manually or give a more specific instruction."
)


class ProgressReporter:
    """Collects timestamped progress lines and forwards each one to ``sink``.

    Also carries the cancellation flag the orchestrator checks between stages.
    """

    def __init__(self, sink: Callable[[str], None] | None = None) -> None:
        self.lines: list[str] = []
        self._sink = sink
        self._cancelled = False

    def log(self, message: str) -> str:
        line = f"[{time.strftime('%H:%M:%S')}] {message}"
        self.lines.append(line)
        logger.info(message)
        if self._sink is not None:
            self._sink(line)
        return line

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class OverlayJob:
    image: str
    instruction: str
    image_size: ImageSize | None = None
    anchor: Anchor | None = None


@dataclass
class OverlayResult:
    data: bytes
    mime_type: str
    placement: Placement
    confidence: float
    overlay_size: tuple[int, int] | None = None
    why: str = ""
    assumptions: str = ""
    warnings: list[str] = field(default_factory=list)
    logs: list[str] = field(default_factory=list)
    transparency_applied: bool = False

    @property
    def data_url(self) -> str:
        return to_data_url(self.data, self.mime_type)


class OverlayOrchestrator:
    """Runs the two upstream stages in strict order. No stage is retried."""

    def __init__(
        self,
        transport: Transport,
        settings: Settings,
        enforcer: TransparencyEnforcer | None = None,
        locate_stage: LocateAndSpecStage | None = None,
        synthesis_stage: OverlaySynthesisStage | None = None,
    ) -> None:
        self.transport = transport
        self.settings = settings
        self.enforcer = enforcer or TransparencyEnforcer()
        self.locate_stage = locate_stage or LocateAndSpecStage(settings.gemini_model)
        self.synthesis_stage = synthesis_stage or OverlaySynthesisStage(settings.image_model)

    @property
    def stages(self) -> list[LocateAndSpecStage | OverlaySynthesisStage]:
        return [self.locate_stage, self.synthesis_stage]

    def validate(self, job: OverlayJob) -> None:
        if not job.image:
            raise InputValidationError("Please upload an image first")
        if not job.instruction or not job.instruction.strip():
            raise InputValidationError("Please enter an edit instruction")
        if not self.settings.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured on the server")

    def resolve_image_size(self, job: OverlayJob) -> ImageSize:
        if job.image_size is not None and job.image_size.is_positive:
            return job.image_size
        side = self.settings.default_image_side
        return ImageSize(w=side, h=side)

    async def run(self, job: OverlayJob, reporter: ProgressReporter) -> OverlayResult:
        """Run the full pipeline. Every failure surfaces as a classified OverlayError."""
        try:
            self.validate(job)
            return await self._run(job, reporter)
        except RequestCancelled:
            logger.info("Request cancelled by caller")
            raise
        except (InputValidationError, ConfigurationError) as e:
            reporter.log(e.message)
            raise
        except Exception as e:
            reporter.log(f"Server error: {e}")
            logger.warning("Overlay generation failed: %s", e)
            raise classify_failure(e) from e

    async def _run(self, job: OverlayJob, reporter: ProgressReporter) -> OverlayResult:
        start = time.perf_counter()
        reporter.log("Request received")
        reporter.log(f"Instruction: {job.instruction}")

        mime_type, image_b64 = split_data_url(job.image)
        image_size = self.resolve_image_size(job)
        reporter.log(f"Original size: {image_size.w}x{image_size.h}")

        # Stage 1: locate + spec
        self._checkpoint(reporter)
        reporter.log(f"[Stage 1/2] Locate and spec ({self.locate_stage.model})")
        anchor = job.anchor
        if anchor is not None and not (math.isfinite(anchor.x) and math.isfinite(anchor.y)):
            anchor = None
        locate_request = self.locate_stage.build_request(LocateInput(
            image_b64=image_b64,
            mime_type=mime_type,
            instruction=job.instruction.strip(),
            image_size=image_size,
            anchor=anchor,
        ))
        reporter.log(f"Calling {locate_request.model}...")
        spec = self.locate_stage.parse_response(await self.transport.send(locate_request))

        placement = geometry.resolve(spec.placement, image_size)
        reporter.log(
            f"Suggested placement: x={round_half_up(placement.x)}, y={round_half_up(placement.y)}, "
            f"{round_half_up(placement.width)}x{round_half_up(placement.height)}, "
            f"r={round_half_up(placement.rotation)}°"
        )

        # Stage 2: overlay synthesis
        self._checkpoint(reporter)
        reporter.log(f"[Stage 2/2] Generating transparent overlay ({self.synthesis_stage.model})")
        synthesis_request = self.synthesis_stage.build_request(SynthesisInput(
            overlay_brief=spec.overlay_brief,
            target=placement,
            style_notes=spec.style_notes,
            negative_constraints=spec.negative_constraints,
        ))
        reporter.log(f"Calling {synthesis_request.model}...")
        overlay = self.synthesis_stage.parse_response(await self.transport.send(synthesis_request))

        # Transparency cleanup is CPU-bound; keep the event loop free
        self._checkpoint(reporter)
        loop = asyncio.get_running_loop()
        outcome = await loop.run_in_executor(None, self.enforcer.enforce, overlay.data, overlay.mime_type)
        overlay_size = overlay.size
        if outcome.applied:
            reporter.log(f"Removed opaque {outcome.mode} background from overlay")
            overlay_size = png_size(outcome.data)

        warnings: list[str] = []
        if spec.confidence < self.settings.low_confidence_threshold:
            warnings.append(LOW_CONFIDENCE_WARNING)

        elapsed = (time.perf_counter() - start) * 1000
        reporter.log("Overlay ready")
        logger.info("Overlay pipeline complete in %.0fms", elapsed)

        return OverlayResult(
            data=outcome.data,
            mime_type=outcome.mime_type,
            placement=placement,
            confidence=spec.confidence,
            overlay_size=overlay_size,
            why=spec.why,
            assumptions=spec.assumptions,
            warnings=warnings,
            logs=list(reporter.lines),
            transparency_applied=outcome.applied,
        )

    @staticmethod
    def _checkpoint(reporter: ProgressReporter) -> None:
        if reporter.cancelled:
            raise RequestCancelled("Request cancelled")


def create_orchestrator(transport: Transport, settings: Settings) -> OverlayOrchestrator:
    """Factory: build an orchestrator with the default stages and enforcer."""
    return OverlayOrchestrator(transport, settings)

