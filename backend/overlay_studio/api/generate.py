"""POST /api/generate — overlay generation (buffered + NDJSON streaming)."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from overlay_studio.dependencies import get_orchestrator
from overlay_studio.engine.errors import OverlayError
from overlay_studio.engine.pipeline import OverlayJob, OverlayOrchestrator, OverlayResult, ProgressReporter
from overlay_studio.llm.instruction import resolve_instruction
from overlay_studio.models.overlay import ImageSize
from overlay_studio.models.requests import GenerateRequest, StreamGenerateRequest
from overlay_studio.models.responses import ErrorResponse, GenerateResponse, StreamResultData

router = APIRouter()

_SENTINEL = object()  # marks end of queue

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _error_response(error: OverlayError, logs: list[str]) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content=ErrorResponse(error=error.message, logs=logs).model_dump(),
    )


def _overlay_size(result: OverlayResult) -> ImageSize | None:
    if result.overlay_size is None:
        return None
    return ImageSize(w=result.overlay_size[0], h=result.overlay_size[1])


def _stream_result(result: OverlayResult) -> StreamResultData:
    return StreamResultData(
        overlay_png_base64=result.data_url,
        overlay_size=_overlay_size(result),
        placement=result.placement,
        confidence=result.confidence,
        warnings=result.warnings,
        logs=result.logs,
    )


@router.post("/generate", response_model=GenerateResponse, responses=_ERROR_RESPONSES)
async def generate(
    req: GenerateRequest,
    orchestrator: OverlayOrchestrator = Depends(get_orchestrator),
) -> GenerateResponse | JSONResponse:
    job = OverlayJob(
        image=req.image or "",
        instruction=resolve_instruction(req.prompt, req.template),
        image_size=req.image_size,
        anchor=req.anchor,
    )
    reporter = ProgressReporter()
    try:
        result = await orchestrator.run(job, reporter)
    except OverlayError as e:
        return _error_response(e, reporter.lines)

    return GenerateResponse(
        **_stream_result(result).model_dump(),
        why=result.why,
        assumptions=result.assumptions,
    )


async def _stream_generate(
    orchestrator: OverlayOrchestrator,
    job: OverlayJob,
) -> AsyncGenerator[str, None]:
    """Run the orchestrator as a task, yielding NDJSON records as they arrive.

    Exactly one terminal record (result or error) follows all log records.
    Closing the generator early marks the reporter cancelled; the pipeline
    stops at its next stage boundary.
    """
    queue: asyncio.Queue = asyncio.Queue()
    reporter = ProgressReporter(sink=lambda line: queue.put_nowait({"type": "log", "message": line}))

    async def _produce() -> None:
        try:
            result = await orchestrator.run(job, reporter)
            queue.put_nowait({"type": "result", "data": _stream_result(result).model_dump()})
        except OverlayError as e:
            queue.put_nowait({"type": "error", "error": e.message, "logs": list(reporter.lines)})
        finally:
            queue.put_nowait(_SENTINEL)

    # Held so the producer task is not garbage collected mid-run
    task = asyncio.create_task(_produce())
    try:
        while True:
            item = await queue.get()
            if item is _SENTINEL:
                break
            yield json.dumps(item, ensure_ascii=False) + "\n"
    finally:
        reporter.cancel()


@router.post("/generate/stream", response_model=None, responses=_ERROR_RESPONSES)
async def generate_stream(
    req: StreamGenerateRequest,
    orchestrator: OverlayOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse | JSONResponse:
    job = OverlayJob(
        image=req.image or "",
        instruction=resolve_instruction(req.prompt, req.template),
        image_size=req.image_size,
    )

    # Bad input and missing credentials are answered before the stream opens
    try:
        orchestrator.validate(job)
    except OverlayError as e:
        reporter = ProgressReporter()
        reporter.log(e.message)
        return _error_response(e, reporter.lines)

    return StreamingResponse(
        _stream_generate(orchestrator, job),
        media_type="application/x-ndjson; charset=utf-8",
        headers={
            "Cache-Control": "no-store",
            "X-Accel-Buffering": "no",
        },
    )
