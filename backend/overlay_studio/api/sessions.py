"""/api/sessions — post-generation placement editing and composite export."""

from __future__ import annotations

import binascii
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from PIL import Image

from overlay_studio.config import Settings
from overlay_studio.dependencies import get_session_store, get_settings
from overlay_studio.engine.session import EditingSession, ImageAsset, SessionStore
from overlay_studio.models.overlay import ImageSize
from overlay_studio.models.requests import CreateSessionRequest, OverlayPayload, PlacementPatchRequest
from overlay_studio.models.responses import ErrorResponse, ExportResponse, SessionResponse
from overlay_studio.utils.image_io import decode_image_payload, to_data_url

router = APIRouter(prefix="/sessions")
logger = logging.getLogger(__name__)

_NOT_FOUND = {404: {"model": ErrorResponse}}


def _not_found(session_id: str) -> JSONResponse:
    return JSONResponse(status_code=404, content=ErrorResponse(error=f"Unknown session: {session_id}").model_dump())


def _bad_image(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content=ErrorResponse(error=message).model_dump())


def _asset(image: str) -> ImageAsset:
    data, mime = decode_image_payload(image)
    return ImageAsset(data=data, mime_type=mime)


def _state(session: EditingSession) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        image_size=session.image_size,
        placement=session.transform.placement,
        defaults=session.transform.defaults,
        is_valid=session.transform.is_valid,
    )


@router.post("", response_model=SessionResponse, responses={400: {"model": ErrorResponse}})
async def create_session(
    req: CreateSessionRequest,
    store: SessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
) -> SessionResponse | JSONResponse:
    if not req.image_size.is_positive:
        return _bad_image("imageSize must be positive")
    limit = settings.max_image_side
    if req.image_size.w > limit or req.image_size.h > limit:
        return _bad_image(f"imageSize must be at most {limit}x{limit}")
    try:
        base = _asset(req.image)
        overlay = _asset(req.overlay.overlay_png_base64)
    except (binascii.Error, ValueError) as e:
        return _bad_image(f"Invalid image payload: {e}")

    session = store.add(EditingSession.start(base, req.image_size, overlay, req.overlay.placement))
    logger.info("Started editing session %s", session.id)
    return _state(session)


@router.get("/{session_id}", response_model=SessionResponse, responses=_NOT_FOUND)
async def get_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> SessionResponse | JSONResponse:
    session = store.get(session_id)
    if session is None:
        return _not_found(session_id)
    return _state(session)


@router.patch("/{session_id}/placement", response_model=SessionResponse, responses=_NOT_FOUND)
async def patch_placement(
    session_id: str,
    req: PlacementPatchRequest,
    store: SessionStore = Depends(get_session_store),
) -> SessionResponse | JSONResponse:
    session = store.get(session_id)
    if session is None:
        return _not_found(session_id)
    session.transform.update(req)
    return _state(session)


@router.post("/{session_id}/center", response_model=SessionResponse, responses=_NOT_FOUND)
async def center_overlay(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> SessionResponse | JSONResponse:
    session = store.get(session_id)
    if session is None:
        return _not_found(session_id)
    session.transform.center()
    return _state(session)


@router.post("/{session_id}/reset-rotation", response_model=SessionResponse, responses=_NOT_FOUND)
async def reset_rotation(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> SessionResponse | JSONResponse:
    session = store.get(session_id)
    if session is None:
        return _not_found(session_id)
    session.transform.reset_rotation()
    return _state(session)


@router.post("/{session_id}/reset", response_model=SessionResponse, responses=_NOT_FOUND)
async def reset_placement(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> SessionResponse | JSONResponse:
    session = store.get(session_id)
    if session is None:
        return _not_found(session_id)
    session.transform.reset_all()
    return _state(session)


@router.put("/{session_id}/overlay", response_model=SessionResponse, responses=_NOT_FOUND)
async def replace_overlay(
    session_id: str,
    req: OverlayPayload,
    store: SessionStore = Depends(get_session_store),
) -> SessionResponse | JSONResponse:
    session = store.get(session_id)
    if session is None:
        return _not_found(session_id)
    try:
        overlay = _asset(req.overlay_png_base64)
    except (binascii.Error, ValueError) as e:
        return _bad_image(f"Invalid image payload: {e}")
    session.replace_overlay(overlay, req.placement)
    return _state(session)


@router.post("/{session_id}/export", response_model=ExportResponse, responses=_NOT_FOUND)
async def export_composite(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
) -> ExportResponse | JSONResponse:
    session = store.get(session_id)
    if session is None:
        return _not_found(session_id)
    try:
        png = session.export(max_side=settings.max_image_side)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        # Pillow raises UnidentifiedImageError (an OSError) for undecodable assets
        return _bad_image(f"Could not composite images: {e}")
    return ExportResponse(
        image=to_data_url(png, "image/png"),
        size=ImageSize(w=session.image_size.w, h=session.image_size.h),
    )


@router.delete("/{session_id}", response_model=None, responses=_NOT_FOUND)
async def delete_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> dict[str, str] | JSONResponse:
    if not store.remove(session_id):
        return _not_found(session_id)
    return {"status": "deleted"}
