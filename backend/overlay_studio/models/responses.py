"""API response models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from overlay_studio.models.overlay import ImageSize, Placement


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"


class ErrorResponse(BaseModel):
    error: str
    logs: list[str] = Field(default_factory=list)


class StreamResultData(BaseModel):
    overlay_png_base64: str
    overlay_size: ImageSize | None = None
    placement: Placement
    confidence: float = 0.0
    warnings: list[str] = Field(default_factory=list)
    logs: list[str] = Field(default_factory=list)


class GenerateResponse(StreamResultData):
    why: str = ""
    assumptions: str = ""


class SessionResponse(BaseModel):
    id: str
    image_size: ImageSize
    placement: Placement
    defaults: Placement
    is_valid: bool = True


class ExportResponse(BaseModel):
    image: str = Field(..., description="Composited PNG as a data URL")
    size: ImageSize
