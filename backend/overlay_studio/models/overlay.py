"""Shared geometry models: image size, placement, anchor."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ImageSize(BaseModel):
    w: int = Field(..., description="Width in pixels")
    h: int = Field(..., description="Height in pixels")

    @property
    def is_positive(self) -> bool:
        return self.w > 0 and self.h > 0


class Placement(BaseModel):
    """Overlay transform in base-image pixel space (top-left origin)."""

    x: float = Field(0.0, description="Left edge of the overlay")
    y: float = Field(0.0, description="Top edge of the overlay")
    width: float = Field(..., description="Rendered overlay width")
    height: float = Field(..., description="Rendered overlay height")
    rotation: float = Field(0.0, description="Degrees, clockwise positive, in (-180, 180]")


class PlacementUpdate(BaseModel):
    """Partial placement used for free-form edits."""

    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None
    rotation: float | None = None


class Anchor(BaseModel):
    x: float
    y: float
