"""API request models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from overlay_studio.llm.instruction import InstructionTemplate
from overlay_studio.models.overlay import Anchor, ImageSize, Placement, PlacementUpdate


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image: str | None = Field(default=None, description="Base image as a data URL or bare base64")
    prompt: str | None = Field(default=None, description="Edit instruction, e.g. 'add a christmas hat'")
    template: InstructionTemplate | None = Field(
        default=None,
        description="Item/position/style fields used when prompt is empty",
    )
    image_size: ImageSize | None = Field(
        default=None,
        alias="imageSize",
        description="Base image pixel size (defaults to 512x512)",
    )
    anchor: Anchor | None = Field(default=None, description="Optional placement hint")


class StreamGenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image: str | None = Field(default=None, description="Base image as a data URL or bare base64")
    prompt: str | None = Field(default=None, description="Edit instruction")
    template: InstructionTemplate | None = None
    image_size: ImageSize | None = Field(default=None, alias="imageSize")


class OverlayPayload(BaseModel):
    overlay_png_base64: str = Field(..., description="Overlay image as a data URL")
    placement: Placement


class CreateSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image: str = Field(..., description="Base image as a data URL or bare base64")
    image_size: ImageSize = Field(..., alias="imageSize")
    overlay: OverlayPayload


class PlacementPatchRequest(PlacementUpdate):
    pass
