"""Editing sessions: post-generation state kept in process memory.

A session owns one base image, one overlay and the PlacementTransform the
user edits. Nothing here is persisted; the store belongs to one application
instance and evicts the oldest session when full.
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field

from overlay_studio.engine.composite import DEFAULT_MAX_SIDE, composite
from overlay_studio.engine.transform import PlacementTransform
from overlay_studio.models.overlay import ImageSize, Placement

logger = logging.getLogger(__name__)


@dataclass
class ImageAsset:
    data: bytes
    mime_type: str = "image/png"


@dataclass
class EditingSession:
    base: ImageAsset
    overlay: ImageAsset
    transform: PlacementTransform
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def start(
        cls,
        base: ImageAsset,
        image_size: ImageSize,
        overlay: ImageAsset,
        placement: Placement,
    ) -> "EditingSession":
        transform = PlacementTransform(image_size, placement=placement, defaults=placement)
        return cls(base=base, overlay=overlay, transform=transform)

    @property
    def image_size(self) -> ImageSize:
        return self.transform.image_size

    def replace_overlay(self, overlay: ImageAsset, placement: Placement) -> Placement:
        """A new generation replaces the overlay and re-seeds the placement."""
        self.overlay = overlay
        return self.transform.reseed(placement)

    def export(self, max_side: int = DEFAULT_MAX_SIDE) -> bytes:
        return composite(
            self.base.data,
            self.overlay.data,
            self.transform.placement,
            self.image_size,
            max_side=max_side,
        )


class SessionStore:
    """Bounded in-memory session registry, oldest evicted first."""

    def __init__(self, max_sessions: int = 64) -> None:
        self.max_sessions = max(1, max_sessions)
        self._sessions: OrderedDict[str, EditingSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def add(self, session: EditingSession) -> EditingSession:
        self._sessions[session.id] = session
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("Evicted editing session %s", evicted)
        return session

    def get(self, session_id: str) -> EditingSession | None:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None
