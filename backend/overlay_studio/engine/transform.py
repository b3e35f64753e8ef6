"""PlacementTransform: the editable placement owned by one editing session.

After generation the user may move, resize and rotate the overlay freely, so
none of these operations re-clamp to the image bounds.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from overlay_studio.engine import geometry
from overlay_studio.models.overlay import ImageSize, Placement, PlacementUpdate

logger = logging.getLogger(__name__)


class PlacementTransform:
    """Mutable placement state plus the defaults ``reset_all`` returns to."""

    def __init__(
        self,
        image_size: ImageSize,
        placement: Placement | None = None,
        defaults: Placement | None = None,
    ) -> None:
        self.image_size = image_size
        self.defaults = (defaults or geometry.DEFAULT_PLACEMENT).model_copy()
        self._placement = (placement or self.defaults).model_copy()

    @property
    def placement(self) -> Placement:
        return self._placement.model_copy()

    @property
    def is_valid(self) -> bool:
        return geometry.is_valid(self._placement)

    def set(self, placement: Placement) -> Placement:
        self._placement = placement.model_copy()
        return self.placement

    def update(self, updates: PlacementUpdate | Mapping[str, Any]) -> Placement:
        self._placement = geometry.patch(self._placement, updates)
        logger.debug("Placement updated: %s", self._placement)
        return self.placement

    def center(self) -> Placement:
        self._placement = geometry.center(self._placement, self.image_size)
        return self.placement

    def reset_rotation(self) -> Placement:
        self._placement = geometry.reset_rotation(self._placement)
        return self.placement

    def reset_all(self) -> Placement:
        self._placement = geometry.reset_all(self.defaults)
        return self.placement

    def reseed(self, placement: Placement) -> Placement:
        """A new generation replaces both the state and the reset target."""
        self.defaults = placement.model_copy()
        return self.set(placement)
