"""
Brush controls module for FlowTrails.

Turns a stream of cursor samples from whatever input layer the host uses into
brush edits on the flow field. One call to drag_to() is one brush
application.
"""

import logging
from enum import Enum

import numpy as np

from .. import config

logger = logging.getLogger(__name__)


class BrushMode(Enum):
    FLOW = 0      # vectors point in drag direction
    SWIRL = 1     # vectors rotate around cursor
    ATTRACT = 2   # vectors point toward cursor
    REPEL = 3     # vectors point away from cursor


class BrushController:
    """
    Paints on a FlowFieldGrid from cursor drag samples.

    Args:
        field (FlowFieldGrid): The flow field to paint on
        mode (BrushMode): Initial brush mode
        size (float): Brush radius in world units
        strength (float): Blend strength at the brush centre
    """

    def __init__(self, field, mode=BrushMode.FLOW, size=config.DEFAULT_BRUSH_SIZE,
                 strength=config.DEFAULT_BRUSH_STRENGTH):
        if field is None:
            raise ValueError("BrushController: No FlowField assigned!")
        self.field = field
        self.mode = BrushMode.FLOW
        self.set_mode(mode)
        self._size = config.DEFAULT_BRUSH_SIZE
        self._strength = config.DEFAULT_BRUSH_STRENGTH
        self.size = size
        self.strength = strength

        self.last_point = None
        self.is_dragging = False

    @property
    def size(self):
        return self._size

    @size.setter
    def size(self, value):
        lo, hi = config.BRUSH_SIZE_RANGE
        self._size = float(np.clip(value, lo, hi))

    @property
    def strength(self):
        return self._strength

    @strength.setter
    def strength(self, value):
        lo, hi = config.BRUSH_STRENGTH_RANGE
        self._strength = float(np.clip(value, lo, hi))

    def set_mode(self, mode):
        """Select the brush by BrushMode, index (0-3) or case-insensitive name."""
        if isinstance(mode, BrushMode):
            self.mode = mode
        elif isinstance(mode, str):
            try:
                self.mode = BrushMode[mode.upper()]
            except KeyError:
                raise ValueError(f"Unknown brush mode '{mode}'") from None
        else:
            self.mode = BrushMode(int(mode))
        logger.info("Brush mode: %s", self.mode.name)

    def begin_stroke(self, point):
        self.is_dragging = True
        self.last_point = np.asarray(point, dtype=float)

    def end_stroke(self):
        self.is_dragging = False
        self.last_point = None

    def drag_to(self, point):
        """
        Apply the current brush at `point`.

        Returns:
            int: Number of cells edited (0 when not dragging, or when a flow
            stroke has not moved far enough to define a direction)
        """
        if not self.is_dragging:
            return 0
        point = np.asarray(point, dtype=float)
        drag = point - self.last_point
        self.last_point = point

        if self.mode is BrushMode.FLOW:
            # skip if not moving (prevents zero-length directions)
            if np.linalg.norm(drag) < config.MIN_DRAG_DISTANCE:
                return 0
            return self.field.apply_brush(point, self.size, drag, self.strength)
        if self.mode is BrushMode.SWIRL:
            return self.field.apply_swirl_brush(point, self.size, self.strength)
        return self.field.apply_radial_brush(point, self.size, self.strength,
                                             outward=self.mode is BrushMode.REPEL)
