"""
Data models and crop-geometry utilities.

CropState and the small value types below are the core data structures shared
across the UI, the rasterizer and the export worker.  The geometry helpers are
pure functions: ``compute_base_scale`` picks the cover scale, ``centered_offset``
gives the initial placement, and ``clamp_offset`` is the single place where an
offset is forced back inside the viewport-coverage bounds.

Coordinates are in viewport pixels.  ``offset`` is the position of the scaled
image's top-left corner relative to the viewport's top-left corner, so it is
always ``<= 0`` on both axes.
"""

from dataclasses import dataclass, field

from cover_crop_tool.config import CROP_SIZE, ZOOM_MAX, ZOOM_MIN


# Scaled sizes within this many pixels of the viewport count as an exact fit
_SCALE_SLACK = 1e-9


class InvalidDimensionsError(ValueError):
    """Raised when an image or viewport has a non-positive dimension."""


# =============================================================================
# Data classes
# =============================================================================
@dataclass(frozen=True)
class Point:
    """2D point or offset in viewport coordinates."""
    x: float = 0.0
    y: float = 0.0

    def __sub__(self, other: "Point") -> "Point":
        return Point(self.x - other.x, self.y - other.y)

    def __add__(self, other: "Point") -> "Point":
        return Point(self.x + other.x, self.y + other.y)


@dataclass(frozen=True)
class NaturalSize:
    """Natural pixel dimensions of a decoded source image."""
    w: int
    h: int


@dataclass
class CropState:
    """Pan/zoom state for one crop session."""
    natural: NaturalSize
    viewport: int = CROP_SIZE
    base_scale: float = 1.0
    zoom: float = ZOOM_MIN
    offset: Point = field(default_factory=Point)
    drag_anchor: Point | None = None  # only set while dragging

    @property
    def effective_scale(self) -> float:
        return self.base_scale * self.zoom

    @property
    def scaled_size(self) -> tuple[float, float]:
        """Size of the source in viewport pixels at the current scale."""
        s = self.effective_scale
        return self.natural.w * s, self.natural.h * s

    @property
    def dragging(self) -> bool:
        return self.drag_anchor is not None


@dataclass(frozen=True)
class EncodedResult:
    """Encoded cover bytes plus the MIME type of the encoder that produced them."""
    data: bytes
    mime_type: str
    quality: float
    attempts: int = 1

    @property
    def size(self) -> int:
        return len(self.data)


# =============================================================================
# Crop math utilities
# =============================================================================
def _check_dimensions(natural: NaturalSize, viewport: int) -> None:
    if natural.w <= 0 or natural.h <= 0:
        raise InvalidDimensionsError(
            f"image dimensions must be positive, got {natural.w}x{natural.h}"
        )
    if viewport <= 0:
        raise InvalidDimensionsError(f"viewport must be positive, got {viewport}")


def compute_base_scale(natural: NaturalSize, viewport: int) -> float:
    """Smallest scale at which the image fully covers the square viewport."""
    _check_dimensions(natural, viewport)
    return max(viewport / natural.w, viewport / natural.h)


def centered_offset(natural: NaturalSize, base_scale: float, viewport: int) -> Point:
    """Offset that centers the scaled image in the viewport."""
    return Point(
        (viewport - natural.w * base_scale) / 2,
        (viewport - natural.h * base_scale) / 2,
    )


def _clamp_axis(proposed: float, scaled: float, viewport: int) -> float:
    # No drag room on this axis (scaled size equals the viewport up to float slack)
    if scaled - viewport <= _SCALE_SLACK:
        return 0.0
    return min(max(proposed, viewport - scaled), 0.0)


def clamp_offset(natural: NaturalSize, effective_scale: float, viewport: int, proposed: Point) -> Point:
    """Clamp an offset so the scaled image still covers the whole viewport."""
    return Point(
        _clamp_axis(proposed.x, natural.w * effective_scale, viewport),
        _clamp_axis(proposed.y, natural.h * effective_scale, viewport),
    )


def clamp_zoom(zoom: float) -> float:
    """Clamp a zoom multiplier to [ZOOM_MIN, ZOOM_MAX]."""
    return max(ZOOM_MIN, min(zoom, ZOOM_MAX))


def display_to_source(point: Point, state: CropState) -> Point:
    """Map a viewport point to source-image pixel coordinates."""
    s = state.effective_scale
    return Point((point.x - state.offset.x) / s, (point.y - state.offset.y) / s)


def source_to_display(point: Point, state: CropState) -> Point:
    """Map a source-image pixel coordinate to the viewport."""
    s = state.effective_scale
    return Point(point.x * s + state.offset.x, point.y * s + state.offset.y)


def visible_source_box(state: CropState) -> tuple[float, float, float, float]:
    """Return the ``(left, top, right, bottom)`` source rectangle shown in the viewport."""
    tl = display_to_source(Point(0, 0), state)
    br = display_to_source(Point(state.viewport, state.viewport), state)
    return tl.x, tl.y, br.x, br.y
