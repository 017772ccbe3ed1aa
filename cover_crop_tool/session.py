"""
Interactive crop session (Qt-free).

``CropSession`` owns the ``CropState`` for one source image and turns pointer,
wheel, keyboard and slider input into offset/zoom updates.  Every offset it
stores has passed through ``clamp_offset``, so the viewport never shows area
outside the scaled image.  Drag offsets are recomputed from the anchor on each
move rather than accumulated, so replaying intermediate pointer positions
cannot drift the result.

Lifecycle::

    IDLE -> LOADED -> INTERACTING -> COMMITTED
                                  -> CANCELLED

Input on a session that is not loaded (or already finished) is ignored; UI
event order is not guaranteed.  ``commit`` on such a session raises
``SessionStateError``.
"""

import logging
from enum import Enum

from cover_crop_tool.config import CROP_SIZE, DEFAULT_SETTINGS, ZOOM_MIN
from cover_crop_tool.encoder import encode_with_budget
from cover_crop_tool.image_io import SourceImage
from cover_crop_tool.models import (
    CropState, EncodedResult, NaturalSize, Point,
    centered_offset, clamp_offset, clamp_zoom, compute_base_scale,
)
from cover_crop_tool.raster import render

logger = logging.getLogger(__name__)


class SessionStateError(RuntimeError):
    """Raised when committing a session that has no image or has already finished."""


class SessionPhase(Enum):
    IDLE = "idle"
    LOADED = "loaded"
    INTERACTING = "interacting"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


_ACTIVE_PHASES = (SessionPhase.LOADED, SessionPhase.INTERACTING)
_TERMINAL_PHASES = (SessionPhase.COMMITTED, SessionPhase.CANCELLED)


def apply_zoom(new_zoom: float, natural: NaturalSize, viewport: int, current_offset: Point) -> tuple[float, Point]:
    """Clamp *new_zoom* and re-clamp *current_offset* against the resulting scale."""
    zoom = clamp_zoom(new_zoom)
    scale = compute_base_scale(natural, viewport) * zoom
    return zoom, clamp_offset(natural, scale, viewport, current_offset)


class CropSession:
    """Pan/zoom controller for cropping one source image into a square cover."""

    def __init__(self, viewport: int = CROP_SIZE):
        self.viewport = viewport
        self.phase = SessionPhase.IDLE
        self.source: SourceImage | None = None
        self.state: CropState | None = None

    # --- Lifecycle ---

    @property
    def is_active(self) -> bool:
        """True while the session has an image and accepts input."""
        return self.phase in _ACTIVE_PHASES

    def load(self, source: SourceImage) -> CropState:
        """Attach a decoded source and compute the initial, centered crop.

        A fresh CropState is built on every call; state computed for a
        previous source is never reused.
        """
        if self.phase in _TERMINAL_PHASES:
            raise SessionStateError(f"cannot load into a {self.phase.value} session")
        base = compute_base_scale(source.size, self.viewport)
        self.source = source
        self.state = CropState(
            natural=source.size,
            viewport=self.viewport,
            base_scale=base,
            zoom=ZOOM_MIN,
            offset=clamp_offset(
                source.size, base, self.viewport,
                centered_offset(source.size, base, self.viewport),
            ),
        )
        self.phase = SessionPhase.LOADED
        logger.debug(
            "Session loaded %dx%d source (base scale %.4f)",
            source.size.w, source.size.h, base,
        )
        return self.state

    def restore(self, zoom: float, offset: Point) -> None:
        """Re-apply a previously saved zoom and offset, clamped to the current bounds."""
        if not self.is_active:
            return
        self.state.zoom, self.state.offset = apply_zoom(zoom, self.state.natural, self.viewport, offset)

    def cancel(self) -> None:
        """Discard the session.  Terminal."""
        self.state = None
        self.source = None
        self.phase = SessionPhase.CANCELLED

    def commit(self, settings: dict | None = None) -> EncodedResult:
        """Render and encode the current crop.  Terminal; runs once per session.

        *settings* uses the keys of ``config.DEFAULT_SETTINGS``; missing keys
        fall back to the defaults.
        """
        if not self.is_active:
            raise SessionStateError(f"cannot commit a {self.phase.value} session")
        opts = dict(DEFAULT_SETTINGS)
        if settings:
            opts.update(settings)

        self.end_drag()
        raster = render(self.source, self.state, background=opts["background"])
        result = encode_with_budget(
            raster,
            max_bytes=opts["max_bytes"],
            min_quality=opts["min_quality"],
            step=opts["quality_step"],
            fmt=opts["format"],
            jpeg_subsampling=opts["jpeg_subsampling"],
        )
        self.phase = SessionPhase.COMMITTED
        logger.debug(
            "Session committed: %d bytes %s at quality %.2f after %d attempt(s)",
            result.size, result.mime_type, result.quality, result.attempts,
        )
        return result

    # --- Drag ---

    def begin_drag(self, pointer: Point) -> None:
        if not self.is_active:
            return
        self.state.drag_anchor = pointer - self.state.offset
        self.phase = SessionPhase.INTERACTING

    def update_drag(self, pointer: Point) -> Point | None:
        """Move the image so it follows *pointer*; returns the stored offset.

        Returns the unchanged offset when no drag is in progress, and None
        when no image is loaded.
        """
        if not self.is_active:
            return None
        state = self.state
        if state.drag_anchor is None:
            return state.offset
        proposed = pointer - state.drag_anchor
        state.offset = clamp_offset(state.natural, state.effective_scale, self.viewport, proposed)
        return state.offset

    def end_drag(self) -> None:
        if self.state is not None:
            self.state.drag_anchor = None

    # --- Zoom / nudge ---

    def set_zoom(self, zoom: float) -> tuple[float, Point] | None:
        """Set the zoom multiplier; the current offset is re-clamped to the new scale."""
        if not self.is_active:
            return None
        state = self.state
        state.zoom, state.offset = apply_zoom(zoom, state.natural, self.viewport, state.offset)
        self.phase = SessionPhase.INTERACTING
        return state.zoom, state.offset

    def zoom_by(self, delta: float) -> tuple[float, Point] | None:
        if not self.is_active:
            return None
        return self.set_zoom(self.state.zoom + delta)

    def nudge(self, dx: float, dy: float) -> Point | None:
        """Pan by a fixed amount (keyboard arrows)."""
        if not self.is_active:
            return None
        state = self.state
        state.offset = clamp_offset(
            state.natural, state.effective_scale, self.viewport, state.offset + Point(dx, dy),
        )
        self.phase = SessionPhase.INTERACTING
        return state.offset

    def recenter(self) -> None:
        """Reset zoom to 1 and center the image."""
        if not self.is_active:
            return
        self.end_drag()
        state = self.state
        state.zoom = ZOOM_MIN
        state.offset = clamp_offset(
            state.natural, state.base_scale, self.viewport,
            centered_offset(state.natural, state.base_scale, self.viewport),
        )
        self.phase = SessionPhase.INTERACTING
