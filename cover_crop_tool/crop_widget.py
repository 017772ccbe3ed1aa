"""
Interactive cover-crop widget and Qt image helpers.

This module contains everything that touches both Qt **and** image display:
``pil_to_qpixmap``, the background ``ImageLoaderThread``, and the
``CoverCropWidget`` editor.  All geometry lives in ``CropSession``; the widget
only forwards input to it and paints the state it holds.
"""

from pathlib import Path

from PIL import Image
from PyQt6.QtWidgets import QWidget, QSizePolicy
from PyQt6.QtCore import Qt, QRectF, QPointF, pyqtSignal, QThread
from PyQt6.QtGui import (
    QPainter, QPixmap, QColor, QPen, QImage,
    QKeyEvent, QMouseEvent, QPaintEvent, QWheelEvent,
)

from cover_crop_tool.config import BACKGROUND_DEFAULT, CROP_SIZE, NUDGE_LARGE, NUDGE_SMALL, WHEEL_ZOOM_STEP
from cover_crop_tool.image_io import SourceImage, open_source
from cover_crop_tool.models import Point
from cover_crop_tool.session import CropSession


# =============================================================================
# Qt ↔ PIL helpers
# =============================================================================

def pil_to_qpixmap(pil_img: Image.Image) -> QPixmap:
    """Convert a PIL Image to QPixmap."""
    img_rgb = pil_img.convert("RGBA")
    data = img_rgb.tobytes("raw", "RGBA")
    qimg = QImage(data, img_rgb.width, img_rgb.height, QImage.Format.Format_RGBA8888)
    return QPixmap.fromImage(qimg)


# =============================================================================
# Background image loader
# =============================================================================

class ImageLoaderThread(QThread):
    """Background thread for decoding source images (especially large PSDs)."""
    finished = pyqtSignal(object)  # SourceImage
    error = pyqtSignal(str)

    def __init__(self, path: Path, parent=None):
        super().__init__(parent)
        self._path = path

    def run(self):
        try:
            self.finished.emit(open_source(self._path))
        except Exception as e:
            self.error.emit(str(e))


# =============================================================================
# Cover Crop Widget — pan/zoom an image inside a fixed square viewport
# =============================================================================

class CoverCropWidget(QWidget):
    """Fixed-size square viewport showing the source at the session's offset and scale."""

    crop_changed = pyqtSignal()

    def __init__(self, viewport: int = CROP_SIZE, parent=None):
        super().__init__(parent)
        self.setFixedSize(viewport, viewport)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setSizePolicy(QSizePolicy.Policy.Fixed, QSizePolicy.Policy.Fixed)
        self.setCursor(Qt.CursorShape.OpenHandCursor)

        self._viewport = viewport
        self._session = CropSession(viewport)
        self._pixmap: QPixmap | None = None
        self._background = QColor(BACKGROUND_DEFAULT)
        self._loading = False

    @property
    def session(self) -> CropSession:
        return self._session

    def set_loading(self, loading: bool):
        """Show/hide loading indicator."""
        self._loading = loading
        self.update()

    def set_background(self, color: str):
        self._background = QColor(color)
        self.update()

    def set_source(self, source: SourceImage) -> CropSession:
        """Start a new session for *source*; the previous session is discarded."""
        self._loading = False
        self._session = CropSession(self._viewport)
        self._session.load(source)
        self._pixmap = pil_to_qpixmap(source.image)
        self.crop_changed.emit()
        self.update()
        return self._session

    def has_image(self) -> bool:
        """Return True if an image is loaded and ready for crop operations."""
        return self._pixmap is not None and self._session.is_active

    def clear(self):
        self._session.cancel()
        self._session = CropSession(self._viewport)
        self._pixmap = None
        self.update()

    def set_zoom(self, zoom: float):
        if self._session.set_zoom(zoom) is not None:
            self.crop_changed.emit()
            self.update()

    def recenter(self):
        self._session.recenter()
        self.crop_changed.emit()
        self.update()

    # --- Painting ---

    def paintEvent(self, event: QPaintEvent):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)

        state = self._session.state
        if not self._pixmap or state is None:
            painter.fillRect(self.rect(), QColor(30, 30, 30))
            painter.setPen(QColor(128, 128, 128))
            msg = "Loading image…" if self._loading else "No image loaded"
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, msg)
            painter.end()
            return

        painter.fillRect(self.rect(), self._background)

        # Draw image exactly where the rasterizer will
        sw, sh = state.scaled_size
        dest = QRectF(state.offset.x, state.offset.y, sw, sh)
        painter.drawPixmap(dest, self._pixmap, QRectF(self._pixmap.rect()))

        # Draw rule-of-thirds lines
        size = float(self._viewport)
        pen_thirds = QPen(QColor(255, 255, 255, 80), 1, Qt.PenStyle.DashLine)
        painter.setPen(pen_thirds)
        for i in range(1, 3):
            p = size * i / 3
            painter.drawLine(QPointF(p, 0), QPointF(p, size))
            painter.drawLine(QPointF(0, p), QPointF(size, p))

        # Draw zoom label
        painter.setPen(QColor(255, 255, 255))
        painter.drawText(
            self.rect().adjusted(0, 0, -6, -4),
            Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignBottom,
            f"{state.zoom:.1f}×",
        )

        painter.end()

    # --- Mouse interaction ---

    def mousePressEvent(self, event: QMouseEvent):
        if event.button() != Qt.MouseButton.LeftButton or not self.has_image():
            return
        pos = event.position()
        self._session.begin_drag(Point(pos.x(), pos.y()))
        self.setCursor(Qt.CursorShape.ClosedHandCursor)

    def mouseMoveEvent(self, event: QMouseEvent):
        state = self._session.state
        if state is None or not state.dragging:
            return
        pos = event.position()
        self._session.update_drag(Point(pos.x(), pos.y()))
        self.crop_changed.emit()
        self.update()

    def mouseReleaseEvent(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton:
            self._session.end_drag()
            self.setCursor(Qt.CursorShape.OpenHandCursor)

    def leaveEvent(self, event):
        self._session.end_drag()
        self.setCursor(Qt.CursorShape.OpenHandCursor)
        super().leaveEvent(event)

    def wheelEvent(self, event: QWheelEvent):
        notches = event.angleDelta().y() / 120
        if notches and self._session.zoom_by(notches * WHEEL_ZOOM_STEP) is not None:
            self.crop_changed.emit()
            self.update()

    # --- Keyboard nudge ---

    def keyPressEvent(self, event: QKeyEvent):
        if not self.has_image():
            return
        amount = NUDGE_LARGE if event.modifiers() & Qt.KeyboardModifier.ShiftModifier else NUDGE_SMALL
        # Arrow keys move the visible window, so the image moves the other way
        deltas = {
            Qt.Key.Key_Left: (amount, 0),
            Qt.Key.Key_Right: (-amount, 0),
            Qt.Key.Key_Up: (0, amount),
            Qt.Key.Key_Down: (0, -amount),
        }
        delta = deltas.get(event.key())
        if delta is None:
            super().keyPressEvent(event)
            return
        self._session.nudge(*delta)
        self.crop_changed.emit()
        self.update()
