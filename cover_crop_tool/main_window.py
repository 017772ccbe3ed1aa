"""
Main application window.

Orchestrates source loading, the interactive cover crop, export settings,
and single or batch export via parallel workers.
"""

import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
    QListWidget, QListWidgetItem, QPushButton, QLabel, QFileDialog,
    QSplitter, QGroupBox, QMessageBox, QProgressDialog, QStatusBar,
    QToolBar, QComboBox, QSpinBox, QSlider, QApplication, QColorDialog,
)
from PyQt6.QtCore import Qt
from PyQt6.QtGui import QAction, QColor, QKeySequence, QShortcut

from cover_crop_tool.config import (
    IMAGE_EXTENSIONS, OUTPUT_FORMATS, JPEG_SUBSAMPLING_OPTIONS,
    ZOOM_MIN, ZOOM_MAX, ZOOM_STEP,
)
from cover_crop_tool.crop_cache import load_crop_cache, save_crop_cache, lookup_crop, store_crop
from cover_crop_tool.crop_widget import CoverCropWidget, ImageLoaderThread
from cover_crop_tool.image_io import SourceImage, compute_fingerprint, get_image_size, write_result
from cover_crop_tool.models import InvalidDimensionsError, visible_source_box
from cover_crop_tool.session import SessionStateError
from cover_crop_tool.settings import load_settings, save_settings
from cover_crop_tool.worker import process_worker

# Zoom slider works in integer steps of ZOOM_STEP
_ZOOM_TICKS = round(1 / ZOOM_STEP)


@dataclass
class ImageEntry:
    """One source file in the image list."""
    path: Path
    img_w: int
    img_h: int
    fingerprint: str = ""


class MainWindow(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle("Cover Crop Tool")
        self.setMinimumSize(900, 560)

        self._settings = load_settings()
        self._entries: list[ImageEntry] = []
        self._current_index = -1
        self._current_source: SourceImage | None = None
        self._output_root: Path | None = None
        self._loader: ImageLoaderThread | None = None
        self._crop_cache: dict = load_crop_cache()

        self._build_ui()
        self._update_button_states()

    # =========================================================================
    # UI construction
    # =========================================================================

    def _build_ui(self):
        self._build_toolbar()

        central = QWidget()
        self.setCentralWidget(central)
        main_layout = QHBoxLayout(central)
        main_layout.setContentsMargins(4, 4, 4, 4)

        splitter = QSplitter(Qt.Orientation.Horizontal)
        main_layout.addWidget(splitter)

        splitter.addWidget(self._build_left_panel())
        splitter.addWidget(self._build_center_panel())
        splitter.addWidget(self._build_right_panel())
        splitter.setSizes([220, 520, 240])

        self._status = QStatusBar()
        self.setStatusBar(self._status)
        self._status.showMessage("Open one or more images to begin.")

        # --- Keyboard Shortcuts ---
        QShortcut(QKeySequence(Qt.Key.Key_PageDown), self, self._next_image)
        QShortcut(QKeySequence(Qt.Key.Key_PageUp), self, self._prev_image)
        QShortcut(QKeySequence(Qt.Key.Key_C), self, self._recenter)
        QShortcut(QKeySequence(Qt.Key.Key_Return), self, self._apply_current)
        QShortcut(QKeySequence(Qt.Key.Key_Escape), self, self._cancel_current)

    def _build_toolbar(self):
        toolbar = QToolBar("Main")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)

        act_open = QAction("📂 Open Images", self)
        act_open.triggered.connect(self._select_images)
        toolbar.addAction(act_open)

        act_output = QAction("💾 Set Output Folder", self)
        act_output.triggered.connect(self._select_output_folder)
        toolbar.addAction(act_output)

        toolbar.addSeparator()

        act_apply = QAction("▶ Apply Crop", self)
        act_apply.triggered.connect(self._apply_current)
        toolbar.addAction(act_apply)
        self._act_apply = act_apply

        act_export_all = QAction("▶▶ Export All", self)
        act_export_all.setToolTip("Export all images using saved crops (centered by default)")
        act_export_all.triggered.connect(self._run_batch)
        toolbar.addAction(act_export_all)
        self._act_export_all = act_export_all

    def _build_left_panel(self) -> QWidget:
        left_panel = QWidget()
        left_layout = QVBoxLayout(left_panel)
        left_layout.setContentsMargins(0, 0, 0, 0)

        left_layout.addWidget(QLabel("Images:"))
        self._image_list = QListWidget()
        self._image_list.currentRowChanged.connect(self._on_image_selected)
        left_layout.addWidget(self._image_list)

        return left_panel

    def _build_center_panel(self) -> QWidget:
        center_panel = QWidget()
        center_layout = QVBoxLayout(center_panel)
        center_layout.setContentsMargins(0, 0, 0, 0)

        self._crop_widget = CoverCropWidget(self._settings["viewport"])
        self._crop_widget.set_background(self._settings["background"])
        self._crop_widget.crop_changed.connect(self._on_crop_changed)
        center_layout.addWidget(self._crop_widget, alignment=Qt.AlignmentFlag.AlignCenter)

        zoom_row = QHBoxLayout()
        zoom_row.addWidget(QLabel("Zoom:"))
        self._zoom_slider = QSlider(Qt.Orientation.Horizontal)
        self._zoom_slider.setRange(round(ZOOM_MIN * _ZOOM_TICKS), round(ZOOM_MAX * _ZOOM_TICKS))
        self._zoom_slider.setValue(round(ZOOM_MIN * _ZOOM_TICKS))
        self._zoom_slider.valueChanged.connect(self._on_zoom_slider)
        zoom_row.addWidget(self._zoom_slider, stretch=1)
        center_layout.addLayout(zoom_row)

        btn_row = QHBoxLayout()
        btn_cancel = QPushButton("Cancel")
        btn_cancel.clicked.connect(self._cancel_current)
        btn_row.addWidget(btn_cancel)
        btn_center = QPushButton("Recenter")
        btn_center.clicked.connect(self._recenter)
        btn_row.addWidget(btn_center)
        btn_apply = QPushButton("Apply")
        btn_apply.clicked.connect(self._apply_current)
        btn_row.addWidget(btn_apply)
        self._btn_apply = btn_apply
        center_layout.addLayout(btn_row)

        self._crop_info_label = QLabel("Crop: —")
        self._crop_info_label.setWordWrap(True)
        center_layout.addWidget(self._crop_info_label)

        center_layout.addStretch()
        return center_panel

    def _build_right_panel(self) -> QWidget:
        export_group = QGroupBox("Export Settings")
        export_layout = QVBoxLayout(export_group)

        fmt_row = QHBoxLayout()
        fmt_row.addWidget(QLabel("Format:"))
        self._export_format = QComboBox()
        self._export_format.addItems(OUTPUT_FORMATS)
        self._export_format.setCurrentText(self._settings["format"])
        self._export_format.currentTextChanged.connect(self._on_export_setting_changed)
        fmt_row.addWidget(self._export_format)
        export_layout.addLayout(fmt_row)

        size_row = QHBoxLayout()
        size_row.addWidget(QLabel("Max size:"))
        self._max_bytes = QSpinBox()
        self._max_bytes.setRange(1, 10_000_000)
        self._max_bytes.setSingleStep(1000)
        self._max_bytes.setSuffix(" bytes")
        self._max_bytes.setValue(self._settings["max_bytes"])
        self._max_bytes.valueChanged.connect(self._on_export_setting_changed)
        size_row.addWidget(self._max_bytes)
        export_layout.addLayout(size_row)

        sub_row = QHBoxLayout()
        sub_row.addWidget(QLabel("Subsampling:"))
        self._jpeg_subsampling = QComboBox()
        self._jpeg_subsampling.addItems(JPEG_SUBSAMPLING_OPTIONS)
        self._jpeg_subsampling.setCurrentText(self._settings["jpeg_subsampling"])
        self._jpeg_subsampling.currentTextChanged.connect(self._on_export_setting_changed)
        sub_row.addWidget(self._jpeg_subsampling)
        export_layout.addLayout(sub_row)

        bg_row = QHBoxLayout()
        bg_row.addWidget(QLabel("Background:"))
        self._btn_background = QPushButton(self._settings["background"])
        self._btn_background.clicked.connect(self._select_background)
        bg_row.addWidget(self._btn_background)
        export_layout.addLayout(bg_row)

        self._on_export_format_changed(self._export_format.currentText())

        panel = QWidget()
        layout = QVBoxLayout(panel)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(export_group)

        shortcuts = QLabel(
            "Drag — pan\nWheel / slider — zoom\nArrows (+Shift) — nudge\n"
            "C — recenter\nEnter — apply\nEsc — cancel\nPgUp/PgDn — prev/next image"
        )
        shortcuts.setStyleSheet("color: #aaa; font-size: 8pt; padding: 4px;")
        layout.addWidget(shortcuts)
        layout.addStretch()
        return panel

    # =========================================================================
    # Settings
    # =========================================================================

    def _on_export_format_changed(self, fmt: str):
        """Show/hide JPEG-specific controls based on selected format."""
        self._jpeg_subsampling.setEnabled(fmt == "JPEG")

    def _on_export_setting_changed(self, *args):
        self._on_export_format_changed(self._export_format.currentText())
        self._settings.update(
            format=self._export_format.currentText(),
            max_bytes=self._max_bytes.value(),
            jpeg_subsampling=self._jpeg_subsampling.currentText(),
        )
        self._persist_settings()

    def _select_background(self):
        color = QColorDialog.getColor(QColor(self._settings["background"]), self, "Background Color")
        if not color.isValid():
            return
        name = color.name().upper()
        self._settings["background"] = name
        self._btn_background.setText(name)
        self._crop_widget.set_background(name)
        self._persist_settings()

    def _persist_settings(self):
        try:
            save_settings(self._settings)
        except (ValueError, OSError) as exc:
            QMessageBox.warning(self, "Save Failed", f"Could not save settings:\n{exc}")

    # =========================================================================
    # Folder / file selection
    # =========================================================================

    def _select_images(self):
        patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
        files, _ = QFileDialog.getOpenFileNames(self, "Open Images", "", f"Images ({patterns})")
        if files:
            self._load_entries([Path(f) for f in files])

    def _select_output_folder(self):
        folder = QFileDialog.getExistingDirectory(self, "Select Output Folder")
        if folder:
            self._output_root = Path(folder)
            self._status.showMessage(f"Output: {self._output_root}")

    def _load_entries(self, files: list[Path]):
        self._store_current_crop()
        self._entries.clear()
        self._image_list.clear()
        self._current_index = -1
        self._crop_widget.clear()

        for f in files:
            try:
                w, h = get_image_size(f)
            except Exception:
                continue
            try:
                fp = compute_fingerprint(f)
            except OSError:
                fp = ""
            self._entries.append(ImageEntry(path=f, img_w=w, img_h=h, fingerprint=fp))
            self._image_list.addItem(QListWidgetItem(f"  ⬜  {f.name}  ({w}×{h})"))

        if self._entries:
            self._image_list.setCurrentRow(0)
            self._status.showMessage(f"Loaded {len(self._entries)} image(s)")
        else:
            self._status.showMessage("No supported images could be read.")
        self._update_button_states()

    # =========================================================================
    # Image selection
    # =========================================================================

    def _on_image_selected(self, row: int):
        self._store_current_crop()
        self._save_cache()

        self._current_source = None
        if row < 0 or row >= len(self._entries):
            self._crop_widget.clear()
            self._current_index = -1
            return

        self._current_index = row
        entry = self._entries[row]

        self._crop_widget.clear()
        self._crop_widget.set_loading(True)

        # Cancel any previous loader
        if self._loader is not None:
            try:
                self._loader.finished.disconnect()
                self._loader.error.disconnect()
            except (TypeError, RuntimeError):
                pass  # Already disconnected or destroyed
            if self._loader.isRunning():
                self._loader.quit()
                self._loader.wait(500)

        self._loader = ImageLoaderThread(entry.path, self)
        self._loader.finished.connect(lambda source, r=row: self._on_image_loaded(r, source))
        self._loader.error.connect(self._on_image_load_error)
        self._loader.start()

        self._update_button_states()

    def _on_image_loaded(self, row: int, source: SourceImage):
        """Called when background decoding completes."""
        if row != self._current_index:
            return  # User navigated away before loading finished
        self._current_source = source
        self._start_session(source)

    def _on_image_load_error(self, error: str):
        self._crop_widget.set_loading(False)
        self._status.showMessage(f"Failed to load image: {error}")

    def _start_session(self, source: SourceImage):
        """Open a fresh crop session for *source*, restoring any cached crop."""
        try:
            session = self._crop_widget.set_source(source)
        except InvalidDimensionsError as exc:
            self._crop_widget.set_loading(False)
            QMessageBox.warning(self, "Invalid Image", str(exc))
            return
        entry = self._entries[self._current_index]
        if entry.fingerprint:
            cached = lookup_crop(
                self._crop_cache, entry.fingerprint,
                source.size.w, source.size.h, session.viewport,
            )
            if cached:
                session.restore(*cached)
        self._sync_zoom_slider()
        self._on_crop_changed()

    def _prev_image(self):
        if self._current_index > 0:
            self._image_list.setCurrentRow(self._current_index - 1)

    def _next_image(self):
        if self._current_index < len(self._entries) - 1:
            self._image_list.setCurrentRow(self._current_index + 1)

    # =========================================================================
    # Crop interaction
    # =========================================================================

    def _on_zoom_slider(self, value: int):
        self._crop_widget.set_zoom(value / _ZOOM_TICKS)

    def _sync_zoom_slider(self):
        state = self._crop_widget.session.state
        if state is None:
            return
        self._zoom_slider.blockSignals(True)
        self._zoom_slider.setValue(round(state.zoom * _ZOOM_TICKS))
        self._zoom_slider.blockSignals(False)

    def _on_crop_changed(self):
        self._sync_zoom_slider()
        state = self._crop_widget.session.state
        if state is None:
            self._crop_info_label.setText("Crop: —")
            return
        left, top, right, bottom = visible_source_box(state)
        self._crop_info_label.setText(
            f"Source: {state.natural.w} × {state.natural.h}\n"
            f"Zoom: {state.zoom:.1f}×   Scale: {state.effective_scale:.3f}\n"
            f"Visible: ({left:.0f}, {top:.0f}) – ({right:.0f}, {bottom:.0f})"
        )

    def _recenter(self):
        self._crop_widget.recenter()

    def _cancel_current(self):
        """Discard the current adjustments and start over from a centered crop."""
        if self._current_source is None:
            return
        entry = self._entries[self._current_index]
        self._crop_cache.pop(entry.fingerprint, None)
        self._crop_widget.session.cancel()
        self._start_session(self._current_source)
        self._status.showMessage("Crop reset.")

    def _store_current_crop(self):
        """Write the current session's zoom/offset into the in-memory cache."""
        if self._current_index < 0 or self._current_index >= len(self._entries):
            return
        entry = self._entries[self._current_index]
        state = self._crop_widget.session.state
        if not entry.fingerprint or state is None:
            return
        store_crop(
            self._crop_cache, entry.fingerprint,
            state.natural.w, state.natural.h, state.viewport,
            state.zoom, state.offset,
        )

    # =========================================================================
    # Processing / export
    # =========================================================================

    def _update_button_states(self):
        has_entries = len(self._entries) > 0
        self._act_apply.setEnabled(self._current_index >= 0)
        self._btn_apply.setEnabled(self._current_index >= 0)
        self._act_export_all.setEnabled(has_entries)

    def _ensure_output_folder(self) -> bool:
        if not self._output_root:
            self._select_output_folder()
        if not self._output_root:
            QMessageBox.warning(self, "No Output Folder", "Please select an output folder first.")
            return False
        return True

    def _apply_current(self):
        """Commit the current session, write the cover, and reopen for further edits."""
        if self._current_source is None or not self._crop_widget.has_image():
            return
        if not self._ensure_output_folder():
            return
        self._store_current_crop()
        self._save_cache()

        entry = self._entries[self._current_index]
        try:
            result = self._crop_widget.session.commit(self._settings)
            out_path = write_result(result, self._output_root, entry.path.stem)
        except (SessionStateError, ValueError, OSError) as exc:
            QMessageBox.critical(self, "Error", f"Failed to export {entry.path.name}:\n{exc}")
            return

        self._mark_processed(self._current_index)
        budget = self._settings["max_bytes"]
        note = "" if result.size <= budget else f"  (over {budget} byte budget)"
        self._status.showMessage(
            f"Exported {out_path.name}: {result.size / 1000:.1f} KB at quality "
            f"{result.quality:.1f}{note}"
        )
        # The committed session is finished; reopen so the user can keep adjusting
        self._start_session(self._current_source)

    def _build_worker_args(self, index: int, entry: ImageEntry) -> dict:
        """Build serializable arguments for the parallel worker."""
        crop = None
        if entry.fingerprint:
            cached = lookup_crop(
                self._crop_cache, entry.fingerprint,
                entry.img_w, entry.img_h, self._settings["viewport"],
            )
            if cached:
                zoom, offset = cached
                crop = {"zoom": zoom, "offset": [offset.x, offset.y]}
        return {
            "index": index,
            "path": str(entry.path),
            "output_root": str(self._output_root),
            "crop": crop,
            "export": dict(self._settings),
        }

    def _run_batch(self):
        """Export every listed image using its saved crop. Uses parallel processing."""
        if not self._entries or not self._ensure_output_folder():
            return

        self._store_current_crop()
        self._save_cache()

        total = len(self._entries)
        progress = QProgressDialog("Preparing export…", "Cancel", 0, total, self)
        progress.setWindowModality(Qt.WindowModality.WindowModal)
        progress.setMinimumDuration(0)
        progress.setValue(0)
        QApplication.processEvents()

        workers = max(1, (os.cpu_count() or 4) - 1)  # Leave one core free for UI
        args_list = [self._build_worker_args(i, e) for i, e in enumerate(self._entries)]
        completed = 0
        errors = []
        over_budget = 0

        with ProcessPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(process_worker, args): args["index"] for args in args_list}

            for future in as_completed(futures):
                if progress.wasCanceled():
                    executor.shutdown(wait=False, cancel_futures=True)
                    break

                result = future.result()
                completed += 1
                progress.setValue(completed)
                progress.setLabelText(f"Exporting: {result['name']}  ({completed}/{total})")
                QApplication.processEvents()

                if result["success"]:
                    self._mark_processed(result["index"])
                    if result["size"] > self._settings["max_bytes"]:
                        over_budget += 1
                else:
                    errors.append(result)

        progress.setValue(total)

        if errors:
            err_names = "\n".join(f"• {e['name']}: {e['error']}" for e in errors[:10])
            suffix = f"\n…and {len(errors) - 10} more" if len(errors) > 10 else ""
            QMessageBox.warning(self, "Some exports failed", f"{len(errors)} failed:\n\n{err_names}{suffix}")

        note = f", {over_budget} over budget" if over_budget else ""
        self._status.showMessage(
            f"Export complete ({completed - len(errors)}/{total}{note}). Output: {self._output_root}"
        )

    # =========================================================================
    # List item updates
    # =========================================================================

    def _mark_processed(self, index: int):
        entry = self._entries[index]
        item = self._image_list.item(index)
        if item:
            item.setText(f"  ✅  {entry.path.name}  ({entry.img_w}×{entry.img_h})")

    # =========================================================================
    # Cache persistence
    # =========================================================================

    def _save_cache(self):
        """Flush the in-memory crop cache to disk."""
        save_crop_cache(self._crop_cache)

    def closeEvent(self, event):
        """Save current crop and flush cache before closing."""
        self._store_current_crop()
        self._save_cache()
        super().closeEvent(event)
