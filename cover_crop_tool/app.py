"""
Application entry point and dark-theme stylesheet.

Usage:
    python -m cover_crop_tool
    cover-crop-tool          (after pip install)

Set ``COVER_CROP_LOG_LEVEL`` (e.g. ``DEBUG``) to change log verbosity.
"""

import logging
import os
import sys

from PyQt6.QtWidgets import QApplication

from cover_crop_tool.main_window import MainWindow

DARK_STYLESHEET = """
    QMainWindow { background: #2b2b2b; }
    QWidget { background: #2b2b2b; color: #ddd; font-size: 10pt; }
    QListWidget { background: #1e1e1e; border: 1px solid #444; }
    QListWidget::item { padding: 4px; }
    QListWidget::item:selected { background: #3a6ea5; }
    QGroupBox { border: 1px solid #555; border-radius: 4px; margin-top: 8px; padding-top: 12px; font-weight: bold; }
    QGroupBox::title { subcontrol-origin: margin; left: 8px; padding: 0 4px; }
    QPushButton { background: #3a3a3a; border: 1px solid #555; border-radius: 4px; padding: 6px 12px; }
    QPushButton:hover { background: #4a4a4a; }
    QPushButton:pressed { background: #2a2a2a; }
    QPushButton:disabled { color: #666; }
    QSlider::groove:horizontal { height: 4px; background: #444; border-radius: 2px; }
    QSlider::handle:horizontal { background: #3a6ea5; width: 14px; margin: -6px 0; border-radius: 7px; }
    QToolBar { background: #333; border-bottom: 1px solid #444; spacing: 4px; padding: 4px; }
    QStatusBar { background: #333; border-top: 1px solid #444; }
    QProgressDialog { background: #2b2b2b; }
"""


def configure_logging() -> None:
    level_name = os.environ.get("COVER_CROP_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


def main():
    configure_logging()
    app = QApplication(sys.argv)
    app.setStyleSheet(DARK_STYLESHEET)

    window = MainWindow()
    window.show()

    try:
        sys.exit(app.exec())
    except (SystemExit, KeyboardInterrupt):
        pass


if __name__ == "__main__":
    main()
