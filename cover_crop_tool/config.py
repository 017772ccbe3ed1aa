"""
Application constants and configuration.

DEFAULT_SETTINGS provides the built-in export settings. Runtime settings are
loaded from settings.json via the settings module. All other constants control
crop-editor behaviour, encoding limits, and file handling.

The ``config_dir()`` helper returns the platform-appropriate config
directory and is shared by all persistence modules (settings, crop cache).
"""

import os
import sys
from pathlib import Path

# =============================================================================
# APP IDENTITY & CONFIG DIRECTORY
# =============================================================================
APP_NAME = "cover-crop-tool"


def config_dir() -> Path:
    """Return the platform-appropriate config directory, creating it if needed."""
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    directory = base / APP_NAME
    directory.mkdir(parents=True, exist_ok=True)
    return directory


# =============================================================================
# CROP VIEWPORT
# =============================================================================
# Side length of the square crop viewport and of the exported cover (pixels)
CROP_SIZE = 400

# Zoom slider bounds (multiplier on top of the cover base scale)
ZOOM_MIN = 1.0
ZOOM_MAX = 3.0
ZOOM_STEP = 0.1

# Mouse-wheel zoom increment per 120-unit notch
WHEEL_ZOOM_STEP = 0.1

# Nudge amounts (pixels in viewport coordinates)
NUDGE_SMALL = 1
NUDGE_LARGE = 10

# Background drawn under the source before compositing
BACKGROUND_DEFAULT = "#FFFFFF"

# =============================================================================
# ENCODING
# =============================================================================
# The storefront caps a cover at 68 000 characters of base64 data URL.
# Byte equivalent: (68_000 - len("data:image/jpeg;base64,")) * 3 // 4
DATA_URL_LIMIT = 68_000
MAX_ENCODED_BYTES = 50_982

# Lossy quality schedule (fractions of the encoder's 0-100 scale)
QUALITY_START = 0.9
QUALITY_MIN = 0.1
QUALITY_STEP = 0.1

# Output format options and their MIME types
OUTPUT_FORMATS = ["JPEG", "WEBP"]
OUTPUT_FORMAT_DEFAULT = "JPEG"
MIME_TYPES = {"JPEG": "image/jpeg", "WEBP": "image/webp"}
FILE_EXTENSIONS = {"image/jpeg": ".jpg", "image/webp": ".webp"}

# JPEG export options
JPEG_SUBSAMPLING_OPTIONS = ["4:4:4", "4:2:2", "4:2:0"]
JPEG_SUBSAMPLING_DEFAULT = "4:2:0"

# Map subsampling labels to Pillow integer values
JPEG_SUBSAMPLING_MAP = {"4:4:4": 0, "4:2:2": 1, "4:2:0": 2}

# =============================================================================
# DEFAULT SETTINGS (written to settings.json when it is missing or corrupt)
# =============================================================================
DEFAULT_SETTINGS = {
    "viewport": CROP_SIZE,
    "max_bytes": MAX_ENCODED_BYTES,
    "background": BACKGROUND_DEFAULT,
    "format": OUTPUT_FORMAT_DEFAULT,
    "min_quality": QUALITY_MIN,
    "quality_step": QUALITY_STEP,
    "jpeg_subsampling": JPEG_SUBSAMPLING_DEFAULT,
}

# Supported image extensions
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tiff", ".tif", ".webp", ".gif", ".psd"}
