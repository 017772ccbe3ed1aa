"""
Settings persistence: load, save, and validate export settings.

Runtime settings are stored in a JSON file in the user's config directory
(provided by ``config.config_dir()``).  On first launch (or if the file
is missing/corrupt), the file is created from DEFAULT_SETTINGS.  This
module is Qt-free and safe for worker import.

The on-disk format uses a versioned envelope::

    {"version": 1, "settings": {"viewport": 400, "max_bytes": 50982, ...}}

Keys absent from a stored file are filled in from the defaults, so files
written by older versions keep loading.
"""

import json
import logging
from copy import deepcopy
from pathlib import Path

from PIL import ImageColor

from cover_crop_tool.config import DEFAULT_SETTINGS, JPEG_SUBSAMPLING_MAP, OUTPUT_FORMATS, config_dir

logger = logging.getLogger(__name__)

_SETTINGS_FILENAME = "settings.json"
_FORMAT_VERSION = 1

# Largest viewport the editor will allocate (pixels per side)
_MAX_VIEWPORT = 4096


def _settings_path() -> Path:
    """Return the full path to settings.json."""
    return config_dir() / _SETTINGS_FILENAME


# =============================================================================
# Validation
# =============================================================================
def _is_int(val: object) -> bool:
    return isinstance(val, int) and not isinstance(val, bool)


def _is_number(val: object) -> bool:
    return isinstance(val, (int, float)) and not isinstance(val, bool)


def validate_settings(data: object) -> list[str]:
    """
    Validate a settings dict.

    Returns a list of error strings (empty means valid).
    """
    errors: list[str] = []

    if not isinstance(data, dict):
        errors.append("Settings must be a dict")
        return errors

    unknown = data.keys() - DEFAULT_SETTINGS.keys()
    if unknown:
        errors.append(f"unknown keys: {', '.join(sorted(unknown))}")

    viewport = data.get("viewport", DEFAULT_SETTINGS["viewport"])
    if not _is_int(viewport) or not 0 < viewport <= _MAX_VIEWPORT:
        errors.append(f"viewport must be an integer in 1..{_MAX_VIEWPORT}, got {viewport!r}")

    max_bytes = data.get("max_bytes", DEFAULT_SETTINGS["max_bytes"])
    if not _is_int(max_bytes) or max_bytes <= 0:
        errors.append(f"max_bytes must be a positive integer, got {max_bytes!r}")

    background = data.get("background", DEFAULT_SETTINGS["background"])
    try:
        if not isinstance(background, str):
            raise ValueError
        ImageColor.getrgb(background)
    except ValueError:
        errors.append(f"background is not a recognised color: {background!r}")

    fmt = data.get("format", DEFAULT_SETTINGS["format"])
    if fmt not in OUTPUT_FORMATS:
        errors.append(f"format must be one of {', '.join(OUTPUT_FORMATS)}, got {fmt!r}")

    min_quality = data.get("min_quality", DEFAULT_SETTINGS["min_quality"])
    if not _is_number(min_quality) or not 0.01 <= min_quality <= 0.9:
        errors.append(f"min_quality must be a number in 0.01..0.9, got {min_quality!r}")

    step = data.get("quality_step", DEFAULT_SETTINGS["quality_step"])
    if not _is_number(step) or not 0.01 <= step <= 0.9:
        errors.append(f"quality_step must be a number in 0.01..0.9, got {step!r}")

    subsampling = data.get("jpeg_subsampling", DEFAULT_SETTINGS["jpeg_subsampling"])
    if subsampling not in JPEG_SUBSAMPLING_MAP:
        errors.append(
            f"jpeg_subsampling must be one of {', '.join(JPEG_SUBSAMPLING_MAP)}, got {subsampling!r}"
        )

    return errors


# =============================================================================
# Load / Save
# =============================================================================
def load_settings() -> dict:
    """
    Load settings from settings.json.

    If the file is missing, corrupt, or fails validation, writes the
    defaults and returns them.  Returns the ``settings`` dict merged over
    the defaults.
    """
    path = _settings_path()

    if not path.exists():
        logger.info("settings.json not found — creating with defaults at %s", path)
        _write_defaults(path)
        return deepcopy(DEFAULT_SETTINGS)

    try:
        text = path.read_text(encoding="utf-8")
        raw = json.loads(text)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read settings.json (%s) — restoring defaults", exc)
        _write_defaults(path)
        return deepcopy(DEFAULT_SETTINGS)

    if not isinstance(raw, dict) or raw.get("version") != _FORMAT_VERSION or "settings" not in raw:
        logger.warning("settings.json missing version envelope — restoring defaults")
        _write_defaults(path)
        return deepcopy(DEFAULT_SETTINGS)

    data = raw["settings"]
    errors = validate_settings(data)
    if errors:
        logger.warning(
            "settings.json validation failed:\n  %s\nRestoring defaults.",
            "\n  ".join(errors),
        )
        _write_defaults(path)
        return deepcopy(DEFAULT_SETTINGS)

    merged = deepcopy(DEFAULT_SETTINGS)
    merged.update(data)
    return merged


def save_settings(settings: dict) -> None:
    """
    Validate and write settings to settings.json in versioned envelope.

    Raises ValueError if validation fails.
    Raises OSError if the file cannot be written.
    """
    errors = validate_settings(settings)
    if errors:
        raise ValueError("Invalid settings:\n  " + "\n  ".join(errors))

    envelope = {"version": _FORMAT_VERSION, "settings": settings}
    path = _settings_path()
    path.write_text(json.dumps(envelope, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Saved settings to %s", path)


def _write_defaults(path: Path) -> None:
    """Write DEFAULT_SETTINGS to the given path in versioned envelope."""
    try:
        envelope = {"version": _FORMAT_VERSION, "settings": deepcopy(DEFAULT_SETTINGS)}
        path.write_text(
            json.dumps(envelope, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
    except OSError as exc:
        logger.error("Could not write default settings to %s: %s", path, exc)
