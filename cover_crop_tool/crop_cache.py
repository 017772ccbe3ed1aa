"""
Persistent crop cache: remember pan/zoom positions across application restarts.

Images are identified by a content fingerprint (see ``image_io.compute_fingerprint``),
making the cache resilient to file renames and moves.  Natural dimensions and
the viewport size are validated on restore, since an offset is only meaningful
for the geometry it was computed against.

The on-disk format uses a versioned envelope::

    {
        "version": 1,
        "images": {
            "<fingerprint>": {
                "img_w": 800,
                "img_h": 600,
                "viewport": 400,
                "last_used": "2026-02-10T14:30:00+00:00",
                "zoom": 2.0,
                "offset": [-120.5, -64.0]
            }
        }
    }

This module is Qt-free and safe for worker import.
"""

import json
import logging
from datetime import datetime, timezone

from cover_crop_tool.config import config_dir
from cover_crop_tool.models import Point

logger = logging.getLogger(__name__)

_CACHE_FILENAME = "crop_cache.json"
_CACHE_VERSION = 1


def _is_number(val: object) -> bool:
    return isinstance(val, (int, float)) and not isinstance(val, bool)


# =============================================================================
# Load / Save
# =============================================================================
def load_crop_cache() -> dict:
    """
    Load the crop cache from disk.

    Returns the ``images`` dict from the versioned envelope, or an empty
    dict if the file is missing, corrupt, or has an unexpected version.
    """
    path = config_dir() / _CACHE_FILENAME

    if not path.exists():
        logger.debug("No crop cache found at %s — starting fresh", path)
        return {}

    try:
        text = path.read_text(encoding="utf-8")
        raw = json.loads(text)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read crop cache (%s) — starting fresh", exc)
        return {}

    if not isinstance(raw, dict) or raw.get("version") != _CACHE_VERSION:
        logger.warning("Crop cache version mismatch or invalid format — starting fresh")
        return {}

    images = raw.get("images")
    if not isinstance(images, dict):
        logger.warning("Crop cache missing 'images' dict — starting fresh")
        return {}

    logger.info("Loaded crop cache with %d entries from %s", len(images), path)
    return images


def save_crop_cache(cache: dict) -> None:
    """
    Write the crop cache to disk in a versioned envelope.

    The *cache* argument should be the ``images`` dict (as returned by
    ``load_crop_cache``).
    """
    envelope = {"version": _CACHE_VERSION, "images": cache}
    path = config_dir() / _CACHE_FILENAME
    try:
        path.write_text(
            json.dumps(envelope, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        logger.debug("Saved crop cache (%d entries) to %s", len(cache), path)
    except OSError as exc:
        logger.error("Could not write crop cache to %s: %s", path, exc)


# =============================================================================
# Lookup / Store
# =============================================================================
def lookup_crop(
    cache: dict, fingerprint: str, img_w: int, img_h: int, viewport: int,
) -> tuple[float, Point] | None:
    """
    Look up the cached ``(zoom, offset)`` for an image by fingerprint.

    Returns ``None`` on miss, dimension or viewport mismatch, or invalid data.
    The caller is expected to re-clamp the result through the session.
    """
    entry = cache.get(fingerprint)
    if not isinstance(entry, dict):
        return None

    if entry.get("img_w") != img_w or entry.get("img_h") != img_h or entry.get("viewport") != viewport:
        logger.debug(
            "Crop cache mismatch for %s: cached %sx%s@%s, actual %sx%s@%s — ignoring",
            fingerprint, entry.get("img_w"), entry.get("img_h"), entry.get("viewport"),
            img_w, img_h, viewport,
        )
        return None

    zoom = entry.get("zoom")
    offset = entry.get("offset")
    if not _is_number(zoom):
        return None
    if not (isinstance(offset, list) and len(offset) == 2 and all(_is_number(v) for v in offset)):
        return None

    return float(zoom), Point(float(offset[0]), float(offset[1]))


def store_crop(
    cache: dict,
    fingerprint: str,
    img_w: int,
    img_h: int,
    viewport: int,
    zoom: float,
    offset: Point,
) -> None:
    """
    Upsert the pan/zoom position for an image into the in-memory cache.

    A ``last_used`` ISO timestamp is recorded for future eviction use.
    """
    cache[fingerprint] = {
        "img_w": img_w,
        "img_h": img_h,
        "viewport": viewport,
        "last_used": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "zoom": zoom,
        "offset": [offset.x, offset.y],
    }
