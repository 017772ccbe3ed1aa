"""
Size-constrained encoding (Qt-free).

``encode_with_budget`` re-encodes a rendered cover at decreasing lossy quality
until it fits a byte budget.  Quality levels are stepped on an integer grid of
hundredths, so the schedule is finite, repeatable, and never drops below the
configured floor.  When the budget cannot be met, the smallest encoding seen
is returned rather than an error.
"""

import io
import logging

from PIL import Image

from cover_crop_tool.config import (
    JPEG_SUBSAMPLING_DEFAULT, JPEG_SUBSAMPLING_MAP, MIME_TYPES,
    OUTPUT_FORMAT_DEFAULT, QUALITY_MIN, QUALITY_START, QUALITY_STEP,
)
from cover_crop_tool.models import EncodedResult

logger = logging.getLogger(__name__)


def mime_type_for(fmt: str) -> str:
    """Return the MIME type produced by encoding in *fmt*."""
    try:
        return MIME_TYPES[fmt.upper()]
    except KeyError:
        raise ValueError(f"Unsupported output format {fmt!r}; expected one of {sorted(MIME_TYPES)}") from None


def quality_schedule(
    start: float = QUALITY_START,
    min_quality: float = QUALITY_MIN,
    step: float = QUALITY_STEP,
) -> list[float]:
    """
    Return the quality levels tried, highest first.

    Levels are ``start, start - step, ...`` down to ``min_quality``.  If the
    step does not land exactly on the floor, the floor itself is the last
    level.  Raises ValueError for a non-positive floor or step, or a start
    outside ``[min_quality, 1]``.
    """
    start_c = round(start * 100)
    floor_c = round(min_quality * 100)
    step_c = round(step * 100)
    if floor_c <= 0:
        raise ValueError(f"min_quality must be at least 0.01, got {min_quality!r}")
    if step_c <= 0:
        raise ValueError(f"step must be at least 0.01, got {step!r}")
    if not floor_c <= start_c <= 100:
        raise ValueError(f"start quality {start!r} must lie in [{min_quality!r}, 1.0]")

    levels = list(range(start_c, floor_c - 1, -step_c))
    if levels[-1] != floor_c:
        levels.append(floor_c)
    return [c / 100 for c in levels]


def _encode(raster: Image.Image, fmt: str, quality: float, subsampling: int) -> bytes:
    buf = io.BytesIO()
    q = round(quality * 100)
    if fmt == "JPEG":
        raster.save(buf, "JPEG", quality=q, optimize=True, subsampling=subsampling)
    else:
        raster.save(buf, "WEBP", quality=q, method=4)
    return buf.getvalue()


def encode_with_budget(
    raster: Image.Image,
    max_bytes: int,
    min_quality: float = QUALITY_MIN,
    step: float = QUALITY_STEP,
    fmt: str = OUTPUT_FORMAT_DEFAULT,
    start_quality: float = QUALITY_START,
    jpeg_subsampling: str = JPEG_SUBSAMPLING_DEFAULT,
) -> EncodedResult:
    """Encode *raster*, lowering quality until the output fits in *max_bytes*."""
    fmt = fmt.upper()
    mime = mime_type_for(fmt)
    if max_bytes <= 0:
        raise ValueError(f"max_bytes must be positive, got {max_bytes!r}")
    subsampling = JPEG_SUBSAMPLING_MAP[jpeg_subsampling]

    if raster.mode != "RGB":
        raster = raster.convert("RGB")

    best: EncodedResult | None = None
    attempts = 0
    for quality in quality_schedule(start_quality, min_quality, step):
        attempts += 1
        data = _encode(raster, fmt, quality, subsampling)
        logger.debug("%s attempt %d at quality %.2f: %d bytes", fmt, attempts, quality, len(data))
        if best is None or len(data) < best.size:
            best = EncodedResult(data=data, mime_type=mime, quality=quality, attempts=attempts)
        if len(data) <= max_bytes:
            return EncodedResult(data=data, mime_type=mime, quality=quality, attempts=attempts)

    logger.warning(
        "Could not fit %s cover in %d bytes; smallest was %d bytes at quality %.2f",
        fmt, max_bytes, best.size, best.quality,
    )
    return EncodedResult(data=best.data, mime_type=mime, quality=best.quality, attempts=attempts)
