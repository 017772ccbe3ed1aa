"""
Qt-free image I/O utilities.

Provides helpers to decode source images (including PSD), read dimensions
without full loading, compute content fingerprints, generate unique file
paths, and write encoded covers to disk.  Safe to import in worker processes.
"""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import ExifTags, Image, ImageOps
from psd_tools import PSDImage

from cover_crop_tool.config import FILE_EXTENSIONS
from cover_crop_tool.models import EncodedResult, NaturalSize, InvalidDimensionsError

logger = logging.getLogger(__name__)

# Allow very large images (Pillow's default limit is ~178MP)
Image.MAX_IMAGE_PIXELS = None

# Number of bytes read for fingerprinting (64 KB)
_FINGERPRINT_READ_SIZE = 65_536

# EXIF orientations that swap width and height
_ROTATED_ORIENTATIONS = {5, 6, 7, 8}


@dataclass(frozen=True)
class SourceImage:
    """A decoded, read-only source raster and its natural dimensions."""
    image: Image.Image
    size: NaturalSize
    path: Path | None = None

    @classmethod
    def from_image(cls, image: Image.Image, path: Path | None = None) -> "SourceImage":
        w, h = image.size
        if w <= 0 or h <= 0:
            raise InvalidDimensionsError(f"image dimensions must be positive, got {w}x{h}")
        return cls(image=image, size=NaturalSize(w, h), path=path)


def compute_fingerprint(path: Path) -> str:
    """
    Compute a fast content fingerprint for an image file.

    Reads the first 64 KB of the file and combines it with the file size
    to produce a truncated SHA-256 hex string.  Format: ``"{size_hex}_{hash16}"``.

    Renamed or moved files produce the same fingerprint, so cached crops
    follow the content rather than the path.
    """
    size = path.stat().st_size
    sha = hashlib.sha256()
    with open(path, "rb") as f:
        sha.update(f.read(_FINGERPRINT_READ_SIZE))
    return f"{size:x}_{sha.hexdigest()[:16]}"


def open_image(path: Path) -> Image.Image:
    """Open an image file, using psd-tools for PSD and Pillow for the rest.

    EXIF orientation is applied so the natural size matches what viewers show.
    The returned image is fully loaded and holds no open file handle.
    """
    if path.suffix.lower() == ".psd":
        psd = PSDImage.open(str(path))
        return psd.composite()
    with Image.open(path) as img:
        img.load()
        return ImageOps.exif_transpose(img)


def open_source(path: Path) -> SourceImage:
    """Decode *path* into a SourceImage."""
    img = open_image(path)
    source = SourceImage.from_image(img, path=path)
    logger.info("Loaded %s (%dx%d, %s)", path.name, source.size.w, source.size.h, img.mode)
    return source


def get_image_size(path: Path) -> tuple[int, int]:
    """Get image dimensions without fully loading/compositing.

    EXIF orientation is honoured, so the result matches ``open_source``.
    """
    if path.suffix.lower() == ".psd":
        psd = PSDImage.open(str(path))
        return psd.width, psd.height
    with Image.open(path) as img:
        w, h = img.size
        if img.getexif().get(ExifTags.Base.Orientation) in _ROTATED_ORIENTATIONS:
            return h, w
        return w, h


def unique_path(out_path: Path) -> Path:
    """Return a unique path by appending -01, -02, etc. if file already exists."""
    if not out_path.exists():
        return out_path
    stem = out_path.stem
    suffix = out_path.suffix
    parent = out_path.parent
    counter = 1
    while True:
        candidate = parent / f"{stem}-{counter:02d}{suffix}"
        if not candidate.exists():
            return candidate
        counter += 1


def write_result(result: EncodedResult, out_dir: Path, stem: str) -> Path:
    """Write an encoded cover to *out_dir*, choosing the extension from its MIME type."""
    ext = FILE_EXTENSIONS.get(result.mime_type)
    if ext is None:
        raise ValueError(f"No file extension known for MIME type {result.mime_type!r}")
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = unique_path(out_dir / f"{stem}{ext}")
    out_path.write_bytes(result.data)
    logger.info("Wrote %s (%d bytes, quality %.1f)", out_path, result.size, result.quality)
    return out_path
