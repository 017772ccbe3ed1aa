"""
Cover rasterization (Qt-free).

Draws the source image onto a fixed-size square canvas using exactly the
offset and scale held in a ``CropState``, so the exported cover matches the
interactive preview pixel for pixel.  Safe to import in worker processes.
"""

import logging

from PIL import Image, ImageColor

from cover_crop_tool.config import BACKGROUND_DEFAULT
from cover_crop_tool.image_io import SourceImage
from cover_crop_tool.models import CropState

logger = logging.getLogger(__name__)


def parse_background(color: str) -> tuple[int, int, int]:
    """Resolve a CSS-style color string to an RGB tuple.  Raises ValueError if unknown."""
    return ImageColor.getrgb(color)[:3]


def _prepare(img: Image.Image) -> Image.Image:
    """Return an RGBA copy of *img* suitable for affine sampling."""
    if img.mode == "RGBA":
        return img
    return img.convert("RGBA")


def render(source: SourceImage, state: CropState, background: str = BACKGROUND_DEFAULT) -> Image.Image:
    """Rasterize the visible crop region into a ``viewport x viewport`` RGB image."""
    v = state.viewport
    bg = parse_background(background)
    canvas = Image.new("RGBA", (v, v), bg + (255,))

    img = _prepare(source.image)
    scale = state.effective_scale

    # Large down-scales alias badly under a single affine pass; box-reduce first
    factor = int(1 / scale) if scale < 1 else 1
    if factor >= 2:
        img = img.reduce(factor)
        scale *= factor

    ox, oy = state.offset.x, state.offset.y
    # Affine data maps output pixels back to input pixels
    data = (1 / scale, 0, -ox / scale, 0, 1 / scale, -oy / scale)
    layer = img.transform(
        (v, v), Image.Transform.AFFINE, data,
        resample=Image.Resampling.BICUBIC, fillcolor=(0, 0, 0, 0),
    )
    logger.debug(
        "Rendered %dx%d cover (scale=%.4f, offset=(%.2f, %.2f), reduce=%d)",
        v, v, state.effective_scale, ox, oy, factor,
    )
    return Image.alpha_composite(canvas, layer).convert("RGB")
