from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from PIL import Image

from passportframe.core.bitmap import as_bitmap, bitmap_size, bitmap_to_pil
from passportframe.core.errors import InvalidInput, NotReady
from passportframe.core.models import ColorLike, CropRectangle, OutputSpec, parse_color

logger = logging.getLogger(__name__)

_RESAMPLE = {
    "bilinear": Image.BILINEAR,
    "bicubic": Image.BICUBIC,
    "lanczos": Image.LANCZOS,
}


def render(
    composite: np.ndarray,
    crop: Optional[CropRectangle],
    spec: OutputSpec,
    background: ColorLike = "#ffffff",
    resample: str = "bilinear",
) -> np.ndarray:
    """
    Rasterize the `crop` region of `composite` into a spec.width_px x spec.height_px Bitmap.

    The canvas is filled with `background` first, then the crop is resampled to cover it.
    Pillow's filters scale their support with the reduction factor, so large photos are
    area-averaged rather than point-sampled.
    """
    if crop is None:
        raise NotReady("no crop rectangle has been computed yet")
    if resample not in _RESAMPLE:
        raise InvalidInput(f"unknown resample filter {resample!r}")

    src = as_bitmap(composite)
    w, h = bitmap_size(src)
    if crop.width <= 0 or crop.height <= 0 or not crop.fits_within(w, h, eps=1e-3):
        raise InvalidInput(f"crop {crop} is outside the {w}x{h} composite")

    # Clip float noise so Pillow never samples outside the image.
    left, upper, right, lower = crop.as_box()
    box = (max(0.0, left), max(0.0, upper), min(float(w), right), min(float(h), lower))

    canvas = Image.new("RGB", spec.size, parse_color(background))
    region = bitmap_to_pil(src, "RGB").resize(spec.size, resample=_RESAMPLE[resample], box=box)
    canvas.paste(region, (0, 0))

    out = as_bitmap(np.asarray(canvas))
    logger.debug("Rendered crop %s of %dx%d composite to %s", box, w, h, spec.id)
    return out
