from __future__ import annotations

import logging

import numpy as np

from passportframe.core.bitmap import as_bitmap, as_mask, bitmap_size
from passportframe.core.errors import DimensionMismatch
from passportframe.core.models import ColorLike, parse_color

logger = logging.getLogger(__name__)


def composite(source: np.ndarray, mask: np.ndarray, background: ColorLike) -> np.ndarray:
    """
    Flatten `source` over a solid `background` using `mask` as coverage.

    out = mask * source + (1 - mask) * background, blended on the sRGB-encoded values and
    rounded to the nearest integer. The result is fully opaque: the source alpha channel is
    ignored since the mask already decides what is foreground.
    """
    src = as_bitmap(source)
    m = as_mask(mask)
    if src.shape[:2] != m.shape:
        raise DimensionMismatch(bitmap_size(src), bitmap_size(m))

    bg = np.asarray(parse_color(background), dtype=np.float32)
    alpha = m[:, :, None]

    rgb = src[:, :, :3].astype(np.float32)
    blended = alpha * rgb + (1.0 - alpha) * bg

    out = np.empty(src.shape, dtype=np.uint8)
    out[:, :, :3] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)
    out[:, :, 3] = 255
    logger.debug("Composited %dx%d image over %s", src.shape[1], src.shape[0], tuple(int(c) for c in bg))
    return as_bitmap(out)
