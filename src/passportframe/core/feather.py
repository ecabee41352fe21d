from __future__ import annotations

import logging
import math

import cv2
import numpy as np

from passportframe.core.bitmap import as_mask
from passportframe.core.errors import InvalidInput

logger = logging.getLogger(__name__)


def _kernel_size(sigma: float) -> int:
    # Truncate the Gaussian at 3 sigma; OpenCV wants an odd size.
    return 2 * int(math.ceil(3.0 * sigma)) + 1


def feather(mask: np.ndarray, radius: float) -> np.ndarray:
    """
    Soften the edges of a foreground mask with a Gaussian blur.

    `radius` is the blur standard deviation in mask pixels (CSS `blur()` semantics), so
    scaling the mask and the radius by the same factor gives an equivalent matte.
    Borders are sampled with replicated edges and the result is clamped to [0, 1].
    A radius of 0 returns the mask unchanged.
    """
    if mask is None or np.asarray(mask).size == 0:
        raise InvalidInput("cannot feather an empty mask")
    if radius is None or not math.isfinite(radius) or radius < 0:
        raise InvalidInput(f"feather radius must be a finite number >= 0, got {radius!r}")

    m = as_mask(mask)
    if radius == 0:
        return m

    k = _kernel_size(radius)
    logger.debug("Feathering %dx%d mask (sigma=%.2f, ksize=%d)", m.shape[1], m.shape[0], radius, k)
    soft = cv2.GaussianBlur(
        np.ascontiguousarray(m, dtype=np.float32),
        (k, k),
        sigmaX=float(radius),
        sigmaY=float(radius),
        borderType=cv2.BORDER_REPLICATE,
    )
    return as_mask(np.clip(soft, 0.0, 1.0))
