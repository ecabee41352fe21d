from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Tuple

from passportframe.core.errors import ImageTooSmall, InvalidInput
from passportframe.core.models import CropRectangle, OutputSpec

logger = logging.getLogger(__name__)

DEFAULT_ZOOM_RANGE: Tuple[float, float] = (1.0, 3.0)

# Zoom 1 is the largest rectangle that fits; anything lower would overhang the image.
MIN_ZOOM = 1.0

# Smallest side (px) the zoom-1 rectangle may have.
MIN_CROP_PX = 1.0

# Head guide drawn over the crop, as fractions of the crop rectangle: top edge, width
# and height of an oval centered horizontally.
HEAD_GUIDE_TOP = 0.20
HEAD_GUIDE_WIDTH = 0.50
HEAD_GUIDE_HEIGHT = 0.55


def clamp_zoom(zoom: float, zoom_range: Tuple[float, float] = DEFAULT_ZOOM_RANGE) -> float:
    lo, hi = zoom_range
    if not math.isfinite(zoom):
        raise InvalidInput(f"zoom must be finite, got {zoom!r}")
    return max(MIN_ZOOM, min(hi, max(lo, float(zoom))))


def _clamp(v: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, v))


def compute_crop_rectangle(
    image_width: int,
    image_height: int,
    offset: Tuple[float, float],
    zoom: float,
    aspect_ratio: float,
    zoom_range: Tuple[float, float] = DEFAULT_ZOOM_RANGE,
) -> CropRectangle:
    """
    Crop rectangle for a pan offset and zoom level.

    At zoom 1 the rectangle is the largest one of `aspect_ratio` (width / height) that fits
    in the image; higher zoom shrinks it by 1/zoom. `offset` is the requested displacement
    of the rectangle center from the image center, in image pixels. The center is clamped
    so the rectangle always lies inside the image.
    """
    if image_width <= 0 or image_height <= 0:
        raise InvalidInput(f"image size must be positive, got {image_width}x{image_height}")
    if not math.isfinite(aspect_ratio) or aspect_ratio <= 0:
        raise InvalidInput(f"aspect ratio must be positive, got {aspect_ratio!r}")

    W, H = float(image_width), float(image_height)
    if W / H > aspect_ratio:
        base_h = H
        base_w = H * aspect_ratio
    else:
        base_w = W
        base_h = W / aspect_ratio

    if base_w < MIN_CROP_PX or base_h < MIN_CROP_PX:
        raise ImageTooSmall(
            f"{image_width}x{image_height} image cannot hold a crop of aspect {aspect_ratio:.4f} "
            f"(largest fit is {base_w:.2f}x{base_h:.2f} px)"
        )

    z = clamp_zoom(zoom, zoom_range)
    w = base_w / z
    h = base_h / z

    dx, dy = offset
    cx = _clamp(W / 2.0 + float(dx), w / 2.0, W - w / 2.0)
    cy = _clamp(H / 2.0 + float(dy), h / 2.0, H - h / 2.0)

    x = _clamp(cx - w / 2.0, 0.0, W - w)
    y = _clamp(cy - h / 2.0, 0.0, H - h)
    return CropRectangle(x=x, y=y, width=w, height=h)


@dataclass(frozen=True)
class CropState:
    """
    Interactive pan/zoom state for one image and output standard.

    Transitions return new states; the rectangle is always recomputed from
    (offset, zoom, spec) rather than edited in place. Stored offsets are clamped to what
    the rectangle can actually reach, so dragging past an edge does not build up slack.
    """
    image_width: int
    image_height: int
    spec: OutputSpec
    offset: Tuple[float, float] = (0.0, 0.0)
    zoom: float = 1.0
    zoom_range: Tuple[float, float] = DEFAULT_ZOOM_RANGE

    def rectangle(self) -> CropRectangle:
        return compute_crop_rectangle(
            self.image_width,
            self.image_height,
            self.offset,
            self.zoom,
            self.spec.aspect_ratio,
            self.zoom_range,
        )

    def with_offset(self, dx: float, dy: float) -> "CropState":
        return replace(self, offset=(float(dx), float(dy)))._clamped()

    def panned(self, dx: float, dy: float) -> "CropState":
        return self.with_offset(self.offset[0] + dx, self.offset[1] + dy)

    def zoomed(self, zoom: float) -> "CropState":
        return replace(self, zoom=clamp_zoom(zoom, self.zoom_range))._clamped()

    def with_spec(self, spec: OutputSpec) -> "CropState":
        """Switch output standard, keeping pan and zoom where they still fit."""
        return replace(self, spec=spec)._clamped()

    def with_zoom_range(self, zoom_range: Tuple[float, float]) -> "CropState":
        return replace(self, zoom_range=zoom_range, zoom=clamp_zoom(self.zoom, zoom_range))._clamped()

    def _clamped(self) -> "CropState":
        try:
            rect = self.rectangle()
        except ImageTooSmall:
            # Nothing to clamp against; rectangle() keeps raising until the output standard changes.
            return self
        cx, cy = rect.center
        offset = (cx - self.image_width / 2.0, cy - self.image_height / 2.0)
        if offset != self.offset:
            logger.debug("Crop offset clamped %s -> %s", self.offset, offset)
        return replace(self, offset=offset)


def head_guide_rectangle(crop: CropRectangle) -> CropRectangle:
    """Bounding box of the head-position guide inside `crop`, in the same coordinates."""
    w = crop.width * HEAD_GUIDE_WIDTH
    h = crop.height * HEAD_GUIDE_HEIGHT
    return CropRectangle(
        x=crop.x + (crop.width - w) / 2.0,
        y=crop.y + crop.height * HEAD_GUIDE_TOP,
        width=w,
        height=h,
    )
