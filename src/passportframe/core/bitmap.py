"""
Conversions between PIL images and the pipeline's array types.

Bitmap: HxWx4 uint8 RGBA array, read-only.
Mask:   HxW float32 array in [0, 1], read-only.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
from PIL import Image, ImageOps

from passportframe.core.errors import InvalidInput
from passportframe.core.models import ColorLike, parse_color


def _freeze(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


def bitmap_size(bitmap: np.ndarray) -> Tuple[int, int]:
    """(width, height) of a bitmap or mask."""
    return int(bitmap.shape[1]), int(bitmap.shape[0])


def as_bitmap(arr: np.ndarray) -> np.ndarray:
    """Validate and copy an image array into a read-only RGBA Bitmap."""
    arr = np.asarray(arr)
    if arr.ndim == 2:
        arr = np.stack([arr, arr, arr], axis=-1)
    if arr.ndim != 3 or arr.shape[-1] not in (3, 4):
        raise InvalidInput(f"expected an HxWx3 or HxWx4 image, got shape {arr.shape}")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise InvalidInput("image has zero width or height")
    if arr.dtype != np.uint8:
        arr = np.clip(np.rint(arr), 0, 255).astype(np.uint8)

    out = np.empty((arr.shape[0], arr.shape[1], 4), dtype=np.uint8)
    out[:, :, :3] = arr[:, :, :3]
    out[:, :, 3] = arr[:, :, 3] if arr.shape[-1] == 4 else 255
    return _freeze(out)


def as_mask(arr: np.ndarray) -> np.ndarray:
    """Validate and copy a probability map into a read-only float32 Mask."""
    arr = np.asarray(arr)
    if arr.ndim == 3 and arr.shape[-1] == 1:
        arr = arr[:, :, 0]
    if arr.ndim != 2:
        raise InvalidInput(f"expected an HxW mask, got shape {arr.shape}")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise InvalidInput("mask has zero width or height")
    if arr.dtype == np.uint8:
        out = arr.astype(np.float32) / 255.0
    else:
        out = arr.astype(np.float32)
    out = np.nan_to_num(out, nan=0.0, posinf=1.0, neginf=0.0)
    return _freeze(np.clip(out, 0.0, 1.0))


def full_mask(width: int, height: int, value: float = 1.0) -> np.ndarray:
    """Constant mask; value 1.0 treats the whole image as foreground."""
    return _freeze(np.full((height, width), value, dtype=np.float32))


def solid_bitmap(width: int, height: int, color: ColorLike) -> np.ndarray:
    if width <= 0 or height <= 0:
        raise InvalidInput(f"bitmap size must be positive, got {width}x{height}")
    r, g, b = parse_color(color)
    return _freeze(np.full((height, width, 4), (r, g, b, 255), dtype=np.uint8))


def bitmap_from_pil(img: Image.Image) -> np.ndarray:
    """EXIF-orient a PIL image and convert it to a Bitmap."""
    img = ImageOps.exif_transpose(img)
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    return as_bitmap(np.asarray(img))


def load_bitmap(path: str) -> np.ndarray:
    with Image.open(path) as img:
        return bitmap_from_pil(img)


def mask_from_pil(img: Image.Image) -> np.ndarray:
    """Grayscale (or alpha channel of an RGBA cut-out) -> Mask."""
    if img.mode in ("RGBA", "LA"):
        img = img.getchannel("A")
    elif img.mode in ("F", "I"):
        return as_mask(np.asarray(img, dtype=np.float32) / 255.0)
    elif img.mode != "L":
        img = img.convert("L")
    return as_mask(np.asarray(img))


def load_mask(path: str) -> np.ndarray:
    with Image.open(path) as img:
        img.load()
        return mask_from_pil(img)


def bitmap_to_pil(bitmap: np.ndarray, mode: str = "RGB") -> Image.Image:
    """Bitmap -> PIL image; mode "RGB" drops alpha (composites are opaque)."""
    if mode == "RGB":
        return Image.fromarray(np.ascontiguousarray(bitmap[:, :, :3]))
    return Image.fromarray(np.ascontiguousarray(bitmap))


def mask_to_pil(mask: np.ndarray) -> Image.Image:
    return Image.fromarray(np.clip(np.rint(mask * 255.0), 0, 255).astype(np.uint8))
