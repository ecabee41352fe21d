from __future__ import annotations

import logging
import os

import numpy as np

from passportframe.core.bitmap import bitmap_to_pil
from passportframe.core.models import OutputSpec

logger = logging.getLogger(__name__)


def export_filename(spec: OutputSpec) -> str:
    return f"{spec.id}-photo.jpg"


def resolve_output_path(path: str, spec: OutputSpec) -> str:
    """A directory (existing, or given with a trailing separator) gets the default file name."""
    if os.path.isdir(path) or path.endswith(("/", os.sep)):
        return os.path.join(path, export_filename(spec))
    return path


def save_final_image(image: np.ndarray, path: str, spec: OutputSpec, quality: int = 100) -> str:
    """
    Write a rendered photo and return the path written.

    JPEG is saved at `quality` with 4:4:4 chroma so flat backgrounds stay flat; other
    extensions use Pillow's defaults. Both carry the standard's print resolution.
    """
    out_path = resolve_output_path(path, spec)
    parent = os.path.dirname(out_path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    pil = bitmap_to_pil(image, "RGB")
    dpi = (spec.dpi, spec.dpi)
    if out_path.lower().endswith((".jpg", ".jpeg")):
        pil.save(out_path, format="JPEG", quality=quality, subsampling=0, dpi=dpi)
    else:
        pil.save(out_path, dpi=dpi)

    logger.info("Saved %s (%dx%d)", out_path, pil.width, pil.height)
    return out_path
