"""
Adapters around background segmentation backends.

A segmenter is any callable taking a Bitmap and returning a Mask of the same size.
Backends are imported lazily; whatever goes wrong inside one is reported as
SegmentationUnavailable so the controller can fall back to an all-opaque mask.
"""

from __future__ import annotations

import logging
from typing import Callable

import cv2
import numpy as np

from passportframe.core.bitmap import as_mask, bitmap_size, bitmap_to_pil, full_mask, load_mask, mask_from_pil
from passportframe.core.errors import InvalidInput, SegmentationUnavailable

logger = logging.getLogger(__name__)

Segmenter = Callable[[np.ndarray], np.ndarray]


def _fit_mask(mask: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize a model mask to the source size (models may run at their own resolution)."""
    m = as_mask(mask)
    if m.shape == (height, width):
        return m
    logger.debug("Resizing %dx%d mask to %dx%d", m.shape[1], m.shape[0], width, height)
    return as_mask(cv2.resize(np.ascontiguousarray(m), (width, height), interpolation=cv2.INTER_LINEAR))


class OpaqueSegmenter:
    """Segmentation disabled: everything is foreground."""

    name = "none"

    def __call__(self, source: np.ndarray) -> np.ndarray:
        w, h = bitmap_size(source)
        return full_mask(w, h, 1.0)


class FileMaskSegmenter:
    """Serves a precomputed mask image (grayscale, or the alpha of an RGBA cut-out)."""

    name = "file"

    def __init__(self, path: str):
        self.path = path

    def __call__(self, source: np.ndarray) -> np.ndarray:
        w, h = bitmap_size(source)
        try:
            mask = load_mask(self.path)
        except (OSError, ValueError) as e:
            raise SegmentationUnavailable(f"could not read mask {self.path}: {e}") from e
        return _fit_mask(mask, w, h)


class MediaPipeSegmenter:
    """
    MediaPipe Selfie Segmentation.

    model_selection=1 is the landscape model, which handles head-and-shoulders
    portraits better than the square general model.
    """

    name = "mediapipe"

    def __init__(self, model_selection: int = 1):
        self.model_selection = model_selection

    def _load_backend(self):
        try:
            import mediapipe as mp  # type: ignore
        except ImportError as e:
            raise SegmentationUnavailable("mediapipe is not installed") from e
        return mp.solutions.selfie_segmentation.SelfieSegmentation(model_selection=self.model_selection)

    def __call__(self, source: np.ndarray) -> np.ndarray:
        w, h = bitmap_size(source)
        rgb = np.ascontiguousarray(source[:, :, :3])
        try:
            with self._load_backend() as seg:
                results = seg.process(rgb)
        except SegmentationUnavailable:
            raise
        except Exception as e:
            raise SegmentationUnavailable(f"mediapipe segmentation failed: {e}") from e

        mask = getattr(results, "segmentation_mask", None)
        if mask is None:
            raise SegmentationUnavailable("mediapipe returned no segmentation mask")
        return _fit_mask(mask, w, h)


class RembgSegmenter:
    """U2-Net matting through rembg; returns its alpha matte as the mask."""

    name = "rembg"

    def __init__(self, model_name: str = "u2net_human_seg"):
        self.model_name = model_name
        self._session = None

    def _load_backend(self):
        try:
            from rembg import new_session, remove  # type: ignore
        except ImportError as e:
            raise SegmentationUnavailable("rembg is not installed") from e
        if self._session is None:
            self._session = new_session(self.model_name)
        return remove, self._session

    def __call__(self, source: np.ndarray) -> np.ndarray:
        w, h = bitmap_size(source)
        try:
            remove, session = self._load_backend()
            cut = remove(bitmap_to_pil(source, "RGB"), session=session, only_mask=True)
        except SegmentationUnavailable:
            raise
        except Exception as e:
            raise SegmentationUnavailable(f"rembg segmentation failed: {e}") from e

        if isinstance(cut, np.ndarray):
            return _fit_mask(cut, w, h)
        return _fit_mask(mask_from_pil(cut), w, h)


def make_segmenter(name: str) -> Segmenter:
    if name == "mediapipe":
        return MediaPipeSegmenter()
    if name == "rembg":
        return RembgSegmenter()
    if name == "none":
        return OpaqueSegmenter()
    raise InvalidInput(f"unknown segmenter {name!r}")
