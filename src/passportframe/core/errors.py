from __future__ import annotations


class PassportFrameError(Exception):
    """Base class for pipeline errors."""


class InvalidInput(PassportFrameError, ValueError):
    """Malformed or empty image/mask, or an out-of-range parameter."""


class DimensionMismatch(PassportFrameError, ValueError):
    """Source bitmap and mask disagree on width/height."""

    def __init__(self, source_size: tuple[int, int], mask_size: tuple[int, int]):
        super().__init__(
            f"source is {source_size[0]}x{source_size[1]} but mask is {mask_size[0]}x{mask_size[1]}"
        )
        self.source_size = source_size
        self.mask_size = mask_size


class ImageTooSmall(PassportFrameError):
    """The image cannot hold a crop rectangle of the requested aspect ratio."""


class NotReady(PassportFrameError):
    """Render/export requested before a crop rectangle exists."""


class SegmentationUnavailable(PassportFrameError):
    """The segmentation collaborator failed, is not installed, or timed out."""
