from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:  # avoid importing numpy at module import time
    import numpy as np

    from passportframe.core.crop import CropState


class PipelineState(enum.Enum):
    EMPTY = "empty"
    MASK_PENDING = "mask_pending"
    READY = "ready"
    EXPORTING = "exporting"


@dataclass
class SessionData:
    """
    Per-upload data owned by the controller.

    Everything here is derived from the uploaded bitmap and is dropped together when a
    new photo comes in (or the session is reset).
    """
    # Input
    source: Optional["np.ndarray"] = None
    input_name: Optional[str] = None

    # Segmentation
    mask: Optional["np.ndarray"] = None
    segmentation_failed: bool = False
    segmentation_error: Optional[str] = None
    segmentation_retried: bool = False

    # Derived
    feathered_mask: Optional["np.ndarray"] = None
    composite: Optional["np.ndarray"] = None
    crop: Optional["CropState"] = None

    def reset(self) -> None:
        """Clear all per-upload data."""
        self.source = None
        self.input_name = None
        self.mask = None
        self.segmentation_failed = False
        self.segmentation_error = None
        self.segmentation_retried = False
        self.feathered_mask = None
        self.composite = None
        self.crop = None
