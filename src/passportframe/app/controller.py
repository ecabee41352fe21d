from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import replace
from typing import Any, Callable, List, Optional

import numpy as np

from passportframe.app.export import export_filename, save_final_image
from passportframe.app.state import PipelineState, SessionData
from passportframe.core.bitmap import as_bitmap, as_mask, bitmap_size, full_mask
from passportframe.core.compositor import composite
from passportframe.core.crop import CropState
from passportframe.core.errors import ImageTooSmall, NotReady, SegmentationUnavailable
from passportframe.core.feather import feather
from passportframe.core.models import CropRectangle, OutputSpec, ProcessingParams
from passportframe.core.render import render
from passportframe.core.segmentation import Segmenter, make_segmenter

logger = logging.getLogger(__name__)

Dispatch = Callable[[Callable[[], None]], Any]
Listener = Callable[["PipelineController"], None]


def _call_now(fn: Callable[[], None]) -> None:
    fn()


class PipelineController:
    """
    Drives one photo through upload -> segmentation -> composite -> crop -> export.

    States: EMPTY -> MASK_PENDING -> READY <-> EXPORTING. A new upload from any state drops
    all derived data and goes back to MASK_PENDING.

    Segmentation runs on a single worker thread. Its completion is handed to `dispatch`,
    which must run the callback on the thread that owns the controller (a Tk app passes
    `lambda fn: root.after(0, fn)`); the default runs it immediately, which suits headless
    use where the caller waits on the returned future. Completions that belong to a
    superseded upload are discarded.
    """

    def __init__(
        self,
        params: Optional[ProcessingParams] = None,
        segmenter: Optional[Segmenter] = None,
        dispatch: Optional[Dispatch] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.params = params or ProcessingParams()
        self.session = SessionData()
        self.state = PipelineState.EMPTY

        self._segmenter_override = segmenter
        self._auto_segmenter: Optional[Segmenter] = None
        self._auto_segmenter_name: Optional[str] = None

        self._dispatch: Dispatch = dispatch or _call_now
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="segmentation")
        self._generation = 0
        self._listeners: List[Listener] = []

    # ---------- Lifecycle ----------

    def close(self) -> None:
        self._generation += 1
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def __enter__(self) -> "PipelineController":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def add_listener(self, listener: Listener) -> None:
        """Register a callback invoked after every state or derived-data change."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    @property
    def segmenter(self) -> Segmenter:
        if self._segmenter_override is not None:
            return self._segmenter_override
        if self._auto_segmenter is None or self._auto_segmenter_name != self.params.segmenter:
            self._auto_segmenter = make_segmenter(self.params.segmenter)
            self._auto_segmenter_name = self.params.segmenter
        return self._auto_segmenter

    @property
    def output_spec(self) -> OutputSpec:
        return self.params.output_spec

    # ---------- Upload + segmentation ----------

    def upload(self, source: np.ndarray, name: Optional[str] = None) -> "Future[Optional[np.ndarray]]":
        """
        Start a new session for `source` and request its mask.

        Returns the segmentation future; with the default dispatch the result has already
        been applied when the future completes.
        """
        bitmap = as_bitmap(source)
        w, h = bitmap_size(bitmap)

        self._generation += 1
        self.session.reset()
        self.session.source = bitmap
        self.session.input_name = name
        self.session.crop = CropState(
            image_width=w,
            image_height=h,
            spec=self.output_spec,
            zoom_range=self.params.zoom_range,
        )
        self.state = PipelineState.MASK_PENDING
        logger.info("Uploaded %s (%dx%d); waiting for segmentation", name or "image", w, h)
        self._notify()
        return self._start_segmentation(self._generation, bitmap)

    def retry_segmentation(self) -> "Optional[Future[Optional[np.ndarray]]]":
        """Re-run a failed segmentation once per upload; returns None when not allowed."""
        s = self.session
        if self.state is not PipelineState.READY or not s.segmentation_failed or s.segmentation_retried:
            logger.debug("Segmentation retry not available (state=%s)", self.state.value)
            return None

        self._generation += 1
        s.segmentation_retried = True
        s.mask = None
        s.feathered_mask = None
        s.composite = None
        self.state = PipelineState.MASK_PENDING
        logger.info("Retrying segmentation")
        self._notify()
        return self._start_segmentation(self._generation, s.source)

    def _start_segmentation(self, generation: int, bitmap: np.ndarray) -> "Future[Optional[np.ndarray]]":
        return self._executor.submit(self._run_segmentation, generation, bitmap, self.segmenter)

    def _run_segmentation(self, generation: int, bitmap: np.ndarray, segmenter: Segmenter) -> Optional[np.ndarray]:
        # Worker thread: no controller state is touched here.
        mask: Optional[np.ndarray] = None
        error: Optional[SegmentationUnavailable] = None
        try:
            mask = self._segment_with_timeout(bitmap, segmenter)
        except SegmentationUnavailable as e:
            error = e
        except Exception as e:
            logger.exception("Segmenter raised an unexpected error")
            error = SegmentationUnavailable(f"{type(e).__name__}: {e}")

        self._dispatch(lambda: self._finish_segmentation(generation, mask, error))
        return mask

    def _segment_with_timeout(self, bitmap: np.ndarray, segmenter: Segmenter) -> np.ndarray:
        timeout = self.params.segmentation_timeout
        if timeout is None:
            return self._call_segmenter(bitmap, segmenter)

        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="segmenter")
        try:
            return pool.submit(self._call_segmenter, bitmap, segmenter).result(timeout=timeout)
        except FuturesTimeoutError as e:
            raise SegmentationUnavailable(f"segmentation timed out after {timeout:g}s") from e
        finally:
            pool.shutdown(wait=False)

    @staticmethod
    def _call_segmenter(bitmap: np.ndarray, segmenter: Segmenter) -> np.ndarray:
        mask = as_mask(segmenter(bitmap))
        if mask.shape != bitmap.shape[:2]:
            raise SegmentationUnavailable(
                f"segmenter returned a {mask.shape[1]}x{mask.shape[0]} mask for a "
                f"{bitmap.shape[1]}x{bitmap.shape[0]} image"
            )
        return mask

    def _finish_segmentation(
        self,
        generation: int,
        mask: Optional[np.ndarray],
        error: Optional[SegmentationUnavailable],
    ) -> None:
        if generation != self._generation:
            logger.debug("Discarding stale segmentation result (generation %d)", generation)
            return

        s = self.session
        if error is not None or mask is None:
            logger.warning("Segmentation unavailable (%s); keeping the whole image as foreground", error)
            w, h = bitmap_size(s.source)
            mask = full_mask(w, h, 1.0)
            s.segmentation_failed = True
            s.segmentation_error = str(error) if error is not None else "no mask"
        else:
            s.segmentation_failed = False
            s.segmentation_error = None

        s.mask = mask
        self._recomposite()
        self.state = PipelineState.READY
        logger.info("Composite ready%s", " (fallback mask)" if s.segmentation_failed else "")
        self._notify()

    def _recomposite(self) -> None:
        s = self.session
        s.feathered_mask = feather(s.mask, self.params.feather_radius)
        s.composite = composite(s.source, s.feathered_mask, self.params.background)

    # ---------- Settings + interaction ----------

    def update_params(self, **changes: Any) -> bool:
        """
        Apply new settings. Background/feather changes re-composite, spec and zoom-range
        changes re-clamp the crop. Ignored while exporting.

        While the mask is pending the new values are only recorded; they take effect
        when the composite is built.
        """
        if self.state is PipelineState.EXPORTING:
            logger.debug("Ignoring settings change during export: %s", changes)
            return False

        old = self.params
        new = replace(old, **changes)
        self.params = new

        s = self.session
        if s.crop is not None:
            if new.spec_id != old.spec_id:
                s.crop = s.crop.with_spec(new.output_spec)
            if new.zoom_range != old.zoom_range:
                s.crop = s.crop.with_zoom_range(new.zoom_range)

        if self.state is PipelineState.READY and (
            new.background != old.background or new.feather_radius != old.feather_radius
        ):
            self._recomposite()

        self._notify()
        return True

    def set_background(self, color) -> bool:
        return self.update_params(background=color)

    def set_feather_radius(self, radius: float) -> bool:
        return self.update_params(feather_radius=float(radius))

    def set_output_spec(self, spec_id: str) -> bool:
        return self.update_params(spec_id=spec_id)

    def _update_crop(self, fn: Callable[[CropState], CropState]) -> bool:
        if self.state is PipelineState.EXPORTING or self.session.crop is None:
            logger.debug("Ignoring crop input in state %s", self.state.value)
            return False
        self.session.crop = fn(self.session.crop)
        self._notify()
        return True

    def pan(self, dx: float, dy: float) -> bool:
        """Move the crop center by (dx, dy) composite pixels."""
        return self._update_crop(lambda c: c.panned(dx, dy))

    def set_offset(self, dx: float, dy: float) -> bool:
        return self._update_crop(lambda c: c.with_offset(dx, dy))

    def set_zoom(self, zoom: float) -> bool:
        return self._update_crop(lambda c: c.zoomed(zoom))

    # ---------- Crop + export ----------

    @property
    def crop_rectangle(self) -> Optional[CropRectangle]:
        """Current crop, or None when there is no composite or the image is too small."""
        if self.state not in (PipelineState.READY, PipelineState.EXPORTING) or self.session.crop is None:
            return None
        try:
            return self.session.crop.rectangle()
        except ImageTooSmall:
            return None

    @property
    def export_blocker(self) -> Optional[str]:
        """Why export is disabled right now, or None when it is allowed."""
        if self.state is PipelineState.EMPTY:
            return "No photo loaded."
        if self.state is PipelineState.MASK_PENDING:
            return "Background removal in progress."
        if self.state is PipelineState.EXPORTING:
            return "Export in progress."
        try:
            self.session.crop.rectangle()
        except ImageTooSmall as e:
            return f"Image too small: {e}"
        return None

    @property
    def can_export(self) -> bool:
        return self.export_blocker is None

    def preview(self) -> Optional[np.ndarray]:
        """Render the current crop without a state transition; None when not exportable."""
        if not self.can_export:
            return None
        return self._render()

    def _render(self) -> np.ndarray:
        return render(
            self.session.composite,
            self.crop_rectangle,
            self.output_spec,
            background=self.params.background,
            resample=self.params.resample,
        )

    def render_final(self) -> np.ndarray:
        blocker = self.export_blocker
        if blocker is not None:
            raise NotReady(blocker)

        self.state = PipelineState.EXPORTING
        try:
            return self._render()
        finally:
            self.state = PipelineState.READY

    def export(self, path: Optional[str] = None) -> str:
        """Render and save the final photo; `path` may be a file or a directory."""
        blocker = self.export_blocker
        if blocker is not None:
            raise NotReady(blocker)

        spec = self.output_spec
        self.state = PipelineState.EXPORTING
        try:
            final = self._render()
            return save_final_image(final, path or export_filename(spec), spec, quality=self.params.jpeg_quality)
        finally:
            self.state = PipelineState.READY

    def reset(self) -> None:
        """Drop the current photo; an in-flight segmentation result will be discarded."""
        self._generation += 1
        self.session.reset()
        self.state = PipelineState.EMPTY
        self._notify()
