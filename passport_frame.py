#!/usr/bin/env python3
"""
passport_frame.py

Turn a portrait photo into a print-ready passport/visa photo:
- Separates the person from the background (MediaPipe Selfie Segmentation, rembg,
  or a mask image you already have)
- Replaces the background with a flat color, optionally feathering the matte edge
- Crops to the standard's aspect ratio (pan/zoom like the GUI)
- Renders at the exact pixel size of the standard (600 dpi)

Usage:
  python passport_frame.py --input me.jpg
  python passport_frame.py -i me.jpg -o out/ --spec us --background "Light Gray"
  python passport_frame.py -i me.jpg --mask me_mask.png --feather 2 --zoom 1.4 --offset-y -80
  python passport_frame.py -i me.jpg --segmenter none --check

Notes:
- The photo check is guidance only; always confirm the requirements of the office
  receiving the photo.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import Optional

from passportframe.app.controller import PipelineController
from passportframe.core.bitmap import load_bitmap
from passportframe.core.errors import PassportFrameError
from passportframe.core.models import BACKGROUND_PALETTE, OUTPUT_SPECS, RESAMPLE_FILTERS, SEGMENTERS, ProcessingParams
from passportframe.core.segmentation import FileMaskSegmenter
from passportframe.validation.validator import format_report_text, validate_final_image

logger = logging.getLogger("passport_frame")


def process_photo(
    input_path: str,
    output_path: Optional[str],
    params: ProcessingParams,
    mask_path: Optional[str] = None,
    zoom: float = 1.0,
    offset: tuple[float, float] = (0.0, 0.0),
    check: bool = False,
) -> tuple[str, Optional[str]]:
    """
    Run the whole pipeline headless.

    Returns (written path, photo check report text or None).
    """
    source = load_bitmap(input_path)
    segmenter = FileMaskSegmenter(mask_path) if mask_path else None

    with PipelineController(params=params, segmenter=segmenter) as controller:
        controller.upload(source, name=input_path).result()
        if controller.session.segmentation_failed:
            logger.warning("Background was not removed: %s", controller.session.segmentation_error)

        controller.set_zoom(zoom)
        controller.set_offset(*offset)

        blocker = controller.export_blocker
        if blocker is not None:
            raise PassportFrameError(blocker)

        report_text = None
        if check:
            final = controller.render_final()
            report = validate_final_image(final, controller.output_spec, controller.params.background)
            report_text = format_report_text(report)

        written = controller.export(output_path)
    return written, report_text


def _build_arg_parser() -> argparse.ArgumentParser:
    palette = ", ".join(BACKGROUND_PALETTE)
    p = argparse.ArgumentParser(description="Generate a print-ready passport/visa photo at exact pixel size.")
    p.add_argument("--input", "-i", required=True, help="Path to input photo")
    p.add_argument("--output", "-o", default=None, help="Output file or directory (default: <spec>-photo.jpg)")
    p.add_argument("--spec", choices=sorted(OUTPUT_SPECS), default=None, help="Photo standard (default: schengen)")
    p.add_argument("--background", "-b", default=None, help=f"Background color: {palette}, or any hex/CSS color")
    p.add_argument("--mask", default=None, help="Precomputed foreground mask image (skips the segmentation model)")
    p.add_argument("--segmenter", choices=SEGMENTERS, default=None, help="Segmentation backend (default: mediapipe)")
    p.add_argument("--feather", type=float, default=None, help="Edge feather radius in pixels (default: 0)")
    p.add_argument("--zoom", type=float, default=1.0, help="Zoom factor, 1.0 = largest crop that fits (max 3.0)")
    p.add_argument("--offset-x", type=float, default=0.0, help="Move crop center right by N source pixels")
    p.add_argument("--offset-y", type=float, default=0.0, help="Move crop center down by N source pixels")
    p.add_argument("--resample", choices=RESAMPLE_FILTERS, default=None, help="Resampling filter (default: bilinear)")
    p.add_argument("--check", action="store_true", help="Print a photo check report")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return p


def _params_from_args(args: argparse.Namespace) -> ProcessingParams:
    overrides = {
        "spec_id": args.spec,
        "background": args.background,
        "segmenter": args.segmenter,
        "feather_radius": args.feather,
        "resample": args.resample,
    }
    return replace(ProcessingParams.from_env(), **{k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        params = _params_from_args(args)
        written, report_text = process_photo(
            input_path=args.input,
            output_path=args.output,
            params=params,
            mask_path=args.mask,
            zoom=args.zoom,
            offset=(args.offset_x, args.offset_y),
            check=args.check,
        )
    except (PassportFrameError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if report_text:
        print(report_text)
    print(f"Saved: {written}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
