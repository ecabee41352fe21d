from __future__ import annotations

import math
import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional, Tuple, Union

from PIL import ImageColor

from passportframe.core.errors import InvalidInput

RGB = Tuple[int, int, int]
ColorLike = Union[str, RGB]


@dataclass(frozen=True)
class OutputSpec:
    """
    Fixed pixel size of a printed photo standard.

    Sizes are what print services expect at `dpi`; they must not be derived at runtime.
    """
    id: str
    width_px: int
    height_px: int
    label: str
    dpi: int = 600

    @property
    def aspect_ratio(self) -> float:
        return self.width_px / self.height_px

    @property
    def size(self) -> Tuple[int, int]:
        return self.width_px, self.height_px


OUTPUT_SPECS: dict[str, OutputSpec] = {
    "schengen": OutputSpec(id="schengen", width_px=827, height_px=1063, label="Schengen (35×45 mm)"),
    "us": OutputSpec(id="us", width_px=1181, height_px=1181, label="US (2×2 inch)"),
}

# Name -> hex, in the order the UI lists them.
BACKGROUND_PALETTE: dict[str, str] = {
    "White": "#ffffff",
    "Blue": "#87CEEB",
    "Light Gray": "#d9d9d9",
    "Off White": "#f2f2f2",
    "Red": "#ff0000",
    "Black": "#000000",
}

RESAMPLE_FILTERS = ("bilinear", "bicubic", "lanczos")
SEGMENTERS = ("mediapipe", "rembg", "none")


def get_output_spec(spec_id: str) -> OutputSpec:
    try:
        return OUTPUT_SPECS[spec_id.strip().lower()]
    except (KeyError, AttributeError):
        raise InvalidInput(
            f"unknown output spec {spec_id!r} (expected one of: {', '.join(OUTPUT_SPECS)})"
        ) from None


def parse_color(color: ColorLike) -> RGB:
    """
    Resolve a background color to an (r, g, b) tuple.

    Accepts palette names ("Light Gray"), anything Pillow's ImageColor understands
    ("#87CEEB", "skyblue", "rgb(0,0,255)") and 3-tuples of ints in [0, 255].
    """
    if isinstance(color, str):
        for name, hex_value in BACKGROUND_PALETTE.items():
            if color.strip().lower() == name.lower():
                color = hex_value
                break
        try:
            rgb = ImageColor.getrgb(color.strip())
        except ValueError as e:
            raise InvalidInput(f"unrecognized color {color!r}") from e
        return int(rgb[0]), int(rgb[1]), int(rgb[2])

    try:
        r, g, b = (int(c) for c in color)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"color must be a string or an (r, g, b) tuple, got {color!r}") from e
    if not all(0 <= c <= 255 for c in (r, g, b)):
        raise InvalidInput(f"color components must be in [0, 255], got {color!r}")
    return r, g, b


def color_to_hex(color: ColorLike) -> str:
    r, g, b = parse_color(color)
    return f"#{r:02x}{g:02x}{b:02x}"


@dataclass(frozen=True)
class CropRectangle:
    """Crop region in composite pixel coordinates (sub-pixel precision)."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2.0, self.y + self.height / 2.0

    def as_box(self) -> Tuple[float, float, float, float]:
        """(left, upper, right, lower) as Pillow expects for `box=`."""
        return self.x, self.y, self.right, self.bottom

    def fits_within(self, width: int, height: int, eps: float = 1e-6) -> bool:
        return (
            self.x >= -eps
            and self.y >= -eps
            and self.right <= width + eps
            and self.bottom <= height + eps
        )


@dataclass(frozen=True)
class ProcessingParams:
    """
    Settings that control how the photo is composited, framed and exported.

    spec_id:
        Output standard, a key of OUTPUT_SPECS. Default "schengen".
    background:
        Flat background color (palette name, color string or RGB tuple). Default white.
    feather_radius:
        Gaussian sigma in mask pixels used to soften the matte edge. 0 disables it.
    zoom_min / zoom_max:
        Bounds of the interactive zoom slider.
    resample:
        Filter used to render the crop: "bilinear", "bicubic" or "lanczos".
    jpeg_quality:
        Export quality (1-100).
    segmenter:
        Segmentation backend: "mediapipe", "rembg" or "none".
    segmentation_timeout:
        Seconds to wait for the segmentation backend; None waits forever.
    """
    spec_id: str = "schengen"
    background: ColorLike = "#ffffff"
    feather_radius: float = 0.0
    zoom_min: float = 1.0
    zoom_max: float = 3.0
    resample: str = "bilinear"
    jpeg_quality: int = 100
    segmenter: str = "mediapipe"
    segmentation_timeout: Optional[float] = 60.0

    def __post_init__(self) -> None:
        get_output_spec(self.spec_id)
        parse_color(self.background)
        if not math.isfinite(self.feather_radius) or self.feather_radius < 0:
            raise InvalidInput(f"feather_radius must be >= 0, got {self.feather_radius}")
        if not (1.0 <= self.zoom_min <= self.zoom_max) or not math.isfinite(self.zoom_max):
            raise InvalidInput(f"invalid zoom range [{self.zoom_min}, {self.zoom_max}] (zoom_min must be >= 1)")
        if self.resample not in RESAMPLE_FILTERS:
            raise InvalidInput(f"resample must be one of {RESAMPLE_FILTERS}, got {self.resample!r}")
        if not (1 <= self.jpeg_quality <= 100):
            raise InvalidInput(f"jpeg_quality must be in 1..100, got {self.jpeg_quality}")
        if self.segmenter not in SEGMENTERS:
            raise InvalidInput(f"segmenter must be one of {SEGMENTERS}, got {self.segmenter!r}")
        if self.segmentation_timeout is not None and self.segmentation_timeout <= 0:
            raise InvalidInput("segmentation_timeout must be positive or None")

    @property
    def output_spec(self) -> OutputSpec:
        return get_output_spec(self.spec_id)

    @property
    def background_rgb(self) -> RGB:
        return parse_color(self.background)

    @property
    def zoom_range(self) -> Tuple[float, float]:
        return self.zoom_min, self.zoom_max

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, prefix: str = "PASSPORTFRAME_"
    ) -> "ProcessingParams":
        """
        Build params from PASSPORTFRAME_<FIELD> variables (e.g. PASSPORTFRAME_FEATHER_RADIUS=2).

        Unset or blank variables keep the default.
        """
        env = os.environ if environ is None else environ
        kwargs = {}
        for f in fields(cls):
            raw = env.get(prefix + f.name.upper(), "").strip()
            if not raw:
                continue
            try:
                if f.name in ("feather_radius", "zoom_min", "zoom_max"):
                    kwargs[f.name] = float(raw)
                elif f.name == "jpeg_quality":
                    kwargs[f.name] = int(raw)
                elif f.name == "segmentation_timeout":
                    kwargs[f.name] = None if raw.lower() in ("none", "0", "off") else float(raw)
                else:
                    kwargs[f.name] = raw
            except ValueError as e:
                raise InvalidInput(f"{prefix}{f.name.upper()}: {e}") from e
        return cls(**kwargs)
