from __future__ import annotations

from typing import Any, List

import numpy as np

from passportframe.core.models import ColorLike, OutputSpec, parse_color
from passportframe.validation.report import RuleResult, ValidationReport

# Max Euclidean RGB distance for a pixel to count as background.
BACKGROUND_TOLERANCE = 24.0
BACKGROUND_TARGET = 0.90
# Side strips are only checked over the top part of the photo; shoulders reach the
# lower corners.
SIDE_STRIP_HEIGHT = 0.6
MIN_SUBJECT_SHARE = 0.01


def _to_rgb(img: np.ndarray) -> np.ndarray:
    arr = np.asarray(img)
    if arr.ndim == 2:
        arr = np.stack([arr, arr, arr], axis=-1)
    if arr.shape[-1] == 4:
        arr = arr[:, :, :3]
    return arr.astype(np.uint8)


def _background_distance(img_rgb: np.ndarray, bg: tuple[int, int, int]) -> np.ndarray:
    diff = img_rgb.astype(np.float32) - np.asarray(bg, dtype=np.float32)
    return np.sqrt((diff * diff).sum(axis=-1))


def _border_pixels(img_rgb: np.ndarray, margin: int) -> np.ndarray:
    h, w, _ = img_rgb.shape
    m = max(1, min(margin, h // 2, w // 2))
    side_h = max(m, int(h * SIDE_STRIP_HEIGHT))
    top = img_rgb[:m, :, :]
    left = img_rgb[m:side_h, :m, :]
    right = img_rgb[m:side_h, w - m :, :]
    return np.concatenate([top.reshape(-1, 3), left.reshape(-1, 3), right.reshape(-1, 3)], axis=0)


def _lighting_metrics(pixels_rgb: np.ndarray) -> dict[str, Any]:
    px = pixels_rgb.astype(np.float32)
    gray = 0.2126 * px[:, 0] + 0.7152 * px[:, 1] + 0.0722 * px[:, 2]
    return {
        "luma_mean": float(gray.mean()),
        "luma_std": float(gray.std()),
        "dark_clip": float((gray <= 10).mean()),
        "bright_clip": float((gray >= 245).mean()),
    }


def validate_final_image(image: np.ndarray, spec: OutputSpec, background: ColorLike) -> ValidationReport:
    """
    Run guidance checks on a rendered photo.

    These are heuristics to catch obvious framing or lighting problems before printing,
    not an official acceptance check.
    """
    results: List[RuleResult] = []
    img_rgb = _to_rgb(image)
    H, W = img_rgb.shape[:2]
    bg = parse_color(background)

    # Size
    size_ok = (W, H) == spec.size
    results.append(
        RuleResult(
            rule_id="Size",
            passed=size_ok,
            message=f"{W}x{H} pixels (expected {spec.width_px}x{spec.height_px} for {spec.label}).",
            metrics={"width": W, "height": H, "expected": list(spec.size)},
        )
    )

    # Background: top strip and upper side strips should be the chosen color
    margin = max(10, int(0.05 * min(H, W)))
    border = _border_pixels(img_rgb, margin)
    dist = _background_distance(border, bg)
    bg_ratio = float((dist <= BACKGROUND_TOLERANCE).mean()) if dist.size else 0.0
    bg_ok = bg_ratio >= BACKGROUND_TARGET
    bg_msg = f"Border pixels matching background: {bg_ratio*100:.1f}% (target ≥ {BACKGROUND_TARGET*100:.0f}%)."
    if not bg_ok:
        bg_msg += " Hair or shoulders may touch the edge, or the cut-out missed part of the background."
    results.append(
        RuleResult(
            rule_id="Background",
            passed=bg_ok,
            message=bg_msg,
            metrics={"match_ratio": bg_ratio, "margin_px": margin, "tolerance": BACKGROUND_TOLERANCE},
        )
    )

    # Lighting, measured on the subject only
    subject = _background_distance(img_rgb, bg) > BACKGROUND_TOLERANCE
    subject_share = float(subject.mean())
    if subject_share < MIN_SUBJECT_SHARE:
        results.append(
            RuleResult(
                rule_id="Lighting",
                passed=False,
                message="No subject found (the photo is almost entirely background).",
                metrics={"subject_share": subject_share},
            )
        )
    else:
        lmets = _lighting_metrics(img_rgb[subject])
        mean = lmets["luma_mean"]
        std = lmets["luma_std"]
        dark_clip = lmets["dark_clip"]
        bright_clip = lmets["bright_clip"]

        light_ok = (60.0 <= mean <= 210.0) and (dark_clip <= 0.02) and (bright_clip <= 0.02) and (15.0 <= std <= 90.0)
        light_msg = f"Mean {mean:.0f}, Std {std:.0f}, Clip(D/B) {dark_clip*100:.1f}%/{bright_clip*100:.1f}%."
        if not light_ok:
            light_msg += " Avoid harsh shadows/backlight; use even front lighting."
        lmets["subject_share"] = subject_share
        results.append(RuleResult(rule_id="Lighting", passed=light_ok, message=light_msg, metrics=lmets))

    passed = all(r.passed for r in results)
    return ValidationReport(passed=passed, results=results, spec_id=spec.id)


def format_report_text(report: ValidationReport) -> str:
    lines: List[str] = []
    lines.append("PassportFrame Photo Check")
    lines.append("-" * 25)
    if report.spec_id:
        lines.append(f"Standard: {report.spec_id}")
    lines.append(f"Overall: {'PASS' if report.passed else 'FAIL'}")
    lines.append("")
    for r in report.results:
        mark = "✅" if r.passed else "❌"
        lines.append(f"{mark} {r.rule_id}: {r.message}")
    return "\n".join(lines)
