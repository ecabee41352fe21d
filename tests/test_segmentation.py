import os
import tempfile
import unittest
from types import SimpleNamespace
from unittest.mock import patch

import numpy as np
from PIL import Image

from tests._test_path import SRC  # noqa: F401

from passportframe.core.bitmap import solid_bitmap
from passportframe.core.errors import InvalidInput, SegmentationUnavailable
from passportframe.core import segmentation as seg


class _FakeSelfieSegmentation:
    def __init__(self, mask=None, error=None):
        self.mask = mask
        self.error = error
        self.seen_shape = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def process(self, rgb):
        self.seen_shape = rgb.shape
        if self.error is not None:
            raise self.error
        return SimpleNamespace(segmentation_mask=self.mask)


class TestSimpleSegmenters(unittest.TestCase):
    def test_opaque(self):
        m = seg.OpaqueSegmenter()(solid_bitmap(6, 4, "#000000"))
        self.assertEqual(m.shape, (4, 6))
        self.assertTrue((m == 1.0).all())

    def test_file_mask_is_resized_to_source(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "mask.png")
            mask = np.zeros((10, 20), dtype=np.uint8)
            mask[:, :10] = 255
            Image.fromarray(mask).save(path)

            m = seg.FileMaskSegmenter(path)(solid_bitmap(40, 20, "#ffffff"))
        self.assertEqual(m.shape, (20, 40))
        self.assertAlmostEqual(float(m[10, 0]), 1.0)
        self.assertAlmostEqual(float(m[10, 39]), 0.0)

    def test_missing_file(self):
        with self.assertRaises(SegmentationUnavailable):
            seg.FileMaskSegmenter("/nonexistent/mask.png")(solid_bitmap(4, 4, "#ffffff"))

    def test_make_segmenter(self):
        self.assertIsInstance(seg.make_segmenter("mediapipe"), seg.MediaPipeSegmenter)
        self.assertIsInstance(seg.make_segmenter("rembg"), seg.RembgSegmenter)
        self.assertIsInstance(seg.make_segmenter("none"), seg.OpaqueSegmenter)
        with self.assertRaises(InvalidInput):
            seg.make_segmenter("sam")


class TestMediaPipeSegmenter(unittest.TestCase):
    def test_mask_is_returned_as_float(self):
        fake = _FakeSelfieSegmentation(mask=np.full((8, 12), 0.75, dtype=np.float32))
        s = seg.MediaPipeSegmenter()
        with patch.object(s, "_load_backend", return_value=fake):
            m = s(solid_bitmap(12, 8, "#808080"))
        self.assertEqual(fake.seen_shape, (8, 12, 3))
        self.assertEqual(m.shape, (8, 12))
        self.assertTrue(np.allclose(m, 0.75))

    def test_no_mask_is_unavailable(self):
        s = seg.MediaPipeSegmenter()
        with patch.object(s, "_load_backend", return_value=_FakeSelfieSegmentation(mask=None)):
            with self.assertRaises(SegmentationUnavailable):
                s(solid_bitmap(4, 4, "#808080"))

    def test_backend_errors_are_wrapped(self):
        s = seg.MediaPipeSegmenter()
        fake = _FakeSelfieSegmentation(error=RuntimeError("graph failed"))
        with patch.object(s, "_load_backend", return_value=fake):
            with self.assertRaises(SegmentationUnavailable) as ctx:
                s(solid_bitmap(4, 4, "#808080"))
        self.assertIn("graph failed", str(ctx.exception))

    def test_not_installed(self):
        s = seg.MediaPipeSegmenter()
        with patch.object(s, "_load_backend", side_effect=SegmentationUnavailable("mediapipe is not installed")):
            with self.assertRaises(SegmentationUnavailable):
                s(solid_bitmap(4, 4, "#808080"))


class TestRembgSegmenter(unittest.TestCase):
    def test_only_mask_result(self):
        calls = {}

        def fake_remove(img, session=None, only_mask=False):
            calls["size"] = img.size
            calls["only_mask"] = only_mask
            return Image.new("L", (img.width // 2, img.height // 2), 255)

        s = seg.RembgSegmenter()
        with patch.object(s, "_load_backend", return_value=(fake_remove, None)):
            m = s(solid_bitmap(16, 10, "#808080"))
        self.assertEqual(calls, {"size": (16, 10), "only_mask": True})
        self.assertEqual(m.shape, (10, 16))
        self.assertTrue(np.allclose(m, 1.0))

    def test_errors_are_wrapped(self):
        def broken_remove(img, session=None, only_mask=False):
            raise MemoryError("onnx")

        s = seg.RembgSegmenter()
        with patch.object(s, "_load_backend", return_value=(broken_remove, None)):
            with self.assertRaises(SegmentationUnavailable):
                s(solid_bitmap(4, 4, "#808080"))
