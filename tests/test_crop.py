import itertools
import unittest

from tests._test_path import SRC  # noqa: F401

from passportframe.core.crop import (
    HEAD_GUIDE_HEIGHT,
    HEAD_GUIDE_TOP,
    HEAD_GUIDE_WIDTH,
    CropState,
    clamp_zoom,
    compute_crop_rectangle,
    head_guide_rectangle,
)
from passportframe.core.errors import ImageTooSmall, InvalidInput
from passportframe.core.models import OUTPUT_SPECS, CropRectangle

SCHENGEN = OUTPUT_SPECS["schengen"]
US = OUTPUT_SPECS["us"]


class TestComputeCropRectangle(unittest.TestCase):
    def test_zoom_one_is_largest_fit(self):
        # Landscape image, portrait aspect: full height is used.
        r = compute_crop_rectangle(1600, 1000, (0, 0), 1.0, SCHENGEN.aspect_ratio)
        self.assertAlmostEqual(r.height, 1000.0)
        self.assertAlmostEqual(r.width, 1000.0 * SCHENGEN.aspect_ratio)
        self.assertAlmostEqual(r.center[0], 800.0)

        # Tall image, square aspect: full width is used.
        r = compute_crop_rectangle(600, 900, (0, 0), 1.0, US.aspect_ratio)
        self.assertEqual((r.x, r.width, r.height), (0.0, 600.0, 600.0))
        self.assertAlmostEqual(r.y, 150.0)

    def test_zoom_shrinks_around_offset(self):
        r1 = compute_crop_rectangle(1000, 1000, (0, 0), 1.0, 1.0)
        r2 = compute_crop_rectangle(1000, 1000, (100, -50), 2.0, 1.0)
        self.assertAlmostEqual(r2.width, r1.width / 2.0)
        self.assertEqual(r2.center, (600.0, 450.0))

    def test_offset_is_clamped_inside(self):
        r = compute_crop_rectangle(1000, 800, (5000, -5000), 2.0, 1.0)
        self.assertAlmostEqual(r.right, 1000.0)
        self.assertAlmostEqual(r.y, 0.0)

    def test_zoom_clamped_to_range(self):
        self.assertEqual(clamp_zoom(0.2), 1.0)
        self.assertEqual(clamp_zoom(10.0), 3.0)
        self.assertEqual(clamp_zoom(5.0, (1.0, 5.0)), 5.0)
        r = compute_crop_rectangle(900, 900, (0, 0), 10.0, 1.0)
        self.assertAlmostEqual(r.width, 300.0)

    def test_always_inside_with_target_aspect(self):
        sizes = [(1000, 1000), (640, 480), (480, 640), (3024, 4032), (37, 3), (3, 37)]
        zooms = [1.0, 1.01, 1.5, 2.0, 2.75, 3.0]
        offsets = [(0, 0), (10, -20), (-1e6, 1e6), (123.4, 56.7), (-3, -3)]
        for (w, h), z, off, spec in itertools.product(sizes, zooms, offsets, (SCHENGEN, US)):
            try:
                r = compute_crop_rectangle(w, h, off, z, spec.aspect_ratio)
            except ImageTooSmall:
                continue
            with self.subTest(size=(w, h), zoom=z, offset=off, spec=spec.id):
                self.assertTrue(r.fits_within(w, h), r)
                self.assertLess(abs(r.aspect_ratio - spec.aspect_ratio), 1e-3)

    def test_zoom_below_one_is_raised_to_largest_fit(self):
        self.assertEqual(clamp_zoom(0.5, (0.5, 3.0)), 1.0)
        r = compute_crop_rectangle(1000, 1000, (0, 0), 0.5, 1.0, (0.5, 3.0))
        self.assertTrue(r.fits_within(1000, 1000), r)
        self.assertAlmostEqual(r.width, 1000.0)
        self.assertAlmostEqual(r.x, 0.0)

    def test_image_too_small(self):
        with self.assertRaises(ImageTooSmall):
            compute_crop_rectangle(100, 1, (0, 0), 1.0, SCHENGEN.aspect_ratio)
        with self.assertRaises(ImageTooSmall):
            compute_crop_rectangle(1, 100, (0, 0), 1.0, 4.0)

    def test_invalid_input(self):
        with self.assertRaises(InvalidInput):
            compute_crop_rectangle(0, 100, (0, 0), 1.0, 1.0)
        with self.assertRaises(InvalidInput):
            compute_crop_rectangle(100, 100, (0, 0), 1.0, 0.0)
        with self.assertRaises(InvalidInput):
            compute_crop_rectangle(100, 100, (0, 0), float("inf"), 1.0)


class TestCropState(unittest.TestCase):
    def test_pan_past_edge_does_not_accumulate(self):
        s = CropState(image_width=1000, image_height=1000, spec=US).zoomed(2.0)
        s = s.panned(10_000, 0)
        self.assertAlmostEqual(s.offset[0], 250.0)
        self.assertAlmostEqual(s.rectangle().right, 1000.0)
        # One step back moves immediately, no hidden slack to unwind.
        s = s.panned(-10, 0)
        self.assertAlmostEqual(s.offset[0], 240.0)

    def test_transitions_are_pure(self):
        s0 = CropState(image_width=800, image_height=600, spec=SCHENGEN)
        s1 = s0.zoomed(1.5).panned(20, 10)
        self.assertEqual(s0.zoom, 1.0)
        self.assertEqual(s0.offset, (0.0, 0.0))
        self.assertEqual(s1.zoom, 1.5)
        self.assertEqual(s1.rectangle(), s1.rectangle())

    def test_spec_change_keeps_pan_and_zoom(self):
        s = CropState(image_width=2000, image_height=1000, spec=SCHENGEN).zoomed(2.0).with_offset(300, 100)
        before = s.offset
        s2 = s.with_spec(US)
        self.assertEqual(s2.zoom, 2.0)
        self.assertEqual(s2.spec, US)
        # Still reachable with the square crop, so the pan is kept.
        self.assertAlmostEqual(s2.offset[0], before[0])
        self.assertAlmostEqual(s2.offset[1], before[1])
        r = s2.rectangle()
        self.assertAlmostEqual(r.aspect_ratio, 1.0)
        self.assertTrue(r.fits_within(2000, 1000))

    def test_spec_change_reclamps(self):
        s = CropState(image_width=2000, image_height=1000, spec=SCHENGEN).with_offset(-10_000, 0)
        x_before = s.rectangle().x
        self.assertAlmostEqual(x_before, 0.0)
        s2 = s.with_spec(US)
        self.assertAlmostEqual(s2.rectangle().x, 0.0)
        self.assertAlmostEqual(s2.offset[0], 500.0 - 1000.0)

    def test_zoom_out_reclamps(self):
        s = CropState(image_width=1000, image_height=1000, spec=US).zoomed(3.0).with_offset(300, 300)
        s = s.zoomed(1.0)
        self.assertEqual(s.offset, (0.0, 0.0))

    def test_too_small_image_state(self):
        s = CropState(image_width=100, image_height=1, spec=SCHENGEN)
        self.assertIs(s.panned(5, 5).spec, SCHENGEN)
        with self.assertRaises(ImageTooSmall):
            s.rectangle()

    def test_narrower_zoom_range_reclamps_zoom_and_offset(self):
        s = CropState(image_width=1000, image_height=1000, spec=US).zoomed(3.0).with_offset(300, 300)
        self.assertAlmostEqual(s.offset[0], 300.0)

        s2 = s.with_zoom_range((1.0, 2.0))
        self.assertEqual(s2.zoom, 2.0)
        self.assertEqual(s2.zoom_range, (1.0, 2.0))
        # A 500 px crop can only move 250 px off center.
        self.assertAlmostEqual(s2.offset[0], 250.0)
        self.assertAlmostEqual(s2.offset[1], 250.0)
        self.assertTrue(s2.rectangle().fits_within(1000, 1000))

    def test_wider_zoom_range_keeps_zoom_and_offset(self):
        s = CropState(image_width=1000, image_height=1000, spec=US).zoomed(3.0).with_offset(300, 300)
        s2 = s.with_zoom_range((1.0, 5.0))
        self.assertEqual(s2.zoom, 3.0)
        self.assertAlmostEqual(s2.offset[0], 300.0)
        self.assertAlmostEqual(s2.offset[1], 300.0)
        self.assertEqual(s2.zoomed(4.5).zoom, 4.5)

    def test_rectangle_inside_for_any_zoom_range(self):
        ranges = [(1.0, 1.0), (1.0, 2.0), (1.5, 4.0), (2.0, 2.0), (0.25, 3.0)]
        zooms = [0.1, 0.5, 1.0, 1.7, 3.0, 9.0]
        offsets = [(0, 0), (-1e6, 1e6), (40, -70)]
        for zr, z, off in itertools.product(ranges, zooms, offsets):
            s = CropState(image_width=640, image_height=480, spec=SCHENGEN).with_zoom_range(zr)
            s = s.zoomed(z).with_offset(*off)
            with self.subTest(zoom_range=zr, zoom=z, offset=off):
                r = s.rectangle()
                self.assertTrue(r.fits_within(640, 480), r)
                self.assertLess(abs(r.aspect_ratio - SCHENGEN.aspect_ratio), 1e-3)


class TestHeadGuide(unittest.TestCase):
    def test_guide_fractions_of_crop(self):
        g = head_guide_rectangle(CropRectangle(x=100.0, y=50.0, width=400.0, height=600.0))
        self.assertAlmostEqual(g.width, 400.0 * HEAD_GUIDE_WIDTH)
        self.assertAlmostEqual(g.height, 600.0 * HEAD_GUIDE_HEIGHT)
        self.assertAlmostEqual(g.y, 50.0 + 600.0 * HEAD_GUIDE_TOP)
        self.assertAlmostEqual(g.center[0], 300.0)

    def test_guide_stays_inside_crop(self):
        crop = compute_crop_rectangle(1200, 900, (200, -50), 2.0, SCHENGEN.aspect_ratio)
        g = head_guide_rectangle(crop)
        self.assertGreaterEqual(g.x, crop.x)
        self.assertGreaterEqual(g.y, crop.y)
        self.assertLessEqual(g.right, crop.right)
        self.assertLessEqual(g.bottom, crop.bottom)
