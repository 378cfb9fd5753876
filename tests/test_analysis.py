"""
Tests for change-region detection, cropping and blackout.
"""

from __future__ import annotations

import numpy as np
import pytest

from apngrec.analysis import PLACEHOLDER_SIZE, DeltaAnalyzer, clamp_region
from apngrec.types import ChangeRegion, Frame


def _frame(image):
    return Frame(image, timestamp=0.0)


# ---------------------------------------------------------------------------
# compute_change_region
# ---------------------------------------------------------------------------

class TestChangeRegion:
    def test_first_call_is_full_frame(self, image_factory):
        analyzer = DeltaAnalyzer()
        region = analyzer.compute_change_region(_frame(image_factory((40, 30))))
        assert region == ChangeRegion(0, 0, 40, 30)
        assert analyzer.has_baseline

    def test_first_call_ignores_content(self, image_factory):
        analyzer = DeltaAnalyzer()
        img = image_factory((40, 30), rect=(5, 5, 6, 6))
        assert analyzer.compute_change_region(_frame(img)) == ChangeRegion(0, 0, 40, 30)

    def test_identical_frames_zero_area(self, image_factory):
        analyzer = DeltaAnalyzer()
        analyzer.compute_change_region(_frame(image_factory()))
        region = analyzer.compute_change_region(_frame(image_factory()))
        assert region.empty

    def test_exact_bounding_rectangle(self, image_factory):
        analyzer = DeltaAnalyzer()
        analyzer.compute_change_region(_frame(image_factory((40, 30))))
        changed = image_factory((40, 30), rect=(7, 3, 12, 20))
        region = analyzer.compute_change_region(_frame(changed))
        assert region == ChangeRegion(7, 3, 6, 18)

    def test_two_separate_spots(self, image_factory):
        analyzer = DeltaAnalyzer()
        analyzer.compute_change_region(_frame(image_factory((40, 30))))
        img = image_factory((40, 30), rect=(2, 25, 2, 25))
        img.putpixel((35, 4), (0, 0, 255, 255))
        region = analyzer.compute_change_region(_frame(img))
        assert region == ChangeRegion(2, 4, 34, 22)

    def test_single_pixel(self, image_factory):
        analyzer = DeltaAnalyzer()
        analyzer.compute_change_region(_frame(image_factory()))
        img = image_factory()
        img.putpixel((39, 29), (0, 0, 0, 255))
        assert analyzer.compute_change_region(_frame(img)) == ChangeRegion(39, 29, 1, 1)

    def test_alpha_only_change_ignored(self, image_factory):
        analyzer = DeltaAnalyzer()
        analyzer.compute_change_region(_frame(image_factory(color=(10, 20, 30, 255))))
        region = analyzer.compute_change_region(_frame(image_factory(color=(10, 20, 30, 0))))
        assert region.empty

    def test_baseline_replaced_every_call(self, image_factory):
        analyzer = DeltaAnalyzer()
        a = image_factory()
        b = image_factory(rect=(1, 1, 2, 2))
        analyzer.compute_change_region(_frame(a))
        analyzer.compute_change_region(_frame(b))
        # Against b, b is unchanged.
        assert analyzer.compute_change_region(_frame(b)).empty

    def test_size_change_is_full_frame(self, image_factory):
        analyzer = DeltaAnalyzer()
        analyzer.compute_change_region(_frame(image_factory((40, 30))))
        region = analyzer.compute_change_region(_frame(image_factory((20, 10))))
        assert region == ChangeRegion(0, 0, 20, 10)

    def test_reset(self, image_factory):
        analyzer = DeltaAnalyzer()
        analyzer.compute_change_region(_frame(image_factory()))
        analyzer.reset()
        assert not analyzer.has_baseline
        assert analyzer.compute_change_region(_frame(image_factory())) == ChangeRegion(0, 0, 40, 30)


# ---------------------------------------------------------------------------
# crop
# ---------------------------------------------------------------------------

class TestCrop:
    def test_crop_region(self, image_factory):
        img = image_factory((40, 30), rect=(10, 10, 14, 12))
        out = DeltaAnalyzer().crop(_frame(img), ChangeRegion(10, 10, 5, 3))
        assert out.size == (5, 3)
        assert out.getpixel((0, 0)) == (255, 0, 0, 255)

    def test_crop_empty_region(self, image_factory):
        assert DeltaAnalyzer().crop(_frame(image_factory()), ChangeRegion(3, 3, 0, 5)) is None


# ---------------------------------------------------------------------------
# blackout
# ---------------------------------------------------------------------------

class TestBlackout:
    def test_without_baseline_keeps_pixels(self, image_factory):
        img = image_factory(color=(10, 20, 30, 128))
        out = DeltaAnalyzer().blackout(_frame(img))
        assert out.size == img.size
        assert np.array_equal(np.asarray(out), np.asarray(img))

    def test_without_baseline_force_opaque(self, image_factory):
        out = DeltaAnalyzer().blackout(_frame(image_factory(color=(10, 20, 30, 128))),
                                       force_opaque=True)
        assert out.getpixel((0, 0)) == (10, 20, 30, 255)

    def test_unchanged_pixels_transparent(self, image_factory):
        analyzer = DeltaAnalyzer()
        analyzer.blackout(_frame(image_factory()))
        out = analyzer.blackout(_frame(image_factory(rect=(5, 5, 6, 6))))
        assert out.getpixel((0, 0)) == (0, 0, 0, 0)
        assert out.getpixel((5, 5)) == (255, 0, 0, 255)
        alpha = np.asarray(out)[..., 3]
        assert int((alpha > 0).sum()) == 4

    def test_changed_pixels_keep_alpha(self, image_factory):
        analyzer = DeltaAnalyzer()
        analyzer.blackout(_frame(image_factory()))
        out = analyzer.blackout(_frame(image_factory(rect=(0, 0, 0, 0),
                                                     rect_color=(1, 2, 3, 100))))
        assert out.getpixel((0, 0)) == (1, 2, 3, 100)

    def test_force_opaque_on_changed_pixels(self, image_factory):
        analyzer = DeltaAnalyzer()
        analyzer.blackout(_frame(image_factory()))
        out = analyzer.blackout(_frame(image_factory(rect=(0, 0, 0, 0),
                                                     rect_color=(1, 2, 3, 100))),
                                force_opaque=True)
        assert out.getpixel((0, 0)) == (1, 2, 3, 255)
        assert out.getpixel((1, 1)) == (0, 0, 0, 0)

    def test_baseline_is_untransformed_frame(self, image_factory):
        analyzer = DeltaAnalyzer()
        changed = image_factory(rect=(5, 5, 6, 6))
        analyzer.blackout(_frame(image_factory()))
        analyzer.blackout(_frame(changed))
        # If the transformed image had become the baseline, every pixel
        # would now differ; against the raw frame nothing does.
        assert analyzer.compute_change_region(_frame(changed)).empty


# ---------------------------------------------------------------------------
# clamp_region
# ---------------------------------------------------------------------------

class TestClampRegion:
    def test_non_empty_unchanged(self):
        region = ChangeRegion(3, 4, 5, 6)
        assert clamp_region(region, 40, 30) is region

    def test_empty_near_origin(self):
        region = clamp_region(ChangeRegion(0, 0, 0, 0), 40, 30)
        assert region == ChangeRegion(2, 2, PLACEHOLDER_SIZE, PLACEHOLDER_SIZE)

    def test_empty_anchored_to_previous_offset(self):
        region = clamp_region(ChangeRegion(0, 0, 0, 0), 40, 30, anchor=(20, 10))
        assert region == ChangeRegion(18, 8, 2, 2)

    def test_stays_inside_frame(self):
        region = clamp_region(ChangeRegion(0, 0, 0, 0), 40, 30, anchor=(60, 60))
        assert region.fits(40, 30)
        assert (region.width, region.height) == (2, 2)

    @pytest.mark.parametrize("size", [(1, 1), (2, 2), (3, 1)])
    def test_tiny_frames(self, size):
        region = clamp_region(ChangeRegion(0, 0, 0, 0), *size)
        assert not region.empty
        assert region.fits(*size)
