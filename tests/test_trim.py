"""Tests for dark scanner-bed edge trimming."""

import numpy as np

from scansplit.trim import TrimSettings, auto_trim_dark_edges


def _make_bgr(h, w, value=200):
    return np.full((h, w, 3), value, dtype=np.uint8)


class TestAutoTrim:
    def test_left_margin_removed(self):
        img = _make_bgr(200, 200)
        img[:, :10] = 0
        out = auto_trim_dark_edges(img)
        assert out.shape == (200, 190, 3)
        assert (out == 200).all()

    def test_all_sides(self):
        img = _make_bgr(100, 100, 10)
        img[5:95, 3:97] = 180
        out = auto_trim_dark_edges(img)
        assert out.shape == (90, 94, 3)

    def test_trim_is_capped(self):
        img = _make_bgr(100, 100)
        img[:, :30] = 0
        out = auto_trim_dark_edges(img)
        # at most 8% per side
        assert out.shape == (100, 92, 3)

    def test_all_dark_never_empty(self):
        out = auto_trim_dark_edges(_make_bgr(100, 100, 0))
        assert out.shape == (84, 84, 3)

    def test_small_image_untouched(self):
        img = _make_bgr(15, 15, 0)
        out = auto_trim_dark_edges(img)
        np.testing.assert_array_equal(out, img)
        assert out is not img

    def test_threshold_boundary(self):
        img = _make_bgr(100, 100)
        img[:, :5] = 60
        assert auto_trim_dark_edges(img).shape == (100, 100, 3)
        img[:, :5] = 59
        assert auto_trim_dark_edges(img).shape == (100, 95, 3)

    def test_mostly_bright_column_kept(self):
        img = _make_bgr(100, 100)
        img[:50, :5] = 0            # only half of each column is dark
        assert auto_trim_dark_edges(img).shape == (100, 100, 3)

    def test_custom_settings(self):
        img = _make_bgr(100, 100)
        img[:, :30] = 0
        out = auto_trim_dark_edges(img, TrimSettings(max_trim_fraction=0.5))
        assert out.shape == (100, 70, 3)

    def test_untrimmed_returns_copy(self):
        img = _make_bgr(50, 50)
        out = auto_trim_dark_edges(img)
        assert out is not img
        np.testing.assert_array_equal(out, img)
