"""Tests for the enhancement filters and the named filter chain."""

import numpy as np
import pytest

from scansplit.filters import (
    DEFAULT_FILTERS,
    FILTERS,
    apply_filters,
    bilateral_approx,
    equalize_tiles,
    gaussian_denoise,
    luminance,
    unsharp_mask,
)


def _make_bgr(h=30, w=40, seed=0):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(h, w, 3), dtype=np.uint8)


def _flat(h=30, w=40, value=128):
    return np.full((h, w, 3), value, dtype=np.uint8)


class TestLuminance:
    def test_grey_is_identity(self):
        img = _flat(value=117)
        assert (luminance(img) == 117).all()

    def test_weights(self):
        img = np.zeros((1, 1, 3), dtype=np.uint8)
        img[0, 0] = (0, 0, 255)       # pure red in BGR
        assert luminance(img)[0, 0] == 76


class TestEqualizeTiles:
    def test_low_contrast_is_stretched(self):
        rng = np.random.default_rng(1)
        grey = rng.integers(100, 121, size=(64, 64), dtype=np.uint8)
        img = np.repeat(grey[:, :, None], 3, axis=2)
        out = equalize_tiles(img)
        assert out.shape == img.shape
        assert out.astype(float).std() > img.astype(float).std()

    def test_black_stays_black(self):
        img = _flat(value=0)
        np.testing.assert_array_equal(equalize_tiles(img), img)

    def test_non_multiple_of_tile(self):
        img = _make_bgr(37, 53)
        assert equalize_tiles(img).shape == (37, 53, 3)


class TestBilateral:
    def test_uniform_image_unchanged(self):
        img = _flat(value=90)
        out = bilateral_approx(img)
        assert np.abs(out.astype(int) - img.astype(int)).max() <= 1

    def test_small_image_copied(self):
        img = _make_bgr(4, 4)
        out = bilateral_approx(img)
        np.testing.assert_array_equal(out, img)
        assert out is not img

    def test_edge_preserved(self):
        img = _flat(value=20)
        img[:, 20:] = 230
        out = bilateral_approx(img)
        # a 210-level step is far outside the colour sigma, so it survives
        assert out[:, :18].max() < 40
        assert out[:, 22:].min() > 210


class TestUnsharpAndDenoise:
    def test_uniform_image_unchanged(self):
        img = _flat(value=140)
        np.testing.assert_array_equal(unsharp_mask(img, 1.0), img)

    def test_edge_overshoot(self):
        img = _flat(value=100)
        img[:, 20:] = 150
        out = unsharp_mask(img, 2.0)
        assert out.min() < 100
        assert out.max() > 150

    def test_tiny_image_copied(self):
        img = _make_bgr(2, 2)
        np.testing.assert_array_equal(unsharp_mask(img, 1.0), img)

    def test_denoise_smooths_noise(self):
        img = _make_bgr(60, 60)
        out = gaussian_denoise(img, 1.5)
        assert out.astype(float).std() < img.astype(float).std()


class TestApplyFilters:
    @pytest.mark.parametrize("name", sorted(FILTERS))
    def test_every_filter_preserves_shape(self, name):
        img = _make_bgr()
        out = apply_filters(img, [name])
        assert out.shape == img.shape
        assert out.dtype == np.uint8

    def test_unknown_names_skipped(self):
        img = _make_bgr()
        out = apply_filters(img, ["posterize", "not-a-filter"])
        np.testing.assert_array_equal(out, img)
        assert out is not img

    def test_empty_chain(self):
        img = _make_bgr()
        np.testing.assert_array_equal(apply_filters(img, []), img)

    def test_default_chain(self):
        img = _make_bgr()
        expected = img
        for name in DEFAULT_FILTERS:
            expected = FILTERS[name](expected)
        np.testing.assert_array_equal(apply_filters(img), expected)

    def test_order_matters(self):
        img = _make_bgr()
        a = apply_filters(img, ["clahe", "denoise"])
        b = apply_filters(img, ["denoise", "clahe"])
        assert not np.array_equal(a, b)

    def test_input_not_modified(self):
        img = _make_bgr()
        before = img.copy()
        apply_filters(img, ["clahe", "sharpen_strong", "bilateral"])
        np.testing.assert_array_equal(img, before)
