"""Tests for the preview module.

Tests cover:
- Tone mapping functions (Reinhard, exposure, ACES)
- Gamma correction
- The display pipeline, including non-finite pixels
- Conversion to 8-bit with rounding
- PNG export from arrays and framebuffers
- RMSE computation
"""

import logging

import numpy as np
import pytest
from PIL import Image as PILImage

from voltrace.core.framebuffer import Framebuffer, Tile, TileFailure
from voltrace.preview import (
    apply_gamma,
    compute_rmse,
    image_to_uint8,
    process_image_for_display,
    save_png,
    save_png_from_array,
    tone_map_aces,
    tone_map_exposure,
    tone_map_reinhard,
)


class TestToneMapReinhard:
    """Test Reinhard tone mapping."""

    def test_reinhard_preserves_black(self):
        """Test that Reinhard preserves black (0 -> 0)."""
        assert np.allclose(tone_map_reinhard(np.zeros((10, 10, 3))), 0.0)

    def test_reinhard_formula(self):
        """Test Reinhard formula: L / (1 + L)."""
        for val in [0.0, 0.5, 1.0, 2.0, 10.0]:
            result = tone_map_reinhard(np.full((2, 2, 3), val))
            assert np.allclose(result, val / (1.0 + val), atol=1e-6)

    def test_reinhard_handles_negative_input(self):
        """Test that Reinhard clamps negative values to zero."""
        assert np.all(tone_map_reinhard(np.full((2, 2, 3), -1.0)) == 0.0)


class TestToneMapExposure:
    """Test exposure-based tone mapping."""

    def test_exposure_formula(self):
        """Test exposure formula: 1 - exp(-c * exposure)."""
        result = tone_map_exposure(np.full((2, 2, 3), 1.0), exposure=2.0)
        assert np.allclose(result, 1.0 - np.exp(-2.0), atol=1e-6)

    def test_exposure_higher_value_brighter(self):
        """Test that higher exposure values produce brighter results."""
        image = np.full((10, 10, 3), 0.5)
        assert tone_map_exposure(image, 2.0).mean() > tone_map_exposure(image, 0.5).mean()

    @pytest.mark.parametrize("exposure", [0.0, -1.0])
    def test_exposure_must_be_positive(self, exposure):
        """Test non-positive exposure is rejected."""
        with pytest.raises(ValueError, match="Exposure must be positive"):
            tone_map_exposure(np.zeros((2, 2, 3)), exposure)


class TestToneMapAces:
    """Test ACES filmic tone mapping."""

    def test_aces_black_stays_near_black(self):
        """Test black maps to (almost) zero."""
        assert np.all(tone_map_aces(np.zeros((2, 2, 3))) < 1e-3)

    def test_aces_monotonic(self):
        """Test brighter grey inputs give brighter outputs."""
        values = np.array([0.01, 0.1, 0.5, 1.0, 4.0, 16.0])
        image = np.repeat(values[None, :, None], 3, axis=2)
        out = tone_map_aces(image)[0, :, 0]
        assert np.all(np.diff(out) > 0.0)

    def test_aces_bounded(self):
        """Test very bright inputs saturate inside [0, 1]."""
        out = tone_map_aces(np.full((2, 2, 3), 1000.0))
        assert np.all((out >= 0.0) & (out <= 1.0))
        assert out.min() > 0.9


class TestApplyGamma:
    """Test gamma correction."""

    def test_gamma_1_no_change(self, rng):
        """Test that gamma=1.0 produces no change."""
        image = rng.random((10, 10, 3))
        assert np.allclose(apply_gamma(image, gamma=1.0), image)

    def test_gamma_preserves_black_and_white(self):
        """Test that gamma preserves 0 and 1 values and brightens midtones."""
        result = apply_gamma(np.array([[[0.0, 1.0, 0.5]]]), gamma=2.2)
        assert result[0, 0, 0] == pytest.approx(0.0)
        assert result[0, 0, 1] == pytest.approx(1.0)
        assert result[0, 0, 2] == pytest.approx(0.5 ** (1.0 / 2.2), rel=1e-6)

    def test_gamma_clamps(self):
        """Test values are clamped to [0, 1] before encoding."""
        result = apply_gamma(np.array([[[-0.5, 2.0, 0.25]]]), gamma=2.2)
        assert result[0, 0, 0] == 0.0
        assert result[0, 0, 1] == 1.0

    def test_invalid_gamma(self):
        """Test non-positive gamma is rejected."""
        with pytest.raises(ValueError, match="Gamma must be positive"):
            apply_gamma(np.zeros((1, 1, 3)), gamma=0.0)


class TestProcessImageForDisplay:
    """Test the full image processing pipeline."""

    @pytest.mark.parametrize(
        "tone_map,expected",
        [("none", 1.0), ("reinhard", 0.5), ("exposure", 1.0 - np.exp(-1.0))],
    )
    def test_tone_map_selection(self, tone_map, expected):
        """Test each method is applied before gamma."""
        result = process_image_for_display(np.full((4, 4, 3), 1.0), tone_map=tone_map, gamma=1.0)
        assert np.allclose(result, expected, atol=1e-6)

    def test_output_always_valid(self, rng):
        """Test that processed output is always in valid display range."""
        for tone_map in ["none", "reinhard", "exposure", "aces"]:
            image = rng.random((10, 10, 3)) * 10.0
            result = process_image_for_display(image, tone_map=tone_map, gamma=2.2)
            assert result.dtype == np.float32
            assert np.all((result >= 0.0) & (result <= 1.0))

    def test_non_finite_pixels_are_black(self):
        """Test NaN and infinite pixels become black."""
        image = np.array([[[np.nan, np.inf, -np.inf], [0.25, 0.25, 0.25]]])
        result = process_image_for_display(image, tone_map="reinhard", gamma=1.0)
        assert np.all(result[0, 0] == 0.0)
        assert np.allclose(result[0, 1], 0.2)

    def test_invalid_tone_map_raises(self):
        """Test that invalid tone map method raises ValueError."""
        with pytest.raises(ValueError, match="Unknown tone mapping"):
            process_image_for_display(np.zeros((2, 2, 3)), tone_map="invalid")


class TestImageToUint8:
    """Test conversion to uint8."""

    def test_black_and_white(self):
        """Test uint8 conversion of black and white."""
        image = np.array([[[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]]])
        result = image_to_uint8(image, gamma=1.0)
        assert result.dtype == np.uint8
        assert np.all(result[0, 0] == 0)
        assert np.all(result[0, 1] == 255)

    def test_rounds_to_nearest(self):
        """Test values are rounded, not truncated."""
        image = np.array([[[0.5, 0.999, 0.002]]])
        result = image_to_uint8(image, gamma=1.0)
        assert result[0, 0].tolist() == [128, 255, 1]


class TestSavePng:
    """Test PNG export functionality."""

    def test_save_png_from_array(self, tmp_path):
        """Test saving a NumPy array as PNG."""
        image = np.zeros((32, 64, 3))
        image[:, :, 0] = np.linspace(0, 1, 64)
        filepath = tmp_path / "gradient.png"
        save_png_from_array(image, filepath, gamma=2.2)

        img = PILImage.open(filepath)
        assert img.size == (64, 32)
        assert img.mode == "RGB"
        pixels = np.asarray(img)
        assert pixels[0, -1, 0] == 255
        assert pixels[0, 0, 0] == 0

    def test_rejects_non_rgb(self, tmp_path):
        """Test grayscale arrays are rejected."""
        with pytest.raises(ValueError, match="shape"):
            save_png_from_array(np.zeros((4, 4)), tmp_path / "grey.png")

    @pytest.mark.parametrize("tone_map", ["none", "reinhard", "exposure", "aces"])
    def test_save_framebuffer(self, tmp_path, tone_map):
        """Test saving the mean radiance of a framebuffer."""
        framebuffer = Framebuffer(16, 8)
        tile = Tile(index=0, x0=0, y0=0, x1=16, y1=8)
        framebuffer.write_tile(tile, np.full((8, 16, 3), 2.0), np.full((8, 16), 4, dtype=np.int64))
        filepath = tmp_path / f"{tone_map}.png"
        save_png(framebuffer, filepath, tone_map=tone_map)

        pixels = np.asarray(PILImage.open(filepath))
        assert pixels.shape == (8, 16, 3)
        assert len(np.unique(pixels)) == 1

    def test_failed_tiles_warn(self, tmp_path, caplog):
        """Test saving an incomplete render logs a warning and writes black pixels."""
        framebuffer = Framebuffer(4, 4)
        framebuffer.write_tile(Tile(0, 0, 0, 4, 2), np.ones((2, 4, 3)), np.ones((2, 4), dtype=np.int64))
        framebuffer.record_failure(TileFailure(Tile(1, 0, 2, 4, 4), 2, "RuntimeError('boom')"))
        filepath = tmp_path / "partial.png"
        with caplog.at_level(logging.WARNING, logger="voltrace.preview.export"):
            save_png(framebuffer, filepath, gamma=1.0)

        assert "1 failed tiles" in caplog.text
        pixels = np.asarray(PILImage.open(filepath))
        assert np.all(pixels[:2] == 255)
        assert np.all(pixels[2:] == 0)


class TestComputeRmse:
    """Test RMSE computation."""

    def test_rmse_identical_images(self, rng):
        """Test RMSE of identical images is zero."""
        image = rng.random((10, 10, 3))
        assert compute_rmse(image, image) == 0.0

    def test_rmse_different_images(self):
        """Test RMSE of all zeros vs all ones is one."""
        assert compute_rmse(np.zeros((10, 10, 3)), np.ones((10, 10, 3))) == pytest.approx(1.0)

    def test_rmse_shape_mismatch_raises(self):
        """Test that RMSE raises for shape mismatch."""
        with pytest.raises(ValueError, match="shapes must match"):
            compute_rmse(np.zeros((10, 10, 3)), np.zeros((20, 20, 3)))
