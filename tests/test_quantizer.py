"""
Quantizer Tests
===============

Tests for palette learning and nearest-color lookup.
"""

import numpy as np
import pytest

from gifcodec.codec.quantizer import NETWORK_SIZE, Palette, nearest_index, train


def _l1(colors: np.ndarray, color) -> np.ndarray:
    return np.abs(colors.astype(np.int64) - np.asarray(color, dtype=np.int64)).sum(axis=1)


class TestTrain:
    """Tests for palette learning."""

    def test_palette_has_256_entries(self, gradient_rgba):
        """Every trained palette has exactly 256 colors."""
        palette = train(gradient_rgba[..., :3], sample_factor=10)

        assert len(palette) == NETWORK_SIZE
        assert palette.colors.shape == (256, 3)
        assert palette.colors.dtype == np.uint8
        assert len(palette.to_bytes()) == 768

    def test_training_is_deterministic(self, gradient_rgba):
        """The same pixels and factor give the same palette."""
        first = train(gradient_rgba[..., :3], sample_factor=5)
        second = train(gradient_rgba[..., :3], sample_factor=5)

        assert np.array_equal(first.colors, second.colors)

    def test_solid_color_is_learned(self):
        """A single-color image yields an entry close to that color."""
        rgb = np.tile(np.array([[200, 30, 60]], dtype=np.uint8), (64 * 64, 1))
        palette = train(rgb, sample_factor=10)

        assert _l1(palette.colors, (200, 30, 60)).min() <= 8

    def test_two_colors_are_learned(self):
        """Both colors of a two-color image end up in the palette."""
        rgb = np.concatenate([
            np.tile(np.array([[255, 0, 0]], dtype=np.uint8), (2500, 1)),
            np.tile(np.array([[0, 0, 255]], dtype=np.uint8), (2500, 1)),
        ])
        palette = train(rgb, sample_factor=10)

        assert _l1(palette.colors, (255, 0, 0)).min() <= 24
        assert _l1(palette.colors, (0, 0, 255)).min() <= 24

    def test_tiny_image_is_accepted(self):
        """Images below the prime stride are sampled pixel by pixel."""
        rgb = np.array([[255, 0, 0]] * 4, dtype=np.uint8)
        palette = train(rgb, sample_factor=30)

        assert len(palette) == 256
        assert _l1(palette.colors, (255, 0, 0)).min() <= 8

    @pytest.mark.parametrize("factor", [0, -1, 31])
    def test_rejects_sample_factor_out_of_range(self, factor):
        """Sample factors outside 1..30 are rejected."""
        rgb = np.zeros((10, 3), dtype=np.uint8)

        with pytest.raises(ValueError):
            train(rgb, sample_factor=factor)

    def test_rejects_empty_input(self):
        """Training on zero pixels is rejected."""
        with pytest.raises(ValueError):
            train(np.zeros((0, 3), dtype=np.uint8))


class TestPalette:
    """Tests for the Palette type and lookup."""

    def test_colors_are_read_only(self):
        """Palette entries cannot be changed after construction."""
        palette = Palette.grayscale()

        with pytest.raises(ValueError):
            palette.colors[0, 0] = 1

    def test_rejects_wrong_shape(self):
        """Only (256, 3) tables are accepted."""
        with pytest.raises(ValueError):
            Palette.from_colors(np.zeros((16, 3), dtype=np.uint8))

    def test_grayscale_lookup(self):
        """Gray colors map onto the matching ramp entry."""
        palette = Palette.grayscale()

        assert nearest_index(palette, 10, 10, 10) == 10
        assert nearest_index(palette, 255, 255, 255) == 255
        assert nearest_index(palette, 0, 0, 0) == 0

    def test_lookup_matches_brute_force(self):
        """The pruned search finds a minimum L1 distance entry."""
        rng = np.random.default_rng(7)
        palette = Palette.from_colors(rng.integers(0, 256, size=(256, 3)))
        colors = rng.integers(0, 256, size=(500, 3))

        for r, g, b in colors:
            found = nearest_index(palette, int(r), int(g), int(b))
            distances = _l1(palette.colors, (r, g, b))
            assert distances[found] == distances.min()

    def test_index_pixels(self):
        """index_pixels maps each pixel through nearest_index."""
        palette = Palette.grayscale()
        rgb = np.array([[0, 0, 0], [128, 128, 128], [0, 0, 0], [250, 250, 250]], dtype=np.uint8)

        indices = palette.index_pixels(rgb)

        assert indices.dtype == np.uint8
        assert indices.tolist() == [0, 128, 0, 250]
