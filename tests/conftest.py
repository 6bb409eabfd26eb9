"""
Test Configuration
==================

Pytest fixtures and test configuration for gifcodec.
"""

import numpy as np
import pytest

from samples import BLUE, RED, solid_rgba


@pytest.fixture
def red_2x2():
    """Provide a 2x2 opaque red frame."""
    return solid_rgba(2, 2, RED)


@pytest.fixture
def red_blue_frames():
    """Provide ten 50x50 frames alternating red and blue."""
    return [solid_rgba(50, 50, RED if i % 2 == 0 else BLUE) for i in range(10)]


@pytest.fixture
def gradient_rgba():
    """Provide a 64x48 RGBA gradient as an (H, W, 4) array."""
    ys, xs = np.mgrid[0:48, 0:64]
    rgba = np.zeros((48, 64, 4), dtype=np.uint8)
    rgba[..., 0] = xs * 4
    rgba[..., 1] = ys * 5
    rgba[..., 2] = 255 - xs * 2
    rgba[..., 3] = 255
    return rgba


@pytest.fixture
def noise_indices():
    """Provide 128x128 random palette indices (incompressible input)."""
    rng = np.random.default_rng(1234)
    return rng.integers(0, 256, size=128 * 128, dtype=np.uint8)
