"""
Color Quantizer
===============

Neural-network color quantization (self-organizing map over RGB space).

A network of 256 neurons is laid out along the gray diagonal and trained
on a stride-sampled subset of the input pixels. Each sample pulls its
winning neuron, and that neuron's neighbors in network order, a fraction
of the way toward the sample color. Both the fraction (alpha) and the
neighborhood radius decay over 100 learning cycles. A frequency-bias term
keeps any single neuron from winning too often, so the palette does not
collapse onto dominant colors.

After training, the neurons are rounded to integer RGB and indexed by
their green channel for nearest-color lookups.

Distance Metric:
    Training and lookup both use the L1 distance |dr| + |dg| + |db|.
    The two must agree, otherwise mapped frames show banding.

Determinism:
    The sample order is fixed by the pixel count and the sampling factor,
    and every update is applied sequentially, so the same input always
    yields the same palette.

Example:
    import numpy as np
    from gifcodec.codec.quantizer import train, nearest_index

    rgb = np.zeros((64 * 64, 3), dtype=np.uint8)
    rgb[:, 0] = 255
    palette = train(rgb, sample_factor=10)
    index = nearest_index(palette, 255, 0, 0)
"""

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np


logger = logging.getLogger(__name__)


# =============================================================================
# Network Constants
# =============================================================================

NETWORK_SIZE = 256
MAX_NETWORK_POS = NETWORK_SIZE - 1
LEARNING_CYCLES = 100

# Colors are trained at 4 extra bits of precision
NETWORK_BIAS_SHIFT = 4

# Frequency and bias
INT_BIAS_SHIFT = 16
INT_BIAS = 1 << INT_BIAS_SHIFT
GAMMA_SHIFT = 10
BETA_SHIFT = 10
BETA = INT_BIAS >> BETA_SHIFT
BETA_GAMMA = INT_BIAS << (GAMMA_SHIFT - BETA_SHIFT)

# Neighborhood radius
INIT_RADIUS = NETWORK_SIZE >> 3
RADIUS_BIAS_SHIFT = 6
RADIUS_BIAS = 1 << RADIUS_BIAS_SHIFT
INIT_BIAS_RADIUS = INIT_RADIUS * RADIUS_BIAS
RADIUS_DECREMENT = 30

# Learning rate
ALPHA_BIAS_SHIFT = 10
INIT_ALPHA = 1 << ALPHA_BIAS_SHIFT
RAD_BIAS_SHIFT = 8
RAD_BIAS = 1 << RAD_BIAS_SHIFT
ALPHA_RAD_BIAS = 1 << (ALPHA_BIAS_SHIFT + RAD_BIAS_SHIFT)

# Sampling strides, coprime with most pixel counts
PRIMES = (499, 491, 487, 503)
MIN_PICTURE_PIXELS = PRIMES[-1]

MIN_SAMPLE_FACTOR = 1
MAX_SAMPLE_FACTOR = 30


# =============================================================================
# Palette
# =============================================================================

@dataclass(frozen=True, eq=False)
class Palette:
    """
    Immutable 256-entry color palette with a green-sorted lookup index.

    Attributes:
        colors: (256, 3) uint8 array of RGB entries in palette order.
            The array is read-only.
    """

    colors: np.ndarray
    _greens: List[int] = field(repr=False)
    _reds: List[int] = field(repr=False)
    _blues: List[int] = field(repr=False)
    _order: List[int] = field(repr=False)
    _green_index: List[int] = field(repr=False)

    @classmethod
    def from_colors(cls, colors: np.ndarray) -> "Palette":
        """
        Build a palette from 256 RGB entries.

        Args:
            colors: Array-like of shape (256, 3) with values in 0..255

        Returns:
            Palette with its lookup index built
        """
        table = np.array(colors, dtype=np.int64)
        if table.shape != (NETWORK_SIZE, 3):
            raise ValueError(f"Palette must have shape (256, 3), got {table.shape}")
        if table.min() < 0 or table.max() > 255:
            raise ValueError("Palette values must be in range 0..255")

        table = table.astype(np.uint8)
        table.flags.writeable = False

        order = np.argsort(table[:, 1], kind="stable")
        greens = [int(v) for v in table[order, 1]]

        return cls(
            colors=table,
            _greens=greens,
            _reds=[int(v) for v in table[order, 0]],
            _blues=[int(v) for v in table[order, 2]],
            _order=[int(v) for v in order],
            _green_index=_build_green_index(greens),
        )

    @classmethod
    def grayscale(cls) -> "Palette":
        """Linear gray ramp from black to white."""
        ramp = np.arange(NETWORK_SIZE, dtype=np.uint8)
        return cls.from_colors(np.stack([ramp, ramp, ramp], axis=1))

    def __len__(self) -> int:
        return NETWORK_SIZE

    def to_bytes(self) -> bytes:
        """Palette as 768 bytes of packed RGB triples."""
        return self.colors.tobytes()

    def index_pixels(self, rgb: np.ndarray) -> np.ndarray:
        """
        Map RGB pixels to palette indices.

        Each distinct color is looked up once with `nearest_index`.

        Args:
            rgb: (N, 3) uint8 array

        Returns:
            (N,) uint8 array of palette indices
        """
        rgb = np.asarray(rgb, dtype=np.uint8).reshape(-1, 3)
        if rgb.shape[0] == 0:
            return np.zeros(0, dtype=np.uint8)

        packed = (
            (rgb[:, 0].astype(np.uint32) << 16)
            | (rgb[:, 1].astype(np.uint32) << 8)
            | rgb[:, 2].astype(np.uint32)
        )
        unique, inverse = np.unique(packed, return_inverse=True)

        lookup = np.fromiter(
            (
                nearest_index(self, int(c) >> 16, (int(c) >> 8) & 0xFF, int(c) & 0xFF)
                for c in unique
            ),
            dtype=np.uint8,
            count=len(unique),
        )
        return lookup[inverse.reshape(-1)]


def _build_green_index(greens: List[int]) -> List[int]:
    """
    Map each green value to a starting position in the green-sorted list.

    The start sits in the middle of the run of entries sharing that
    green value, or at the next entry above it when there is none.
    """
    index = [0] * 256
    previous = 0
    start = 0

    for i, green in enumerate(greens):
        if green != previous:
            index[previous] = (start + i) >> 1
            for j in range(previous + 1, green):
                index[j] = i
            previous = green
            start = i

    index[previous] = (start + MAX_NETWORK_POS) >> 1
    for j in range(previous + 1, 256):
        index[j] = MAX_NETWORK_POS

    return index


def nearest_index(palette: Palette, r: int, g: int, b: int) -> int:
    """
    Find the palette entry closest to a color.

    Searches outward from the color's green position in both directions.
    A direction stops once its green difference alone is no better than
    the best total distance found so far.

    Args:
        palette: Palette to search
        r, g, b: Color channels, 0..255

    Returns:
        Palette index 0..255 minimizing |dr| + |dg| + |db|
    """
    greens = palette._greens
    reds = palette._reds
    blues = palette._blues
    order = palette._order

    best_distance = 1000
    best = -1
    i = palette._green_index[g]
    j = i - 1

    while i < NETWORK_SIZE or j >= 0:
        if i < NETWORK_SIZE:
            distance = greens[i] - g
            if distance >= best_distance:
                i = NETWORK_SIZE
            else:
                distance = abs(distance) + abs(reds[i] - r)
                if distance < best_distance:
                    distance += abs(blues[i] - b)
                    if distance < best_distance:
                        best_distance = distance
                        best = order[i]
                i += 1

        if j >= 0:
            distance = g - greens[j]
            if distance >= best_distance:
                j = -1
            else:
                distance = abs(distance) + abs(reds[j] - r)
                if distance < best_distance:
                    distance += abs(blues[j] - b)
                    if distance < best_distance:
                        best_distance = distance
                        best = order[j]
                j -= 1

    return best


# =============================================================================
# Training
# =============================================================================

def _choose_step(pixel_count: int) -> int:
    """Pick a sampling stride that does not divide the pixel count."""
    if pixel_count < MIN_PICTURE_PIXELS:
        return 1
    for prime in PRIMES[:-1]:
        if pixel_count % prime != 0:
            return prime
    return PRIMES[-1]


def _radius_powers(alpha: float, rad: int) -> np.ndarray:
    """Neighbor update strengths, falling off quadratically with distance."""
    powers = np.zeros(INIT_RADIUS, dtype=np.float64)
    if rad > 0:
        offsets = np.arange(rad, dtype=np.int64)
        # truncated like the integer table the strengths are stored in
        powers[:rad] = np.trunc(alpha * (((rad * rad - offsets * offsets) * RAD_BIAS) / (rad * rad)))
    return powers


def _contest(
    network: np.ndarray,
    bias: np.ndarray,
    freq: np.ndarray,
    color: np.ndarray,
) -> int:
    """
    Pick the neuron to train for one sample.

    The plain winner gets its frequency raised and its bias lowered;
    the winner after bias correction is returned.
    """
    distances = (
        np.abs(network[:, 0] - color[0])
        + np.abs(network[:, 1] - color[1])
        + np.abs(network[:, 2] - color[2])
    )
    best = int(np.argmin(distances))
    biased = distances - (bias >> (INT_BIAS_SHIFT - NETWORK_BIAS_SHIFT))
    best_biased = int(np.argmin(biased))

    beta_freq = freq >> BETA_SHIFT
    freq -= beta_freq
    bias += beta_freq << GAMMA_SHIFT
    freq[best] += BETA
    bias[best] -= BETA_GAMMA

    return best_biased


def _alter_neighbors(
    network: np.ndarray,
    radius_powers: np.ndarray,
    rad: int,
    winner: int,
    color: np.ndarray,
) -> None:
    """Move neurons within `rad` of the winner toward the color."""
    low = abs(winner - rad)
    high = min(winner + rad, NETWORK_SIZE)

    above = high - winner - 1
    if above > 0:
        strength = radius_powers[1:above + 1, np.newaxis]
        rows = network[winner + 1:high]
        rows -= (strength * (rows - color)) / ALPHA_RAD_BIAS

    below = winner - low - 1
    if below > 0:
        strength = radius_powers[1:below + 1, np.newaxis]
        positions = np.arange(winner - 1, low, -1)
        rows = network[positions]
        network[positions] = rows - (strength * (rows - color)) / ALPHA_RAD_BIAS


def train(rgb: np.ndarray, sample_factor: int = 10) -> Palette:
    """
    Learn a 256-color palette from RGB pixels.

    Args:
        rgb: (N, 3) uint8 array (or anything reshapeable to it)
        sample_factor: 1 visits every sampled position; higher values
            visit proportionally fewer pixels (1..30)

    Returns:
        Learned Palette

    Raises:
        ValueError: If there are no pixels or the sample factor is out of range
    """
    if sample_factor < MIN_SAMPLE_FACTOR or sample_factor > MAX_SAMPLE_FACTOR:
        raise ValueError(
            f"sample_factor must be in [{MIN_SAMPLE_FACTOR}, {MAX_SAMPLE_FACTOR}], "
            f"got {sample_factor}"
        )

    pixels = np.asarray(rgb, dtype=np.uint8).reshape(-1, 3)
    pixel_count = pixels.shape[0]
    if pixel_count == 0:
        raise ValueError("Cannot train a palette on zero pixels")

    step = _choose_step(pixel_count)
    if step == 1:
        sample_factor = 1

    samples = pixels.astype(np.float64) * (1 << NETWORK_BIAS_SHIFT)
    sample_count = max(1, pixel_count // sample_factor)
    delta = max(1, sample_count // LEARNING_CYCLES)
    alpha_decrement = 30 + (sample_factor - 1) / 3

    # Neurons start on the gray diagonal
    ramp = (np.arange(NETWORK_SIZE, dtype=np.float64) * (1 << (NETWORK_BIAS_SHIFT + 8))) / NETWORK_SIZE
    network = np.stack([ramp, ramp, ramp], axis=1)
    freq = np.full(NETWORK_SIZE, INT_BIAS // NETWORK_SIZE, dtype=np.int64)
    bias = np.zeros(NETWORK_SIZE, dtype=np.int64)

    alpha = float(INIT_ALPHA)
    radius = float(INIT_BIAS_RADIUS)
    rad = int(radius) >> RADIUS_BIAS_SHIFT
    if rad <= 1:
        rad = 0
    radius_powers = _radius_powers(alpha, rad)

    position = 0
    for i in range(1, sample_count + 1):
        color = samples[position]
        winner = _contest(network, bias, freq, color)

        network[winner] -= (alpha * (network[winner] - color)) / INIT_ALPHA
        if rad != 0:
            _alter_neighbors(network, radius_powers, rad, winner, color)

        position += step
        if position >= pixel_count:
            position -= pixel_count

        if i % delta == 0:
            alpha -= alpha / alpha_decrement
            radius -= radius / RADIUS_DECREMENT
            rad = int(radius) >> RADIUS_BIAS_SHIFT
            if rad <= 1:
                rad = 0
            radius_powers = _radius_powers(alpha, rad)

    colors = np.clip(np.trunc(network).astype(np.int64) >> NETWORK_BIAS_SHIFT, 0, 255)

    logger.debug(
        f"Palette trained: pixels={pixel_count}, samples={sample_count}, "
        f"step={step}, sample_factor={sample_factor}"
    )

    return Palette.from_colors(colors)
