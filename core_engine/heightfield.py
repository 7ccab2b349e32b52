"""Height field storage and bilinear elevation sampling.

Elevation is stored as float32 in [0, 255], decoded once from the two
high-order channels of the RGBA elevation raster. The sampler is compiled
with Numba and performs no bounds checking: callers keep sample positions
inside ``[0, width-2] x [0, height-2]``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from numba import njit

from core_engine.mipmap import downsample_elevation

logger = logging.getLogger(__name__)

# RGBA channels carrying the encoded elevation: value = high * low / 255
ELEVATION_HIGH_CHANNEL = 3
ELEVATION_LOW_CHANNEL = 2


@njit(cache=True, nogil=True, fastmath=False)
def elevation_at(values: np.ndarray, x: float, y: float) -> float:
    """Bilinearly interpolated elevation at continuous position (x, y).

    Parameters
    ----------
    values : np.ndarray
        Elevation grid. Shape: (H, W).
    x, y : float
        Sample position in texels. Must satisfy 0 <= x <= W-2 and
        0 <= y <= H-2; this is not checked.

    Returns
    -------
    float
        Interpolated elevation.
    """
    px = int(x)
    py = int(y)
    wx = x - px
    wy = y - py

    return (
        (1.0 - wx) * (1.0 - wy) * values[py, px]
        + wx * (1.0 - wy) * values[py, px + 1]
        + (1.0 - wx) * wy * values[py + 1, px]
        + wx * wy * values[py + 1, px + 1]
    )


def decode_elevation(rgba: np.ndarray) -> np.ndarray:
    """Decode an (H, W, 4) uint8 elevation raster to float32 [0, 255]."""
    high = rgba[..., ELEVATION_HIGH_CHANNEL].astype(np.float32)
    low = rgba[..., ELEVATION_LOW_CHANNEL].astype(np.float32)
    return np.ascontiguousarray(high * low / np.float32(255.0))


def shift_elevation(values: np.ndarray, dx: int, dy: int) -> np.ndarray:
    """Shift the elevation grid by (dx, dy) texels toward +x/+y.

    The first ``dx`` columns and ``dy`` rows replicate the original first
    column/row. Used to correct a misaligned elevation source.
    """
    if dx < 0 or dy < 0:
        raise ValueError(f"Elevation pixel offset must be non-negative, got ({dx}, {dy})")
    height, width = values.shape
    rows = np.maximum(np.arange(height) - dy, 0)
    cols = np.maximum(np.arange(width) - dx, 0)
    return np.ascontiguousarray(values[rows[:, None], cols[None, :]])


@dataclass
class HeightField:
    """Owned elevation buffer for one pipeline run.

    Attributes
    ----------
    values : np.ndarray
        Elevation grid. Shape: (height, width), dtype: float32, C-contiguous,
        writable.
    """

    values: np.ndarray

    def __post_init__(self) -> None:
        if self.values.ndim != 2:
            raise ValueError(f"Height field must be 2D, got shape {self.values.shape}")
        self.values = np.ascontiguousarray(self.values, dtype=np.float32)
        if not self.values.flags.writeable:
            self.values = self.values.copy()

    @classmethod
    def from_rgba(cls, rgba: np.ndarray) -> "HeightField":
        """Build a height field from an encoded RGBA elevation raster."""
        return cls(decode_elevation(rgba))

    @property
    def width(self) -> int:
        return self.values.shape[1]

    @property
    def height(self) -> int:
        return self.values.shape[0]

    def elevation_at(self, x: float, y: float) -> float:
        """Bilinear elevation; see :func:`elevation_at` for the domain."""
        return float(elevation_at(self.values, float(x), float(y)))

    def halve(self) -> None:
        """Replace the buffer with its 2×2 box-filtered half-size copy."""
        self.values = downsample_elevation(self.values)

    def shift(self, dx: int, dy: int) -> None:
        """Apply an in-place alignment shift (see :func:`shift_elevation`)."""
        if dx or dy:
            logger.info("Shifting elevation map by (%d, %d) texels", dx, dy)
            self.values = shift_elevation(self.values, dx, dy)
