"""Owned albedo raster with row-band views."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from core_engine.mipmap import downsample_rgba


class RowBand(NamedTuple):
    """Half-open row range ``[start, stop)`` owned by one shadow worker."""

    start: int
    stop: int

    @property
    def rows(self) -> int:
        return self.stop - self.start


@dataclass
class AlbedoRaster:
    """Packed RGBA albedo buffer, mutated in place between pipeline stages.

    Attributes
    ----------
    pixels : np.ndarray
        Shape: (height, width, 4), dtype: uint8, C-contiguous, writable. The alpha
        channel is carried along but never modified.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError(f"Albedo raster must be (H, W, 4), got {self.pixels.shape}")
        self.pixels = np.ascontiguousarray(self.pixels, dtype=np.uint8)
        if not self.pixels.flags.writeable:
            self.pixels = self.pixels.copy()

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    def band_view(self, band: RowBand) -> np.ndarray:
        """Writable view of the rows in ``band`` only."""
        if not (0 <= band.start <= band.stop <= self.height):
            raise ValueError(f"Row band {band} outside raster of height {self.height}")
        return self.pixels[band.start:band.stop]

    def halve(self) -> None:
        """Replace the buffer with its 2×2 box-filtered half-size copy."""
        self.pixels = downsample_rgba(self.pixels)
