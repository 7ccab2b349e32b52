"""Box-filter mip generation for color and elevation rasters.

Each output texel is the mean of the 2×2 block of input texels it covers.
Both variants allocate a fresh half-size array; the raster objects in
``core_engine.raster`` and ``core_engine.heightfield`` swap it in for their
previous buffer so only one resolution stays resident.

Notes
-----
Color channels are averaged with integer arithmetic and truncated. Elevation sums
are paired as ``(a + b) + (c + d)`` so a constant field stays bit-exact.
"""

from __future__ import annotations

import numpy as np


def _check_even(shape: tuple[int, ...]) -> None:
    height, width = shape[0], shape[1]
    if height % 2 or width % 2:
        raise ValueError(
            f"Cannot halve a {width}x{height} raster: dimensions must be even"
        )


def downsample_rgba(pixels: np.ndarray) -> np.ndarray:
    """Halve a packed (H, W, 4) uint8 color raster.

    Parameters
    ----------
    pixels : np.ndarray
        Color raster. Shape: (H, W, 4), dtype: uint8. H and W must be even.

    Returns
    -------
    np.ndarray
        Half-resolution raster. Shape: (H/2, W/2, 4), dtype: uint8.

    Raises
    ------
    ValueError
        If H or W is odd.
    """
    _check_even(pixels.shape)

    total = pixels[0::2, 0::2].astype(np.uint16)
    total += pixels[0::2, 1::2]
    total += pixels[1::2, 0::2]
    total += pixels[1::2, 1::2]
    total //= 4

    return np.ascontiguousarray(total, dtype=np.uint8)


def downsample_elevation(values: np.ndarray) -> np.ndarray:
    """Halve a (H, W) float elevation raster.

    Parameters
    ----------
    values : np.ndarray
        Elevation raster. Shape: (H, W). H and W must be even.

    Returns
    -------
    np.ndarray
        Half-resolution raster, same dtype. Shape: (H/2, W/2).

    Raises
    ------
    ValueError
        If H or W is odd.
    """
    _check_even(values.shape)

    top = values[0::2, 0::2] + values[0::2, 1::2]
    bottom = values[1::2, 0::2] + values[1::2, 1::2]
    halved = (top + bottom) / values.dtype.type(4.0)

    return np.ascontiguousarray(halved, dtype=values.dtype)
