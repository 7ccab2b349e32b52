"""Synthetic source rasters for tests and demos.

Generates parametric height fields (flat, vertical step, parabolic crater)
in the generator's [0, 255] elevation range, uniform albedo rasters, and the
RGBA elevation encoding the loader expects, so the full pipeline can be run
without real planetary data.

Notes
-----
The crater is centered on the raster with a parabolic bowl inside radius R
and a Gaussian rim outside it:

    z(r) = base - D * (1 - (r/R)^2)         for r <= R
    z(r) = base + H * exp(-(r-R)^2 / (2w^2)) for r >  R,  w = 0.1 * R
"""

from __future__ import annotations

import logging
from typing import Literal

import numpy as np

from core_engine.heightfield import HeightField
from core_engine.raster import AlbedoRaster

logger = logging.getLogger(__name__)

TerrainKind = Literal["flat", "step", "crater"]


def flat_height_field(width: int, height: int, elevation: float = 64.0) -> HeightField:
    """Height field with constant elevation."""
    return HeightField(np.full((height, width), elevation, dtype=np.float32))


def step_height_field(
    width: int,
    height: int,
    step_x: int,
    low: float = 0.0,
    high: float = 200.0,
) -> HeightField:
    """Height field that jumps from ``low`` to ``high`` at column ``step_x``."""
    values = np.full((height, width), low, dtype=np.float32)
    values[:, step_x:] = high
    return HeightField(values)


def crater_height_field(
    width: int,
    height: int,
    radius_px: float | None = None,
    depth: float = 80.0,
    rim_height: float = 40.0,
    base: float = 100.0,
    noise_amplitude: float = 0.0,
    seed: int = 42,
) -> HeightField:
    """Parabolic bowl crater centered on the raster, clipped to [0, 255]."""
    rng = np.random.default_rng(seed)
    if radius_px is None:
        radius_px = 0.3 * min(width, height)

    yy, xx = np.mgrid[0:height, 0:width].astype(np.float64)
    r = np.hypot(xx - width / 2.0, yy - height / 2.0)

    values = np.full((height, width), base, dtype=np.float64)
    inside = r <= radius_px
    values[inside] -= depth * (1.0 - (r[inside] / radius_px) ** 2)

    rim_width = 0.1 * radius_px
    outside = ~inside
    values[outside] += rim_height * np.exp(
        -((r[outside] - radius_px) ** 2) / (2.0 * rim_width**2)
    )

    if noise_amplitude > 0.0:
        values += rng.normal(0.0, noise_amplitude, size=values.shape)

    values = np.clip(values, 0.0, 255.0)
    logger.info(
        "Crater height field generated: %d x %d, R=%.0f px, z=[%.1f, %.1f]",
        width, height, radius_px, values.min(), values.max(),
    )
    return HeightField(values.astype(np.float32))


def generate_height_field(kind: TerrainKind, width: int, height: int, **kwargs) -> HeightField:
    """Dispatch to a synthetic terrain generator by name.

    Raises
    ------
    ValueError
        If ``kind`` is not recognized.
    """
    generators = {
        "flat": flat_height_field,
        "step": step_height_field,
        "crater": crater_height_field,
    }
    if kind not in generators:
        raise ValueError(
            f"Unknown terrain kind '{kind}'. Valid options: {list(generators.keys())}"
        )
    if kind == "step" and "step_x" not in kwargs:
        kwargs["step_x"] = width // 2
    return generators[kind](width, height, **kwargs)


def uniform_albedo(
    width: int,
    height: int,
    color: tuple[int, int, int] = (200, 160, 120),
    alpha: int = 255,
) -> AlbedoRaster:
    """Albedo raster filled with one color."""
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[..., 0] = color[0]
    pixels[..., 1] = color[1]
    pixels[..., 2] = color[2]
    pixels[..., 3] = alpha
    return AlbedoRaster(pixels)


def encode_elevation_rgba(values: np.ndarray) -> np.ndarray:
    """Encode [0, 255] elevations into an RGBA raster the loader decodes.

    The high channel (alpha) is fixed at 255 and the low channel (blue)
    carries the rounded elevation, so ``high * low / 255`` reproduces the
    value to within 0.5. Red and green carry the same value for viewing.
    """
    level = np.clip(np.rint(values), 0, 255).astype(np.uint8)
    rgba = np.empty(values.shape + (4,), dtype=np.uint8)
    rgba[..., 0] = level
    rgba[..., 1] = level
    rgba[..., 2] = level
    rgba[..., 3] = 255
    return rgba
