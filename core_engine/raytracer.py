"""Height-field shadow raymarcher.

Marches a ray from a terrain point toward the sun through the elevation
grid and reports whether terrain blocks it. All inner-loop functions are
compiled with Numba ``@njit(cache=True, nogil=True)`` so the shadow pass
scheduler can run them on several threads at once.

Design Notes
------------
- **Stepping**: the step vector is ``direction / |direction.xy|``, i.e. each
  iteration advances exactly one texel in the horizontal plane. The 3D step
  length therefore grows with pitch.
- **Domain**: a 1-texel margin on the low side and 3 texels on the high side
  keep every bilinear lookup inside the grid. Leaving it means "not occluded".
- **Hit test**: the ray counts as blocked once it is more than
  ``occlusion_tolerance`` below the terrain; it is clear once above
  ``max_elevation`` (no terrain can reach it any more).
"""

from __future__ import annotations

import logging
import math

import numpy as np
from numba import njit

from core_engine.heightfield import elevation_at

logger = logging.getLogger(__name__)


# ===================================================================
# SINGLE-RAY OCCLUSION TEST — Numba JIT
# ===================================================================


@njit(cache=True, nogil=True, fastmath=False)
def is_occluded(
    values: np.ndarray,
    start_x: float,
    start_y: float,
    direction: np.ndarray,
    viewer_height_offset: float,
    occlusion_tolerance: float,
    max_elevation: float,
) -> bool:
    """Test whether the sun ray from (start_x, start_y) is blocked by terrain.

    Parameters
    ----------
    values : np.ndarray
        Elevation grid. Shape: (H, W).
    start_x, start_y : float
        Ray start in texels. Must lie in [0, W-2] x [0, H-2].
    direction : np.ndarray
        Direction toward the sun. Shape: (3,). ``direction[2]`` must be > 0.
    viewer_height_offset : float
        Added to the start elevation to avoid self-intersection.
    occlusion_tolerance : float
        Depth below the terrain at which the ray counts as blocked.
    max_elevation : float
        Height above which the ray is unconditionally clear.

    Returns
    -------
    bool
        True if the ray hits terrain before leaving the domain or
        climbing above ``max_elevation``.

    Raises
    ------
    ValueError
        If the direction does not point upward.
    """
    if direction[2] <= 0.0:
        raise ValueError("sun direction must have a positive vertical component")

    height = values.shape[0]
    width = values.shape[1]

    len_2d = math.sqrt(direction[0] * direction[0] + direction[1] * direction[1])
    if len_2d == 0.0:
        # Straight up: the ray never crosses another texel
        return False

    step_x = direction[0] / len_2d
    step_y = direction[1] / len_2d
    step_z = direction[2] / len_2d

    x = start_x
    y = start_y
    z = elevation_at(values, x, y) + viewer_height_offset

    while True:
        x += step_x
        y += step_y
        z += step_z

        if x < 1.0 or x >= width - 3.0 or y < 1.0 or y >= height - 3.0:
            return False

        terrain = elevation_at(values, x, y)

        if z < terrain - occlusion_tolerance:
            return True

        if z > max_elevation:
            return False

    return False


# ===================================================================
# SOFT-SHADOW INTENSITY — Numba JIT
# ===================================================================


@njit(cache=True, nogil=True, fastmath=False)
def shadow_intensity(hits: int, num_samples: int, shadow_strength: float) -> float:
    """Intensity multiplier for ``hits`` occluded samples out of ``num_samples``.

    Each blocked sample removes an equal share of ``shadow_strength``, so a
    fully blocked texel keeps ``1 - shadow_strength`` of its color.
    """
    return 1.0 - hits * (shadow_strength / num_samples)


# ===================================================================
# ROW BAND KERNEL — Numba JIT
# ===================================================================


@njit(cache=True, nogil=True, fastmath=False)
def render_shadow_rows(
    albedo_rows: np.ndarray,
    row_offset: int,
    values: np.ndarray,
    sun_directions: np.ndarray,
    texels_per_sample: float,
    shadow_strength: float,
    viewer_height_offset: float,
    occlusion_tolerance: float,
    max_elevation: float,
) -> int:
    """Darken a band of albedo rows by their soft-shadow intensity.

    Parameters
    ----------
    albedo_rows : np.ndarray
        Writable view of the band. Shape: (rows, W, 4), dtype: uint8.
    row_offset : int
        Raster row of ``albedo_rows[0]``.
    values : np.ndarray
        Full elevation grid (read only). Shape: (H_e, W_e).
    sun_directions : np.ndarray
        Sun sample directions. Shape: (num_samples, 3).
    texels_per_sample : float
        Albedo texels per elevation texel along one axis.
    shadow_strength : float
        Darkening when every sample is blocked.
    viewer_height_offset, occlusion_tolerance, max_elevation : float
        Forwarded to :func:`is_occluded`.

    Returns
    -------
    int
        Number of texels with at least one occluded sample.
    """
    rows = albedo_rows.shape[0]
    cols = albedo_rows.shape[1]
    max_x = values.shape[1] - 2.0
    max_y = values.shape[0] - 2.0
    num_samples = sun_directions.shape[0]

    shadowed = 0
    for r in range(rows):
        pos_y = min((r + row_offset) / texels_per_sample, max_y)

        for c in range(cols):
            pos_x = min(c / texels_per_sample, max_x)

            hits = 0
            for s in range(num_samples):
                if is_occluded(
                    values, pos_x, pos_y, sun_directions[s],
                    viewer_height_offset, occlusion_tolerance, max_elevation,
                ):
                    hits += 1

            if hits == 0:
                continue

            shadowed += 1
            intensity = shadow_intensity(hits, num_samples, shadow_strength)
            for ch in range(3):
                albedo_rows[r, c, ch] = int(albedo_rows[r, c, ch] * intensity)

    return shadowed

