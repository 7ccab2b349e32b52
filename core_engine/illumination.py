"""Albedo shading passes: parallel shadow baking and the border gradient.

The shadow pass is the only parallel stage of the generator. The albedo
raster is split into disjoint horizontal row bands and each band is handed,
as its own writable view, to one worker of a fixed-size thread pool. All
workers share the height field read-only. The Numba kernels release the GIL,
so the threads run truly in parallel; no locks are needed because no two
workers ever write the same row.

Pipeline
--------
1. ``partition_rows`` splits the raster height into N bands (remainder rows
   go to the last band) and ``check_disjoint`` verifies exact coverage.
2. ``ShadowPassScheduler.run`` submits ``render_shadow_rows`` per band and
   blocks until every worker has returned. A failing worker aborts the run.
3. ``render_border_gradient`` fades RGB toward the raster edges to hide
   seams at tile/pole boundaries.
"""

from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np
from numba import njit

from core_engine.constants import GradientConfig, ShadowConfig
from core_engine.errors import ResourceError
from core_engine.heightfield import HeightField
from core_engine.raster import AlbedoRaster, RowBand
from core_engine.raytracer import render_shadow_rows
from core_engine.solar_disk import SunSampleSet

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result Container
# ---------------------------------------------------------------------------


@dataclass
class ShadowPassResult:
    """Summary of one shadow pass.

    Attributes
    ----------
    bands : list[RowBand]
        Row bands processed, one per worker.
    shadowed_texels : int
        Texels with at least one occluded sun sample.
    total_texels : int
        Texels processed.
    wall_time_s : float
        Elapsed time of the pass.
    """

    bands: list[RowBand]
    shadowed_texels: int
    total_texels: int
    wall_time_s: float

    @property
    def shadow_fraction(self) -> float:
        if self.total_texels == 0:
            return 0.0
        return self.shadowed_texels / self.total_texels


# ---------------------------------------------------------------------------
# Row partitioning
# ---------------------------------------------------------------------------


def partition_rows(height: int, workers: int) -> list[RowBand]:
    """Split ``height`` rows into contiguous bands, one per worker.

    Every band has ``height // workers`` rows except the last, which also
    takes the remainder. Never yields more bands than rows.
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    if height <= 0:
        return []

    workers = min(workers, height)
    rows_per_band = height // workers

    bands = [
        RowBand(i * rows_per_band, (i + 1) * rows_per_band)
        for i in range(workers - 1)
    ]
    bands.append(RowBand((workers - 1) * rows_per_band, height))
    return bands


def check_disjoint(bands: list[RowBand], height: int) -> None:
    """Raise ``ValueError`` unless ``bands`` tile ``[0, height)`` exactly once."""
    expected_start = 0
    for band in sorted(bands):
        if band.start != expected_start or band.stop < band.start:
            raise ValueError(
                f"Row bands overlap or leave a gap at row {expected_start}: {bands}"
            )
        expected_start = band.stop
    if expected_start != height:
        raise ValueError(f"Row bands cover {expected_start} of {height} rows")


# ---------------------------------------------------------------------------
# Shadow Pass Scheduler
# ---------------------------------------------------------------------------


class ShadowPassScheduler:
    """Fork-join shadow baking over disjoint row bands.

    Parameters
    ----------
    shadows : ShadowConfig
        Raymarcher constants and the fixed worker count.
    """

    def __init__(self, shadows: ShadowConfig) -> None:
        self._shadows = shadows

    @property
    def num_workers(self) -> int:
        return self._shadows.num_threads

    def run(
        self,
        albedo: AlbedoRaster,
        height_field: HeightField,
        sun_samples: SunSampleSet,
    ) -> ShadowPassResult:
        """Darken ``albedo`` in place by the soft shadow of ``height_field``.

        The height field may be coarser than the albedo by an integer factor;
        albedo texel (x, y) is shaded from height-field position
        ``(x / ratio, y / ratio)``.

        Raises
        ------
        ValueError
            If the height field resolution does not divide the albedo's.
        ResourceError
            If the worker pool cannot be started.
        """
        ratio = _resolution_ratio(albedo, height_field)
        bands = partition_rows(albedo.height, self._shadows.num_threads)
        check_disjoint(bands, albedo.height)

        logger.info(
            "Rendering shadows: %d x %d albedo, %d x %d height field, "
            "%d workers, %d sun samples",
            albedo.width, albedo.height,
            height_field.width, height_field.height,
            len(bands), len(sun_samples),
        )

        start = time.perf_counter()
        values = height_field.values
        directions = np.ascontiguousarray(sun_samples.directions)

        try:
            executor = ThreadPoolExecutor(
                max_workers=len(bands), thread_name_prefix="shadow"
            )
        except (RuntimeError, OSError) as e:
            raise ResourceError(f"Cannot start shadow workers: {e}") from e

        with executor:
            try:
                futures = [
                    executor.submit(
                        render_shadow_rows,
                        albedo.band_view(band),
                        band.start,
                        values,
                        directions,
                        float(ratio),
                        self._shadows.strength,
                        self._shadows.viewer_height_offset,
                        self._shadows.occlusion_tolerance,
                        self._shadows.max_elevation,
                    )
                    for band in bands
                ]
            except RuntimeError as e:
                raise ResourceError(f"Cannot start shadow workers: {e}") from e

            shadowed = 0
            for band, future in zip(bands, futures):
                count = future.result()
                shadowed += int(count)
                logger.debug("Band rows [%d, %d): %d shadowed texels", band.start, band.stop, count)

        result = ShadowPassResult(
            bands=bands,
            shadowed_texels=shadowed,
            total_texels=albedo.width * albedo.height,
            wall_time_s=time.perf_counter() - start,
        )
        logger.info(
            "Shadows rendered in %.1f s: %.1f%% of texels shadowed",
            result.wall_time_s,
            result.shadow_fraction * 100.0,
        )
        return result


def _resolution_ratio(albedo: AlbedoRaster, height_field: HeightField) -> int:
    """Albedo texels per height-field texel, identical on both axes."""
    if (
        height_field.width == 0
        or albedo.width % height_field.width
        or albedo.height % height_field.height
    ):
        raise ValueError(
            f"Height field {height_field.width}x{height_field.height} does not evenly "
            f"divide albedo {albedo.width}x{albedo.height}"
        )
    ratio_x = albedo.width // height_field.width
    ratio_y = albedo.height // height_field.height
    if ratio_x != ratio_y:
        raise ValueError(f"Anisotropic height field ratio ({ratio_x}, {ratio_y})")
    return ratio_x


# ---------------------------------------------------------------------------
# Border Gradient
# ---------------------------------------------------------------------------


@njit(cache=True, nogil=True, fastmath=False)
def _border_gradient_kernel(pixels: np.ndarray, margin: int) -> None:
    height = pixels.shape[0]
    width = pixels.shape[1]
    center_x = width // 2
    center_y = height // 2
    inner_x = center_x - margin
    inner_y = center_y - margin

    for y in range(height):
        yd = max(0, abs(y - center_y) - inner_y) / margin
        yd2 = yd * yd

        for x in range(width):
            xd = max(0, abs(x - center_x) - inner_x) / margin
            if xd == 0.0 and yd2 == 0.0:
                continue

            dist = min(math.sqrt(xd * xd + yd2), 1.0)
            intensity = 1.0 - dist
            for ch in range(3):
                pixels[y, x, ch] = int(pixels[y, x, ch] * intensity)


def render_border_gradient(albedo: AlbedoRaster, gradient: GradientConfig) -> None:
    """Fade the albedo's RGB toward black within ``margin_px`` of each edge.

    Per axis, ``d = max(0, |c - center| - (center - margin)) / margin`` with
    ``center = size // 2``; the two axis distances combine as a Euclidean
    norm clamped to 1, and RGB is scaled by ``1 - norm``. Alpha is untouched.
    """
    logger.info(
        "Rendering border gradient: %d x %d, margin=%d px",
        albedo.width, albedo.height, gradient.margin_px,
    )
    _border_gradient_kernel(albedo.pixels, gradient.margin_px)
