"""Tile pipeline runner: load, shade, and cut the map into an LOD pyramid.

Orchestrates the full generator run:
1. Load albedo / elevation sources (only those the enabled stages need)
2. Pre-shrink the elevation map to the elevation tile granularity
3. Bake soft sun shadows into the albedo (parallel)
4. Apply the elevation alignment shift and the border gradient
5. For each LOD: write albedo tiles and mesh tiles, then halve both maps,
   until the albedo fits in a single tile
6. Write the shared index file and the run manifest

Stages are strictly sequential and mutate the owned raster objects in place;
each stage finishes before the next one reads its output.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from core_engine.constants import GeneratorConfig, config_hash
from core_engine.errors import InputError
from core_engine.heightfield import HeightField
from core_engine.illumination import (
    ShadowPassResult,
    ShadowPassScheduler,
    render_border_gradient,
)
from core_engine.mesh import build_tile_mesh, generate_shared_indices
from core_engine.raster import AlbedoRaster
from core_engine.solar_disk import SunSampleSet
from core_engine.tiling import (
    extract_albedo_tile,
    extract_elevation_tile,
    iter_tiles,
    tile_grid_shape,
)
from data_ingestion.image_loader import (
    load_albedo,
    load_height_field,
    validate_source_dimensions,
)
from pipeline.io_manager import (
    ensure_directory,
    save_manifest,
    tile_path,
    write_albedo_tile,
    write_elevation_image,
    write_indices,
    write_mesh,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result Containers
# ---------------------------------------------------------------------------


@dataclass
class LevelSummary:
    """One written pyramid level.

    Attributes
    ----------
    lod : int
        Level index, 0 = full resolution.
    width, height : int
        Albedo-space dimensions of the level.
    tile_rows, tile_cols : int
        Tile grid shape.
    """

    lod: int
    width: int
    height: int
    tile_rows: int
    tile_cols: int

    @property
    def tile_count(self) -> int:
        return self.tile_rows * self.tile_cols


@dataclass
class PipelineResult:
    """Container for the outcome of one generator run.

    Attributes
    ----------
    map_width, map_height : int
        Source map dimensions (0 if no source was loaded).
    levels : list[LevelSummary]
        Pyramid levels written, in LOD order.
    written : list[Path]
        Every file written.
    shadow : ShadowPassResult or None
        Shadow pass summary, if the pass ran.
    index_path : Path or None
        Shared index file, if written.
    timings : dict[str, float]
        Wall time per stage [s].
    """

    map_width: int = 0
    map_height: int = 0
    levels: list[LevelSummary] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)
    shadow: ShadowPassResult | None = None
    index_path: Path | None = None
    timings: dict[str, float] = field(default_factory=dict)

    @property
    def tiles_per_lod(self) -> dict[int, int]:
        return {level.lod: level.tile_count for level in self.levels}


# ---------------------------------------------------------------------------
# Tile Pipeline
# ---------------------------------------------------------------------------


class TilePipeline:
    """Sequences every generator stage for one run.

    Parameters
    ----------
    config : GeneratorConfig
        Full generator configuration. Its ``output.root`` is the tree root.
    """

    def __init__(self, config: GeneratorConfig) -> None:
        self._config = config
        self._root = Path(config.output.root)

    @property
    def config(self) -> GeneratorConfig:
        return self._config

    def run(
        self,
        albedo: AlbedoRaster | None = None,
        height_field: HeightField | None = None,
        preview_path: Path | str | None = None,
    ) -> PipelineResult:
        """Execute the pipeline.

        Parameters
        ----------
        albedo : AlbedoRaster, optional
            Pre-loaded albedo at full resolution. Loaded from
            ``config.inputs.albedo`` when needed and not given.
        height_field : HeightField, optional
            Pre-loaded elevation at full (albedo) resolution. Loaded from
            ``config.inputs.elevation`` when needed and not given.
        preview_path : Path or str, optional
            If given, a debug figure of the shaded albedo and height field
            is saved here before tiling.

        Returns
        -------
        PipelineResult
            Levels, written files and timings.

        Raises
        ------
        InputError
            On any input problem; raised before anything is written.
        ResourceError
            If an output file cannot be written or workers cannot start.
        """
        cfg = self._config
        stages = cfg.stages
        result = PipelineResult()
        run_start = time.perf_counter()

        logger.info("=" * 60)
        logger.info("  Planetary tile generator")
        logger.info("=" * 60)

        # --- Load sources -----------------------------------------------
        t0 = time.perf_counter()
        albedo, height_field = self._load_sources(albedo, height_field)
        if albedo is not None or height_field is not None:
            result.map_height, result.map_width = validate_source_dimensions(
                (albedo.height, albedo.width) if albedo is not None else None,
                (height_field.height, height_field.width) if height_field is not None else None,
                cfg.tiles.albedo_tile_size,
            )
            logger.info("Loaded %dx%d source map(s).", result.map_width, result.map_height)
        result.timings["load_s"] = time.perf_counter() - t0

        # --- Elevation working resolution -------------------------------
        if height_field is not None:
            self._preshrink_elevation(height_field)

        # --- Shading passes ---------------------------------------------
        if stages.render_shadows:
            t0 = time.perf_counter()
            result.shadow = ShadowPassScheduler(cfg.shadows).run(
                albedo, height_field, SunSampleSet.from_config(cfg.sun)
            )
            result.timings["shadows_s"] = time.perf_counter() - t0

        if height_field is not None:
            height_field.shift(cfg.elevation.pixel_offset_x, cfg.elevation.pixel_offset_y)

        if stages.render_border_gradient:
            t0 = time.perf_counter()
            render_border_gradient(albedo, cfg.gradient)
            result.timings["gradient_s"] = time.perf_counter() - t0

        if preview_path is not None:
            from visualization.plotter import plot_shading_preview

            result.written.append(plot_shading_preview(
                albedo.pixels if albedo is not None else None,
                height_field.values if height_field is not None else None,
                output_path=preview_path,
            ))

        # --- LOD pyramid ------------------------------------------------
        if stages.write_albedo or stages.write_elevation or stages.write_elevation_images:
            t0 = time.perf_counter()
            self._write_pyramid(albedo, height_field, result)
            result.timings["tiles_s"] = time.perf_counter() - t0

        # --- Shared index buffer ----------------------------------------
        if stages.write_indices:
            logger.info("Saving elevation indices file...")
            ensure_directory(self._root)
            size = cfg.tiles.elevation_tile_size
            result.index_path = write_indices(
                generate_shared_indices(size), size, self._root / cfg.output.index_filename
            )
            result.written.append(result.index_path)

        result.timings["total_s"] = time.perf_counter() - run_start

        if stages.write_manifest:
            ensure_directory(self._root)
            result.written.append(save_manifest(
                self._root / cfg.output.manifest_filename, self._manifest(result)
            ))

        logger.info(
            "Done: %d levels, %d files in %.1f s",
            len(result.levels), len(result.written), result.timings["total_s"],
        )
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _load_sources(
        self,
        albedo: AlbedoRaster | None,
        height_field: HeightField | None,
    ) -> tuple[AlbedoRaster | None, HeightField | None]:
        cfg = self._config
        stages = cfg.stages

        if stages.needs_albedo and albedo is None:
            albedo = load_albedo(cfg.inputs.albedo, cfg.tiles.albedo_tile_size)
        if stages.needs_elevation and height_field is None:
            height_field = load_height_field(cfg.inputs.elevation)

        if stages.needs_albedo and albedo is None:
            raise InputError("Enabled stages need an albedo source")
        if stages.render_shadows and height_field is None:
            raise InputError("Shadow pass needs an elevation source")
        return albedo, height_field

    def _preshrink_elevation(self, height_field: HeightField) -> None:
        """Halve the elevation map until one albedo tile maps to one elevation tile."""
        ratio = self._config.tiles.elevation_ratio
        factor = 1
        while factor < ratio:
            height_field.halve()
            factor *= 2
        if ratio > 1:
            logger.info(
                "Elevation map downscaled by %dx to %d x %d",
                ratio, height_field.width, height_field.height,
            )

    def _write_pyramid(
        self,
        albedo: AlbedoRaster | None,
        height_field: HeightField | None,
        result: PipelineResult,
    ) -> None:
        cfg = self._config
        stages = cfg.stages
        tile_size = cfg.tiles.albedo_tile_size
        elevation_tile = cfg.tiles.elevation_tile_size
        ratio = cfg.tiles.elevation_ratio
        image_suffix = f".{cfg.output.image_extension}"
        mesh_suffix = f".{cfg.output.mesh_extension}"

        write_albedo = stages.write_albedo and albedo is not None
        write_meshes = stages.write_elevation and height_field is not None
        write_heights = stages.write_elevation_images and height_field is not None

        width, height = result.map_width, result.map_height
        logger.info("Saving tiles.")
        ensure_directory(self._root)

        lod = 0
        while True:
            rows, cols = tile_grid_shape(width, height, tile_size)
            logger.info("Lod %d: %d x %d px, %d x %d tiles", lod, width, height, cols, rows)

            for tile in iter_tiles(width, height, tile_size, lod):
                ensure_directory(self._root / str(lod) / str(tile.row))

                if write_albedo:
                    result.written.append(write_albedo_tile(
                        extract_albedo_tile(albedo.pixels, tile.x, tile.y, tile_size),
                        tile_path(self._root, lod, tile.row, tile.col, image_suffix),
                        quality=cfg.output.jpeg_quality,
                    ))

                ex, ey = tile.x // ratio, tile.y // ratio
                if write_meshes:
                    result.written.append(write_mesh(
                        build_tile_mesh(height_field.values, ex, ey, elevation_tile),
                        tile_path(self._root, lod, tile.row, tile.col, mesh_suffix),
                    ))
                if write_heights:
                    result.written.append(write_elevation_image(
                        extract_elevation_tile(height_field.values, ex, ey, elevation_tile),
                        tile_path(self._root, lod, tile.row, tile.col, "_elevation.jpg"),
                        quality=cfg.output.elevation_image_quality,
                    ))

            result.levels.append(LevelSummary(lod, width, height, rows, cols))

            if width <= tile_size and height <= tile_size:
                break

            if write_albedo:
                albedo.halve()
            if write_meshes or write_heights:
                height_field.halve()
            width //= 2
            height //= 2
            lod += 1

    def _manifest(self, result: PipelineResult) -> dict:
        cfg = self._config
        return {
            "map_width": result.map_width,
            "map_height": result.map_height,
            "albedo_tile_size": cfg.tiles.albedo_tile_size,
            "elevation_tile_size": cfg.tiles.elevation_tile_size,
            "levels": [
                {
                    "lod": level.lod,
                    "width": level.width,
                    "height": level.height,
                    "tile_rows": level.tile_rows,
                    "tile_cols": level.tile_cols,
                }
                for level in result.levels
            ],
            "shadow_fraction": result.shadow.shadow_fraction if result.shadow else None,
            "index_file": cfg.output.index_filename if result.index_path else None,
            "stages": dataclasses.asdict(cfg.stages),
            "config_sha256": config_hash(cfg),
            "timings": result.timings,
        }
