"""End-to-end tests for the tile pipeline and the CLI.

Test Strategy
-------------
1. Pyramid: tile counts per LOD, file layout, mesh/index file contents
2. Shading: flat terrain stays unshadowed, step terrain darkens, gradient
   keeps the interior
3. Alignment: pixel offsets shift the written meshes after the shadow pass
4. Stage selection: only the inputs the enabled stages need are loaded
5. Failures: input errors surface before any output is written
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from core_engine.constants import GeneratorConfig, with_overrides
from core_engine.errors import InputError
from data_ingestion.synthetic_dem import (
    encode_elevation_rgba,
    flat_height_field,
    step_height_field,
    uniform_albedo,
)
from pipeline.io_manager import load_manifest, read_indices, read_mesh
from pipeline.runner import TilePipeline

_SHADING_ONLY = {
    "write_albedo": False,
    "write_elevation": False,
    "write_indices": False,
    "write_manifest": False,
}


def _write_sources(directory: Path, size: int, elevation: float = 64.0) -> tuple[Path, Path]:
    albedo_path = directory / "albedo.png"
    elevation_path = directory / "elevation.png"
    Image.fromarray(uniform_albedo(size, size).pixels).save(albedo_path)
    Image.fromarray(encode_elevation_rgba(np.full((size, size), elevation))).save(elevation_path)
    return albedo_path, elevation_path


# ===========================================================================
# Pyramid Output
# ===========================================================================


class TestPyramid:
    """Full runs on small synthetic maps (64 px albedo tiles, 16-quad meshes)."""

    @pytest.fixture
    def flat_run(self, small_config: GeneratorConfig):
        result = TilePipeline(small_config).run(
            albedo=uniform_albedo(128, 128),
            height_field=flat_height_field(128, 128, elevation=64.0),
        )
        return result, Path(small_config.output.root)

    def test_tiles_per_lod(self, flat_run) -> None:
        result, _ = flat_run
        assert result.tiles_per_lod == {0: 4, 1: 1}
        assert (result.map_width, result.map_height) == (128, 128)

    def test_file_layout(self, flat_run) -> None:
        _, root = flat_run
        for row in (0, 1):
            for col in (0, 1):
                assert (root / "0" / str(row) / f"{col}.jpg").is_file()
                assert (root / "0" / str(row) / f"{col}.el").is_file()
        assert (root / "1" / "0" / "0.jpg").is_file()
        assert (root / "1" / "0" / "0.el").is_file()
        assert not (root / "2").exists()
        assert (root / "tile.indices").is_file()
        assert (root / "manifest.json").is_file()
        assert not list(root.rglob("*_elevation.jpg"))

    def test_albedo_tile_size(self, flat_run) -> None:
        _, root = flat_run
        with Image.open(root / "1" / "0" / "0.jpg") as img:
            assert img.size == (64, 64)
            assert img.mode == "RGB"

    def test_mesh_contents(self, flat_run) -> None:
        _, root = flat_run
        width, height, vertices = read_mesh(root / "0" / "1" / "1.el")
        assert (width, height) == (16, 16)
        assert vertices.shape == (17 * 17, 3)
        assert np.all(vertices[:, 2] == 64.0)
        assert vertices[:, :2].min() == 0.0 and vertices[:, :2].max() == 1.0

    def test_index_file(self, flat_run) -> None:
        result, root = flat_run
        assert result.index_path == root / "tile.indices"
        width, height, indices = read_indices(result.index_path)
        assert (width, height) == (16, 16)
        assert indices.shape == (16 * 16 * 6,)
        assert int(indices.max()) < 17 * 17

    def test_manifest(self, flat_run) -> None:
        result, root = flat_run
        manifest = load_manifest(root / "manifest.json")
        assert manifest["map_width"] == 128
        assert [lvl["tile_cols"] for lvl in manifest["levels"]] == [2, 1]
        assert manifest["shadow_fraction"] == 0.0
        assert manifest["index_file"] == "tile.indices"
        assert len(manifest["config_sha256"]) == 64

    def test_written_paths_exist(self, flat_run) -> None:
        result, _ = flat_run
        assert result.written
        assert all(Path(p).is_file() for p in result.written)

    def test_rectangular_map(self, small_config: GeneratorConfig) -> None:
        result = TilePipeline(small_config).run(
            albedo=uniform_albedo(256, 128),
            height_field=flat_height_field(256, 128),
        )
        # 4x2 tiles, then 2x1, then 1x1 (32 px tall)
        assert result.tiles_per_lod == {0: 8, 1: 2, 2: 1}

    def test_elevation_images(self, small_config: GeneratorConfig) -> None:
        cfg = with_overrides(small_config, stages={"write_elevation_images": True})
        TilePipeline(cfg).run(
            albedo=uniform_albedo(64, 64),
            height_field=flat_height_field(64, 64, elevation=90.0),
        )
        with Image.open(Path(cfg.output.root) / "0" / "0" / "0_elevation.jpg") as img:
            assert img.mode == "L"
            assert img.size == (16, 16)
            assert abs(int(np.asarray(img).mean()) - 90) <= 2


# ===========================================================================
# Shading
# ===========================================================================


class TestShading:
    """In-memory effects of the shading stages."""

    def test_flat_terrain_only_gradient(self, small_config: GeneratorConfig) -> None:
        cfg = with_overrides(small_config, stages=_SHADING_ONLY)
        albedo = uniform_albedo(128, 128)
        result = TilePipeline(cfg).run(albedo=albedo, height_field=flat_height_field(128, 128))

        assert result.shadow is not None
        assert result.shadow.shadowed_texels == 0
        # margin 8 on a 128 px map: interior [8, 120] untouched
        assert np.all(albedo.pixels[8:121, 8:121, :3] == (200, 160, 120))
        assert np.all(albedo.pixels[0, :, :3] == 0)
        assert np.all(albedo.pixels[..., 3] == 255)
        assert result.levels == []

    def test_step_terrain_shadowed(self, small_config: GeneratorConfig) -> None:
        cfg = with_overrides(
            small_config,
            sun={"heading_deg": 0.0, "pitch_deg": 5.0},
            stages={**_SHADING_ONLY, "render_border_gradient": False},
        )
        albedo = uniform_albedo(128, 128, color=(200, 200, 200))
        result = TilePipeline(cfg).run(
            albedo=albedo, height_field=step_height_field(128, 128, step_x=80)
        )
        assert result.shadow.shadowed_texels > 0
        # height field is pre-shrunk 4x: step at column 20, albedo texel 40 -> 10
        assert albedo.pixels[64, 40, 0] < 200
        assert albedo.pixels[64, 100, 0] == 200

    def test_shadows_disabled(self, small_config: GeneratorConfig) -> None:
        cfg = with_overrides(
            small_config,
            sun={"heading_deg": 0.0, "pitch_deg": 5.0},
            stages={**_SHADING_ONLY, "render_shadows": False, "render_border_gradient": False},
        )
        albedo = uniform_albedo(128, 128)
        result = TilePipeline(cfg).run(albedo=albedo)
        assert result.shadow is None
        assert np.all(albedo.pixels[..., :3] == (200, 160, 120))

    def test_preview_written(self, small_config: GeneratorConfig, tmp_path: Path) -> None:
        cfg = with_overrides(small_config, stages=_SHADING_ONLY)
        result = TilePipeline(cfg).run(
            albedo=uniform_albedo(64, 64),
            height_field=flat_height_field(64, 64),
            preview_path=tmp_path / "preview.png",
        )
        assert (tmp_path / "preview.png").is_file()
        assert tmp_path / "preview.png" in result.written


# ===========================================================================
# Elevation Alignment Shift
# ===========================================================================


class TestElevationAlignment:
    """Configured pixel offsets move the written meshes, not the shadows."""

    def _run(self, config: GeneratorConfig, name: str, **elevation) -> tuple[np.ndarray, np.ndarray]:
        cfg = with_overrides(
            config,
            sun={"heading_deg": 0.0, "pitch_deg": 5.0},
            stages={
                "render_border_gradient": False,
                "write_albedo": False,
                "write_indices": False,
                "write_manifest": False,
            },
            elevation=elevation,
            output={"root": str(Path(config.output.root).parent / name)},
        )
        albedo = uniform_albedo(128, 128, color=(200, 200, 200))
        TilePipeline(cfg).run(albedo=albedo, height_field=step_height_field(128, 128, step_x=80))
        _, _, vertices = read_mesh(Path(cfg.output.root) / "0" / "0" / "1.el")
        return vertices[:, 2].reshape(17, 17), albedo.pixels

    def test_offset_x_moves_step_one_vertex(self, small_config: GeneratorConfig) -> None:
        # pre-shrunk step at column 20; tile column 1 starts at elevation texel 16
        plain, _ = self._run(small_config, "plain")
        shifted, _ = self._run(small_config, "shifted", pixel_offset_x=1)

        assert np.all(plain[:, :4] == 0.0) and np.all(plain[:, 4:] == 200.0)
        assert np.all(shifted[:, :5] == 0.0) and np.all(shifted[:, 5:] == 200.0)

    def test_offset_y_keeps_columns(self, small_config: GeneratorConfig) -> None:
        plain, _ = self._run(small_config, "plain")
        shifted, _ = self._run(small_config, "shifted", pixel_offset_y=3)
        np.testing.assert_array_equal(shifted, plain)

    def test_shadows_cast_before_shift(self, small_config: GeneratorConfig) -> None:
        _, plain = self._run(small_config, "plain")
        _, shifted = self._run(small_config, "shifted", pixel_offset_x=2)
        assert plain[64, 40, 0] < 200
        np.testing.assert_array_equal(shifted, plain)

    def test_negative_offset_rejected(self, small_config: GeneratorConfig) -> None:
        with pytest.raises(InputError):
            with_overrides(small_config, elevation={"pixel_offset_x": -1})
        assert not Path(small_config.output.root).exists()


# ===========================================================================
# Stage Selection and Inputs
# ===========================================================================


class TestInputs:
    """Source loading driven by the enabled stages."""

    def test_loads_from_files(self, small_config: GeneratorConfig, tmp_path: Path) -> None:
        albedo_path, elevation_path = _write_sources(tmp_path, 128)
        cfg = with_overrides(
            small_config,
            inputs={"albedo": str(albedo_path), "elevation": str(elevation_path)},
        )
        result = TilePipeline(cfg).run()
        assert result.tiles_per_lod == {0: 4, 1: 1}
        _, _, vertices = read_mesh(Path(cfg.output.root) / "0" / "0" / "0.el")
        np.testing.assert_allclose(vertices[:, 2], 64.0, atol=1e-4)

    def test_indices_only_needs_no_inputs(self, small_config: GeneratorConfig, tmp_path: Path) -> None:
        cfg = with_overrides(
            small_config,
            inputs={"albedo": str(tmp_path / "missing_a.png"), "elevation": str(tmp_path / "missing_e.png")},
            stages={
                "render_shadows": False,
                "render_border_gradient": False,
                "write_albedo": False,
                "write_elevation": False,
            },
        )
        result = TilePipeline(cfg).run()
        assert result.levels == []
        assert result.index_path is not None and result.index_path.is_file()

    def test_elevation_only_run(self, small_config: GeneratorConfig, tmp_path: Path) -> None:
        _, elevation_path = _write_sources(tmp_path, 128)
        cfg = with_overrides(
            small_config,
            inputs={"albedo": str(tmp_path / "missing.png"), "elevation": str(elevation_path)},
            stages={"render_shadows": False, "render_border_gradient": False, "write_albedo": False},
        )
        result = TilePipeline(cfg).run()
        root = Path(cfg.output.root)
        assert result.tiles_per_lod == {0: 4, 1: 1}
        assert (root / "0" / "1" / "1.el").is_file()
        assert not list(root.rglob("*.jpg"))

    def test_missing_input_writes_nothing(self, small_config: GeneratorConfig, tmp_path: Path) -> None:
        cfg = with_overrides(
            small_config,
            inputs={"albedo": str(tmp_path / "missing.png"), "elevation": str(tmp_path / "missing.png")},
        )
        with pytest.raises(InputError):
            TilePipeline(cfg).run()
        assert not Path(cfg.output.root).exists()

    def test_mismatched_sources_write_nothing(self, small_config: GeneratorConfig) -> None:
        with pytest.raises(InputError):
            TilePipeline(small_config).run(
                albedo=uniform_albedo(128, 128),
                height_field=flat_height_field(128, 64),
            )
        assert not Path(small_config.output.root).exists()

    def test_unaligned_map_rejected(self, small_config: GeneratorConfig) -> None:
        with pytest.raises(InputError):
            TilePipeline(small_config).run(
                albedo=uniform_albedo(96, 96),
                height_field=flat_height_field(96, 96),
            )


# ===========================================================================
# CLI
# ===========================================================================


class TestCli:
    """``main.main`` exit codes and overrides."""

    def _write_config(self, tmp_path: Path) -> Path:
        path = tmp_path / "cfg.yaml"
        path.write_text(
            "tiles:\n  albedo_tile_size: 64\n  elevation_tile_size: 16\n"
            "gradient:\n  margin_px: 8\n",
            encoding="utf-8",
        )
        return path

    def test_successful_run(self, tmp_path: Path) -> None:
        from main import main

        albedo_path, elevation_path = _write_sources(tmp_path, 128)
        out = tmp_path / "tiles"
        code = main([
            "--config", str(self._write_config(tmp_path)),
            "--albedo", str(albedo_path),
            "--elevation", str(elevation_path),
            "--output", str(out),
            "--threads", "2",
            "--preview",
        ])
        assert code == 0
        assert (out / "1" / "0" / "0.jpg").is_file()
        assert (out / "shading_preview.png").is_file()
        assert (out / "lod_summary.png").is_file()

    def test_input_error_exit_code(self, tmp_path: Path) -> None:
        from main import main

        code = main([
            "--config", str(self._write_config(tmp_path)),
            "--albedo", str(tmp_path / "missing.png"),
            "--elevation", str(tmp_path / "missing.png"),
            "--output", str(tmp_path / "tiles"),
        ])
        assert code == 1
        assert not (tmp_path / "tiles").exists()

    def test_stage_flags(self) -> None:
        from main import build_config, parse_args

        args = parse_args(["--config", "does/not/exist.yaml", "--no-shadows", "--no-indices", "--elevation-images"])
        cfg = build_config(args)
        assert not cfg.stages.render_shadows
        assert not cfg.stages.write_indices
        assert cfg.stages.write_elevation_images
        assert cfg.stages.write_albedo


# ===========================================================================
# Full-size Flat Map
# ===========================================================================


class TestFlatMapEndToEnd:
    """1024 x 1024 flat map with the built-in 512 / 128 tile geometry."""

    @pytest.fixture
    def config(self, tmp_path: Path) -> GeneratorConfig:
        return with_overrides(GeneratorConfig(), output={"root": str(tmp_path / "out")})

    def _shade(self, config: GeneratorConfig, gradient: bool) -> np.ndarray:
        cfg = with_overrides(
            config, stages={**_SHADING_ONLY, "render_border_gradient": gradient}
        )
        albedo = uniform_albedo(1024, 1024)
        TilePipeline(cfg).run(
            albedo=albedo, height_field=flat_height_field(1024, 1024, elevation=250.0)
        )
        return albedo.pixels

    def test_shadow_pass_leaves_flat_map_untouched(self, config: GeneratorConfig) -> None:
        pixels = self._shade(config, gradient=False)
        assert np.all(pixels[..., :3] == (200, 160, 120))

    def test_gradient_keeps_interior_and_darkens_edges(self, config: GeneratorConfig) -> None:
        plain = self._shade(config, gradient=False)
        faded = self._shade(config, gradient=True)

        # center 512, margin 255: interior spans [255, 769]
        np.testing.assert_array_equal(faded[255:770, 255:770], plain[255:770, 255:770])

        row = faded[512, :256, 0].astype(int)
        assert np.all(np.diff(row) >= 0)
        assert row[0] < row[128] < row[255]
        assert faded[512, 0, 0] == 0
        assert faded[0, 512, 0] == 0
        assert faded[512, 1023, 0] < plain[512, 1023, 0]
        assert faded[1023, 512, 0] < plain[1023, 512, 0]

    def test_pyramid(self, config: GeneratorConfig) -> None:
        result = TilePipeline(config).run(
            albedo=uniform_albedo(1024, 1024),
            height_field=flat_height_field(1024, 1024, elevation=250.0),
        )
        assert result.tiles_per_lod == {0: 4, 1: 1}
        _, _, indices = read_indices(result.index_path)
        assert indices.shape == (128 * 128 * 6,)
        _, _, vertices = read_mesh(Path(config.output.root) / "1" / "0" / "0.el")
        assert vertices.shape == (129 * 129, 3)
