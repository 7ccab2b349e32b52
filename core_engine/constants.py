"""Generator configuration and configuration loader.

All tunables (tile sizes, sun angles, shadow constants, worker count, stage
toggles, output layout) are loaded from a YAML file into frozen dataclasses
and passed explicitly to each pipeline stage. Nothing here is read as
ambient state by the stages themselves.

Defaults
--------
The defaults mirror ``config/default_config.yaml``:

- albedo tiles 512 px, elevation tiles 128 quads
- sun heading 180°, pitch 25°, spreads 2° / 0.5°
- shadow strength 0.40, 8 worker threads
- border gradient margin 255 px
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import platform
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import yaml

from core_engine.errors import InputError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration Data Classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TileConfig:
    """Tile geometry.

    Attributes
    ----------
    albedo_tile_size : int
        Edge length of an albedo image tile [px].
    elevation_tile_size : int
        Number of mesh quads along one edge of an elevation tile. Must
        divide ``albedo_tile_size``.
    """

    albedo_tile_size: int = 512
    elevation_tile_size: int = 128

    @property
    def elevation_ratio(self) -> int:
        """Albedo texels per elevation texel along one axis."""
        return self.albedo_tile_size // self.elevation_tile_size


@dataclass(frozen=True)
class SunConfig:
    """Sun direction and soft-shadow spread.

    Attributes
    ----------
    heading_deg : float
        Base sun heading in the xy plane [deg], 0° = +x.
    pitch_deg : float
        Base sun pitch above the horizon [deg].
    heading_spread_deg : float
        Heading offset of the two side samples [deg].
    pitch_spread_deg : float
        Pitch offset of the two upper/lower samples [deg].
    """

    heading_deg: float = 180.0
    pitch_deg: float = 25.0
    heading_spread_deg: float = 2.0
    pitch_spread_deg: float = 0.5


@dataclass(frozen=True)
class ShadowConfig:
    """Shadow raymarcher constants.

    Attributes
    ----------
    strength : float
        Darkening applied when all sun samples are occluded.
    viewer_height_offset : float
        Ray start height above the terrain, avoids self-intersection.
    occlusion_tolerance : float
        How far the ray must fall below the terrain to count as a hit.
    max_elevation : float
        Highest representable elevation; rays above it are unoccluded.
    num_threads : int
        Fixed worker count of the shadow pass.
    """

    strength: float = 0.40
    viewer_height_offset: float = 2.0
    occlusion_tolerance: float = 5.0
    max_elevation: float = 255.0
    num_threads: int = 8


@dataclass(frozen=True)
class GradientConfig:
    """Border gradient settings.

    Attributes
    ----------
    margin_px : int
        Width of the fade band along each edge [px].
    """

    margin_px: int = 255


@dataclass(frozen=True)
class ElevationConfig:
    """Elevation alignment correction (in elevation texels)."""

    pixel_offset_x: int = 0
    pixel_offset_y: int = 0


@dataclass(frozen=True)
class OutputConfig:
    """Output tree layout.

    Attributes
    ----------
    root : str
        Output root directory.
    image_extension : str
        Extension of albedo tile images.
    mesh_extension : str
        Extension of mesh tiles.
    index_filename : str
        Name of the shared index file under ``root``.
    jpeg_quality : int
        Albedo JPEG quality.
    elevation_image_quality : int
        Grayscale elevation JPEG quality.
    manifest_filename : str
        Name of the JSON run manifest under ``root``.
    """

    root: str = "output"
    image_extension: str = "jpg"
    mesh_extension: str = "el"
    index_filename: str = "tile.indices"
    jpeg_quality: int = 80
    elevation_image_quality: int = 70
    manifest_filename: str = "manifest.json"


@dataclass(frozen=True)
class StageFlags:
    """Per-stage enable flags."""

    render_shadows: bool = True
    render_border_gradient: bool = True
    write_albedo: bool = True
    write_elevation: bool = True
    write_indices: bool = True
    write_elevation_images: bool = False
    write_manifest: bool = True

    @property
    def needs_albedo(self) -> bool:
        return self.render_shadows or self.render_border_gradient or self.write_albedo

    @property
    def needs_elevation(self) -> bool:
        return self.render_shadows or self.write_elevation or self.write_elevation_images


@dataclass(frozen=True)
class InputConfig:
    """Source raster paths."""

    albedo: str = "base_albedo.png"
    elevation: str = "base_elevation.png"


@dataclass(frozen=True)
class GeneratorConfig:
    """Top-level generator configuration.

    Attributes
    ----------
    tiles : TileConfig
    sun : SunConfig
    shadows : ShadowConfig
    gradient : GradientConfig
    elevation : ElevationConfig
    output : OutputConfig
    stages : StageFlags
    inputs : InputConfig
    """

    tiles: TileConfig = field(default_factory=TileConfig)
    sun: SunConfig = field(default_factory=SunConfig)
    shadows: ShadowConfig = field(default_factory=ShadowConfig)
    gradient: GradientConfig = field(default_factory=GradientConfig)
    elevation: ElevationConfig = field(default_factory=ElevationConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    stages: StageFlags = field(default_factory=StageFlags)
    inputs: InputConfig = field(default_factory=InputConfig)


# ---------------------------------------------------------------------------
# Configuration Loader
# ---------------------------------------------------------------------------

_SECTIONS: dict[str, type] = {
    "tiles": TileConfig,
    "sun": SunConfig,
    "shadows": ShadowConfig,
    "gradient": GradientConfig,
    "elevation": ElevationConfig,
    "output": OutputConfig,
    "stages": StageFlags,
    "inputs": InputConfig,
}


def load_config(config_path: str | Path) -> GeneratorConfig:
    """Load and validate a generator configuration from a YAML file.

    Parameters
    ----------
    config_path : str or Path
        Path to the YAML configuration file.

    Returns
    -------
    GeneratorConfig
        Fully populated, typed configuration object.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    InputError
        If unknown keys are present or values are invalid.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    logger.info("Loading configuration from: %s", config_path)
    config = config_from_dict(raw)
    logger.info("Configuration loaded successfully.")
    return config


def config_from_dict(raw: dict[str, Any]) -> GeneratorConfig:
    """Build a validated :class:`GeneratorConfig` from a nested mapping.

    Missing sections and keys fall back to the dataclass defaults.
    """
    unknown = set(raw) - set(_SECTIONS)
    if unknown:
        raise InputError(f"Unknown configuration sections: {sorted(unknown)}")

    sections: dict[str, Any] = {}
    for name, cls in _SECTIONS.items():
        values = raw.get(name) or {}
        sections[name] = _build_section(name, cls, values)

    config = GeneratorConfig(**sections)
    _validate_config(config)
    return config


def with_overrides(config: GeneratorConfig, **sections: dict[str, Any]) -> GeneratorConfig:
    """Return a validated copy of ``config`` with per-section field overrides.

    Example: ``with_overrides(cfg, shadows={"num_threads": 2})``.
    """
    updated: dict[str, Any] = {}
    for name, values in sections.items():
        if name not in _SECTIONS:
            raise InputError(f"Unknown configuration section: {name!r}")
        current = getattr(config, name)
        known = {f.name for f in dataclasses.fields(current)}
        bad = set(values) - known
        if bad:
            raise InputError(f"Unknown keys in section {name!r}: {sorted(bad)}")
        updated[name] = dataclasses.replace(current, **values)

    new_config = dataclasses.replace(config, **updated)
    _validate_config(new_config)
    return new_config


def _build_section(name: str, cls: type, values: dict[str, Any]) -> Any:
    """Coerce a YAML mapping into one section dataclass."""
    fields = {f.name: f for f in dataclasses.fields(cls)}
    bad = set(values) - set(fields)
    if bad:
        raise InputError(f"Unknown keys in section {name!r}: {sorted(bad)}")

    kwargs: dict[str, Any] = {}
    for key, value in values.items():
        default = getattr(cls(), key)
        try:
            if isinstance(default, bool):
                kwargs[key] = bool(value)
            elif isinstance(default, int):
                kwargs[key] = int(value)
            elif isinstance(default, float):
                kwargs[key] = float(value)
            else:
                kwargs[key] = str(value)
        except (TypeError, ValueError) as e:
            raise InputError(f"Invalid value for {name}.{key}: {value!r}") from e
    return cls(**kwargs)


def _is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def _validate_config(config: GeneratorConfig) -> None:
    """Validate tile geometry and value ranges.

    Raises
    ------
    InputError
        If any value is invalid.
    """
    tiles = config.tiles
    if tiles.albedo_tile_size <= 0 or tiles.elevation_tile_size <= 0:
        raise InputError("Tile sizes must be positive.")
    if tiles.elevation_tile_size > tiles.albedo_tile_size:
        raise InputError(
            f"Elevation tile size ({tiles.elevation_tile_size}) must not exceed "
            f"albedo tile size ({tiles.albedo_tile_size})"
        )
    if tiles.albedo_tile_size % tiles.elevation_tile_size != 0:
        raise InputError(
            f"Elevation tile size ({tiles.elevation_tile_size}) must evenly divide "
            f"albedo tile size ({tiles.albedo_tile_size})"
        )
    if not _is_power_of_two(tiles.elevation_ratio):
        raise InputError(
            f"Albedo/elevation tile ratio must be a power of two, got {tiles.elevation_ratio}"
        )
    if not (0.0 < config.sun.pitch_deg - config.sun.pitch_spread_deg) or not (
        config.sun.pitch_deg + config.sun.pitch_spread_deg < 90.0
    ):
        raise InputError(
            "Sun pitch minus/plus its spread must stay within (0°, 90°), got "
            f"pitch={config.sun.pitch_deg}, spread={config.sun.pitch_spread_deg}"
        )
    if not (0.0 <= config.shadows.strength <= 1.0):
        raise InputError(f"Shadow strength must be in [0, 1], got {config.shadows.strength}")
    if config.shadows.num_threads < 1:
        raise InputError("Shadow pass needs at least one worker thread.")
    if config.shadows.occlusion_tolerance < 0.0:
        raise InputError("Occlusion tolerance cannot be negative.")
    if config.gradient.margin_px <= 0:
        raise InputError("Border gradient margin must be positive.")
    if config.elevation.pixel_offset_x < 0 or config.elevation.pixel_offset_y < 0:
        raise InputError(
            "Elevation pixel offsets must be non-negative, got "
            f"({config.elevation.pixel_offset_x}, {config.elevation.pixel_offset_y})"
        )
    for quality in (config.output.jpeg_quality, config.output.elevation_image_quality):
        if not (1 <= quality <= 95):
            raise InputError(f"JPEG quality must be in [1, 95], got {quality}")

    logger.debug("Configuration validation passed.")


# ---------------------------------------------------------------------------
# Reproducibility helpers
# ---------------------------------------------------------------------------


def config_hash(config: GeneratorConfig) -> str:
    """SHA-256 of the configuration, stable across runs."""
    payload = json.dumps(dataclasses.asdict(config), sort_keys=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def log_platform_info() -> None:
    """Log platform and library version information for reproducibility."""
    import numba

    logger.info("=" * 70)
    logger.info("PLATFORM INFORMATION")
    logger.info("=" * 70)
    logger.info("  Python:    %s", sys.version)
    logger.info("  Platform:  %s", platform.platform())
    logger.info("  NumPy:     %s", np.__version__)
    logger.info("  Numba:     %s", numba.__version__)
    logger.info("=" * 70)
