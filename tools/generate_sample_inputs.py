"""Generate synthetic base albedo and elevation images.

Writes a pair of RGBA PNGs the generator can consume directly, so the full
pipeline can be exercised without real planetary data.

Usage
-----
    python tools/generate_sample_inputs.py
    python tools/generate_sample_inputs.py --size 2048 --terrain crater
    python tools/generate_sample_inputs.py --output-dir data --noise 3

Output
------
    <output-dir>/base_albedo.png     RGBA albedo, mottled gray-brown
    <output-dir>/base_elevation.png  RGBA elevation (alpha * blue / 255)
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np
from PIL import Image

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from data_ingestion.synthetic_dem import (  # noqa: E402
    encode_elevation_rgba,
    generate_height_field,
    uniform_albedo,
)

logger = logging.getLogger(__name__)


def mottled_albedo(width: int, height: int, seed: int = 42) -> np.ndarray:
    """Uniform base color with low-amplitude per-pixel variation."""
    rng = np.random.default_rng(seed)
    pixels = uniform_albedo(width, height).pixels.astype(np.int16)
    pixels[..., :3] += rng.integers(-12, 13, size=(height, width, 1), dtype=np.int16)
    return np.clip(pixels, 0, 255).astype(np.uint8)


def write_sample_inputs(
    output_dir: Path,
    size: int,
    terrain: str = "crater",
    noise: float = 0.0,
    seed: int = 42,
) -> tuple[Path, Path]:
    """Write ``base_albedo.png`` and ``base_elevation.png`` under ``output_dir``."""
    output_dir.mkdir(parents=True, exist_ok=True)

    kwargs = {"noise_amplitude": noise, "seed": seed} if terrain == "crater" else {}
    height_field = generate_height_field(terrain, size, size, **kwargs)

    albedo_path = output_dir / "base_albedo.png"
    elevation_path = output_dir / "base_elevation.png"
    Image.fromarray(mottled_albedo(size, size, seed)).save(albedo_path)
    Image.fromarray(encode_elevation_rgba(height_field.values)).save(elevation_path)

    logger.info("Sample albedo saved: %s (%d x %d)", albedo_path, size, size)
    logger.info("Sample elevation saved: %s (%s terrain)", elevation_path, terrain)
    return albedo_path, elevation_path


def main() -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Generate synthetic base albedo/elevation images",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=".",
        help="Directory for the generated PNGs (default: current directory)",
    )
    parser.add_argument(
        "--size",
        type=int,
        default=1024,
        help="Edge length in pixels; must be a multiple of the albedo tile size (default: 1024)",
    )
    parser.add_argument(
        "--terrain",
        type=str,
        default="crater",
        choices=["flat", "step", "crater"],
        help="Synthetic terrain kind (default: crater)",
    )
    parser.add_argument(
        "--noise",
        type=float,
        default=2.0,
        help="Crater roughness amplitude in elevation units (default: 2)",
    )
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args()

    write_sample_inputs(
        Path(args.output_dir),
        size=args.size,
        terrain=args.terrain,
        noise=args.noise,
        seed=args.seed,
    )
    return 0


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s [%(levelname)s] %(message)s",
        stream=sys.stdout,
    )
    sys.exit(main())
