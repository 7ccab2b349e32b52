"""Planetary tile generator — CLI entry point.

Bakes soft sun shadows into a planetary albedo map and cuts albedo and
elevation into an LOD pyramid of image tiles and mesh tiles.

Usage
-----
    python main.py --albedo base_albedo.png --elevation base_elevation.png
    python main.py --threads 16 --output tiles
    python main.py --no-albedo --no-elevation     # only the shared index file
    python main.py --preview                      # also save debug figures
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging."""
    fmt = "%(name)s [%(levelname)s] %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        stream=sys.stdout,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="tilegen",
        description="Planetary albedo/elevation tile pyramid generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python main.py\n"
            "  python main.py --albedo data/albedo.png --elevation data/elevation.png\n"
            "  python main.py --no-shadows --no-gradient --output preview_tiles\n"
            "  python main.py --elevation-images --preview\n"
        ),
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config/default_config.yaml",
        help="Path to generator config YAML (default: config/default_config.yaml)",
    )
    parser.add_argument(
        "--albedo",
        type=str,
        default=None,
        help="Base albedo image (default: from config)",
    )
    parser.add_argument(
        "--elevation",
        type=str,
        default=None,
        help="Base elevation image (default: from config)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output tree root (default: from config)",
    )
    parser.add_argument(
        "--threads",
        type=int,
        default=None,
        help="Shadow pass worker threads (default: from config, typically 8)",
    )
    parser.add_argument(
        "--no-shadows",
        action="store_true",
        default=False,
        help="Skip the shadow pass",
    )
    parser.add_argument(
        "--no-gradient",
        action="store_true",
        default=False,
        help="Skip the border gradient",
    )
    parser.add_argument(
        "--no-albedo",
        action="store_true",
        default=False,
        help="Do not write albedo tiles",
    )
    parser.add_argument(
        "--no-elevation",
        action="store_true",
        default=False,
        help="Do not write mesh tiles",
    )
    parser.add_argument(
        "--no-indices",
        action="store_true",
        default=False,
        help="Do not write the shared index file",
    )
    parser.add_argument(
        "--elevation-images",
        action="store_true",
        default=False,
        help="Also write grayscale elevation tiles (debug)",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        default=False,
        help="Save a shading preview and an LOD summary figure to the output root",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace):
    """Load the YAML config (if present) and apply CLI overrides."""
    from core_engine.constants import GeneratorConfig, load_config, with_overrides

    logger = logging.getLogger("tilegen")
    config_path = Path(args.config)
    if config_path.exists():
        config = load_config(config_path)
    else:
        logger.warning("Config %s not found, using built-in defaults", config_path)
        config = GeneratorConfig()

    inputs: dict[str, str] = {}
    if args.albedo:
        inputs["albedo"] = args.albedo
    if args.elevation:
        inputs["elevation"] = args.elevation

    output = {"root": args.output} if args.output else {}
    shadows = {"num_threads": args.threads} if args.threads is not None else {}

    stages: dict[str, bool] = {}
    if args.no_shadows:
        stages["render_shadows"] = False
    if args.no_gradient:
        stages["render_border_gradient"] = False
    if args.no_albedo:
        stages["write_albedo"] = False
    if args.no_elevation:
        stages["write_elevation"] = False
    if args.no_indices:
        stages["write_indices"] = False
    if args.elevation_images:
        stages["write_elevation_images"] = True

    return with_overrides(config, inputs=inputs, output=output, shadows=shadows, stages=stages)


def main(argv: list[str] | None = None) -> int:
    """Generator entry point. Returns the process exit code."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    from core_engine.constants import log_platform_info
    from core_engine.errors import GeneratorError
    from pipeline.runner import TilePipeline

    logger = logging.getLogger("tilegen")
    log_platform_info()

    try:
        config = build_config(args)
        output_dir = Path(config.output.root)
        preview_path = output_dir / "shading_preview.png" if args.preview else None

        result = TilePipeline(config).run(preview_path=preview_path)

        if args.preview and result.levels:
            from visualization.plotter import plot_lod_summary

            result.written.append(
                plot_lod_summary(result.tiles_per_lod, output_dir / "lod_summary.png")
            )
    except GeneratorError as e:
        logger.error("Generation failed: %s", e)
        return 1

    # Summary
    logger.info("=" * 60)
    logger.info("  GENERATION COMPLETE")
    logger.info("=" * 60)
    logger.info("  Map: %d x %d", result.map_width, result.map_height)
    for level in result.levels:
        logger.info(
            "  LOD %d: %d x %d px, %d tiles",
            level.lod, level.width, level.height, level.tile_count,
        )
    if result.shadow is not None:
        logger.info("  Shadowed texels: %.2f%%", 100.0 * result.shadow.shadow_fraction)
    logger.info("  Wall time: %.1f s", result.timings.get("total_s", 0.0))
    logger.info("  Output files: %d", len(result.written))
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
