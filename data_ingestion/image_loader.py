"""Source raster loader: decode the base albedo and elevation images.

Both sources are 4-channel images (typically very large PNGs). The albedo
is kept as packed RGBA; the elevation is reconstructed from its two
high-order channels as ``high * low / 255``.

Key concerns:
- Gigapixel inputs exceed Pillow's decompression-bomb guard, which is lifted
  for the duration of the decode only.
- Any decode failure, dimension mismatch between the two sources, or
  dimensions not aligned to the albedo tile size is an input error raised
  before anything is written.
"""

from __future__ import annotations

import logging
import warnings
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from core_engine.errors import InputError
from core_engine.heightfield import HeightField
from core_engine.raster import AlbedoRaster

logger = logging.getLogger(__name__)


def load_rgba(file_path: str | Path) -> np.ndarray:
    """Decode an image file to an (H, W, 4) uint8 array.

    Raises
    ------
    InputError
        If the file is missing or cannot be decoded.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise InputError(f"Input image not found: {file_path}")

    old_max = Image.MAX_IMAGE_PIXELS
    try:
        Image.MAX_IMAGE_PIXELS = None
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", Image.DecompressionBombWarning)
            with Image.open(file_path) as img:
                rgba = np.array(img.convert("RGBA"), dtype=np.uint8)
    except (UnidentifiedImageError, OSError) as e:
        raise InputError(f"Cannot decode {file_path}: {e}") from e
    finally:
        Image.MAX_IMAGE_PIXELS = old_max

    logger.debug("Decoded %s: %d x %d", file_path, rgba.shape[1], rgba.shape[0])
    return np.ascontiguousarray(rgba)


def load_albedo(file_path: str | Path, tile_size: int) -> AlbedoRaster:
    """Load the base albedo map and check its tile alignment."""
    logger.info("Loading albedo: %s", file_path)
    rgba = load_rgba(file_path)
    validate_source_dimensions(rgba.shape[:2], None, tile_size)
    albedo = AlbedoRaster(rgba)
    logger.info("Albedo loaded: %d x %d", albedo.width, albedo.height)
    return albedo


def load_height_field(file_path: str | Path) -> HeightField:
    """Load the base elevation map and decode it to a float height field."""
    logger.info("Loading elevation: %s", file_path)
    rgba = load_rgba(file_path)
    logger.info("Converting elevation map to float...")
    height_field = HeightField.from_rgba(rgba)
    logger.info(
        "Elevation loaded: %d x %d, z=[%.1f, %.1f]",
        height_field.width,
        height_field.height,
        float(height_field.values.min()),
        float(height_field.values.max()),
    )
    return height_field


def validate_source_dimensions(
    albedo_shape: tuple[int, int] | None,
    elevation_shape: tuple[int, int] | None,
    tile_size: int,
) -> tuple[int, int]:
    """Check the source rasters against each other and the tile grid.

    Parameters
    ----------
    albedo_shape, elevation_shape : tuple[int, int] or None
        (height, width) of each loaded source; None if not loaded.
    tile_size : int
        Albedo tile size.

    Returns
    -------
    tuple[int, int]
        The map (height, width).

    Raises
    ------
    InputError
        On mismatch, misalignment, or when neither source is present.
    """
    if albedo_shape is None and elevation_shape is None:
        raise InputError("No source raster loaded")
    if albedo_shape is not None and elevation_shape is not None:
        if tuple(albedo_shape) != tuple(elevation_shape):
            raise InputError(
                f"Albedo ({albedo_shape[1]}x{albedo_shape[0]}) and elevation "
                f"({elevation_shape[1]}x{elevation_shape[0]}) dimensions differ"
            )

    height, width = albedo_shape if albedo_shape is not None else elevation_shape
    if height == 0 or width == 0 or height % tile_size or width % tile_size:
        raise InputError(
            f"Map dimensions {width}x{height} are not multiples of the "
            f"albedo tile size {tile_size}"
        )
    return height, width
