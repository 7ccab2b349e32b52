"""Tile iteration and tile pixel extraction for one pyramid level."""

from __future__ import annotations

from typing import Iterator, NamedTuple

import numpy as np


class TileSpec(NamedTuple):
    """One tile of a pyramid level.

    ``x``/``y`` are the albedo-space origin; ``row``/``col`` index the tile
    grid and name the output files.
    """

    x: int
    y: int
    extent: int
    lod: int
    row: int
    col: int


def tile_grid_shape(width: int, height: int, tile_size: int) -> tuple[int, int]:
    """(rows, cols) of the tile grid covering a width x height raster."""
    return -(-height // tile_size), -(-width // tile_size)


def iter_tiles(width: int, height: int, tile_size: int, lod: int) -> Iterator[TileSpec]:
    """Yield the tiles of a level in row-major order with stride ``tile_size``."""
    for y in range(0, height, tile_size):
        for x in range(0, width, tile_size):
            yield TileSpec(x, y, tile_size, lod, y // tile_size, x // tile_size)


def extract_albedo_tile(pixels: np.ndarray, x: int, y: int, size: int) -> np.ndarray:
    """Copy a size x size RGB tile out of an (H, W, 4) raster.

    Rows and columns past the raster edge are zero-filled.
    """
    tile = np.zeros((size, size, 3), dtype=np.uint8)
    block = pixels[y:y + size, x:x + size, :3]
    tile[:block.shape[0], :block.shape[1]] = block
    return tile


def extract_elevation_tile(values: np.ndarray, x: int, y: int, size: int) -> np.ndarray:
    """Copy a size x size elevation tile as uint8 (truncated), zero-filled past the edge."""
    tile = np.zeros((size, size), dtype=np.uint8)
    block = values[y:y + size, x:x + size]
    tile[:block.shape[0], :block.shape[1]] = np.clip(block, 0.0, 255.0).astype(np.uint8)
    return tile
