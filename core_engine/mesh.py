"""Terrain tile meshes and the shared Morton-ordered index buffer.

Every elevation tile is an (N+1) x (N+1) vertex grid with x/y normalized to
[0, 1] and the sampled elevation in z. All tiles of size N share one index
buffer, generated once per run:

    (x, y)-------(x+1, y)
      |  T0     /   |
      |      /      |
      |   /    T1   |
    (x, y+1)---(x+1, y+1)

T0: v, v+1, v+stride          T1: v+1, v+stride+1, v+stride
with v = x + y * stride and stride = N + 1.

Quad order
----------
Quads are emitted in Morton (Z-order) sequence rather than row-major. The
Morton code of quad number ``q`` is read two bits per recursion level: at
level ``l`` the quadrant ``(q >> 2l) & 3`` contributes its low bit to bit
``l`` of x and its high bit to bit ``l`` of y. With ``levels = log2(N)``
this visits 2x2 blocks, then 4x4 blocks, and so on, giving a reproducible,
spatially local triangle order that every tile of that size reuses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)

_MAX_UINT16_VERTICES = 1 << 16


@dataclass
class TileMesh:
    """Vertex grid of one elevation tile.

    Attributes
    ----------
    size : int
        Quads per edge (N). The grid has (N+1)^2 vertices.
    vertices : np.ndarray
        Vertex positions (x/N, y/N, z). Shape: ((N+1)^2, 3), dtype: float32.
        Row-major: vertex (tx, ty) is at index tx + ty * (N+1).
    """

    size: int
    vertices: np.ndarray

    @property
    def vertex_count(self) -> int:
        return self.vertices.shape[0]


def build_tile_mesh(values: np.ndarray, x: int, y: int, size: int) -> TileMesh:
    """Sample an (size+1)^2 vertex grid from the elevation raster.

    Parameters
    ----------
    values : np.ndarray
        Elevation raster at the current LOD. Shape: (H, W).
    x, y : int
        Tile origin in elevation texels.
    size : int
        Quads per tile edge.

    Returns
    -------
    TileMesh
        Grid spanning texels [x, x+size] x [y, y+size]. Samples past the
        last row/column replicate that row/column.
    """
    height, width = values.shape
    if not (0 <= x < width and 0 <= y < height):
        raise ValueError(f"Tile origin ({x}, {y}) outside {width}x{height} raster")

    steps = np.arange(size + 1)
    cols = np.minimum(x + steps, width - 1)
    rows = np.minimum(y + steps, height - 1)
    z = values[rows[:, None], cols[None, :]]

    grid_y, grid_x = np.meshgrid(steps, steps, indexing="ij")
    vertices = np.empty(((size + 1) * (size + 1), 3), dtype=np.float32)
    vertices[:, 0] = (grid_x / size).ravel()
    vertices[:, 1] = (grid_y / size).ravel()
    vertices[:, 2] = z.ravel()

    return TileMesh(size=size, vertices=vertices)


# ---------------------------------------------------------------------------
# Shared Index Buffer
# ---------------------------------------------------------------------------


def morton_decode(codes: np.ndarray, levels: int) -> tuple[np.ndarray, np.ndarray]:
    """Decode Morton codes into (x, y) quad coordinates.

    Parameters
    ----------
    codes : np.ndarray
        Integer Morton codes in [0, 4**levels).
    levels : int
        Recursion depth; coordinates span [0, 2**levels).

    Returns
    -------
    x, y : np.ndarray
        Quad coordinates, same shape as ``codes``.
    """
    codes = np.asarray(codes, dtype=np.int64)
    x = np.zeros_like(codes)
    y = np.zeros_like(codes)
    for level in range(levels):
        quadrant = (codes >> (2 * level)) & 3
        x |= (quadrant & 1) << level
        y |= ((quadrant >> 1) & 1) << level
    return x, y


def generate_shared_indices(size: int) -> np.ndarray:
    """Build the Morton-ordered triangle index buffer for an N x N tile.

    Parameters
    ----------
    size : int
        Quads per tile edge. Must be a power of two with (size+1)^2 <= 65536.

    Returns
    -------
    np.ndarray
        Read-only index buffer. Shape: (size * size * 6,), dtype: uint16.

    Raises
    ------
    ValueError
        If ``size`` is not a power of two or its vertices overflow uint16.
    """
    if size <= 0 or size & (size - 1):
        raise ValueError(f"Tile size must be a power of two, got {size}")
    if (size + 1) ** 2 > _MAX_UINT16_VERTICES:
        raise ValueError(f"Tile size {size} has too many vertices for 16-bit indices")

    levels = size.bit_length() - 1
    stride = size + 1

    x, y = morton_decode(np.arange(size * size), levels)
    v = x + y * stride

    indices = np.empty((size * size, 6), dtype=np.int64)
    indices[:, 0] = v
    indices[:, 1] = v + 1
    indices[:, 2] = v + stride
    indices[:, 3] = v + 1
    indices[:, 4] = v + stride + 1
    indices[:, 5] = v + stride

    shared = indices.ravel().astype(np.uint16)
    shared.setflags(write=False)

    logger.info(
        "Shared index buffer: %dx%d quads, %d indices (Morton depth %d)",
        size, size, shared.shape[0], levels,
    )
    return shared
