"""Output writers: tile images, mesh files, the shared index file, manifest.

File layout under the output root:
    <lod>/<row>/<col>.jpg            RGB albedo tile (JPEG, quality 80)
    <lod>/<row>/<col>_elevation.jpg  optional grayscale elevation tile
    <lod>/<row>/<col>.el             terrain mesh tile
    tile.indices                     shared triangle index buffer
    manifest.json                    run summary (JSON)

Binary formats (little endian):
    mesh:    uint32 width, uint32 height, uint32 vertexCount,
             vertexCount x (float32 x, float32 y, float32 z)
    indices: uint32 width, uint32 height, uint32 indexCount,
             indexCount x uint16
"""

from __future__ import annotations

import json
import logging
import struct
from pathlib import Path

import numpy as np
from PIL import Image

from core_engine.errors import InputError, ResourceError
from core_engine.mesh import TileMesh

logger = logging.getLogger(__name__)

_HEADER = struct.Struct("<III")
_VERTEX_DTYPE = np.dtype("<f4")
_INDEX_DTYPE = np.dtype("<u2")


def tile_path(root: Path | str, lod: int, row: int, col: int, suffix: str) -> Path:
    """``<root>/<lod>/<row>/<col><suffix>``; ``suffix`` includes any dot."""
    return Path(root) / str(lod) / str(row) / f"{col}{suffix}"


def ensure_directory(path: Path | str) -> Path:
    """Create ``path`` (and parents) if needed."""
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ResourceError(f"Cannot create output directory {path}: {e}") from e
    return path


def write_albedo_tile(tile: np.ndarray, path: Path | str, quality: int = 80) -> Path:
    """Encode an (N, N, 3) uint8 tile as a baseline RGB JPEG."""
    path = Path(path)
    try:
        Image.fromarray(tile).save(path, format="JPEG", quality=quality, subsampling=0)
    except OSError as e:
        raise ResourceError(f"Cannot write {path}: {e}") from e
    logger.debug("Wrote %s", path)
    return path


def write_elevation_image(tile: np.ndarray, path: Path | str, quality: int = 70) -> Path:
    """Encode an (N, N) uint8 elevation tile as a grayscale JPEG."""
    path = Path(path)
    try:
        Image.fromarray(tile).save(path, format="JPEG", quality=quality)
    except OSError as e:
        raise ResourceError(f"Cannot write {path}: {e}") from e
    logger.debug("Wrote %s", path)
    return path


def write_mesh(mesh: TileMesh, path: Path | str) -> Path:
    """Persist a tile mesh: header then the raw vertex records."""
    path = Path(path)
    vertices = np.ascontiguousarray(mesh.vertices, dtype=_VERTEX_DTYPE)
    try:
        with open(path, "wb") as f:
            f.write(_HEADER.pack(mesh.size, mesh.size, mesh.vertex_count))
            f.write(vertices.tobytes())
    except OSError as e:
        raise ResourceError(f"Cannot write {path}: {e}") from e
    logger.debug("Wrote %s (%d vertices)", path, mesh.vertex_count)
    return path


def read_mesh(path: Path | str) -> tuple[int, int, np.ndarray]:
    """Read a mesh file back as (width, height, vertices[(count, 3)])."""
    data = Path(path).read_bytes()
    width, height, count = _HEADER.unpack_from(data, 0)
    vertices = np.frombuffer(data, dtype=_VERTEX_DTYPE, offset=_HEADER.size)
    if vertices.size != count * 3:
        raise InputError(f"{path}: expected {count} vertices, found {vertices.size / 3:g}")
    return width, height, vertices.reshape(count, 3)


def write_indices(indices: np.ndarray, size: int, path: Path | str) -> Path:
    """Persist the shared index buffer: header then the raw uint16 indices."""
    path = Path(path)
    data = np.ascontiguousarray(indices, dtype=_INDEX_DTYPE)
    try:
        with open(path, "wb") as f:
            f.write(_HEADER.pack(size, size, data.shape[0]))
            f.write(data.tobytes())
    except OSError as e:
        raise ResourceError(f"Cannot write {path}: {e}") from e
    logger.info("Wrote shared index file %s (%d indices)", path, data.shape[0])
    return path


def read_indices(path: Path | str) -> tuple[int, int, np.ndarray]:
    """Read the shared index file back as (width, height, indices)."""
    data = Path(path).read_bytes()
    width, height, count = _HEADER.unpack_from(data, 0)
    indices = np.frombuffer(data, dtype=_INDEX_DTYPE, offset=_HEADER.size)
    if indices.size != count:
        raise InputError(f"{path}: expected {count} indices, found {indices.size}")
    return width, height, indices


def save_manifest(path: Path | str, manifest: dict) -> Path:
    """Write the run manifest as JSON."""
    path = Path(path)
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(_sanitize_for_json(manifest), f, indent=2, ensure_ascii=False)
    except OSError as e:
        raise ResourceError(f"Cannot write {path}: {e}") from e
    logger.info("Wrote manifest %s", path)
    return path


def load_manifest(path: Path | str) -> dict:
    """Load a manifest written by :func:`save_manifest`."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _sanitize_for_json(obj: object) -> object:
    """Recursively convert NumPy types and other non-JSON types to Python natives."""
    if isinstance(obj, dict):
        return {str(k): _sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize_for_json(v) for v in obj]
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, Path):
        return str(obj)
    return obj
