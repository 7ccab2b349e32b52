"""Debug figures for generator runs.

- Shaded albedo next to the working-resolution height field
- Tiles-per-level bar chart of the written pyramid
"""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend for headless rendering

import matplotlib.pyplot as plt
import numpy as np

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Color Configuration
# ---------------------------------------------------------------------------

_HEIGHT_CMAP = "terrain"
_BACKGROUND = "#1a1a2e"
_DPI = 150
_MAX_PREVIEW_PX = 2048


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _preview_stride(shape: tuple[int, ...], max_px: int = _MAX_PREVIEW_PX) -> int:
    """Integer stride so the longest side stays under ``max_px``."""
    return max(1, -(-max(shape[0], shape[1]) // max_px))


def _style_axes(ax: plt.Axes, title: str) -> None:
    ax.set_facecolor(_BACKGROUND)
    ax.set_title(title, fontsize=12, fontweight="bold", color="white")
    ax.tick_params(colors="white")
    for spine in ax.spines.values():
        spine.set_edgecolor("#444")


def _save(fig: plt.Figure, output_path: Path | str, dpi: int, label: str) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=dpi, facecolor=fig.get_facecolor())
    plt.close(fig)
    logger.info("%s saved: %s", label, output_path)
    return output_path


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def plot_shading_preview(
    albedo: np.ndarray | None,
    height_values: np.ndarray | None,
    output_path: Path | str,
    dpi: int = _DPI,
) -> Path:
    """Save the shaded albedo and the height field side by side.

    Parameters
    ----------
    albedo : np.ndarray or None
        (H, W, 4) uint8 albedo after the shading passes.
    height_values : np.ndarray or None
        (h, w) float height field at working resolution.
    output_path : Path or str
        Destination image.
    dpi : int
        Figure resolution.

    Returns
    -------
    Path
        The saved figure path.
    """
    panels = [p for p in (albedo, height_values) if p is not None]
    if not panels:
        raise ValueError("Nothing to preview: no albedo and no height field")

    fig, axes = plt.subplots(1, len(panels), figsize=(8 * len(panels), 8), facecolor=_BACKGROUND)
    axes = np.atleast_1d(axes)
    idx = 0

    if albedo is not None:
        s = _preview_stride(albedo.shape)
        axes[idx].imshow(albedo[::s, ::s, :3], interpolation="nearest")
        _style_axes(axes[idx], "Shaded albedo")
        idx += 1

    if height_values is not None:
        s = _preview_stride(height_values.shape)
        im = axes[idx].imshow(
            height_values[::s, ::s], cmap=_HEIGHT_CMAP, vmin=0.0, vmax=255.0,
            interpolation="nearest",
        )
        cbar = fig.colorbar(im, ax=axes[idx], label="Elevation", shrink=0.8)
        cbar.ax.yaxis.label.set_color("white")
        cbar.ax.tick_params(colors="white")
        _style_axes(axes[idx], "Height field")

    fig.tight_layout()
    return _save(fig, output_path, dpi, "Shading preview")


def plot_lod_summary(
    tiles_per_lod: dict[int, int],
    output_path: Path | str,
    dpi: int = _DPI,
) -> Path:
    """Bar chart of tiles written per pyramid level."""
    lods = sorted(tiles_per_lod)
    counts = [tiles_per_lod[lod] for lod in lods]

    fig, ax = plt.subplots(1, 1, figsize=(8, 5), facecolor=_BACKGROUND)
    ax.bar([str(lod) for lod in lods], counts, color="#4ea8de")
    ax.set_xlabel("LOD", color="white")
    ax.set_ylabel("Tiles", color="white")
    ax.set_yscale("log")
    _style_axes(ax, "Tiles per level")
    fig.tight_layout()
    return _save(fig, output_path, dpi, "LOD summary")
