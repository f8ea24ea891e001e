"""
viz.py
======
Static PNG quicklooks of the pipeline products.

  - Four-panel map of NDVI, NDBI, LST and UHRI
  - UHRI with hotspot cells outlined in red
  - Correlation heatmap (NDVI / NDBI / LST)

Styling is deliberately plain; these are checks, not cartography.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

import numpy as np
import matplotlib
matplotlib.use("Agg")  # headless
import matplotlib.pyplot as plt
import pandas as pd

from shared.python.exceptions import OutputWriteError
from urban_heat_risk.grid import Grid
from urban_heat_risk.hotspots import ClassificationGrid

# (field name, colormap, colorbar label)
_PANELS: list[tuple[str, str, str]] = [
    ("NDVI", "RdYlGn", "NDVI"),
    ("NDBI", "RdGy_r", "NDBI"),
    ("LST", "inferno", "LST (°C)"),
    ("UHRI", "YlOrRd", "UHRI"),
]


def _imshow_extent(grid: Grid) -> tuple[float, float, float, float]:
    e = grid.extent
    return (e.left, e.right, e.bottom, e.top)


def _robust_limits(arr: np.ndarray) -> tuple[float, float]:
    """2nd / 98th percentile of finite values, for contrast stretching."""
    finite = arr[np.isfinite(arr)]
    if finite.size == 0:
        return (0.0, 1.0)
    lo, hi = np.percentile(finite, [2, 98])
    return (float(lo), float(hi) if hi > lo else float(lo) + 1.0)


def _save(fig: plt.Figure, path: Path) -> Path:
    path = Path(path)
    try:
        fig.savefig(path, dpi=150, bbox_inches="tight")
    except OSError as exc:
        raise OutputWriteError(str(path), str(exc)) from exc
    finally:
        plt.close(fig)
    return path


def plot_index_panel(fields: Mapping[str, Grid], path: Path, title: str = "") -> Path:
    """Render the available index fields side by side."""
    panels = [p for p in _PANELS if p[0] in fields]
    fig, axes = plt.subplots(1, max(len(panels), 1), figsize=(4.5 * max(len(panels), 1), 4.5))
    axes = np.atleast_1d(axes)
    for ax, (name, cmap, label) in zip(axes, panels):
        grid = fields[name]
        vmin, vmax = _robust_limits(grid.data)
        im = ax.imshow(grid.data, cmap=cmap, vmin=vmin, vmax=vmax, extent=_imshow_extent(grid))
        fig.colorbar(im, ax=ax, fraction=0.046, pad=0.04, label=label)
        ax.set_title(name)
        ax.set_xticks([])
        ax.set_yticks([])
    if title:
        fig.suptitle(title)
    fig.tight_layout()
    return _save(fig, path)


def plot_hotspots(uhri: Grid, hotspots: ClassificationGrid, path: Path) -> Path:
    """UHRI in grey with hotspot cells overlaid in red."""
    fig, ax = plt.subplots(figsize=(7, 7))
    vmin, vmax = _robust_limits(uhri.data)
    extent = _imshow_extent(uhri)
    ax.imshow(uhri.data, cmap="Greys", vmin=vmin, vmax=vmax, extent=extent)
    overlay = np.ma.masked_where(~hotspots.hotspot_mask, hotspots.hotspot_mask.astype(float))
    ax.imshow(overlay, cmap="autumn", alpha=0.8, extent=extent, interpolation="nearest")
    label = str(hotspots.threshold) if hotspots.threshold else hotspots.name
    ax.set_title(f"Heat risk hotspots\n{label}", fontsize=10)
    ax.set_xticks([])
    ax.set_yticks([])
    return _save(fig, path)


def plot_correlation(matrix: pd.DataFrame, path: Path) -> Path:
    """Annotated heatmap of a correlation matrix."""
    fig, ax = plt.subplots(figsize=(5, 4.5))
    im = ax.imshow(matrix.to_numpy(), cmap="coolwarm", vmin=-1, vmax=1)
    ax.set_xticks(range(len(matrix.columns)), labels=list(matrix.columns))
    ax.set_yticks(range(len(matrix.index)), labels=list(matrix.index))
    for i in range(len(matrix.index)):
        for j in range(len(matrix.columns)):
            ax.text(j, i, f"{matrix.iat[i, j]:.2f}", ha="center", va="center", fontsize=9)
    fig.colorbar(im, ax=ax, fraction=0.046, pad=0.04, label="Pearson r")
    ax.set_title("Index correlation")
    fig.tight_layout()
    return _save(fig, path)
