"""
export.py
=========
Write pipeline products to disk.

Supported formats
-----------------
GeoTIFF    -- index fields (float32, nodata -9999) and hotspot grids
              (uint8, nodata 255), LZW-compressed
CSV        -- correlation matrix
JSON       -- run summary (field statistics, threshold, configuration)
GeoPackage -- block groups with census attributes and zonal statistics
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Iterable

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio

from shared.python.exceptions import OutputWriteError
from urban_heat_risk.analysis import FieldSummary
from urban_heat_risk.grid import DEFAULT_NODATA, Grid
from urban_heat_risk.hotspots import ClassificationGrid, Threshold

logger = logging.getLogger("urbanheat.export")


def write_grid(grid: Grid, path: Path) -> Path:
    """Write *grid* as a single-band GeoTIFF.

    Classification grids are stored as uint8 (1 hotspot, 0 not, 255
    nodata); every other grid as float32 with nodata -9999, whatever
    sentinel its source bands declared.

    Raises:
        OutputWriteError: If the file cannot be written.
    """
    path = Path(path)
    if isinstance(grid, ClassificationGrid):
        dtype = "uint8"
        nodata = grid.nodata
        array = np.where(grid.valid_mask, grid.data, nodata).astype(np.uint8)
    else:
        dtype = "float32"
        nodata = DEFAULT_NODATA
        array = np.where(grid.valid_mask, grid.data, np.float32(nodata)).astype(np.float32)

    profile = {
        "driver": "GTiff",
        "dtype": dtype,
        "count": 1,
        "height": grid.height,
        "width": grid.width,
        "crs": grid.crs,
        "transform": grid.transform,
        "nodata": nodata,
        "compress": "lzw",
    }
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with rasterio.open(path, "w", **profile) as dst:
            dst.write(array, 1)
    except (OSError, rasterio.errors.RasterioIOError) as exc:
        raise OutputWriteError(str(path), str(exc)) from exc

    logger.debug("Saved raster : %s", path.name)
    return path


def write_grids(grids: Iterable[Grid], output_dir: Path) -> dict[str, Path]:
    """Write each grid to ``<output_dir>/<grid.name>.tif``."""
    output_dir = Path(output_dir)
    return {g.name: write_grid(g, output_dir / f"{g.name}.tif") for g in grids}


def write_correlation(matrix: pd.DataFrame, path: Path) -> Path:
    """Write the correlation matrix as CSV (row labels in the first column)."""
    path = Path(path)
    try:
        matrix.to_csv(path, float_format="%.6f")
    except OSError as exc:
        raise OutputWriteError(str(path), str(exc)) from exc
    return path


def write_summary(
    summaries: Iterable[FieldSummary],
    threshold: Threshold | None,
    path: Path,
    extra: dict[str, Any] | None = None,
) -> Path:
    """Write field statistics, the hotspot threshold and *extra* as JSON."""
    path = Path(path)
    payload: dict[str, Any] = {
        "fields": [asdict(s) for s in summaries],
        "hotspot_threshold": asdict(threshold) if threshold else None,
    }
    if extra:
        payload.update(extra)
    try:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, default=str)
    except OSError as exc:
        raise OutputWriteError(str(path), str(exc)) from exc
    return path


def write_block_groups(gdf: gpd.GeoDataFrame, path: Path) -> Path:
    """Write block groups (with joined attributes) to a GeoPackage."""
    path = Path(path)
    try:
        gdf.to_file(path, driver="GPKG")
    except Exception as exc:
        raise OutputWriteError(str(path), str(exc)) from exc
    return path
