"""
Field Analysis
==============
Statistics over derived fields: per-field summaries, the Pearson
correlation matrix between indices, and zonal statistics over polygons
(census block groups).

Functions:
    summarize            FieldSummary for one Grid.
    correlation_matrix   Pearson matrix over cells valid in every field.
    zonal_statistics     Per-polygon mean / max / cell count.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence

import geopandas as gpd
import numpy as np
import pandas as pd
from pyproj import CRS as ProjCRS
from rasterio.features import rasterize

from shared.python.exceptions import (
    ColumnNotFoundError,
    CRSMismatchError,
    EmptyInputError,
)
from shared.python.validators import Validators
from urban_heat_risk.grid import Grid

logger = logging.getLogger("urbanheat.analysis")

CORRELATION_FIELDS: tuple[str, ...] = ("NDVI", "NDBI", "LST")


@dataclass(frozen=True)
class FieldSummary:
    """Descriptive statistics for one field (nodata excluded).

    Attributes:
        name: Field name (e.g. ``"LST"``).
        min: Minimum valid value.
        max: Maximum valid value.
        mean: Mean of valid values.
        std_dev: Standard deviation of valid values.
        valid_cells: Count of non-nodata cells.
        nodata_cells: Count of nodata cells.
    """

    name: str
    min: float
    max: float
    mean: float
    std_dev: float
    valid_cells: int
    nodata_cells: int

    def __str__(self) -> str:
        return (
            f"{self.name}: min={self.min:.4f} max={self.max:.4f} "
            f"mean={self.mean:.4f} std={self.std_dev:.4f} "
            f"valid_px={self.valid_cells:,}"
        )


def summarize(grid: Grid) -> FieldSummary:
    """Summary statistics of *grid*; NaN statistics when it has no valid cell."""
    values = grid.valid_values().astype(np.float64)
    nodata_cells = int(grid.data.size - values.size)
    if values.size == 0:
        nan = float("nan")
        return FieldSummary(grid.name, nan, nan, nan, nan, 0, nodata_cells)
    return FieldSummary(
        name=grid.name,
        min=float(values.min()),
        max=float(values.max()),
        mean=float(values.mean()),
        std_dev=float(values.std()),
        valid_cells=int(values.size),
        nodata_cells=nodata_cells,
    )


def correlation_matrix(
    fields: Mapping[str, Grid],
    names: Sequence[str] = CORRELATION_FIELDS,
) -> pd.DataFrame:
    """Pearson correlation between *names* over cells valid in all of them.

    Args:
        fields: Derived fields keyed by name (as returned by
            :meth:`IndexEngine.compute_all`).
        names: Which fields to correlate, in matrix order.

    Returns:
        A square DataFrame indexed and columned by *names*.

    Raises:
        ColumnNotFoundError: If a requested field is missing.
        InputValidationError: If the fields have different shapes.
        EmptyInputError: If no cell is valid in every field.
    """
    frame = pd.DataFrame({name: _field(fields, name).data.ravel() for name in names})
    frame = frame.dropna()
    if frame.empty:
        raise EmptyInputError(
            f"No cell is valid in all of {', '.join(names)}; cannot correlate."
        )
    matrix = frame.astype(np.float64).corr(method="pearson")
    logger.info("Correlation over %d cells:\n%s", len(frame), matrix.round(3))
    return matrix


def _field(fields: Mapping[str, Grid], name: str) -> Grid:
    if name not in fields:
        raise ColumnNotFoundError(name, list(fields))
    grid = fields[name]
    first = next(iter(fields.values()))
    Validators.assert_raster_shapes_match(grid.shape, first.shape, name, first.name)
    return grid


def zonal_statistics(
    grid: Grid,
    zones: gpd.GeoDataFrame,
    id_column: str = "GEOID",
) -> pd.DataFrame:
    """Mean, max and valid-cell count of *grid* inside each zone polygon.

    Zones are reprojected to the grid's CRS and rasterized onto the grid
    (a cell belongs to the zone containing its centre).  Zones that cover
    no valid cell get NaN statistics and a count of 0.

    Returns:
        DataFrame with *id_column* plus ``<name>_mean``, ``<name>_max`` and
        ``<name>_cells`` columns, ``<name>`` being the lower-cased grid name.

    Raises:
        ColumnNotFoundError: If *id_column* is missing.
        CRSMismatchError: If the zones have no CRS or cannot be reprojected.
    """
    Validators.assert_columns_exist(zones, [id_column])
    if zones.crs is None:
        raise CRSMismatchError("undefined", str(grid.crs), "zones have no CRS")

    target = ProjCRS.from_wkt(grid.crs.to_wkt())
    try:
        local = zones if zones.crs == target else zones.to_crs(target)
    except Exception as exc:
        raise CRSMismatchError(str(zones.crs), str(grid.crs), str(exc)) from exc

    shapes = [
        (geom, label)
        for label, geom in enumerate(local.geometry, start=1)
        if geom is not None and not geom.is_empty
    ]
    labels = (
        rasterize(shapes, out_shape=grid.shape, transform=grid.transform, fill=0, dtype="int32")
        if shapes
        else np.zeros(grid.shape, dtype="int32")
    )

    cells = pd.DataFrame({"zone": labels.ravel(), "value": grid.data.ravel()})
    cells = cells[(cells["zone"] > 0) & cells["value"].notna()]
    grouped = cells.groupby("zone")["value"].agg(["mean", "max", "count"])
    grouped = grouped.reindex(range(1, len(local) + 1))

    prefix = grid.name.lower()
    result = pd.DataFrame(
        {
            id_column: local[id_column].to_numpy(),
            f"{prefix}_mean": grouped["mean"].to_numpy(dtype=np.float64),
            f"{prefix}_max": grouped["max"].to_numpy(dtype=np.float64),
            f"{prefix}_cells": grouped["count"].fillna(0).to_numpy(dtype=np.int64),
        }
    )
    logger.debug("Zonal statistics of %s over %d zone(s)", grid.name, len(result))
    return result
