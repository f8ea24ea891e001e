"""
Boundary Clipper
================
Restricts an aligned :class:`~urban_heat_risk.grid.GridStack` to the
bounding rectangle of a county (or any polygon) boundary.

The clip is rectangular: every cell intersecting the boundary's bounding
box is kept, including cells outside the polygon itself.  Setting
``mask_outside=True`` additionally blanks (NaN) the cells whose centres
fall outside the polygon.

The boundary is always brought into the stack's CRS, never the other way
round; the stack's georeference is fixed upstream by the aligner.

Usage::

    boundary = Boundary.from_file(Path("data/county.gpkg"))
    clipped = BoundaryClipper().clip(stack, boundary)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path

import geopandas as gpd
import numpy as np
from pyproj import CRS as ProjCRS
from rasterio.crs import CRS
from rasterio.features import geometry_mask
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from shared.python.exceptions import (
    CRSMismatchError,
    EmptyIntersectionError,
    InputValidationError,
)
from shared.python.validators import Validators
from urban_heat_risk.grid import Extent, GridStack

logger = logging.getLogger("urbanheat.clipper")

VECTOR_EXTENSIONS = [".shp", ".gpkg", ".geojson", ".json", ".fgb"]


@dataclass(frozen=True)
class Boundary:
    """A (multi)polygon with the CRS its coordinates are in.

    Attributes:
        geometry: Dissolved shapely geometry.
        crs: pyproj CRS of ``geometry``; ``None`` if the source had none.
        label: Human-readable name for logs.
    """

    geometry: BaseGeometry
    crs: ProjCRS | None
    label: str = "boundary"

    @classmethod
    def from_geodataframe(cls, gdf: gpd.GeoDataFrame, label: str = "boundary") -> Boundary:
        """Dissolve every feature of *gdf* into one Boundary."""
        if gdf.empty:
            raise InputValidationError(f"Boundary '{label}' has no features.")
        geometry = unary_union(list(gdf.geometry))
        return cls(geometry=geometry, crs=gdf.crs, label=label)

    @classmethod
    def from_file(cls, path: Path, layer: str | None = None) -> Boundary:
        """Read a boundary from any vector file geopandas can open.

        Raises:
            InputValidationError: If the file is missing, has an
                unsupported extension, or holds no features.
        """
        path = Path(path)
        Validators.assert_file_exists(path)
        Validators.assert_supported_extension(path, VECTOR_EXTENSIONS)
        gdf = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)
        return cls.from_geodataframe(gdf, label=layer or path.stem)

    @property
    def bounds(self) -> Extent:
        return Extent(*self.geometry.bounds)


class BoundaryClipper:
    """Clip GridStacks to a boundary's bounding rectangle.

    Args:
        mask_outside: Also set cells outside the polygon to NaN.
    """

    def __init__(self, mask_outside: bool = False) -> None:
        self.mask_outside = mask_outside

    @staticmethod
    def reconcile(boundary: Boundary, crs: CRS) -> Boundary:
        """Return *boundary* expressed in *crs*.

        Raises:
            CRSMismatchError: If the boundary has no CRS or no valid
                transform to *crs* exists.
        """
        target_wkt = crs.to_wkt()
        if boundary.crs is None:
            raise CRSMismatchError("undefined", target_wkt, f"'{boundary.label}' has no CRS")

        target = ProjCRS.from_wkt(target_wkt)
        if boundary.crs == target:
            return boundary

        try:
            series = gpd.GeoSeries([boundary.geometry], crs=boundary.crs).to_crs(target)
        except Exception as exc:
            raise CRSMismatchError(boundary.crs.to_string(), str(crs), str(exc)) from exc

        geometry = series.iloc[0]
        # PROJ signals per-point failures with inf rather than raising.
        if geometry is None or geometry.is_empty or not all(
            math.isfinite(v) for v in geometry.bounds
        ):
            raise CRSMismatchError(
                boundary.crs.to_string(), str(crs), "transformed coordinates are not finite"
            )
        logger.debug("Reprojected boundary '%s' to %s", boundary.label, crs)
        return Boundary(geometry=geometry, crs=target, label=boundary.label)

    def clip(self, stack: GridStack, boundary: Boundary) -> GridStack:
        """Crop every member of *stack* to the boundary's bounding rectangle.

        Returns *stack* itself when the rectangle already contains the
        stack's extent (and no polygon mask was requested).

        Raises:
            CRSMismatchError: If the boundary cannot be reprojected.
            EmptyIntersectionError: If the rectangle misses the stack.
        """
        local = self.reconcile(boundary, stack.crs)
        rect = local.bounds

        if rect.contains(stack.extent):
            clipped = stack
        else:
            if rect.intersection(stack.extent).is_empty:
                raise EmptyIntersectionError(
                    f"Boundary '{local.label}' {rect} does not overlap the "
                    f"raster extent {stack.extent}."
                )
            clipped = stack.crop(rect)

        logger.info(
            "Clipped stack to '%s': %dx%d → %dx%d",
            local.label, stack.shape[0], stack.shape[1],
            clipped.shape[0], clipped.shape[1],
        )

        if not self.mask_outside:
            return clipped
        return self._mask_polygon(clipped, local)

    @staticmethod
    def _mask_polygon(stack: GridStack, boundary: Boundary) -> GridStack:
        outside = geometry_mask(
            [boundary.geometry],
            out_shape=stack.shape,
            transform=stack.transform,
        )
        return GridStack(
            tuple(g.with_data(np.where(outside, np.nan, g.data)) for g in stack)
        )
