"""
Grid Aligner
============
Reconciles a set of Grids with differing CRS, extent and resolution into
one :class:`~urban_heat_risk.grid.GridStack` whose members are
pixel-for-pixel co-registered.

Algorithm:
    1. Target CRS = CRS of the first grid in input order (unless
       ``AlignmentConfig.target_crs`` is set).
    2. Grids in another CRS are reprojected; grids already in the target
       CRS are passed through as the same object.
    3. Common extent = intersection of all (reprojected) extents.
    4. Target resolution = resolution of the first grid (unless
       ``AlignmentConfig.target_resolution`` is set).
    5. Every grid is cropped to the common extent and resampled onto the
       target grid.  Grids already on the target grid pass through.

The "first grid" rules make the result depend on input order.  That is
intentional: outputs stay reproducible against earlier runs.

Usage::

    stack = GridAligner(AlignmentConfig(resampling="average")).align(grids)
"""

from __future__ import annotations

import logging
from functools import reduce
from typing import Sequence

import numpy as np
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.transform import Affine
from rasterio.warp import calculate_default_transform, reproject

from shared.python.exceptions import (
    CRSMismatchError,
    EmptyIntersectionError,
    InputValidationError,
)
from urban_heat_risk.config import AlignmentConfig
from urban_heat_risk.grid import Extent, Grid, GridStack

logger = logging.getLogger("urbanheat.aligner")

_RESAMPLING: dict[str, Resampling] = {
    "bilinear": Resampling.bilinear,
    "average": Resampling.average,
    "nearest": Resampling.nearest,
    "cubic": Resampling.cubic,
}

# Tolerance (in pixels) when turning an extent into a whole number of cells.
_PIXEL_EPS = 1e-6


class GridAligner:
    """Align Grids onto one common grid definition.

    Args:
        config: Resampling method and CRS / resolution rule.  Defaults to
            bilinear resampling with the "first grid" rules.
    """

    def __init__(self, config: AlignmentConfig | None = None) -> None:
        self.config = config or AlignmentConfig()
        self.resampling: Resampling = _RESAMPLING[self.config.resampling]

    # ------------------------------------------------------------------
    # Target selection
    # ------------------------------------------------------------------

    def select_crs(self, grids: Sequence[Grid]) -> CRS:
        """Target CRS: the configured one, else the first grid's."""
        if self.config.target_crs is not None:
            return CRS.from_user_input(self.config.target_crs)
        return grids[0].crs

    def select_resolution(self, grids: Sequence[Grid]) -> tuple[float, float]:
        """Target pixel size: the configured one, else the first grid's."""
        if self.config.target_resolution is not None:
            res = float(self.config.target_resolution)
            return (res, res)
        return grids[0].resolution

    @staticmethod
    def common_extent(grids: Sequence[Grid]) -> Extent:
        """Intersection of every grid's extent.

        Raises:
            EmptyIntersectionError: If the intersection has zero area.
        """
        extent = reduce(Extent.intersection, (g.extent for g in grids))
        if extent.is_empty:
            raise EmptyIntersectionError(
                "Grid extents do not overlap: "
                + "; ".join(f"{g.name} {g.extent}" for g in grids)
            )
        return extent

    @staticmethod
    def target_grid(
        extent: Extent, resolution: tuple[float, float]
    ) -> tuple[Affine, tuple[int, int]]:
        """Transform and ``(height, width)`` of the grid covering *extent*.

        The grid is anchored at the extent's upper-left corner and holds
        only whole cells.

        Raises:
            EmptyIntersectionError: If *extent* is smaller than one cell.
        """
        xres, yres = resolution
        width = int(np.floor(extent.width / xres + _PIXEL_EPS))
        height = int(np.floor(extent.height / yres + _PIXEL_EPS))
        if width < 1 or height < 1:
            raise EmptyIntersectionError(
                f"Common extent {extent} is smaller than one {xres}x{yres} cell."
            )
        transform = Affine(xres, 0.0, extent.left, 0.0, -yres, extent.top)
        return transform, (height, width)

    # ------------------------------------------------------------------
    # Per-grid operations
    # ------------------------------------------------------------------

    def reproject(self, grid: Grid, dst_crs: CRS) -> Grid:
        """Reproject *grid* to *dst_crs* at roughly its native resolution.

        A grid already in *dst_crs* is returned unchanged (same object).

        Raises:
            CRSMismatchError: If no transform between the two CRSs exists.
        """
        if grid.crs == dst_crs:
            return grid

        left, bottom, right, top = grid.extent.as_tuple()
        try:
            transform, width, height = calculate_default_transform(
                grid.crs, dst_crs, grid.width, grid.height,
                left=left, bottom=bottom, right=right, top=top,
            )
            data = np.full((height, width), np.nan, dtype=np.float32)
            reproject(
                source=grid.data.copy(),
                destination=data,
                src_transform=grid.transform,
                src_crs=grid.crs,
                src_nodata=np.nan,
                dst_transform=transform,
                dst_crs=dst_crs,
                dst_nodata=np.nan,
                resampling=self.resampling,
            )
        except Exception as exc:
            raise CRSMismatchError(str(grid.crs), str(dst_crs), str(exc)) from exc

        logger.debug("Reprojected '%s' %s → %s", grid.name, grid.crs, dst_crs)
        return Grid(data=data, transform=transform, crs=dst_crs, name=grid.name, nodata=grid.nodata)

    def resample(
        self,
        grid: Grid,
        dst_crs: CRS,
        transform: Affine,
        shape: tuple[int, int],
    ) -> Grid:
        """Crop *grid* to the target grid's extent and resample onto it.

        Cells of the target grid that no source cell covers stay NaN.
        A grid already on the target grid is returned unchanged.
        """
        if (
            grid.crs == dst_crs
            and grid.shape == shape
            and grid.transform.almost_equals(transform)
        ):
            return grid

        extent = Extent.from_transform(transform, shape[1], shape[0])
        # Cropping only makes sense when both sides share a CRS.
        cropped = grid.crop(extent) if grid.crs == dst_crs else grid
        if (
            cropped.crs == dst_crs
            and cropped.shape == shape
            and cropped.transform.almost_equals(transform)
        ):
            return cropped

        data = np.full(shape, np.nan, dtype=np.float32)
        reproject(
            source=cropped.data.copy(),
            destination=data,
            src_transform=cropped.transform,
            src_crs=cropped.crs,
            src_nodata=np.nan,
            dst_transform=transform,
            dst_crs=dst_crs,
            dst_nodata=np.nan,
            resampling=self.resampling,
        )
        logger.debug(
            "Resampled '%s' %s → %dx%d (%s)",
            grid.name, grid.shape, shape[0], shape[1], self.config.resampling,
        )
        return Grid(data=data, transform=transform, crs=dst_crs, name=grid.name, nodata=grid.nodata)

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def align(self, grids: Sequence[Grid] | GridStack) -> GridStack:
        """Return a co-registered GridStack built from *grids*.

        An already aligned GridStack comes back unchanged.

        Raises:
            InputValidationError: If *grids* is empty.
            CRSMismatchError: If a grid cannot be reprojected.
            EmptyIntersectionError: If the grids share no area.
        """
        members = list(grids)
        if not members:
            raise InputValidationError("GridAligner needs at least one grid.")

        dst_crs = self.select_crs(members)
        projected = [self.reproject(g, dst_crs) for g in members]
        extent = self.common_extent(projected)
        resolution = self.select_resolution(projected)
        transform, shape = self.target_grid(extent, resolution)

        logger.info(
            "Aligning %d grid(s) onto %dx%d @ %s in %s",
            len(members), shape[0], shape[1], resolution, dst_crs,
        )
        aligned = [self.resample(g, dst_crs, transform, shape) for g in projected]

        if isinstance(grids, GridStack) and all(a is b for a, b in zip(aligned, members)):
            return grids
        return GridStack(tuple(aligned))
