"""
Grid Value Types
================
Immutable in-memory raster types shared by every pipeline stage.

Classes:
    Extent      Bounding rectangle ``(left, bottom, right, top)`` in a CRS.
    Grid        One 2-D float32 array plus transform, CRS and nodata marker.
    GridStack   Ordered sequence of co-registered Grids.

Nodata is NaN in memory.  The ``nodata`` attribute is the sentinel used
when a Grid is written back to disk (``-9999.0`` unless the source file
declared another value).

Usage::

    from urban_heat_risk.grid import Extent, Grid

    grid = Grid(data=arr, transform=transform, crs=CRS.from_epsg(32615), name="B4")
    sub = grid.crop(Extent(500_000, 4_300_000, 510_000, 4_310_000))
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterator

import numpy as np
import numpy.typing as npt
from rasterio.crs import CRS
from rasterio.transform import Affine

from shared.python.exceptions import (
    EmptyIntersectionError,
    FormatError,
    InputValidationError,
)
from shared.python.validators import Validators

DEFAULT_NODATA: float = -9999.0

# Tolerance (in pixels) when snapping extent edges to cell boundaries.
_PIXEL_EPS = 1e-6


# ---------------------------------------------------------------------------
# Extent
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Extent:
    """Axis-aligned bounding rectangle in a grid's CRS units."""

    left: float
    bottom: float
    right: float
    top: float

    @classmethod
    def from_transform(cls, transform: Affine, width: int, height: int) -> Extent:
        """Extent covered by a north-up *transform* of ``width × height`` cells."""
        left = transform.c
        top = transform.f
        right = left + width * transform.a
        bottom = top + height * transform.e
        return cls(left, bottom, right, top)

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.top - self.bottom

    @property
    def is_empty(self) -> bool:
        """``True`` when the rectangle has zero or negative width/height."""
        return self.width <= 0 or self.height <= 0

    def intersection(self, other: Extent) -> Extent:
        """Largest rectangle shared by both extents (may be empty)."""
        return Extent(
            left=max(self.left, other.left),
            bottom=max(self.bottom, other.bottom),
            right=min(self.right, other.right),
            top=min(self.top, other.top),
        )

    def contains(self, other: Extent, tolerance: float = 0.0) -> bool:
        return (
            self.left <= other.left + tolerance
            and self.bottom <= other.bottom + tolerance
            and self.right >= other.right - tolerance
            and self.top >= other.top - tolerance
        )

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.left, self.bottom, self.right, self.top)

    def __str__(self) -> str:
        return (
            f"({self.left:.4f}, {self.bottom:.4f}, "
            f"{self.right:.4f}, {self.top:.4f})"
        )


# ---------------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class Grid:
    """A single-band raster held in memory.

    The array is copied to float32 on construction and flagged read-only,
    so a Grid never changes after creation; every transformation returns
    a new Grid.

    Attributes:
        data: 2-D float32 array, NaN where there is no valid measurement.
        transform: North-up affine transform (no rotation terms).
        crs: Coordinate reference system of ``transform``.
        name: Label used in logs and output file names (band file stem or
            index name).
        nodata: Sentinel written to disk in place of NaN.

    Raises:
        InputValidationError: If ``data`` is not 2-D or a pixel size is
            not positive.
        FormatError: If ``transform`` is rotated.
    """

    data: npt.NDArray[np.float32]
    transform: Affine
    crs: CRS
    name: str = ""
    nodata: float = DEFAULT_NODATA

    def __post_init__(self) -> None:
        arr = np.array(self.data, dtype=np.float32, copy=True)
        if arr.ndim != 2:
            raise InputValidationError(
                f"Grid '{self.name}' must be 2-D, got array of shape {arr.shape}."
            )
        if self.transform.b != 0 or self.transform.d != 0:
            raise FormatError(
                f"Grid '{self.name}' has a rotated transform; only north-up "
                "grids are supported."
            )
        Validators.assert_resolution_positive(self.transform.a, -self.transform.e)
        arr.setflags(write=False)
        object.__setattr__(self, "data", arr)

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def shape(self) -> tuple[int, int]:
        return (int(self.data.shape[0]), int(self.data.shape[1]))

    @property
    def height(self) -> int:
        return self.shape[0]

    @property
    def width(self) -> int:
        return self.shape[1]

    @property
    def resolution(self) -> tuple[float, float]:
        """Pixel size ``(xres, yres)``, both positive."""
        return (float(self.transform.a), float(-self.transform.e))

    @property
    def extent(self) -> Extent:
        return Extent.from_transform(self.transform, self.width, self.height)

    def is_coregistered_with(self, other: Grid) -> bool:
        """``True`` when both grids share CRS, transform and shape."""
        return (
            self.crs == other.crs
            and self.shape == other.shape
            and self.transform.almost_equals(other.transform)
        )

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    @property
    def valid_mask(self) -> npt.NDArray[np.bool_]:
        return ~np.isnan(self.data)

    @property
    def valid_count(self) -> int:
        return int(np.count_nonzero(self.valid_mask))

    def valid_values(self) -> npt.NDArray[np.float32]:
        """Flat array of the non-nodata cell values."""
        return self.data[self.valid_mask]

    def filled(self) -> npt.NDArray[np.float32]:
        """Copy of the data with NaN replaced by the ``nodata`` sentinel."""
        return np.where(np.isnan(self.data), np.float32(self.nodata), self.data).astype(
            np.float32
        )

    def with_data(self, data: npt.ArrayLike, name: str | None = None) -> Grid:
        """New Grid on the same georeference holding *data*."""
        arr = np.asarray(data)
        Validators.assert_raster_shapes_match(arr.shape, self.shape, "new data", self.name)
        return replace(self, data=arr, name=self.name if name is None else name)

    # ------------------------------------------------------------------
    # Cropping
    # ------------------------------------------------------------------

    def window_for(self, extent: Extent) -> tuple[int, int, int, int]:
        """Row/column window ``(row_start, row_stop, col_start, col_stop)``
        of every cell that intersects *extent*, clamped to the grid.
        """
        xres, yres = self.resolution
        left, top = self.transform.c, self.transform.f
        col_start = int(np.floor((extent.left - left) / xres + _PIXEL_EPS))
        col_stop = int(np.ceil((extent.right - left) / xres - _PIXEL_EPS))
        row_start = int(np.floor((top - extent.top) / yres + _PIXEL_EPS))
        row_stop = int(np.ceil((top - extent.bottom) / yres - _PIXEL_EPS))
        return (
            max(row_start, 0),
            min(row_stop, self.height),
            max(col_start, 0),
            min(col_stop, self.width),
        )

    def crop(self, extent: Extent) -> Grid:
        """Rectangular crop to the cells intersecting *extent*.

        Returns ``self`` when *extent* covers the whole grid.

        Raises:
            EmptyIntersectionError: If no cell intersects *extent*.
        """
        row_start, row_stop, col_start, col_stop = self.window_for(extent)
        if (row_start, row_stop, col_start, col_stop) == (0, self.height, 0, self.width):
            return self
        if row_stop <= row_start or col_stop <= col_start:
            raise EmptyIntersectionError(
                f"Extent {extent} does not overlap grid '{self.name}' {self.extent}."
            )
        xres, yres = self.resolution
        transform = Affine(
            xres, 0.0, self.transform.c + col_start * xres,
            0.0, -yres, self.transform.f - row_start * yres,
        )
        return replace(
            self,
            data=self.data[row_start:row_stop, col_start:col_stop],
            transform=transform,
        )

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} '{self.name}' {self.height}x{self.width} "
            f"res={self.resolution} crs={self.crs}>"
        )


# ---------------------------------------------------------------------------
# GridStack
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class GridStack:
    """Ordered, co-registered Grids.

    Every member shares the first member's CRS, transform and shape.
    Construction checks this; :class:`~urban_heat_risk.aligner.GridAligner`
    is what normally produces stacks that pass.

    Raises:
        InputValidationError: If the stack is empty or a member is not
            co-registered with the first.
    """

    grids: tuple[Grid, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        grids = tuple(self.grids)
        if not grids:
            raise InputValidationError("A GridStack needs at least one grid.")
        reference = grids[0]
        for grid in grids[1:]:
            if not grid.is_coregistered_with(reference):
                raise InputValidationError(
                    f"Grid '{grid.name}' is not co-registered with "
                    f"'{reference.name}' ({grid!r} vs {reference!r}). "
                    "Run GridAligner first."
                )
        object.__setattr__(self, "grids", grids)

    def __len__(self) -> int:
        return len(self.grids)

    def __iter__(self) -> Iterator[Grid]:
        return iter(self.grids)

    def __getitem__(self, index: int) -> Grid:
        return self.grids[index]

    def band(self, position: int) -> Grid:
        """Member at 1-based *position*.

        Raises:
            BandIndexError: If *position* is outside ``1..len(self)``.
        """
        Validators.assert_band_index_valid(position, len(self.grids))
        return self.grids[position - 1]

    @property
    def names(self) -> list[str]:
        return [g.name for g in self.grids]

    @property
    def crs(self) -> CRS:
        return self.grids[0].crs

    @property
    def transform(self) -> Affine:
        return self.grids[0].transform

    @property
    def shape(self) -> tuple[int, int]:
        return self.grids[0].shape

    @property
    def resolution(self) -> tuple[float, float]:
        return self.grids[0].resolution

    @property
    def extent(self) -> Extent:
        return self.grids[0].extent

    def crop(self, extent: Extent) -> GridStack:
        """Crop every member to *extent*; returns ``self`` if nothing changes."""
        cropped = tuple(g.crop(extent) for g in self.grids)
        if all(c is g for c, g in zip(cropped, self.grids)):
            return self
        return GridStack(cropped)

    def __repr__(self) -> str:
        return (
            f"<GridStack {len(self)} grid(s) {self.shape[0]}x{self.shape[1]} "
            f"res={self.resolution} crs={self.crs} names={self.names}>"
        )
