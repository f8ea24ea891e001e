"""
Urban Heat Risk — Exception Hierarchy
======================================
Every pipeline stage raises exceptions from this module so callers can
catch them at the right level of granularity.  All of them are fatal for
a run: per-cell undefined results (zero denominators, invalid logarithm
arguments) are expressed as NaN nodata, never as exceptions.

Hierarchy::

    UrbanHeatError                       ← catch-all base
    ├── InputValidationError             ← bad files, bad parameters
    │   └── ColumnNotFoundError          ← attribute table column missing
    ├── CRSError                         ← invalid / unknown CRS string
    │   └── CRSMismatchError             ← no transform between two CRSs
    ├── RasterError                      ← rasterio / numpy raster issues
    │   ├── RasterReadError              ← missing or unreadable raster (OSError)
    │   ├── FormatError                  ← wrong band count, no CRS, rotated
    │   ├── BandIndexError               ← band position outside the stack
    │   └── EmptyIntersectionError       ← extents do not overlap
    ├── EmptyInputError                  ← statistic over all-nodata cells
    ├── SpectralIndexError               ← index cannot be derived
    ├── DemographicsError                ← census API / parse failures
    └── OutputWriteError                 ← cannot write to output path

Usage::

    from shared.python.exceptions import EmptyIntersectionError

    raise EmptyIntersectionError("B4.TIF and B10.TIF do not overlap")
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class UrbanHeatError(Exception):
    """Base exception for the urban heat risk pipeline.

    Args:
        message: Human-readable description of the error.

    Attributes:
        stage: Name of the pipeline stage that was running when the error
            was raised.  Filled in by :class:`~shared.python.GeoTool`;
            ``None`` when raised outside a pipeline run.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message
        self.stage: str | None = None

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InputValidationError(UrbanHeatError):
    """Raised when inputs or parameters fail pre-processing validation."""


class ColumnNotFoundError(InputValidationError):
    """Raised when an expected column is absent from an attribute table.

    Args:
        column: The name of the missing column.
        available: Column names that ARE present.

    Example::

        raise ColumnNotFoundError("GEOID", gdf.columns.tolist())
    """

    def __init__(self, column: str, available: list[str]) -> None:
        available_str = ", ".join(f"'{c}'" for c in available)
        super().__init__(
            f"Column '{column}' not found. Available columns: {available_str}"
        )
        self.column: str = column
        self.available: list[str] = available


# ---------------------------------------------------------------------------
# CRS
# ---------------------------------------------------------------------------


class CRSError(UrbanHeatError):
    """Raised when a coordinate reference system string cannot be parsed.

    Args:
        crs_string: The raw CRS string that caused the error.
    """

    def __init__(self, crs_string: str) -> None:
        super().__init__(
            f"Invalid or unrecognised CRS: '{crs_string}'. "
            "Use an EPSG code (e.g. 'EPSG:32615') or a valid WKT/PROJ string."
        )
        self.crs_string: str = crs_string


class CRSMismatchError(CRSError):
    """Raised when no valid transform exists between two reference systems.

    Args:
        source: Source CRS description.
        target: Target CRS description.
        reason: Underlying PROJ / GDAL message.

    Example::

        raise CRSMismatchError("EPSG:32615", "LOCAL_CS[...]", "no datum")
    """

    def __init__(self, source: str, target: str, reason: str) -> None:
        UrbanHeatError.__init__(
            self,
            f"Cannot transform from '{source}' to '{target}': {reason}",
        )
        self.crs_string = source
        self.source: str = source
        self.target: str = target
        self.reason: str = reason


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------


class RasterError(UrbanHeatError):
    """Raised for general raster processing failures."""


class RasterReadError(RasterError, OSError):
    """Raised when a raster file is missing, unreadable or not a raster.

    Also an :class:`OSError`, so callers handling I/O failures generically
    catch it too.

    Args:
        path: String form of the offending path.
        reason: Underlying rasterio / OS message.
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Could not read raster '{path}': {reason}")
        self.path: str = path
        self.reason: str = reason


class FormatError(RasterError):
    """Raised when a raster opens but is not usable as a single-band grid.

    Example::

        raise FormatError("'scene.tif' has 3 bands; expected 1")
    """


class BandIndexError(RasterError):
    """Raised when a band position does not exist in a grid stack.

    Args:
        band_index: The 1-based band position that was requested.
        total_bands: Number of grids in the stack.
    """

    def __init__(self, band_index: int, total_bands: int) -> None:
        super().__init__(
            f"Band {band_index} does not exist. "
            f"This stack has {total_bands} band(s) (1-indexed)."
        )
        self.band_index: int = band_index
        self.total_bands: int = total_bands


class EmptyIntersectionError(RasterError):
    """Raised when grid extents (or a boundary) share no area."""


# ---------------------------------------------------------------------------
# Statistics / indices
# ---------------------------------------------------------------------------


class EmptyInputError(UrbanHeatError):
    """Raised when a statistic is requested over a grid with no valid cells."""


class SpectralIndexError(UrbanHeatError):
    """Raised when a spectral index cannot be derived.

    Args:
        index_name: The index that failed (e.g. ``"NDBI"``).
        reason: Short explanation.

    Example::

        raise SpectralIndexError("NDBI", "no 'swir1' position in band mapping")
    """

    def __init__(self, index_name: str, reason: str) -> None:
        super().__init__(f"Cannot calculate {index_name}: {reason}")
        self.index_name: str = index_name
        self.reason: str = reason


# ---------------------------------------------------------------------------
# Demographics
# ---------------------------------------------------------------------------


class DemographicsError(UrbanHeatError):
    """Raised when census attribute retrieval or parsing fails."""


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class OutputWriteError(UrbanHeatError):
    """Raised when an output product cannot be written to disk.

    Args:
        output_path: String representation of the path that failed.
        reason: Underlying OS or library error message.
    """

    def __init__(self, output_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to write output to '{output_path}': {reason}"
        )
        self.output_path: str = output_path
        self.reason: str = reason
