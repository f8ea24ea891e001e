"""
Urban Heat Risk — Shared Input Validators
==========================================
Static precondition checks used by the pipeline stages before any raster
or vector work begins.

All methods raise an exception from :mod:`shared.python.exceptions`
rather than returning booleans, so ``validate_inputs`` implementations
read as a flat list of assertions::

    class HeatRiskAnalysis(GeoTool):
        def validate_inputs(self) -> None:
            Validators.assert_directory_exists(self.input_path)
            Validators.assert_supported_extension(self.boundary_path, [".gpkg"])
            Validators.assert_percentile_valid(self.config.hotspot_percentile)
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Sequence

# pyproj and pandas are imported lazily inside the methods that need them.

from shared.python.exceptions import (
    BandIndexError,
    ColumnNotFoundError,
    CRSError,
    InputValidationError,
    OutputWriteError,
)


class Validators:
    """Namespace of static precondition checks.  Never instantiated."""

    # ------------------------------------------------------------------
    # File-system checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_file_exists(path: Path) -> None:
        """Assert that *path* points to an existing regular file.

        Raises:
            InputValidationError: If *path* is missing or is a directory.
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(
                f"Input file not found: '{path}'. "
                "Check that the path is correct and the file exists."
            )
        if path.is_dir():
            raise InputValidationError(
                f"Expected a file but got a directory: '{path}'."
            )

    @staticmethod
    def assert_directory_exists(path: Path) -> None:
        """Assert that *path* is an existing directory.

        Raises:
            InputValidationError: If *path* is missing or is a file.
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(f"Input directory not found: '{path}'.")
        if not path.is_dir():
            raise InputValidationError(
                f"Expected a directory but got a file: '{path}'."
            )

    @staticmethod
    def assert_output_dir_writable(output_dir: Path) -> None:
        """Create *output_dir* (and parents) if needed.

        Raises:
            OutputWriteError: If the directory cannot be created.
        """
        output_dir = Path(output_dir)
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output_dir), str(exc)) from exc

    @staticmethod
    def assert_supported_extension(path: Path, extensions: Sequence[str]) -> None:
        """Assert that *path* has one of the allowed extensions.

        Args:
            path: File path to check.
            extensions: Allowed suffixes including the dot, e.g.
                ``[".shp", ".geojson", ".gpkg"]``.

        Raises:
            InputValidationError: If the suffix is not allowed.
        """
        path = Path(path)
        suffix = path.suffix.lower()
        allowed = [ext.lower() for ext in extensions]
        if suffix not in allowed:
            raise InputValidationError(
                f"Unsupported file extension '{suffix}' for '{path.name}'. "
                f"Accepted extensions: {', '.join(allowed)}"
            )

    # ------------------------------------------------------------------
    # CRS checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_crs_valid(crs_string: str) -> None:
        """Assert that *crs_string* parses as a CRS (EPSG, PROJ or WKT).

        Raises:
            CRSError: If pyproj rejects the string.
        """
        try:
            from pyproj import CRS  # noqa: PLC0415

            CRS.from_user_input(crs_string)
        except Exception as exc:
            raise CRSError(crs_string) from exc

    # ------------------------------------------------------------------
    # Tabular data checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_columns_exist(
        df: object,  # pandas / geopandas DataFrame
        required_columns: Sequence[str],
    ) -> None:
        """Assert that all *required_columns* are present in *df*.

        Raises:
            ColumnNotFoundError: On the first missing column.
        """
        available = [str(c) for c in df.columns]  # type: ignore[attr-defined]
        for col in required_columns:
            if col not in available:
                raise ColumnNotFoundError(col, available)

    # ------------------------------------------------------------------
    # Raster / numeric checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_band_index_valid(band_index: int, total_bands: int) -> None:
        """Assert that a 1-based band position exists in a stack.

        Raises:
            BandIndexError: If *band_index* is < 1 or > *total_bands*.
        """
        if band_index < 1 or band_index > total_bands:
            raise BandIndexError(band_index, total_bands)

    @staticmethod
    def assert_raster_shapes_match(
        shape_a: tuple[int, ...],
        shape_b: tuple[int, ...],
        label_a: str = "Band A",
        label_b: str = "Band B",
    ) -> None:
        """Assert two arrays have identical shapes before cell-wise arithmetic.

        Raises:
            InputValidationError: If the shapes differ.
        """
        if tuple(shape_a) != tuple(shape_b):
            raise InputValidationError(
                f"Raster shape mismatch: {label_a} is {tuple(shape_a)} but "
                f"{label_b} is {tuple(shape_b)}. "
                "Align the grids before combining them."
            )

    @staticmethod
    def assert_percentile_valid(percentile: float) -> None:
        """Assert that *percentile* lies strictly inside (0, 100).

        Raises:
            InputValidationError: If it is NaN or outside the open interval.
        """
        if math.isnan(percentile) or not 0.0 < percentile < 100.0:
            raise InputValidationError(
                f"Percentile must be strictly between 0 and 100, got {percentile}."
            )

    @staticmethod
    def assert_resolution_positive(xres: float, yres: float) -> None:
        """Assert that both pixel sizes are strictly positive.

        Raises:
            InputValidationError: If either axis is zero or negative.
        """
        if not (xres > 0 and yres > 0):
            raise InputValidationError(
                f"Pixel resolution must be positive in both axes, got ({xres}, {yres})."
            )
