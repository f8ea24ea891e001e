"""
Raster Loader
=============
Reads single-band raster files into :class:`~urban_heat_risk.grid.Grid`
values, keeping each file's native extent, resolution and CRS.

Usage::

    from urban_heat_risk.loader import RasterLoader

    grids = RasterLoader().load_directory(Path("data/landsat"), pattern="*.TIF")
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

import numpy as np
import rasterio
from rasterio.errors import RasterioIOError

from shared.python.exceptions import FormatError, InputValidationError, RasterReadError
from urban_heat_risk.grid import DEFAULT_NODATA, Grid

logger = logging.getLogger("urbanheat.loader")

_DIGITS = re.compile(r"(\d+)")


def natural_sort_key(path: Path) -> list[object]:
    """Sort key ordering ``B2`` before ``B10``."""
    return [int(tok) if tok.isdigit() else tok.lower() for tok in _DIGITS.split(path.name)]


class RasterLoader:
    """Load single-band rasters as Grids.

    Args:
        expected_band_count: Band count every file must have.  Band
            stacks are built from one file per spectral band, so this is
            ``1`` unless a caller knows better.
    """

    SUPPORTED_EXTENSIONS = [".tif", ".tiff", ".img", ".vrt"]

    def __init__(self, expected_band_count: int = 1) -> None:
        self.expected_band_count = expected_band_count

    def load(self, path: Path) -> Grid:
        """Read one raster file.

        Raises:
            RasterReadError: If the file is missing or rasterio cannot open it.
            FormatError: If the band count is wrong, the file carries no
                CRS, or its transform is rotated.
        """
        path = Path(path)
        if not path.is_file():
            raise RasterReadError(str(path), "file does not exist")

        try:
            with rasterio.open(path) as src:
                if src.count != self.expected_band_count:
                    raise FormatError(
                        f"'{path.name}' has {src.count} band(s); "
                        f"expected {self.expected_band_count}."
                    )
                if src.crs is None:
                    raise FormatError(
                        f"'{path.name}' has no coordinate reference system."
                    )
                band = src.read(1, masked=True)
                data = band.astype(np.float32).filled(np.nan)
                transform = src.transform
                crs = src.crs
                nodata = src.nodata
        except RasterioIOError as exc:
            raise RasterReadError(str(path), str(exc)) from exc

        # A NaN sentinel cannot be written back meaningfully; fall back.
        if nodata is None or np.isnan(nodata):
            nodata = DEFAULT_NODATA

        try:
            grid = Grid(data=data, transform=transform, crs=crs, name=path.stem, nodata=nodata)
        except InputValidationError as exc:
            raise FormatError(f"'{path.name}' is not a usable grid: {exc.message}") from exc
        logger.debug("Loaded %r (nodata cells: %d)", grid, grid.data.size - grid.valid_count)
        return grid

    def load_many(self, paths: Iterable[Path]) -> list[Grid]:
        """Read several files, preserving the given order."""
        return [self.load(Path(p)) for p in paths]

    def load_directory(self, directory: Path, pattern: str = "*.tif") -> list[Grid]:
        """Read every file in *directory* matching *pattern*.

        Files are ordered by the natural sort of their names so band
        numbers map to stack positions (``B1, B2, …, B10, B11``).

        Raises:
            RasterReadError: If *directory* does not exist or no file matches.
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise RasterReadError(str(directory), "directory does not exist")

        paths = sorted(
            (p for p in directory.glob(pattern) if p.is_file()),
            key=natural_sort_key,
        )
        if not paths:
            raise RasterReadError(
                str(directory), f"no files match pattern '{pattern}'"
            )

        logger.info("Loading %d raster(s) from %s", len(paths), directory)
        return self.load_many(paths)
