"""
Hotspot Classifier
==================
Percentile thresholding of a scalar field into hotspot / not-hotspot cells.

The threshold is the p-th percentile (linear interpolation) of the valid
cells.  A cell is a hotspot when its value is greater than or equal to
the threshold; nodata cells stay nodata rather than becoming "not a
hotspot".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from shared.python.exceptions import EmptyInputError
from shared.python.validators import Validators
from urban_heat_risk.grid import Grid

logger = logging.getLogger("urbanheat.hotspots")

# On-disk sentinel for classification rasters (written as uint8).
CLASS_NODATA = 255


@dataclass(frozen=True)
class Threshold:
    """A percentile cut-off computed once per run.

    Attributes:
        percentile: The requested percentile in (0, 100).
        value: The field value at that percentile.
        source: Name of the field the value was computed from.
        valid_cells: Number of non-nodata cells in the distribution.
    """

    percentile: float
    value: float
    source: str
    valid_cells: int

    def __str__(self) -> str:
        return (
            f"{self.source} p{self.percentile:g} = {self.value:.4f} "
            f"({self.valid_cells:,} valid cells)"
        )


@dataclass(frozen=True, eq=False)
class ClassificationGrid(Grid):
    """Grid of 1.0 (hotspot), 0.0 (not a hotspot) or NaN (nodata)."""

    threshold: Threshold | None = None

    @property
    def hotspot_mask(self) -> npt.NDArray[np.bool_]:
        """Boolean array, ``True`` only for hotspot cells."""
        return self.data == 1.0

    @property
    def hotspot_count(self) -> int:
        return int(np.count_nonzero(self.hotspot_mask))

    @property
    def hotspot_fraction(self) -> float:
        """Share of valid cells classified as hotspots."""
        valid = self.valid_count
        return self.hotspot_count / valid if valid else float("nan")


class HotspotClassifier:
    """Classify the top ``100 - percentile`` percent of a field as hotspots.

    Args:
        percentile: Percentile in the open interval (0, 100).

    Raises:
        InputValidationError: If *percentile* is outside (0, 100).
    """

    def __init__(self, percentile: float = 90.0) -> None:
        Validators.assert_percentile_valid(percentile)
        self.percentile = float(percentile)

    def threshold(self, grid: Grid) -> Threshold:
        """Percentile of the non-nodata cells of *grid*.

        Raises:
            EmptyInputError: If every cell is nodata.
        """
        values = grid.valid_values()
        if values.size == 0:
            raise EmptyInputError(
                f"Cannot compute p{self.percentile:g} of '{grid.name}': all cells are nodata."
            )
        value = float(np.percentile(values.astype(np.float64), self.percentile))
        return Threshold(
            percentile=self.percentile,
            value=value,
            source=grid.name,
            valid_cells=int(values.size),
        )

    def classify(self, grid: Grid, threshold: Threshold | None = None) -> ClassificationGrid:
        """Compare every cell of *grid* to the threshold.

        Args:
            grid: Scalar field, typically UHRI.
            threshold: Pre-computed threshold; computed from *grid* when
                omitted.

        Raises:
            EmptyInputError: If *grid* has no valid cells and no threshold
                was supplied.
        """
        threshold = threshold or self.threshold(grid)
        valid = grid.valid_mask
        classes = np.full(grid.shape, np.nan, dtype=np.float32)
        classes[valid] = (grid.data[valid] >= threshold.value).astype(np.float32)

        result = ClassificationGrid(
            data=classes,
            transform=grid.transform,
            crs=grid.crs,
            name=f"{grid.name}_HOTSPOT",
            nodata=CLASS_NODATA,
            threshold=threshold,
        )
        logger.info(
            "Hotspots: %s → %d of %d valid cells (%.1f%%)",
            threshold, result.hotspot_count, result.valid_count,
            100.0 * result.hotspot_fraction if result.valid_count else 0.0,
        )
        return result
