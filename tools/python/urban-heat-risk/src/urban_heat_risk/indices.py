"""
Index Engine — Spectral and Thermal Indices
============================================
Derives scalar fields from an aligned band stack.

Each index is an :class:`IndexStrategy` subclass (Strategy pattern); the
stateless :class:`IndexEngine` picks the bands a strategy needs out of a
:class:`~urban_heat_risk.grid.GridStack` through a
:class:`~urban_heat_risk.config.BandMapping` and wraps the result as an
:class:`IndexField` carrying its provenance.

Formulas (cell-wise, NaN-propagating):
    NDVI      = (NIR - Red) / (NIR + Red)
    NDBI      = (SWIR1 - NIR) / (SWIR1 + NIR)
    Radiance  = TIR * ML + AL
    Kelvin    = K2 / ln(K1 / Radiance + 1)
    LST (°C)  = Kelvin - 273.15
    UHRI      = (LST + NDBI) - NDVI

A zero denominator or a non-positive radiance yields NaN at that cell,
never an exception.  UHRI deliberately adds a Celsius temperature to two
unitless ratios without rescaling; the arithmetic follows the reference
methodology as-is.

Usage::

    engine = IndexEngine(BandMapping(red=1, nir=2, swir1=3, tir=4))
    fields = engine.compute_all(stack)
    fields["UHRI"].data
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Sequence

import numpy as np
import numpy.typing as npt

from shared.python.exceptions import SpectralIndexError
from shared.python.validators import Validators
from urban_heat_risk.config import BandMapping, SensorCalibration
from urban_heat_risk.grid import DEFAULT_NODATA, Grid, GridStack

logger = logging.getLogger("urbanheat.indices")

KELVIN_OFFSET = 273.15

FloatArray = npt.NDArray[np.float32]


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class IndexField(Grid):
    """A derived Grid plus the formula and source bands it came from."""

    formula: str = ""
    sources: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Cell-wise helpers
# ---------------------------------------------------------------------------


def normalized_difference(a: npt.ArrayLike, b: npt.ArrayLike) -> FloatArray:
    """``(a - b) / (a + b)`` with NaN where ``a + b == 0``.

    The result lies in [-1, 1] only for non-negative inputs.  Surface
    reflectance products can hold slightly negative values; those are
    passed through unclipped and may fall outside the range.
    """
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    denominator = a + b
    with np.errstate(invalid="ignore", divide="ignore"):
        result = np.where(denominator == 0, np.nan, (a - b) / denominator)
    return result.astype(np.float32)


def brightness_temperature(radiance: npt.ArrayLike, k1: float, k2: float) -> FloatArray:
    """At-sensor brightness temperature in Kelvin; NaN where radiance <= 0."""
    radiance = np.asarray(radiance, dtype=np.float32)
    with np.errstate(invalid="ignore", divide="ignore"):
        kelvin = np.where(radiance > 0, k2 / np.log(k1 / radiance + 1.0), np.nan)
    return kelvin.astype(np.float32)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class IndexStrategy(ABC):
    """One derived field computed from named band arrays."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short name, also used as the output file stem (e.g. ``"NDVI"``)."""

    @property
    @abstractmethod
    def required_bands(self) -> list[str]:
        """Semantic band names this index reads, e.g. ``["red", "nir"]``."""

    @property
    @abstractmethod
    def formula(self) -> str:
        """Human-readable formula recorded as provenance."""

    @abstractmethod
    def compute(self, bands: dict[str, FloatArray]) -> FloatArray:
        """Compute the field from a dict of band name → float32 array."""


class NDVIStrategy(IndexStrategy):
    """NDVI — Normalized Difference Vegetation Index, range [-1, 1].

    Higher values mean denser, healthier vegetation.
    """

    @property
    def name(self) -> str:
        return "NDVI"

    @property
    def required_bands(self) -> list[str]:
        return ["red", "nir"]

    @property
    def formula(self) -> str:
        return "(NIR - Red) / (NIR + Red)"

    def compute(self, bands: dict[str, FloatArray]) -> FloatArray:
        return normalized_difference(bands["nir"], bands["red"])


class NDBIStrategy(IndexStrategy):
    """NDBI — Normalized Difference Built-up Index, range [-1, 1].

    Positive values indicate built-up / impervious surfaces.
    """

    @property
    def name(self) -> str:
        return "NDBI"

    @property
    def required_bands(self) -> list[str]:
        return ["swir1", "nir"]

    @property
    def formula(self) -> str:
        return "(SWIR1 - NIR) / (SWIR1 + NIR)"

    def compute(self, bands: dict[str, FloatArray]) -> FloatArray:
        return normalized_difference(bands["swir1"], bands["nir"])


class RadianceStrategy(IndexStrategy):
    """Top-of-atmosphere spectral radiance from thermal digital numbers."""

    def __init__(self, calibration: SensorCalibration | None = None) -> None:
        self.calibration = calibration or SensorCalibration()

    @property
    def name(self) -> str:
        return "RADIANCE"

    @property
    def required_bands(self) -> list[str]:
        return ["tir"]

    @property
    def formula(self) -> str:
        c = self.calibration
        return f"TIR * {c.radiance_mult} + {c.radiance_add}"

    def compute(self, bands: dict[str, FloatArray]) -> FloatArray:
        c = self.calibration
        tir = bands["tir"].astype(np.float32)
        return (tir * np.float32(c.radiance_mult) + np.float32(c.radiance_add)).astype(np.float32)


class BrightnessTemperatureStrategy(RadianceStrategy):
    """At-sensor brightness temperature in Kelvin."""

    @property
    def name(self) -> str:
        return "BT_KELVIN"

    @property
    def formula(self) -> str:
        c = self.calibration
        return f"{c.k2} / ln({c.k1} / Radiance + 1)"

    def compute(self, bands: dict[str, FloatArray]) -> FloatArray:
        radiance = super().compute(bands)
        return brightness_temperature(radiance, self.calibration.k1, self.calibration.k2)


class LSTStrategy(BrightnessTemperatureStrategy):
    """Land surface temperature in degrees Celsius."""

    @property
    def name(self) -> str:
        return "LST"

    @property
    def formula(self) -> str:
        return "Kelvin - 273.15"

    def compute(self, bands: dict[str, FloatArray]) -> FloatArray:
        return (super().compute(bands) - np.float32(KELVIN_OFFSET)).astype(np.float32)


class UHRIStrategy(IndexStrategy):
    """Urban Heat Risk Index: ``(LST + NDBI) - NDVI``."""

    def __init__(self, calibration: SensorCalibration | None = None) -> None:
        self.lst = LSTStrategy(calibration)
        self.ndbi = NDBIStrategy()
        self.ndvi = NDVIStrategy()

    @property
    def name(self) -> str:
        return "UHRI"

    @property
    def required_bands(self) -> list[str]:
        return ["red", "nir", "swir1", "tir"]

    @property
    def formula(self) -> str:
        return "(LST + NDBI) - NDVI"

    def compute(self, bands: dict[str, FloatArray]) -> FloatArray:
        return combine_uhri(
            self.lst.compute(bands), self.ndbi.compute(bands), self.ndvi.compute(bands)
        )


def combine_uhri(lst: npt.ArrayLike, ndbi: npt.ArrayLike, ndvi: npt.ArrayLike) -> FloatArray:
    """UHRI from already derived LST, NDBI and NDVI arrays."""
    lst = np.asarray(lst, dtype=np.float32)
    ndbi = np.asarray(ndbi, dtype=np.float32)
    ndvi = np.asarray(ndvi, dtype=np.float32)
    return ((lst + ndbi) - ndvi).astype(np.float32)


def default_strategies(calibration: SensorCalibration | None = None) -> list[IndexStrategy]:
    """The full index suite in output order."""
    return [
        NDVIStrategy(),
        NDBIStrategy(),
        RadianceStrategy(calibration),
        BrightnessTemperatureStrategy(calibration),
        LSTStrategy(calibration),
        UHRIStrategy(calibration),
    ]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class IndexEngine:
    """Compute index fields from an aligned GridStack.

    The engine holds configuration only; every method is a pure function
    of its arguments.

    Args:
        bands: Stack positions of Red / NIR / SWIR1 / TIR.
        calibration: Thermal calibration constants.
    """

    def __init__(
        self,
        bands: BandMapping | None = None,
        calibration: SensorCalibration | None = None,
    ) -> None:
        self.bands = bands or BandMapping()
        self.calibration = calibration or SensorCalibration()

    # ------------------------------------------------------------------
    # Generic entry points
    # ------------------------------------------------------------------

    def band_arrays(self, stack: GridStack, names: Sequence[str]) -> dict[str, Grid]:
        """Pick the grids for semantic band *names* out of *stack*.

        Raises:
            BandIndexError: If a mapped position is outside the stack.
        """
        return {name: stack.band(self.bands.position(name)) for name in names}

    def compute(self, stack: GridStack, strategy: IndexStrategy) -> IndexField:
        """Run one strategy over *stack*.

        Raises:
            SpectralIndexError: If the band mapping lacks a required band
                or the strategy itself fails.
            BandIndexError: If a required band position is not in the stack.
        """
        mapped = self.bands.as_dict()
        missing = [b for b in strategy.required_bands if b not in mapped]
        if missing:
            raise SpectralIndexError(
                strategy.name, f"Required band(s) not mapped: {', '.join(missing)}"
            )
        grids = self.band_arrays(stack, strategy.required_bands)
        arrays = {name: grid.data for name, grid in grids.items()}
        try:
            values = strategy.compute(arrays)
        except (KeyError, ValueError, FloatingPointError) as exc:
            raise SpectralIndexError(strategy.name, str(exc)) from exc

        reference = stack[0]
        field = IndexField(
            data=values,
            transform=reference.transform,
            crs=reference.crs,
            name=strategy.name,
            nodata=DEFAULT_NODATA,
            formula=strategy.formula,
            sources=tuple(grids[n].name for n in strategy.required_bands),
        )
        logger.debug("Computed %s from %s", field.name, ", ".join(field.sources))
        return field

    def compute_all(
        self,
        stack: GridStack,
        strategies: Sequence[IndexStrategy] | None = None,
    ) -> dict[str, IndexField]:
        """Run every strategy (default: the full suite), keyed by name."""
        strategies = list(strategies) if strategies is not None else default_strategies(self.calibration)
        fields: dict[str, IndexField] = {}
        for strategy in strategies:
            logger.info("Computing %s...", strategy.name)
            fields[strategy.name] = self.compute(stack, strategy)
        return fields

    # ------------------------------------------------------------------
    # Named shortcuts
    # ------------------------------------------------------------------

    def ndvi(self, stack: GridStack) -> IndexField:
        return self.compute(stack, NDVIStrategy())

    def ndbi(self, stack: GridStack) -> IndexField:
        return self.compute(stack, NDBIStrategy())

    def radiance(self, stack: GridStack) -> IndexField:
        return self.compute(stack, RadianceStrategy(self.calibration))

    def brightness_temperature(self, stack: GridStack) -> IndexField:
        return self.compute(stack, BrightnessTemperatureStrategy(self.calibration))

    def lst(self, stack: GridStack) -> IndexField:
        return self.compute(stack, LSTStrategy(self.calibration))

    def uhri(self, stack: GridStack) -> IndexField:
        return self.compute(stack, UHRIStrategy(self.calibration))

    @staticmethod
    def uhri_from_fields(lst: IndexField, ndbi: IndexField, ndvi: IndexField) -> IndexField:
        """UHRI from fields that were already derived on the same grid."""
        Validators.assert_raster_shapes_match(lst.shape, ndbi.shape, "LST", "NDBI")
        Validators.assert_raster_shapes_match(lst.shape, ndvi.shape, "LST", "NDVI")
        return replace(
            lst,
            data=combine_uhri(lst.data, ndbi.data, ndvi.data),
            name="UHRI",
            formula="(LST + NDBI) - NDVI",
            sources=("LST", "NDBI", "NDVI"),
        )
