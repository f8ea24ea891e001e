"""
Tests for the Index Engine
==========================
Formula checks use 1×1 arrays with known values; engine checks build a
small four-band GridStack (Red, NIR, SWIR1, TIR at positions 1–4).

Test classes:
    TestIndexStrategies   Formula correctness and NaN behaviour.
    TestIndexEngine       Band selection, provenance and error paths.
"""

from __future__ import annotations

import math

import numpy as np
import numpy.typing as npt
import pytest
from rasterio.crs import CRS
from rasterio.transform import from_origin

from shared.python.exceptions import BandIndexError
from urban_heat_risk.config import BandMapping, SensorCalibration
from urban_heat_risk.grid import DEFAULT_NODATA, Grid, GridStack
from urban_heat_risk.indices import (
    KELVIN_OFFSET,
    BrightnessTemperatureStrategy,
    IndexEngine,
    LSTStrategy,
    NDBIStrategy,
    NDVIStrategy,
    RadianceStrategy,
    UHRIStrategy,
    normalized_difference,
)

FOUR_BANDS = BandMapping(red=1, nir=2, swir1=3, tir=4)


def _expected_lst(dn: float, cal: SensorCalibration = SensorCalibration()) -> float:
    radiance = dn * cal.radiance_mult + cal.radiance_add
    return cal.k2 / math.log(cal.k1 / radiance + 1.0) - KELVIN_OFFSET


def _stack(
    red: npt.ArrayLike, nir: npt.ArrayLike, swir1: npt.ArrayLike, tir: npt.ArrayLike
) -> GridStack:
    """Four co-registered bands named after their role."""
    grids = []
    for name, values in (("red", red), ("nir", nir), ("swir1", swir1), ("tir", tir)):
        arr = np.atleast_2d(np.asarray(values, dtype="float32"))
        grids.append(
            Grid(
                data=arr,
                transform=from_origin(500_000, 4_210_000, 30, 30),
                crs=CRS.from_epsg(32615),
                name=name,
            )
        )
    return GridStack(tuple(grids))


class TestIndexStrategies:
    def _as_dict(self, **kwargs: float) -> dict[str, npt.NDArray[np.float32]]:
        """Build dummy band dict from scalar values, shape (1, 1)."""
        return {k: np.array([[v]], dtype=np.float32) for k, v in kwargs.items()}

    def test_ndvi(self) -> None:
        """NDVI = (0.5 - 0.2) / (0.5 + 0.2) ≈ 0.42857."""
        result = NDVIStrategy().compute(self._as_dict(red=0.2, nir=0.5))
        assert result[0, 0] == pytest.approx(0.428571, rel=1e-4)

    def test_ndbi(self) -> None:
        """NDBI = (0.4 - 0.3) / (0.4 + 0.3) ≈ 0.142857."""
        result = NDBIStrategy().compute(self._as_dict(swir1=0.4, nir=0.3))
        assert result[0, 0] == pytest.approx(0.142857, rel=1e-4)

    def test_zero_denominator_is_nan(self) -> None:
        result = NDVIStrategy().compute(self._as_dict(red=0.0, nir=0.0))
        assert np.isnan(result[0, 0])

    def test_nan_input_propagates(self) -> None:
        result = normalized_difference([[np.nan, 0.5]], [[0.1, 0.1]])
        assert np.isnan(result[0, 0])
        assert np.isfinite(result[0, 1])

    def test_normalized_difference_range(self) -> None:
        """Non-negative reflectances always give values in [-1, 1]."""
        rng = np.random.default_rng(42)
        a = rng.uniform(0, 1, (50, 50))
        b = rng.uniform(0, 1, (50, 50))
        a[0, 0] = b[0, 0] = 0.0
        result = normalized_difference(a, b)
        assert np.nanmin(result) >= -1.0
        assert np.nanmax(result) <= 1.0

    def test_negative_reflectance_is_not_clamped(self) -> None:
        """(0.3 - -0.1) / (0.3 + -0.1) = 2.0; values pass through unclipped."""
        result = normalized_difference([[0.3]], [[-0.1]])
        assert result[0, 0] == pytest.approx(2.0)

    def test_radiance(self) -> None:
        cal = SensorCalibration()
        result = RadianceStrategy(cal).compute(self._as_dict(tir=30_000))
        assert result[0, 0] == pytest.approx(30_000 * cal.radiance_mult + cal.radiance_add, rel=1e-5)

    def test_brightness_temperature_is_kelvin(self) -> None:
        kelvin = BrightnessTemperatureStrategy().compute(self._as_dict(tir=30_000))
        assert kelvin[0, 0] == pytest.approx(_expected_lst(30_000) + KELVIN_OFFSET, rel=1e-4)

    def test_lst_celsius(self) -> None:
        lst = LSTStrategy().compute(self._as_dict(tir=30_000))
        assert lst[0, 0] == pytest.approx(_expected_lst(30_000), rel=1e-4)
        assert 0.0 < lst[0, 0] < 60.0

    def test_non_positive_radiance_is_nan(self) -> None:
        """With AL = 0 a zero DN gives zero radiance, which has no temperature."""
        cal = SensorCalibration(radiance_add=0.0)
        lst = LSTStrategy(cal).compute(self._as_dict(tir=0.0))
        assert np.isnan(lst[0, 0])

    def test_uhri_combines_components(self) -> None:
        bands = self._as_dict(red=0.2, nir=0.5, swir1=0.4, tir=30_000)
        expected = (_expected_lst(30_000) + (0.4 - 0.5) / 0.9) - 0.3 / 0.7
        assert UHRIStrategy().compute(bands)[0, 0] == pytest.approx(expected, rel=1e-4)

    def test_custom_calibration_changes_lst(self) -> None:
        bands = self._as_dict(tir=30_000)
        default = LSTStrategy().compute(bands)[0, 0]
        custom = LSTStrategy(SensorCalibration(k1=480.89, k2=1201.14)).compute(bands)[0, 0]
        assert default != pytest.approx(custom, rel=1e-3)


class TestIndexEngine:
    def test_fields_use_mapped_positions(self) -> None:
        stack = _stack(0.2, 0.5, 0.4, 30_000)
        ndvi = IndexEngine(FOUR_BANDS).ndvi(stack)
        assert ndvi.data[0, 0] == pytest.approx(0.428571, rel=1e-4)
        assert ndvi.sources == ("red", "nir")
        assert ndvi.formula == "(NIR - Red) / (NIR + Red)"
        assert ndvi.name == "NDVI"

    def test_fields_share_stack_georeference(self) -> None:
        stack = _stack([[0.2, 0.3]], [[0.5, 0.6]], [[0.4, 0.1]], [[30_000, 31_000]])
        fields = IndexEngine(FOUR_BANDS).compute_all(stack)
        for field in fields.values():
            assert field.shape == stack.shape
            assert field.transform == stack.transform
            assert field.crs == stack.crs

    def test_fields_do_not_inherit_band_nodata(self) -> None:
        grids = [
            Grid(data=g.data, transform=g.transform, crs=g.crs, name=g.name, nodata=0.0)
            for g in _stack(0.2, 0.5, 0.4, 30_000)
        ]
        fields = IndexEngine(FOUR_BANDS).compute_all(GridStack(tuple(grids)))
        assert all(field.nodata == DEFAULT_NODATA for field in fields.values())

    def test_compute_all_order(self) -> None:
        fields = IndexEngine(FOUR_BANDS).compute_all(_stack(0.2, 0.5, 0.4, 30_000))
        assert list(fields) == ["NDVI", "NDBI", "RADIANCE", "BT_KELVIN", "LST", "UHRI"]

    def test_uhri_matches_component_fields(self) -> None:
        engine = IndexEngine(FOUR_BANDS)
        stack = _stack([[0.2, 0.1]], [[0.5, 0.6]], [[0.4, 0.7]], [[30_000, 28_000]])
        direct = engine.uhri(stack)
        combined = engine.uhri_from_fields(engine.lst(stack), engine.ndbi(stack), engine.ndvi(stack))
        assert np.allclose(direct.data, combined.data)
        assert combined.name == "UHRI"

    def test_nodata_cell_propagates_to_uhri(self) -> None:
        stack = _stack([[np.nan, 0.2]], [[0.5, 0.5]], [[0.4, 0.4]], [[30_000, 30_000]])
        uhri = IndexEngine(FOUR_BANDS).uhri(stack)
        assert np.isnan(uhri.data[0, 0])
        assert np.isfinite(uhri.data[0, 1])

    def test_zero_denominator_cell_is_nodata_not_error(self) -> None:
        stack = _stack([[0.0, 0.2]], [[0.0, 0.5]], [[0.4, 0.4]], [[30_000, 30_000]])
        ndvi = IndexEngine(FOUR_BANDS).ndvi(stack)
        assert np.isnan(ndvi.data[0, 0])
        assert ndvi.valid_count == 1

    def test_band_position_outside_stack_raises(self) -> None:
        """Landsat defaults (Red = 4, TIR = 10) do not fit a four-band stack."""
        with pytest.raises(BandIndexError, match="Band 10"):
            IndexEngine().lst(_stack(0.2, 0.5, 0.4, 30_000))

    def test_inputs_are_not_modified(self) -> None:
        stack = _stack(0.2, 0.5, 0.4, 30_000)
        before = [g.data.copy() for g in stack]
        IndexEngine(FOUR_BANDS).compute_all(stack)
        for grid, original in zip(stack, before):
            assert np.array_equal(grid.data, original)
