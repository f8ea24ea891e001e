"""
Tests for HeatRiskAnalysis
==========================
End-to-end runs over a synthetic four-band scene (Red, NIR, SWIR1, TIR
as ``band1.tif`` … ``band4.tif``) written to ``tmp_path``.  Census
requests are mocked with ``responses``.

Test classes:
    TestHeatRiskAnalysisHappyPath   Products, stages and values.
    TestHeatRiskAnalysisDemographics  Block-group join and census attributes.
    TestHeatRiskAnalysisValidation  Error conditions and stage tagging.
"""

from __future__ import annotations

import json
from pathlib import Path

import geopandas as gpd
import numpy as np
import pytest
import rasterio
import responses as rsps_lib
from rasterio.crs import CRS
from rasterio.transform import from_origin
from shapely.geometry import box

from shared.python.exceptions import (
    BandIndexError,
    EmptyIntersectionError,
    InputValidationError,
    RasterReadError,
)
from urban_heat_risk.config import BandMapping, CensusConfig, HeatRiskConfig
from urban_heat_risk.demographics import CensusClient
from urban_heat_risk.pipeline import HeatRiskAnalysis

LEFT, TOP, RES, SIZE = 500_000.0, 4_210_000.0, 30.0, 20
FOUR_BANDS = BandMapping(red=1, nir=2, swir1=3, tir=4)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _write_band(
    path: Path, arr: np.ndarray, dtype: str = "float32", nodata: float | None = None
) -> Path:
    profile = {
        "driver": "GTiff",
        "dtype": dtype,
        "count": 1,
        "height": arr.shape[0],
        "width": arr.shape[1],
        "crs": CRS.from_epsg(32615),
        "transform": from_origin(LEFT, TOP, RES, RES),
    }
    if nodata is not None:
        profile["nodata"] = nodata
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(arr.astype(dtype), 1)
    return path


@pytest.fixture()
def scene(tmp_path: Path) -> Path:
    """Directory with red, NIR, SWIR1 and TIR bands over a 600 m square."""
    rng = np.random.default_rng(7)
    directory = tmp_path / "scene"
    directory.mkdir()
    shape = (SIZE, SIZE)
    _write_band(directory / "band1.tif", rng.uniform(0.02, 0.3, shape))
    _write_band(directory / "band2.tif", rng.uniform(0.1, 0.6, shape))
    _write_band(directory / "band3.tif", rng.uniform(0.05, 0.5, shape))
    _write_band(directory / "band4.tif", rng.uniform(25_000, 35_000, shape))
    return directory


def _write_vector(path: Path, gdf: gpd.GeoDataFrame) -> Path:
    gdf.to_file(path, driver="GeoJSON")
    return path


@pytest.fixture()
def county(tmp_path: Path) -> Path:
    """Boundary covering the western half of the scene."""
    geom = box(LEFT, TOP - SIZE * RES, LEFT + SIZE * RES / 2, TOP)
    return _write_vector(tmp_path / "county.geojson", gpd.GeoDataFrame(geometry=[geom], crs="EPSG:32615"))


@pytest.fixture()
def block_groups(tmp_path: Path) -> Path:
    """Two block groups splitting the scene north / south."""
    mid = TOP - SIZE * RES / 2
    gdf = gpd.GeoDataFrame(
        {"GEOID": ["290190001001", "290190001002"]},
        geometry=[
            box(LEFT, mid, LEFT + SIZE * RES, TOP),
            box(LEFT, TOP - SIZE * RES, LEFT + SIZE * RES, mid),
        ],
        crs="EPSG:32615",
    )
    return _write_vector(tmp_path / "bg.geojson", gdf)


def _config(**overrides: object) -> HeatRiskConfig:
    base = {"bands": FOUR_BANDS, "write_plots": False}
    base.update(overrides)
    return HeatRiskConfig(**base)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

class TestHeatRiskAnalysisHappyPath:
    def test_products_written(self, scene: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        HeatRiskAnalysis(scene, out, config=_config()).run()
        for name in ("NDVI.tif", "NDBI.tif", "LST.tif", "UHRI.tif", "UHRI_HOTSPOT.tif",
                     "correlation.csv", "summary.json"):
            assert (out / name).exists(), name

    def test_stages_in_order(self, scene: Path, county: Path, tmp_path: Path) -> None:
        tool = HeatRiskAnalysis(scene, tmp_path / "out", county, config=_config())
        tool.run()
        assert tool.completed_stages == [
            "validate", "load", "align", "clip", "indices", "hotspots", "correlation", "export",
        ]

    def test_clip_halves_the_grid(self, scene: Path, county: Path, tmp_path: Path) -> None:
        tool = HeatRiskAnalysis(scene, tmp_path / "out", county, config=_config())
        tool.run()
        assert tool.result is not None
        assert tool.result.stack.shape == (SIZE, SIZE // 2)
        assert tool.result.fields["UHRI"].shape == (SIZE, SIZE // 2)

    def test_hotspot_share_matches_percentile(self, scene: Path, tmp_path: Path) -> None:
        tool = HeatRiskAnalysis(scene, tmp_path / "out", config=_config(hotspot_percentile=75))
        tool.run()
        result = tool.result
        assert result is not None
        assert result.threshold.percentile == 75
        assert result.hotspots.hotspot_fraction == pytest.approx(0.25, abs=0.01)

    def test_index_rasters_stay_in_range(self, scene: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        HeatRiskAnalysis(scene, out, config=_config()).run()
        for name in ("NDVI", "NDBI"):
            with rasterio.open(out / f"{name}.tif") as src:
                arr = src.read(1, masked=True)
            assert arr.min() >= -1.0
            assert arr.max() <= 1.0

    def test_hotspot_raster_is_uint8(self, scene: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        HeatRiskAnalysis(scene, out, config=_config()).run()
        with rasterio.open(out / "UHRI_HOTSPOT.tif") as src:
            assert src.dtypes[0] == "uint8"
            assert src.nodata == 255
            values = set(np.unique(src.read(1)))
        assert values <= {0, 1, 255}

    def test_index_rasters_use_own_nodata(self, tmp_path: Path) -> None:
        """Integer bands declaring nodata=0 must not turn a zero NDVI into nodata."""
        rng = np.random.default_rng(11)
        directory = tmp_path / "dn_scene"
        directory.mkdir()
        shape = (SIZE, SIZE)
        red = rng.integers(7_000, 12_000, shape)
        nir = rng.integers(12_000, 20_000, shape)
        nir[0, 0] = red[0, 0]
        red[1, 1] = 0
        for i, arr in enumerate(
            [red, nir, rng.integers(9_000, 15_000, shape), rng.integers(25_000, 35_000, shape)],
            start=1,
        ):
            _write_band(directory / f"band{i}.tif", arr, dtype="uint16", nodata=0)

        out = tmp_path / "out"
        HeatRiskAnalysis(directory, out, config=_config()).run()
        with rasterio.open(out / "NDVI.tif") as src:
            assert src.dtypes[0] == "float32"
            assert src.nodata == -9999.0
            ndvi = src.read(1, masked=True)
        assert not ndvi.mask[0, 0]
        assert ndvi[0, 0] == pytest.approx(0.0)
        assert ndvi.mask[1, 1]

    def test_summary_contents(self, scene: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        HeatRiskAnalysis(scene, out, config=_config()).run()
        summary = json.loads((out / "summary.json").read_text())
        assert [f["name"] for f in summary["fields"]] == ["NDVI", "NDBI", "LST", "UHRI"]
        assert summary["hotspot_threshold"]["percentile"] == 90
        assert summary["stack"]["bands"] == ["band1", "band2", "band3", "band4"]
        assert summary["config"]["bands"] == {"red": 1, "nir": 2, "swir1": 3, "tir": 4}

    def test_correlation_is_symmetric(self, scene: Path, tmp_path: Path) -> None:
        tool = HeatRiskAnalysis(scene, tmp_path / "out", config=_config())
        tool.run()
        matrix = tool.result.correlation.to_numpy()  # type: ignore[union-attr]
        assert np.allclose(matrix, matrix.T)
        assert np.allclose(np.diag(matrix), 1.0)

    def test_plots_written(self, scene: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        HeatRiskAnalysis(scene, out, config=_config(write_plots=True)).run()
        for name in ("indices.png", "hotspots.png", "correlation.png"):
            assert (out / name).stat().st_size > 0

    def test_inputs_are_untouched(self, scene: Path, tmp_path: Path) -> None:
        before = {p.name: p.read_bytes() for p in scene.iterdir()}
        HeatRiskAnalysis(scene, tmp_path / "out", config=_config()).run()
        assert {p.name: p.read_bytes() for p in scene.iterdir()} == before


# ---------------------------------------------------------------------------
# Demographics
# ---------------------------------------------------------------------------

class TestHeatRiskAnalysisDemographics:
    def test_zonal_statistics_without_census(
        self, scene: Path, block_groups: Path, tmp_path: Path
    ) -> None:
        out = tmp_path / "out"
        tool = HeatRiskAnalysis(
            scene, out, config=_config(), block_groups_path=block_groups
        )
        tool.run()
        gdf = tool.result.block_groups  # type: ignore[union-attr]
        assert list(gdf["uhri_cells"]) == [SIZE * SIZE // 2] * 2
        assert "uhri_hotspot_cells" in gdf.columns
        assert (out / "block_groups.gpkg").exists()

    @rsps_lib.activate
    def test_census_attributes_joined(
        self, scene: Path, block_groups: Path, tmp_path: Path
    ) -> None:
        rsps_lib.add(
            rsps_lib.GET,
            "https://api.census.gov/data/2021/acs/acs5",
            json=[
                ["B01001_001E", "state", "county", "tract", "block group"],
                ["1200", "29", "019", "000100", "1"],
                ["850", "29", "019", "000100", "2"],
            ],
            status=200,
        )
        census = CensusConfig(state="29", county="019", variables=("B01001_001E",))
        tool = HeatRiskAnalysis(
            scene,
            tmp_path / "out",
            config=_config(census=census),
            block_groups_path=block_groups,
            census_client=CensusClient(api_key="test"),
        )
        tool.run()
        gdf = tool.result.block_groups.set_index("GEOID")  # type: ignore[union-attr]
        assert gdf.loc["290190001001", "B01001_001E"] == 1200
        assert gdf.loc["290190001002", "B01001_001E"] == 850
        assert "demographics" in tool.completed_stages

    def test_census_without_block_groups_rejected(self, scene: Path, tmp_path: Path) -> None:
        census = CensusConfig(state="29", county="019")
        tool = HeatRiskAnalysis(scene, tmp_path / "out", config=_config(census=census))
        with pytest.raises(InputValidationError, match="block-group"):
            tool.run()


# ---------------------------------------------------------------------------
# Validation / error paths
# ---------------------------------------------------------------------------

class TestHeatRiskAnalysisValidation:
    def test_missing_raster_directory(self, tmp_path: Path) -> None:
        tool = HeatRiskAnalysis(tmp_path / "nope", tmp_path / "out", config=_config())
        with pytest.raises(InputValidationError) as info:
            tool.run()
        assert info.value.stage == "validate"

    def test_empty_raster_directory(self, tmp_path: Path) -> None:
        (tmp_path / "empty").mkdir()
        tool = HeatRiskAnalysis(tmp_path / "empty", tmp_path / "out", config=_config())
        with pytest.raises(RasterReadError) as info:
            tool.run()
        assert info.value.stage == "load"

    def test_disjoint_boundary(self, scene: Path, tmp_path: Path) -> None:
        far = _write_vector(
            tmp_path / "far.geojson",
            gpd.GeoDataFrame(geometry=[box(0, 0, 1_000, 1_000)], crs="EPSG:32615"),
        )
        tool = HeatRiskAnalysis(scene, tmp_path / "out", far, config=_config())
        with pytest.raises(EmptyIntersectionError) as info:
            tool.run()
        assert info.value.stage == "clip"
        assert tool.completed_stages == ["validate", "load", "align"]

    def test_landsat_defaults_on_four_band_scene(self, scene: Path, tmp_path: Path) -> None:
        """Band 10 does not exist in a four-file scene."""
        tool = HeatRiskAnalysis(
            scene, tmp_path / "out", config=HeatRiskConfig(write_plots=False)
        )
        with pytest.raises(BandIndexError) as info:
            tool.run()
        assert info.value.stage == "indices"

    def test_bad_boundary_extension(self, scene: Path, tmp_path: Path) -> None:
        bad = tmp_path / "county.csv"
        bad.write_text("x,y\n")
        tool = HeatRiskAnalysis(scene, tmp_path / "out", bad, config=_config())
        with pytest.raises(InputValidationError):
            tool.run()
