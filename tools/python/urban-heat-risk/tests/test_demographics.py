"""
Tests — Demographics
====================
Unit tests for :class:`~urban_heat_risk.demographics.CensusClient` and the
geopandas join helpers.

All HTTP calls are mocked via the ``responses`` library — no real
network requests are made during testing.
"""

from __future__ import annotations

from pathlib import Path

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
import responses as rsps_lib
from shapely.geometry import box

from shared.python.exceptions import ColumnNotFoundError, CRSMismatchError, DemographicsError
from urban_heat_risk.clipper import Boundary
from urban_heat_risk.demographics import (
    CensusClient,
    join_demographics,
    load_block_groups,
    select_within,
)

ACS_URL = "https://api.census.gov/data/2021/acs/acs5"
HEADER = ["B01001_001E", "B19013_001E", "state", "county", "tract", "block group"]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _acs_rows() -> list[list[str]]:
    """Header + two block groups; the second has a suppressed income value."""
    return [
        HEADER,
        ["1200", "54000", "29", "019", "000100", "1"],
        ["850", "-666666666", "29", "019", "000100", "2"],
    ]


@pytest.fixture()
def block_groups() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"GEOID": ["290190001001", "290190001002", "290190001003"]},
        geometry=[box(0, 0, 10, 10), box(10, 0, 20, 10), box(100, 100, 110, 110)],
        crs="EPSG:32615",
    )


# ---------------------------------------------------------------------------
# CensusClient
# ---------------------------------------------------------------------------


class TestCensusClient:
    @rsps_lib.activate
    def test_fetch_block_groups(self) -> None:
        """GEOID is assembled from the geography columns; variables are numeric."""
        rsps_lib.add(rsps_lib.GET, ACS_URL, json=_acs_rows(), status=200)
        table = CensusClient().fetch_acs(2021, "29", "019", ["B01001_001E", "B19013_001E"])

        assert list(table.columns) == ["GEOID", "B01001_001E", "B19013_001E"]
        assert list(table["GEOID"]) == ["290190001001", "290190001002"]
        assert table.loc[0, "B01001_001E"] == 1200
        assert table.loc[0, "B19013_001E"] == 54000

    @rsps_lib.activate
    def test_annotation_sentinels_become_nan(self) -> None:
        rsps_lib.add(rsps_lib.GET, ACS_URL, json=_acs_rows(), status=200)
        table = CensusClient().fetch_acs(2021, "29", "019", ["B01001_001E", "B19013_001E"])
        assert np.isnan(table.loc[1, "B19013_001E"])

    @rsps_lib.activate
    def test_request_parameters(self) -> None:
        rsps_lib.add(rsps_lib.GET, ACS_URL, json=_acs_rows(), status=200)
        CensusClient(api_key="secret").fetch_acs(2021, "29", "019", ["B01001_001E"])

        url = rsps_lib.calls[0].request.url
        assert "key=secret" in url
        assert "get=B01001_001E" in url
        assert "for=block+group%3A%2A" in url or "for=block%20group%3A%2A" in url

    @rsps_lib.activate
    def test_keyless_request_omits_key(self) -> None:
        rsps_lib.add(rsps_lib.GET, ACS_URL, json=_acs_rows(), status=200)
        CensusClient().fetch_acs(2021, "29", "019", ["B01001_001E"])
        assert "key=" not in rsps_lib.calls[0].request.url

    @rsps_lib.activate
    def test_http_error_raises(self) -> None:
        rsps_lib.add(rsps_lib.GET, ACS_URL, body="error: unknown variable", status=400)
        with pytest.raises(DemographicsError, match="HTTP 400"):
            CensusClient().fetch_acs(2021, "29", "019", ["B01001_001E"])

    @rsps_lib.activate
    def test_non_json_body_raises(self) -> None:
        rsps_lib.add(rsps_lib.GET, ACS_URL, body="<html>maintenance</html>", status=200)
        with pytest.raises(DemographicsError, match="non-JSON"):
            CensusClient().fetch_acs(2021, "29", "019", ["B01001_001E"])

    @rsps_lib.activate
    def test_missing_variable_column_raises(self) -> None:
        rsps_lib.add(rsps_lib.GET, ACS_URL, json=_acs_rows(), status=200)
        with pytest.raises(DemographicsError, match="B02001_002E"):
            CensusClient().fetch_acs(2021, "29", "019", ["B02001_002E"])

    @rsps_lib.activate
    def test_network_failure_raises(self) -> None:
        # No mock registered: responses raises ConnectionError.
        with pytest.raises(DemographicsError, match="request failed"):
            CensusClient().fetch_acs(2021, "29", "019", ["B01001_001E"])

    def test_unsupported_geography_raises(self) -> None:
        with pytest.raises(DemographicsError, match="geography"):
            CensusClient().fetch_acs(2021, "29", "019", ["B01001_001E"], geography="state")


# ---------------------------------------------------------------------------
# Vector joins
# ---------------------------------------------------------------------------


class TestJoins:
    def test_join_is_left_join_on_geoid(self, block_groups: gpd.GeoDataFrame) -> None:
        table = pd.DataFrame({"GEOID": ["290190001001", "290190001002"], "pop": [1200, 850]})
        joined = join_demographics(block_groups, table)
        assert isinstance(joined, gpd.GeoDataFrame)
        assert len(joined) == 3
        assert list(joined["pop"].iloc[:2]) == [1200, 850]
        assert np.isnan(joined["pop"].iloc[2])

    def test_join_without_geoid_raises(self, block_groups: gpd.GeoDataFrame) -> None:
        with pytest.raises(ColumnNotFoundError):
            join_demographics(block_groups, pd.DataFrame({"id": ["1"], "pop": [1]}))

    def test_select_within_boundary(self, block_groups: gpd.GeoDataFrame) -> None:
        boundary = Boundary(geometry=box(-5, -5, 25, 15), crs=block_groups.crs, label="county")
        selected = select_within(block_groups, boundary)
        assert sorted(selected["GEOID"]) == ["290190001001", "290190001002"]
        assert "index_right" not in selected.columns

    def test_select_within_reprojects_to_boundary_crs(self) -> None:
        units = gpd.GeoDataFrame(
            {"GEOID": ["a"]},
            geometry=[box(500_000, 4_200_000, 501_000, 4_201_000)],
            crs="EPSG:32615",
        )
        county = gpd.GeoSeries([box(499_000, 4_199_000, 502_000, 4_202_000)], crs="EPSG:32615")
        county_4326 = county.to_crs("EPSG:4326")
        boundary = Boundary(geometry=county_4326.iloc[0], crs=county_4326.crs)
        selected = select_within(units, boundary)
        assert len(selected) == 1
        assert selected.crs == county_4326.crs

    def test_select_within_requires_crs(self, block_groups: gpd.GeoDataFrame) -> None:
        boundary = Boundary(geometry=box(0, 0, 1, 1), crs=None)
        with pytest.raises(CRSMismatchError):
            select_within(block_groups, boundary)

    def test_load_block_groups(self, tmp_path: Path, block_groups: gpd.GeoDataFrame) -> None:
        path = tmp_path / "bg.geojson"
        block_groups.to_file(path, driver="GeoJSON")
        loaded = load_block_groups(path)
        assert len(loaded) == 3
        assert all(isinstance(v, str) for v in loaded["GEOID"])

    def test_load_block_groups_requires_geoid(self, tmp_path: Path) -> None:
        path = tmp_path / "bg.geojson"
        gpd.GeoDataFrame({"NAME": ["x"]}, geometry=[box(0, 0, 1, 1)], crs="EPSG:32615").to_file(
            path, driver="GeoJSON"
        )
        with pytest.raises(ColumnNotFoundError, match="GEOID"):
            load_block_groups(path)
