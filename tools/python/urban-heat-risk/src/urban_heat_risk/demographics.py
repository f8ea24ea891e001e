"""
Demographics — Census Retrieval and Vector Joins
================================================
Thin collaborators around the US Census Data API (ACS attribute tables)
and geopandas (block-group geometries, joins).

The API key is an explicit constructor argument; it is loaded once at
startup (CLI option, ``CENSUS_API_KEY`` or config file) and never read
from module-level state.

Reference:
    https://www.census.gov/data/developers/guidance/api-user-guide.html

Usage::

    client = CensusClient(api_key=cfg.census.api_key)
    table = client.fetch_acs(2021, "29", "019", ["B01001_001E"])
    block_groups = join_demographics(load_block_groups(Path("bg.shp")), table)
    county_bgs = select_within(block_groups, boundary)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import geopandas as gpd
import pandas as pd
import requests

from shared.python.exceptions import CRSMismatchError, DemographicsError
from shared.python.validators import Validators
from urban_heat_risk.clipper import VECTOR_EXTENSIONS, Boundary

logger = logging.getLogger("urbanheat.demographics")

GEOID_COLUMN = "GEOID"

# Geography columns the API appends to every row, in GEOID order.
_GEOGRAPHY_PARTS: dict[str, list[str]] = {
    "county": ["state", "county"],
    "tract": ["state", "county", "tract"],
    "block group": ["state", "county", "tract", "block group"],
}


class CensusClient:
    """Minimal client for ACS tables from the Census Data API.

    Args:
        api_key: Census API key.  ``None`` sends keyless requests, which
            the API accepts at a low daily quota.
        session: Optional pre-configured :class:`requests.Session`.
        timeout: HTTP request timeout in seconds.
    """

    BASE_URL = "https://api.census.gov/data"

    def __init__(
        self,
        api_key: str | None = None,
        session: requests.Session | None = None,
        timeout: int = 30,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = "urban-heat-risk/1.0"

    def fetch_acs(
        self,
        year: int,
        state: str,
        county: str,
        variables: Sequence[str],
        dataset: str = "acs/acs5",
        geography: str = "block group",
    ) -> pd.DataFrame:
        """Fetch ACS *variables* for every *geography* unit in one county.

        Args:
            year: ACS release year (e.g. ``2021``).
            state: Two-digit state FIPS code (e.g. ``"29"``).
            county: Three-digit county FIPS code (e.g. ``"019"``).
            variables: ACS variable codes (e.g. ``"B01001_001E"``).
            dataset: API dataset path.
            geography: ``"block group"``, ``"tract"`` or ``"county"``.

        Returns:
            DataFrame with a ``GEOID`` column plus one numeric column per
            variable.  ACS annotation sentinels (large negative values such
            as ``-666666666``) become NaN.

        Raises:
            DemographicsError: On network failure, a non-200 response or
                a payload that is not the expected table.
        """
        if geography not in _GEOGRAPHY_PARTS:
            raise DemographicsError(
                f"Unsupported geography '{geography}'. "
                f"Valid options: {', '.join(_GEOGRAPHY_PARTS)}"
            )
        if not variables:
            raise DemographicsError("At least one ACS variable is required.")

        if geography == "county":
            params = {"for": f"county:{county}", "in": f"state:{state}"}
        else:
            params = {"for": f"{geography}:*", "in": f"state:{state} county:{county}"}
        params["get"] = ",".join(variables)
        if self.api_key:
            params["key"] = self.api_key

        url = f"{self.BASE_URL}/{year}/{dataset}"
        logger.info("Requesting %d ACS variable(s) for %s %s%s", len(variables), geography, state, county)
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise DemographicsError(f"Census API request failed: {exc}") from exc

        if response.status_code != 200:
            raise DemographicsError(
                f"Census API returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            rows = response.json()
        except ValueError as exc:
            raise DemographicsError(f"Census API returned non-JSON content: {exc}") from exc

        return self._to_frame(rows, variables, _GEOGRAPHY_PARTS[geography])

    @staticmethod
    def _to_frame(
        rows: object, variables: Sequence[str], parts: list[str]
    ) -> pd.DataFrame:
        if not isinstance(rows, list) or len(rows) < 1 or not isinstance(rows[0], list):
            raise DemographicsError("Census API payload is not a table.")

        header, body = rows[0], rows[1:]
        missing = [c for c in [*variables, *parts] if c not in header]
        if missing:
            raise DemographicsError(
                f"Census API response lacks column(s): {', '.join(missing)}"
            )

        df = pd.DataFrame(body, columns=header)
        df[GEOID_COLUMN] = df[parts].astype(str).agg("".join, axis=1)
        for var in variables:
            values = pd.to_numeric(df[var], errors="coerce")
            df[var] = values.mask(values < -99999)
        logger.debug("Parsed %d census row(s)", len(df))
        return df[[GEOID_COLUMN, *variables]].reset_index(drop=True)


def load_block_groups(path: Path, layer: str | None = None) -> gpd.GeoDataFrame:
    """Read block-group (or tract) polygons; a ``GEOID`` column is required.

    Raises:
        InputValidationError: If the file is missing or has an unsupported
            extension.
        ColumnNotFoundError: If there is no ``GEOID`` column.
    """
    path = Path(path)
    Validators.assert_file_exists(path)
    Validators.assert_supported_extension(path, VECTOR_EXTENSIONS)
    gdf = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)
    Validators.assert_columns_exist(gdf, [GEOID_COLUMN])
    gdf[GEOID_COLUMN] = gdf[GEOID_COLUMN].astype(str)
    logger.info("Loaded %d geometries from %s", len(gdf), path.name)
    return gdf


def join_demographics(geometries: gpd.GeoDataFrame, table: pd.DataFrame) -> gpd.GeoDataFrame:
    """Attach attribute *table* to *geometries* by ``GEOID`` (left join).

    Raises:
        ColumnNotFoundError: If either side lacks ``GEOID``.
    """
    Validators.assert_columns_exist(geometries, [GEOID_COLUMN])
    Validators.assert_columns_exist(table, [GEOID_COLUMN])
    table = table.assign(**{GEOID_COLUMN: table[GEOID_COLUMN].astype(str)})
    merged = geometries.merge(table, on=GEOID_COLUMN, how="left")
    value_columns = [c for c in table.columns if c != GEOID_COLUMN]
    if value_columns:
        unmatched = int(merged[value_columns].isna().all(axis=1).sum())
        if unmatched:
            logger.warning("%d geometry row(s) have no census attributes", unmatched)
    return merged


def select_within(geometries: gpd.GeoDataFrame, boundary: Boundary) -> gpd.GeoDataFrame:
    """Keep the units intersecting *boundary*, expressed in its CRS.

    Raises:
        CRSMismatchError: If either side lacks a CRS or the geometries
            cannot be reprojected.
    """
    if geometries.crs is None or boundary.crs is None:
        raise CRSMismatchError(
            str(geometries.crs), str(boundary.crs), "both layers need a CRS to be joined"
        )
    try:
        local = geometries if geometries.crs == boundary.crs else geometries.to_crs(boundary.crs)
    except Exception as exc:
        raise CRSMismatchError(str(geometries.crs), str(boundary.crs), str(exc)) from exc

    area = gpd.GeoDataFrame(geometry=[boundary.geometry], crs=boundary.crs)
    joined = gpd.sjoin(local, area, how="inner", predicate="intersects")
    joined = joined.drop(columns=["index_right"], errors="ignore")
    joined = joined[~joined.index.duplicated()]
    logger.info("%d of %d unit(s) intersect '%s'", len(joined), len(geometries), boundary.label)
    return joined
