"""
Configuration
=============
Explicit configuration for the heat risk pipeline.  Nothing the analysis
depends on (band positions, calibration constants, percentile, resampling,
CRS rule) is a literal buried in the processing code; it all lives here.

Classes:
    BandMapping        Semantic band name → 1-based stack position.
    SensorCalibration  Thermal calibration constants.
    AlignmentConfig    Resampling method and CRS / resolution rule.
    CensusConfig       Demographic source settings (incl. API key).
    HeatRiskConfig     Top-level bundle, loadable from JSON.

Usage::

    cfg = HeatRiskConfig.from_json(Path("config/county.json"))
    cfg = HeatRiskConfig(hotspot_percentile=95.0)
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Literal

from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

ResamplingName = Literal["bilinear", "average", "nearest", "cubic"]
RESAMPLING_METHODS: tuple[str, ...] = ("bilinear", "average", "nearest", "cubic")


@dataclass(frozen=True)
class BandMapping:
    """1-based stack positions of the bands the indices need.

    Defaults match a full Landsat 8/9 Collection 1 scene loaded in band
    order (``B1 … B11``): Red = B4, NIR = B5, SWIR1 = B6, TIR = B10.
    A stack holding only the four needed bands would use ``1, 2, 3, 4``.
    """

    red: int = 4
    nir: int = 5
    swir1: int = 6
    tir: int = 10

    def position(self, band: str) -> int:
        """Stack position for a semantic band name (``"red"``, ``"nir"``, …)."""
        try:
            return int(getattr(self, band))
        except AttributeError as exc:
            raise InputValidationError(
                f"Unknown band name '{band}'. Known bands: "
                + ", ".join(f.name for f in fields(self))
            ) from exc

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class SensorCalibration:
    """Thermal band calibration constants.

    Defaults are the Landsat 8 TIRS band 10 values: radiance multiplicative
    rescaling ``ML``, additive rescaling ``AL``, and the thermal conversion
    constants ``K1`` / ``K2``.
    """

    radiance_mult: float = 0.0003342
    radiance_add: float = 0.1
    k1: float = 774.89
    k2: float = 1321.08


@dataclass(frozen=True)
class AlignmentConfig:
    """How :class:`~urban_heat_risk.aligner.GridAligner` picks the target grid.

    Attributes:
        resampling: ``"bilinear"`` (continuous fields), ``"average"``
            (area-weighted), ``"nearest"`` or ``"cubic"``.
        target_crs: Explicit target CRS.  ``None`` keeps the "first input
            grid" rule.
        target_resolution: Explicit square pixel size in target CRS units.
            ``None`` keeps the "first input grid" rule.
    """

    resampling: ResamplingName = "bilinear"
    target_crs: str | None = None
    target_resolution: float | None = None

    def __post_init__(self) -> None:
        if self.resampling not in RESAMPLING_METHODS:
            raise InputValidationError(
                f"Unknown resampling method '{self.resampling}'. "
                f"Valid options: {', '.join(RESAMPLING_METHODS)}"
            )
        if self.target_crs is not None:
            Validators.assert_crs_valid(self.target_crs)
        if self.target_resolution is not None:
            Validators.assert_resolution_positive(
                self.target_resolution, self.target_resolution
            )


@dataclass(frozen=True)
class CensusConfig:
    """Settings for the demographic data source.

    The API key is loaded once (CLI option, environment or config file)
    and handed explicitly to :class:`~urban_heat_risk.demographics.CensusClient`.

    Attributes:
        year: ACS release year.
        state: Two-digit state FIPS code.
        county: Three-digit county FIPS code.
        variables: ACS variable codes to retrieve.
        api_key: Census API key, or ``None`` for keyless (rate-limited) use.
    """

    year: int = 2021
    state: str = ""
    county: str = ""
    variables: tuple[str, ...] = (
        "B01001_001E",  # total population
        "B02001_002E",  # white alone
        "B19013_001E",  # median household income
    )
    api_key: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class HeatRiskConfig:
    """Everything a :class:`~urban_heat_risk.pipeline.HeatRiskAnalysis` run needs.

    Attributes:
        bands: Band positions in the aligned stack.
        calibration: Thermal calibration constants.
        alignment: Resampling and CRS / resolution rule.
        hotspot_percentile: Percentile (0, 100) of UHRI above which a cell
            is a hotspot.
        raster_pattern: Glob used to find band files in the input directory.
        mask_to_polygon: Also blank cells outside the boundary polygon
            after the rectangular clip.
        write_plots: Render PNG quicklooks next to the rasters.
        census: Demographic join settings; ``None`` skips the join.
    """

    bands: BandMapping = field(default_factory=BandMapping)
    calibration: SensorCalibration = field(default_factory=SensorCalibration)
    alignment: AlignmentConfig = field(default_factory=AlignmentConfig)
    hotspot_percentile: float = 90.0
    raster_pattern: str = "*.tif"
    mask_to_polygon: bool = False
    write_plots: bool = True
    census: CensusConfig | None = None

    def __post_init__(self) -> None:
        Validators.assert_percentile_valid(self.hotspot_percentile)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> HeatRiskConfig:
        """Build a config from plain (JSON-decoded) values.

        Unknown keys raise :class:`InputValidationError` so typos in a
        config file are not silently ignored.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(raw) - known
        if unknown:
            raise InputValidationError(
                f"Unknown configuration key(s): {', '.join(sorted(unknown))}"
            )

        kwargs: dict[str, Any] = dict(raw)
        try:
            if "bands" in kwargs:
                kwargs["bands"] = BandMapping(**kwargs["bands"])
            if "calibration" in kwargs:
                kwargs["calibration"] = SensorCalibration(**kwargs["calibration"])
            if "alignment" in kwargs:
                kwargs["alignment"] = AlignmentConfig(**kwargs["alignment"])
            if kwargs.get("census") is not None:
                census = dict(kwargs["census"])
                if "variables" in census:
                    census["variables"] = tuple(census["variables"])
                kwargs["census"] = CensusConfig(**census)
            return cls(**kwargs)
        except TypeError as exc:
            raise InputValidationError(f"Invalid configuration: {exc}") from exc

    @classmethod
    def from_json(cls, path: Path) -> HeatRiskConfig:
        """Load a config from a JSON file.

        Raises:
            InputValidationError: If the file is missing, is not valid
                JSON, or holds unknown / invalid values.
        """
        path = Path(path)
        Validators.assert_file_exists(path)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise InputValidationError(f"Config file '{path}' is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise InputValidationError(f"Config file '{path}' must hold a JSON object.")
        return cls.from_dict(raw)

    def to_dict(self) -> dict[str, Any]:
        """JSON-serialisable view; the census API key is never included."""
        out = asdict(self)
        if out.get("census") is not None:
            out["census"].pop("api_key", None)
            out["census"]["variables"] = list(out["census"]["variables"])
        return out
