"""
Heat Risk Analysis — Pipeline Tool
===================================
Runs the whole county analysis top to bottom as one
:class:`~shared.python.GeoTool`:

    load → align → clip → indices → hotspots → correlation
         → demographics (optional) → export

Every step runs inside a named stage; the first failure aborts the run
and is logged with the stage and the data it was working on.

Usage::

    from pathlib import Path
    from urban_heat_risk.pipeline import HeatRiskAnalysis
    from urban_heat_risk.config import HeatRiskConfig, BandMapping

    tool = HeatRiskAnalysis(
        raster_dir=Path("data/landsat"),
        output_dir=Path("output/county"),
        boundary_path=Path("data/county.gpkg"),
        config=HeatRiskConfig(bands=BandMapping(red=1, nir=2, swir1=3, tir=4)),
    )
    tool.run()
    print(tool.result.threshold)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import geopandas as gpd
import pandas as pd

from shared.python.base_tool import GeoTool
from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators
from urban_heat_risk.aligner import GridAligner
from urban_heat_risk.analysis import FieldSummary, correlation_matrix, summarize, zonal_statistics
from urban_heat_risk.clipper import VECTOR_EXTENSIONS, Boundary, BoundaryClipper
from urban_heat_risk.config import HeatRiskConfig
from urban_heat_risk.demographics import (
    GEOID_COLUMN,
    CensusClient,
    join_demographics,
    load_block_groups,
    select_within,
)
from urban_heat_risk.export import (
    write_block_groups,
    write_correlation,
    write_grids,
    write_summary,
)
from urban_heat_risk.grid import GridStack
from urban_heat_risk.hotspots import ClassificationGrid, HotspotClassifier, Threshold
from urban_heat_risk.indices import IndexEngine, IndexField
from urban_heat_risk.loader import RasterLoader

logger = logging.getLogger("urbanheat.pipeline")

# Fields written as GeoTIFFs; RADIANCE / BT_KELVIN stay in memory.
OUTPUT_FIELDS: tuple[str, ...] = ("NDVI", "NDBI", "LST", "UHRI")


@dataclass
class HeatRiskResult:
    """Everything one run produced.

    Attributes:
        stack: Aligned (and clipped) band stack.
        fields: Derived index fields keyed by name.
        hotspots: UHRI hotspot classification.
        threshold: The UHRI percentile threshold.
        correlation: Pearson matrix between NDVI, NDBI and LST.
        summaries: Per-field statistics.
        block_groups: Block groups with census attributes and zonal
            statistics, when a block-group layer was supplied.
        outputs: Written files keyed by product name.
    """

    stack: GridStack
    fields: dict[str, IndexField]
    hotspots: ClassificationGrid
    threshold: Threshold
    correlation: pd.DataFrame
    summaries: list[FieldSummary]
    block_groups: gpd.GeoDataFrame | None = None
    outputs: dict[str, Path] = field(default_factory=dict)


class HeatRiskAnalysis(GeoTool):
    """Compute the urban heat risk index and its hotspots for one county.

    Args:
        raster_dir: Directory holding one single-band GeoTIFF per band.
        output_dir: Directory for all products (created if absent).
        boundary_path: County boundary vector file.  ``None`` skips clipping.
        config: Pipeline configuration.
        block_groups_path: Block-group polygons with a ``GEOID`` column.
            ``None`` skips the demographic join.
        census_client: Client used when ``config.census`` is set; built
            from ``config.census.api_key`` when omitted.
        verbose: Enable DEBUG-level logging.
    """

    def __init__(
        self,
        raster_dir: Path,
        output_dir: Path,
        boundary_path: Path | None = None,
        config: HeatRiskConfig | None = None,
        *,
        block_groups_path: Path | None = None,
        census_client: CensusClient | None = None,
        verbose: bool = False,
    ) -> None:
        super().__init__(Path(raster_dir), Path(output_dir), verbose=verbose)
        self.config: HeatRiskConfig = config or HeatRiskConfig()
        self.boundary_path: Path | None = Path(boundary_path) if boundary_path else None
        self.block_groups_path: Path | None = (
            Path(block_groups_path) if block_groups_path else None
        )
        self.census_client = census_client
        self._result: HeatRiskResult | None = None

    # ------------------------------------------------------------------
    # GeoTool abstract method implementations
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        """Check paths and configuration before any raster is read.

        Raises:
            InputValidationError: If an input is missing, has the wrong
                extension, or the census join has no geometries to attach to.
            OutputWriteError: If the output directory cannot be created.
        """
        Validators.assert_directory_exists(self.input_path)
        if self.boundary_path is not None:
            Validators.assert_file_exists(self.boundary_path)
            Validators.assert_supported_extension(self.boundary_path, VECTOR_EXTENSIONS)
        if self.block_groups_path is not None:
            Validators.assert_file_exists(self.block_groups_path)
            Validators.assert_supported_extension(self.block_groups_path, VECTOR_EXTENSIONS)
        if self.config.census is not None:
            if self.block_groups_path is None:
                raise InputValidationError(
                    "Census attributes need block-group geometries; "
                    "provide block_groups_path."
                )
            if not (self.config.census.state and self.config.census.county):
                raise InputValidationError(
                    "Census settings need both a state and a county FIPS code."
                )
        Validators.assert_output_dir_writable(self.output_path)
        logger.debug("Inputs validated for %s", self.input_path)

    def process(self) -> None:
        """Run every stage and store the :class:`HeatRiskResult`."""
        cfg = self.config

        with self._stage("load", self.input_path):
            grids = RasterLoader().load_directory(self.input_path, cfg.raster_pattern)

        with self._stage("align", [g.name for g in grids]):
            stack = GridAligner(cfg.alignment).align(grids)

        boundary: Boundary | None = None
        if self.boundary_path is not None:
            with self._stage("clip", self.boundary_path):
                boundary = Boundary.from_file(self.boundary_path)
                stack = BoundaryClipper(mask_outside=cfg.mask_to_polygon).clip(stack, boundary)

        with self._stage("indices", stack.names):
            fields = IndexEngine(cfg.bands, cfg.calibration).compute_all(stack)

        with self._stage("hotspots", "UHRI"):
            classifier = HotspotClassifier(cfg.hotspot_percentile)
            threshold = classifier.threshold(fields["UHRI"])
            hotspots = classifier.classify(fields["UHRI"], threshold)

        with self._stage("correlation", "NDVI/NDBI/LST"):
            correlation = correlation_matrix(fields)
            summaries = [summarize(fields[name]) for name in OUTPUT_FIELDS]
            for summary in summaries:
                logger.info("  %s", summary)

        block_groups: gpd.GeoDataFrame | None = None
        if self.block_groups_path is not None:
            with self._stage("demographics", self.block_groups_path):
                block_groups = self._join_block_groups(
                    self.block_groups_path, fields["UHRI"], hotspots, boundary
                )

        self._result = HeatRiskResult(
            stack=stack,
            fields=fields,
            hotspots=hotspots,
            threshold=threshold,
            correlation=correlation,
            summaries=summaries,
            block_groups=block_groups,
        )

        with self._stage("export", self.output_path):
            self._result.outputs = self._write_outputs(self._result)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _join_block_groups(
        self,
        path: Path,
        uhri: IndexField,
        hotspots: ClassificationGrid,
        boundary: Boundary | None,
    ) -> gpd.GeoDataFrame:
        """Block groups + census attributes + UHRI / hotspot zonal stats."""
        gdf = load_block_groups(path)

        census = self.config.census
        if census is not None:
            client = self.census_client or CensusClient(api_key=census.api_key)
            table = client.fetch_acs(census.year, census.state, census.county, census.variables)
            gdf = join_demographics(gdf, table)

        if boundary is not None:
            gdf = select_within(gdf, boundary)

        for grid in (uhri, hotspots):
            stats = zonal_statistics(grid, gdf, GEOID_COLUMN)
            gdf = gdf.merge(stats, on=GEOID_COLUMN, how="left")
        return gdf

    def _write_outputs(self, result: HeatRiskResult) -> dict[str, Path]:
        out = self.output_path
        outputs = write_grids(
            [result.fields[name] for name in OUTPUT_FIELDS] + [result.hotspots], out
        )
        outputs["correlation"] = write_correlation(result.correlation, out / "correlation.csv")
        outputs["summary"] = write_summary(
            result.summaries,
            result.threshold,
            out / "summary.json",
            extra={
                "stack": {
                    "bands": result.stack.names,
                    "crs": str(result.stack.crs),
                    "resolution": list(result.stack.resolution),
                    "shape": list(result.stack.shape),
                },
                "hotspot_cells": result.hotspots.hotspot_count,
                "config": self.config.to_dict(),
            },
        )
        if result.block_groups is not None:
            outputs["block_groups"] = write_block_groups(
                result.block_groups, out / "block_groups.gpkg"
            )
        if self.config.write_plots:
            # Imported here so runs without plots never load matplotlib.
            from urban_heat_risk import viz  # noqa: PLC0415

            outputs["index_panel"] = viz.plot_index_panel(result.fields, out / "indices.png")
            outputs["hotspot_map"] = viz.plot_hotspots(
                result.fields["UHRI"], result.hotspots, out / "hotspots.png"
            )
            outputs["correlation_plot"] = viz.plot_correlation(
                result.correlation, out / "correlation.png"
            )
        for name, path in outputs.items():
            logger.info("  %-16s → %s", name, path.name)
        return outputs

    @property
    def result(self) -> HeatRiskResult | None:
        """The :class:`HeatRiskResult` of the last run, or ``None``."""
        return self._result
