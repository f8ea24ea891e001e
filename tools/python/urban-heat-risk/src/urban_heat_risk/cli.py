"""
Urban Heat Risk — CLI Entry Point
==================================
Exposes :class:`~urban_heat_risk.pipeline.HeatRiskAnalysis` as the
``urban-heat`` command.

Usage::

    urban-heat data/landsat \\
        --boundary data/county.gpkg \\
        --output-dir output/county \\
        --red 4 --nir 5 --swir1 6 --tir 10 \\
        --percentile 90

Run ``urban-heat --help`` for the full option list.
"""

from __future__ import annotations

import dataclasses
import logging
import sys
from pathlib import Path

import click

from shared.python.exceptions import UrbanHeatError
from urban_heat_risk.config import RESAMPLING_METHODS, CensusConfig, HeatRiskConfig
from urban_heat_risk.pipeline import HeatRiskAnalysis


def _build_config(
    config_path: str | None,
    percentile: float | None,
    resampling: str | None,
    target_crs: str | None,
    bands: dict[str, int | None],
    pattern: str | None,
    mask_polygon: bool | None,
    plots: bool | None,
    census: dict[str, object],
) -> HeatRiskConfig:
    """Start from the JSON config (or defaults) and apply CLI overrides."""
    cfg = HeatRiskConfig.from_json(Path(config_path)) if config_path else HeatRiskConfig()

    band_overrides = {k: v for k, v in bands.items() if v is not None}
    if band_overrides:
        cfg = dataclasses.replace(cfg, bands=dataclasses.replace(cfg.bands, **band_overrides))

    align_overrides = {
        k: v for k, v in {"resampling": resampling, "target_crs": target_crs}.items() if v
    }
    if align_overrides:
        cfg = dataclasses.replace(
            cfg, alignment=dataclasses.replace(cfg.alignment, **align_overrides)
        )

    overrides: dict[str, object] = {}
    if percentile is not None:
        overrides["hotspot_percentile"] = percentile
    if pattern:
        overrides["raster_pattern"] = pattern
    if mask_polygon is not None:
        overrides["mask_to_polygon"] = mask_polygon
    if plots is not None:
        overrides["write_plots"] = plots

    census_overrides = {k: v for k, v in census.items() if v not in (None, "")}
    if census_overrides.keys() - {"api_key"}:
        base = cfg.census or CensusConfig()
        overrides["census"] = dataclasses.replace(base, **census_overrides)
    elif cfg.census is not None and "api_key" in census_overrides:
        overrides["census"] = dataclasses.replace(cfg.census, api_key=census_overrides["api_key"])

    return dataclasses.replace(cfg, **overrides) if overrides else cfg


@click.command("urban-heat")
@click.argument("raster_dir", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--boundary",
    "boundary_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="County boundary vector file (.shp, .gpkg, .geojson).",
)
@click.option(
    "--output-dir",
    "output_dir",
    default="output",
    show_default=True,
    help="Directory for output rasters, tables and plots.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="JSON configuration file; command-line options override it.",
)
@click.option("--pattern", default=None, help="Glob for band files (default *.tif).")
@click.option("--red", type=int, default=None, help="Stack position of the red band (1-based).")
@click.option("--nir", type=int, default=None, help="Stack position of the NIR band.")
@click.option("--swir1", type=int, default=None, help="Stack position of the SWIR1 band.")
@click.option("--tir", type=int, default=None, help="Stack position of the thermal band.")
@click.option(
    "--percentile",
    type=float,
    default=None,
    help="UHRI percentile above which a cell is a hotspot (default 90).",
)
@click.option(
    "--resampling",
    type=click.Choice(RESAMPLING_METHODS),
    default=None,
    help="Resampling method used during alignment (default bilinear).",
)
@click.option(
    "--target-crs",
    default=None,
    help="Align to this CRS instead of the first band's, e.g. EPSG:32615.",
)
@click.option(
    "--mask-polygon/--no-mask-polygon",
    default=None,
    help="Blank cells outside the boundary polygon after the rectangular clip.",
)
@click.option(
    "--block-groups",
    "block_groups_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Census block-group polygons with a GEOID column.",
)
@click.option("--state", default=None, help="State FIPS code for census attributes.")
@click.option("--county", default=None, help="County FIPS code for census attributes.")
@click.option("--year", type=int, default=None, help="ACS year for census attributes.")
@click.option(
    "--census-key",
    envvar="CENSUS_API_KEY",
    default=None,
    help="Census API key (or set CENSUS_API_KEY).",
)
@click.option("--plots/--no-plots", default=None, help="Write PNG quicklooks.")
@click.option("--verbose", is_flag=True, default=False, help="Enable DEBUG-level logging.")
def cli(
    raster_dir: str,
    boundary_path: str | None,
    output_dir: str,
    config_path: str | None,
    pattern: str | None,
    red: int | None,
    nir: int | None,
    swir1: int | None,
    tir: int | None,
    percentile: float | None,
    resampling: str | None,
    target_crs: str | None,
    mask_polygon: bool | None,
    block_groups_path: str | None,
    state: str | None,
    county: str | None,
    year: int | None,
    census_key: str | None,
    plots: bool | None,
    verbose: bool,
) -> None:
    """Compute NDVI, NDBI, LST and the urban heat risk index for RASTER_DIR.

    RASTER_DIR holds one single-band GeoTIFF per spectral band.  Files are
    stacked in natural name order, so --red/--nir/--swir1/--tir refer to
    positions in that order.

    \b
    Examples:
        # Full Landsat 8 scene, county boundary, 95th percentile hotspots
        urban-heat LC08_scene/ --boundary county.gpkg --percentile 95

        # Four pre-selected bands (B4, B5, B6, B10) plus census join
        urban-heat bands/ --red 1 --nir 2 --swir1 3 --tir 4 \\
                   --block-groups bg.shp --state 29 --county 019
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        config = _build_config(
            config_path,
            percentile,
            resampling,
            target_crs,
            {"red": red, "nir": nir, "swir1": swir1, "tir": tir},
            pattern,
            mask_polygon,
            plots,
            {"state": state, "county": county, "year": year, "api_key": census_key},
        )
        tool = HeatRiskAnalysis(
            raster_dir=Path(raster_dir),
            output_dir=Path(output_dir),
            boundary_path=Path(boundary_path) if boundary_path else None,
            config=config,
            block_groups_path=Path(block_groups_path) if block_groups_path else None,
            verbose=verbose,
        )
        tool.run()
    except UrbanHeatError as exc:
        stage = f" [{exc.stage}]" if exc.stage else ""
        click.echo(f"Error{stage}: {exc}", err=True)
        sys.exit(1)

    result = tool.result
    if result is None:
        return
    click.echo(f"\nHotspot threshold: {result.threshold}")
    click.echo(f"Hotspot cells: {result.hotspots.hotspot_count:,}")
    click.echo("\nCorrelation (Pearson):")
    click.echo(result.correlation.round(3).to_string())
    click.echo(f"\n{len(result.outputs)} product(s) written to: {output_dir}")


if __name__ == "__main__":
    cli()
