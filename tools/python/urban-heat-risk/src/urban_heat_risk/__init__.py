"""
Urban Heat Risk
===============
Align Landsat band rasters, clip them to a county, derive NDVI, NDBI,
LST and the urban heat risk index (UHRI), and flag UHRI hotspots.
"""

from urban_heat_risk.aligner import GridAligner
from urban_heat_risk.clipper import Boundary, BoundaryClipper
from urban_heat_risk.config import (
    AlignmentConfig,
    BandMapping,
    CensusConfig,
    HeatRiskConfig,
    SensorCalibration,
)
from urban_heat_risk.grid import Extent, Grid, GridStack
from urban_heat_risk.hotspots import ClassificationGrid, HotspotClassifier, Threshold
from urban_heat_risk.indices import IndexEngine, IndexField, IndexStrategy
from urban_heat_risk.loader import RasterLoader
from urban_heat_risk.pipeline import HeatRiskAnalysis, HeatRiskResult

__version__ = "1.0.0"

__all__ = [
    "HeatRiskAnalysis",
    "HeatRiskResult",
    "HeatRiskConfig",
    "BandMapping",
    "SensorCalibration",
    "AlignmentConfig",
    "CensusConfig",
    "Extent",
    "Grid",
    "GridStack",
    "RasterLoader",
    "GridAligner",
    "Boundary",
    "BoundaryClipper",
    "IndexEngine",
    "IndexField",
    "IndexStrategy",
    "HotspotClassifier",
    "ClassificationGrid",
    "Threshold",
]
