"""
Urban Heat Risk — Shared Python Package
========================================
Re-exports the tool base class, exception hierarchy, and validators so
the pipeline modules import from a single location::

    from shared.python import GeoTool, Validators
    from shared.python.exceptions import CRSMismatchError
"""

from shared.python.base_tool import GeoTool
from shared.python.exceptions import (
    BandIndexError,
    ColumnNotFoundError,
    CRSError,
    CRSMismatchError,
    DemographicsError,
    EmptyInputError,
    EmptyIntersectionError,
    FormatError,
    InputValidationError,
    OutputWriteError,
    RasterError,
    RasterReadError,
    SpectralIndexError,
    UrbanHeatError,
)
from shared.python.validators import Validators

__all__ = [
    "GeoTool",
    "Validators",
    "UrbanHeatError",
    "InputValidationError",
    "ColumnNotFoundError",
    "CRSError",
    "CRSMismatchError",
    "RasterError",
    "RasterReadError",
    "FormatError",
    "BandIndexError",
    "EmptyIntersectionError",
    "EmptyInputError",
    "SpectralIndexError",
    "DemographicsError",
    "OutputWriteError",
]
