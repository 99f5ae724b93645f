"""
geovectorize — Shared Python Package
=====================================
Re-exports the shared base class, logging helpers, exception hierarchy,
and validator utilities so individual tools can import from a single
location::

    from shared.python import GeoTool, Validators
    from shared.python.exceptions import CRSError
"""

from shared.python.base_tool import LIFECYCLE, GeoTool, configure_logging, lifecycle
from shared.python.exceptions import (
    BandIndexError,
    CRSError,
    GeometryError,
    GeoVectorizeError,
    InputValidationError,
    OutputWriteError,
    RasterError,
    TransformError,
)
from shared.python.validators import Validators

__all__ = [
    "GeoTool",
    "Validators",
    "LIFECYCLE",
    "configure_logging",
    "lifecycle",
    "GeoVectorizeError",
    "InputValidationError",
    "BandIndexError",
    "CRSError",
    "RasterError",
    "TransformError",
    "GeometryError",
    "OutputWriteError",
]
