"""
geovectorize — Custom Exception Hierarchy
==========================================
All geovectorize tools raise exceptions from this module so callers can
catch them at the right level of granularity.

Hierarchy::

    GeoVectorizeError                    ← catch-all base
    ├── InputValidationError             ← bad files, break tables, value lists
    │   └── BandIndexError               ← requested band does not exist
    ├── CRSError                         ← invalid / unknown CRS string
    ├── RasterError                      ← rasterio / numpy raster issues
    │   └── TransformError               ← grid-to-world mapping failure
    ├── GeometryError                    ← non-polygonal dissolve result
    └── OutputWriteError                 ← cannot write to output path

Usage::

    from shared.python.exceptions import CRSError

    raise CRSError("EPSG:99999")
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class GeoVectorizeError(Exception):
    """Base exception for all geovectorize tools.

    Catch this to handle any tool-specific error without caring about
    the exact subtype.

    Args:
        message: Human-readable description of the error.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InputValidationError(GeoVectorizeError):
    """Raised when a tool's inputs fail pre-processing validation.

    Covers malformed break tables, empty or invalid cell value lists,
    missing input files and unsupported extensions.  Always raised before
    any output is touched and never worth retrying.
    """


class BandIndexError(InputValidationError):
    """Raised when a requested raster band index does not exist.

    Args:
        band_index: The 0-based band number that was requested.
        total_bands: Total number of bands in the raster, or ``None`` when
                     the raster has not been opened yet (negative index).

    Example::

        raise BandIndexError(band_index=5, total_bands=4)
    """

    def __init__(self, band_index: int, total_bands: int | None = None) -> None:
        if total_bands is None:
            message = f"Band index must be zero or greater, got {band_index}."
        else:
            message = (
                f"Band {band_index} does not exist. "
                f"This raster has {total_bands} band(s) (0-indexed)."
            )
        super().__init__(message)
        self.band_index: int = band_index
        self.total_bands: int | None = total_bands


# ---------------------------------------------------------------------------
# CRS
# ---------------------------------------------------------------------------


class CRSError(GeoVectorizeError):
    """Raised when a coordinate reference system string cannot be parsed
    or matched to a known CRS.

    Args:
        crs_string: The raw CRS string that caused the error
                    (e.g. ``"EPSG:99999"``).
    """

    def __init__(self, crs_string: str) -> None:
        super().__init__(
            f"Invalid or unrecognised CRS: '{crs_string}'. "
            "Use an EPSG code (e.g. 'EPSG:2056') or a valid WKT/PROJ string."
        )
        self.crs_string: str = crs_string


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------


class RasterError(GeoVectorizeError):
    """Raised for general raster processing failures (rasterio / numpy)."""


class TransformError(RasterError):
    """Raised when the grid-to-world transform cannot map cell coordinates.

    A non-finite coefficient or a zero determinant makes every cell
    polygon undefined, so the whole mapping stage is aborted.

    Args:
        transform: The offending transform (its ``repr`` ends up in the
                   message).
        reason: Short explanation of why the mapping failed.
    """

    def __init__(self, transform: object, reason: str) -> None:
        super().__init__(f"Cannot map grid cells through {transform!r}: {reason}")
        self.transform: object = transform
        self.reason: str = reason


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


class GeometryError(GeoVectorizeError):
    """Raised when a dissolve produced a geometry that is not polygonal.

    Polygonal cell inputs can only union to polygonal output, so this
    signals a bug rather than bad user input.

    Args:
        geom_type: Geometry type name of the offending result.
    """

    def __init__(self, geom_type: str) -> None:
        super().__init__(f"Vectorization produced a non-polygon geometry: {geom_type}")
        self.geom_type: str = geom_type


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class OutputWriteError(GeoVectorizeError):
    """Raised when the tool cannot write its output to disk.

    Args:
        output_path: String representation of the path that failed.
        reason: Underlying OS or library error message.

    Example::

        raise OutputWriteError("/read-only/dir/out.gpkg", "Permission denied")
    """

    def __init__(self, output_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to write output to '{output_path}': {reason}"
        )
        self.output_path: str = output_path
        self.reason: str = reason
