"""
Raster Vectorizer — CRS Resolver & Stamper
===========================================
Makes sure a raster carries a real-world coordinate reference system
before it is classified or vectorized.

Functions:
    decode_crs          Resolve a user CRS string into a :class:`pyproj.CRS`.
    lookup_epsg         EPSG code of a CRS, or ``None``.
    is_placeholder_crs  ``True`` for a missing or pixel-only (engineering) CRS.
    ensure_crs          Attach a default CRS to a grid that lacks one.

Usage::

    from raster_vectorizer.crs import decode_crs, ensure_crs

    stamped = ensure_crs(grid, decode_crs("EPSG:2056"))
"""

from __future__ import annotations

import logging
import math

from pyproj import CRS
from pyproj.exceptions import CRSError as PyprojCRSError
from rasterio.transform import from_bounds

from raster_vectorizer.grid import RasterGrid
from shared.python.exceptions import CRSError

logger = logging.getLogger("geovectorize.raster_vectorizer.crs")

# WKT keywords of engineering ("local", pixel-only) reference systems.
_ENGINEERING_WKT_PREFIXES = ("LOCAL_CS", "ENGCRS", "ENGINEERINGCRS")


def decode_crs(code: str | CRS) -> CRS:
    """Resolve *code* (``"EPSG:2056"``, WKT, PROJ string) into a CRS.

    Raises:
        CRSError: If pyproj does not recognise *code*.
    """
    if isinstance(code, CRS):
        return code
    try:
        return CRS.from_user_input(code)
    except PyprojCRSError as exc:
        raise CRSError(str(code)) from exc


def lookup_epsg(crs: CRS | None) -> int | None:
    """Return the EPSG identifier of *crs*, or ``None`` if it has none."""
    if crs is None:
        return None
    return crs.to_epsg()


def is_placeholder_crs(crs: CRS | None) -> bool:
    """Whether *crs* is absent or an engineering CRS with no real-world meaning."""
    if crs is None:
        return True
    if "engineering" in crs.type_name.lower():
        return True
    return crs.to_wkt().lstrip().upper().startswith(_ENGINEERING_WKT_PREFIXES)


def ensure_crs(grid: RasterGrid, default_crs: CRS | str) -> RasterGrid:
    """Return *grid* with a real-world CRS.

    A grid that already carries a non-placeholder CRS is returned as is,
    which makes repeated calls no-ops.  Otherwise a new grid with
    *default_crs* is built: its world extent is reused verbatim when it
    is well defined (finite, positive width and height); if not, an
    extent of one unit per pixel anchored at the origin replaces the
    transform.  No reprojection ever happens.

    Args:
        grid: Grid to inspect.
        default_crs: CRS (or CRS string) to attach when *grid* has none.

    Returns:
        *grid* itself or a stamped copy.

    Raises:
        CRSError: If *default_crs* is a string pyproj cannot resolve.
    """
    if not is_placeholder_crs(grid.crs):
        return grid

    crs = decode_crs(default_crs)
    minx, miny, maxx, maxy = grid.bounds
    extent_ok = (
        all(math.isfinite(v) for v in (minx, miny, maxx, maxy))
        and maxx - minx > 0
        and maxy - miny > 0
    )
    if extent_ok:
        logger.info("Assigning %s to %s, keeping extent %s", crs.name, grid.name or "raster", grid.bounds)
        return grid.with_crs(crs)

    transform = from_bounds(0, 0, grid.width, grid.height, grid.width, grid.height)
    logger.info(
        "Assigning %s to %s with a pixel extent of %dx%d",
        crs.name, grid.name or "raster", grid.width, grid.height,
    )
    return grid.with_crs(crs, transform)
