"""
Raster Vectorizer — Grid-to-Geometry Mapper
============================================
Turns selected raster cells into world-space polygons.

Every qualifying cell ``(col, row)`` becomes a closed quadrilateral whose
corners are the grid-to-world transform applied to ``(col, row)``,
``(col+1, row)``, ``(col+1, row+1)`` and ``(col, row+1)``.  Under a
north-up transform that is an axis-aligned square; rotation and shear
produce the matching parallelogram.

Classes:
    CellSelector    Decides which cells qualify and what value they carry.

Functions:
    check_transform     Reject transforms that cannot map cells.
    cell_polygon        Polygon for one cell.
    map_cells           Lazy ``(value, polygon)`` stream, one row at a time.
    group_cells         Value → polygons map, optionally built by row bands
                        in a thread pool.
    extract_regions     Contiguous-region alternative backed by
                        :func:`rasterio.features.shapes`.

Usage::

    from raster_vectorizer.geometry import CellSelector, group_cells

    selector = CellSelector.for_band(grid, band=0, targets=[55.0])
    groups = group_cells(grid, 0, selector, max_workers=4)
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import shapely
from rasterio.features import shapes
from rasterio.transform import Affine
from shapely.geometry import Polygon, shape

from raster_vectorizer.grid import RasterGrid
from shared.python.exceptions import TransformError

logger = logging.getLogger("geovectorize.raster_vectorizer.geometry")

ValueGroups = dict[float, list[Polygon]]

DEFAULT_TOLERANCE = 1e-6


# ---------------------------------------------------------------------------
# Cell selection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CellSelector:
    """Cell qualification rule.

    A cell qualifies when its sample is not NaN, differs exactly from every
    no-data marker, and — if *targets* is set — lies within *tolerance*
    of one of the targets.  The tolerance absorbs float round-trip error
    in rasters written by an earlier reclassification; pass ``0.0`` for
    exact matching on integer class rasters.

    Attributes:
        nodata: No-data markers compared with exact equality.
        targets: Values to keep, or ``None`` to keep every valid value.
        tolerance: Absolute tolerance for target matching.
    """

    nodata: tuple[float, ...] = ()
    targets: tuple[float, ...] | None = None
    tolerance: float = DEFAULT_TOLERANCE

    @classmethod
    def for_band(
        cls,
        grid: RasterGrid,
        band: int,
        targets: Sequence[float] | None = None,
        tolerance: float = DEFAULT_TOLERANCE,
    ) -> CellSelector:
        """Selector using the no-data markers of *band* in *grid*."""
        return cls(
            nodata=grid.nodata[band],
            targets=None if targets is None else tuple(float(t) for t in targets),
            tolerance=tolerance,
        )

    def select(
        self, values: npt.ArrayLike
    ) -> tuple[npt.NDArray[np.bool_], npt.NDArray[np.float64]]:
        """Return ``(mask, keyed)`` for an array of samples.

        ``mask`` flags qualifying cells.  ``keyed`` holds the value each
        cell is grouped under: the matched target when targets are set,
        otherwise the sample itself.
        """
        values = np.asarray(values, dtype=np.float64)
        mask = ~np.isnan(values)
        for marker in self.nodata:
            if not math.isnan(marker):
                mask &= values != marker

        if self.targets is None:
            return mask, values

        targets = np.asarray(self.targets, dtype=np.float64)
        close = np.abs(values[..., np.newaxis] - targets) <= self.tolerance
        keyed = targets[np.argmax(close, axis=-1)]
        return mask & close.any(axis=-1), keyed


# ---------------------------------------------------------------------------
# Cell geometry
# ---------------------------------------------------------------------------


def check_transform(transform: Affine) -> None:
    """Raise :class:`TransformError` if *transform* cannot map grid cells.

    Rejects non-finite coefficients and zero-determinant (non-invertible)
    transforms, both of which collapse or poison every cell polygon.
    """
    if not all(math.isfinite(c) for c in transform[:6]):
        raise TransformError(transform, "transform has non-finite coefficients")
    if transform.determinant == 0:
        raise TransformError(transform, "transform is not invertible")


def cell_polygon(transform: Affine, col: int, row: int) -> Polygon:
    """World-space polygon of the cell at grid indices (*col*, *row*).

    Returns:
        A polygon with five coordinates: four corners in the order
        ``(col,row)``, ``(col+1,row)``, ``(col+1,row+1)``, ``(col,row+1)``
        followed by the first corner again.

    Raises:
        TransformError: If *transform* cannot map the corners.
    """
    check_transform(transform)
    corners = [
        transform * (col, row),
        transform * (col + 1, row),
        transform * (col + 1, row + 1),
        transform * (col, row + 1),
    ]
    if not all(math.isfinite(v) for corner in corners for v in corner):
        raise TransformError(transform, f"cell ({col}, {row}) maps outside finite space")
    return Polygon(corners + [corners[0]])


def _row_polygons(
    transform: Affine, row: int, cols: npt.NDArray[np.intp]
) -> npt.NDArray[np.object_]:
    """Vectorised :func:`cell_polygon` for several columns of one row."""
    a, b, c, d, e, f = transform[:6]
    grid_x = np.stack([cols, cols + 1, cols + 1, cols, cols], axis=1).astype(np.float64)
    grid_y = np.array([row, row, row + 1, row + 1, row], dtype=np.float64)
    world = np.stack([a * grid_x + b * grid_y + c, d * grid_x + e * grid_y + f], axis=-1)
    return shapely.polygons(world)


def _iter_rows(
    values: npt.NDArray[np.float64],
    transform: Affine,
    selector: CellSelector,
    rows: Iterable[int],
) -> Iterator[tuple[float, Polygon]]:
    for row in rows:
        mask, keyed = selector.select(values[row])
        cols = np.flatnonzero(mask)
        if cols.size == 0:
            continue
        polygons = _row_polygons(transform, int(row), cols)
        for value, polygon in zip(keyed[cols], polygons):
            yield float(value), polygon


def map_cells(
    grid: RasterGrid, band: int, selector: CellSelector
) -> Iterator[tuple[float, Polygon]]:
    """Stream ``(value, polygon)`` for every qualifying cell of *band*.

    The transform is checked up front, so a :class:`TransformError` is
    raised by this call rather than midway through iteration.  Cells are
    visited row by row, left to right; calling again restarts the scan.

    Raises:
        BandIndexError: If *band* does not exist.
        TransformError: If the grid transform cannot map cells.
    """
    values = grid.band_array(band)
    check_transform(grid.transform)
    return _iter_rows(values, grid.transform, selector, range(grid.height))


def _collect(pairs: Iterable[tuple[float, Polygon]]) -> ValueGroups:
    groups: ValueGroups = {}
    for value, polygon in pairs:
        groups.setdefault(value, []).append(polygon)
    return groups


def group_cells(
    grid: RasterGrid,
    band: int,
    selector: CellSelector,
    *,
    max_workers: int = 1,
) -> ValueGroups:
    """Group the polygons of qualifying cells by value.

    With ``max_workers > 1`` the rows are split into contiguous bands, each
    worker builds its own value map, and the maps are concatenated in band
    order.  The result is identical to a single sequential scan,
    including the first-encountered order of the keys.

    Args:
        grid: Source grid.
        band: 0-based band index.
        selector: Cell qualification rule.
        max_workers: Thread count; ``1`` scans sequentially.

    Returns:
        Mapping of value → list of cell polygons, in first-encountered order.
    """
    if max_workers <= 1 or grid.height < 2:
        return _collect(map_cells(grid, band, selector))

    values = grid.band_array(band)
    check_transform(grid.transform)
    row_bands = [rows for rows in np.array_split(np.arange(grid.height), max_workers) if rows.size]
    logger.debug("Mapping %d row band(s) on %d worker(s)", len(row_bands), max_workers)

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [
            pool.submit(_collect, _iter_rows(values, grid.transform, selector, rows))
            for rows in row_bands
        ]
        partials = [future.result() for future in futures]

    merged: ValueGroups = {}
    for partial in partials:
        for value, polygons in partial.items():
            merged.setdefault(value, []).extend(polygons)
    return merged


# ---------------------------------------------------------------------------
# Contiguous-region alternative
# ---------------------------------------------------------------------------


def extract_regions(
    grid: RasterGrid,
    band: int,
    selector: CellSelector,
    *,
    connectivity: int = 4,
) -> Iterator[tuple[float, Polygon]]:
    """Stream ``(value, polygon)`` per connected region instead of per cell.

    Uses GDAL's polygonize through :func:`rasterio.features.shapes` on a
    label raster derived from *selector*, so each yielded polygon already
    covers a whole contiguous same-value region.  Regions come out grouped
    by value in first-encountered order.  The stream feeds
    :func:`~raster_vectorizer.dissolve.dissolve` exactly like
    :func:`map_cells`.

    Raises:
        TransformError: If the grid transform cannot map cells.
    """
    values = grid.band_array(band)
    check_transform(grid.transform)
    mask, keyed = selector.select(values)
    if not mask.any():
        return iter(())

    # labels numbered in first-encountered (row-major) order
    selected = keyed[mask]
    ordered, first_seen = np.unique(selected, return_index=True)
    order = np.argsort(first_seen)
    rank = np.empty_like(order)
    rank[order] = np.arange(order.size)
    labels = np.zeros(values.shape, dtype=np.int32)
    labels[mask] = rank[np.searchsorted(ordered, selected)]
    label_values = ordered[order]

    # polygonize emits regions in scanline completion order; regroup by label
    regions = sorted(
        ((int(label), shape(geom))
         for geom, label in shapes(labels, mask=mask, connectivity=connectivity, transform=grid.transform)),
        key=lambda item: item[0],
    )
    return ((float(label_values[label]), polygon) for label, polygon in regions)
