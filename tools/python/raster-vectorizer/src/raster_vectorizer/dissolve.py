"""
Raster Vectorizer — Value-Grouped Dissolve Engine
==================================================
Unions the cell polygons of each value into one multipolygon feature and
aggregates layer metadata.

Classes:
    DissolvedFeature    One multipolygon + its value attribute.
    LayerMetadata       Aggregate bounds, CRS and SRID for the output layer.

Functions:
    normalize_to_multipolygon   Coerce a union result into a MultiPolygon.
    dissolve                    One feature per non-empty value group.
    union_bounds                Envelope of several bounds tuples.

Usage::

    from raster_vectorizer.dissolve import LayerMetadata, dissolve

    features = dissolve(groups)
    metadata = LayerMetadata.from_features(features, grid.crs)
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass

import shapely
from pyproj import CRS
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from raster_vectorizer.crs import lookup_epsg
from raster_vectorizer.grid import Bounds
from shared.python.exceptions import GeometryError

logger = logging.getLogger("geovectorize.raster_vectorizer.dissolve")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DissolvedFeature:
    """A dissolved value group ready for the vector sink.

    Attributes:
        geometry: Union of all cells of the group, always a MultiPolygon.
        value: Raster value shared by every cell of the group.
        bounds: ``(minx, miny, maxx, maxy)`` of *geometry*, or ``None``
                when the geometry is empty.
    """

    geometry: MultiPolygon
    value: float
    bounds: Bounds | None = None

    @property
    def area(self) -> float:
        """Planar area of the geometry in CRS units."""
        return float(self.geometry.area)

    def __str__(self) -> str:
        return (
            f"value={self.value:g}: {len(self.geometry.geoms)} part(s), "
            f"area={self.area:,.2f}"
        )


@dataclass(frozen=True)
class LayerMetadata:
    """Layer-level metadata computed once all features exist.

    Attributes:
        bounds: Union of every feature envelope; the coverage extent or
                ``None`` without features.
        crs: CRS of the features.
        srid: EPSG identifier resolved from *crs*, if any.
    """

    bounds: Bounds | None
    crs: CRS | None
    srid: int | None = None

    @classmethod
    def from_features(
        cls,
        features: Sequence[DissolvedFeature],
        crs: CRS | None,
        coverage: Bounds | None = None,
    ) -> LayerMetadata:
        """Aggregate *features* and resolve the SRID of *crs*.

        Without any feature bounds the layer extent falls back to
        *coverage* (the source raster extent) when it is finite.
        """
        bounds = union_bounds(f.bounds for f in features if f.bounds is not None)
        if bounds is None and coverage is not None and all(math.isfinite(v) for v in coverage):
            bounds = tuple(float(v) for v in coverage)
        return cls(bounds=bounds, crs=crs, srid=lookup_epsg(crs))


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------


def _polygon_parts(geometry: BaseGeometry) -> Iterator[Polygon]:
    """Polygons found anywhere inside *geometry*; other members are skipped."""
    if geometry.is_empty:
        return
    if isinstance(geometry, Polygon):
        yield geometry
    elif isinstance(geometry, MultiPolygon):
        yield from geometry.geoms
    elif isinstance(geometry, GeometryCollection):
        for part in geometry.geoms:
            yield from _polygon_parts(part)
    else:
        logger.debug("Dropping %s member from geometry collection", geometry.geom_type)


def normalize_to_multipolygon(geometry: BaseGeometry | None) -> MultiPolygon:
    """Coerce a union result into a :class:`~shapely.geometry.MultiPolygon`.

    - ``None`` or empty → empty MultiPolygon
    - Polygon → one-part MultiPolygon
    - MultiPolygon → returned as is
    - GeometryCollection → recursively flattened; polygonal members are
      kept, points and lines from degenerate unions are dropped

    Raises:
        GeometryError: If *geometry* itself is a point or line type.
    """
    if geometry is None or geometry.is_empty:
        return MultiPolygon()
    if isinstance(geometry, MultiPolygon):
        return geometry
    if isinstance(geometry, Polygon):
        return MultiPolygon([geometry])
    if isinstance(geometry, GeometryCollection):
        return MultiPolygon(list(_polygon_parts(geometry)))
    raise GeometryError(geometry.geom_type)


# ---------------------------------------------------------------------------
# Dissolve
# ---------------------------------------------------------------------------


def union_bounds(bounds: Iterable[Bounds]) -> Bounds | None:
    """Envelope covering every ``(minx, miny, maxx, maxy)`` in *bounds*."""
    bounds = list(bounds)
    if not bounds:
        return None
    return (
        min(b[0] for b in bounds),
        min(b[1] for b in bounds),
        max(b[2] for b in bounds),
        max(b[3] for b in bounds),
    )


def dissolve(value_groups: Mapping[float, Sequence[Polygon]]) -> list[DissolvedFeature]:
    """Union each value group into one :class:`DissolvedFeature`.

    Touching and overlapping cells merge into maximal shapes; disjoint
    regions of one value become separate parts of the same multipolygon.
    Groups with no polygons, or whose union is empty, emit nothing.
    Feature order follows the key order of *value_groups* (the scan's
    first-encountered order), not value order.

    Raises:
        GeometryError: If a union is not polygonal.
    """
    features: list[DissolvedFeature] = []
    for value, polygons in value_groups.items():
        if not polygons:
            continue
        geometry = normalize_to_multipolygon(shapely.union_all(list(polygons)))
        if geometry.is_empty:
            continue
        features.append(DissolvedFeature(geometry=geometry, value=float(value), bounds=geometry.bounds))
        logger.debug("Dissolved %d cell(s) → %s", len(polygons), features[-1])
    return features
