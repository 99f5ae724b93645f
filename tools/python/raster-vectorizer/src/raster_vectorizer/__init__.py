"""
Raster Vectorizer
==================
A geovectorize tool for reclassifying continuous rasters into discrete
classes and turning raster cells into dissolved, value-attributed
multipolygons in a GeoPackage.

Public API::

    from raster_vectorizer import RasterVectorizer, VectorizeConfig
    from raster_vectorizer import RasterReclassifier, ReclassifyConfig, BreakTable
"""

from raster_vectorizer.crs import decode_crs, ensure_crs, is_placeholder_crs, lookup_epsg
from raster_vectorizer.dissolve import (
    DissolvedFeature,
    LayerMetadata,
    dissolve,
    normalize_to_multipolygon,
)
from raster_vectorizer.geometry import (
    CellSelector,
    cell_polygon,
    extract_regions,
    group_cells,
    map_cells,
)
from raster_vectorizer.grid import RasterGrid, read_raster, write_raster
from raster_vectorizer.pipeline import (
    RasterReclassifier,
    RasterVectorizer,
    ReclassifyConfig,
    ReclassifyResult,
    VectorizeConfig,
    VectorizeResult,
)
from raster_vectorizer.reclassify import BreakTable, derive_class_values, reclassify
from raster_vectorizer.sink import GeoPackageSink

__all__ = [
    "RasterGrid",
    "read_raster",
    "write_raster",
    "BreakTable",
    "derive_class_values",
    "reclassify",
    "decode_crs",
    "lookup_epsg",
    "is_placeholder_crs",
    "ensure_crs",
    "CellSelector",
    "cell_polygon",
    "map_cells",
    "group_cells",
    "extract_regions",
    "DissolvedFeature",
    "LayerMetadata",
    "normalize_to_multipolygon",
    "dissolve",
    "GeoPackageSink",
    "ReclassifyConfig",
    "ReclassifyResult",
    "RasterReclassifier",
    "VectorizeConfig",
    "VectorizeResult",
    "RasterVectorizer",
]
__version__ = "1.0.0"
