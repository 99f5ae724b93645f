"""
Raster Vectorizer — GeoPackage Vector Sink
===========================================
Persists dissolved features into a GeoPackage layer through
:mod:`geopandas` and the pyogrio engine.

Each layer has a MultiPolygon ``geometry`` column plus the attributes of
its schema (``value`` by default).  Every write opens and closes the
container, so no handle outlives a call.

Classes:
    GeoPackageSink  Create, fill, list and drop layers of one container.

Usage::

    from raster_vectorizer.sink import GeoPackageSink

    sink = GeoPackageSink(Path("output/reclass.gpkg"))
    sink.replace()
    sink.create_layer("reclass", grid.crs)
    sink.write_features("reclass", features)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

import geopandas as gpd
import pandas as pd
import pyogrio
from pyogrio.errors import DataLayerError, DataSourceError
from pyproj import CRS

from raster_vectorizer.dissolve import DissolvedFeature
from shared.python.exceptions import OutputWriteError

logger = logging.getLogger("geovectorize.raster_vectorizer.sink")

DEFAULT_SCHEMA: dict[str, str] = {"value": "float64"}


class GeoPackageSink:
    """Vector sink writing MultiPolygon layers to one GeoPackage file.

    Args:
        path: GeoPackage path.  Parent directories must already exist
              (see :meth:`Validators.assert_output_dir_writable`).
    """

    DRIVER = "GPKG"
    GEOMETRY_TYPE = "MultiPolygon"

    def __init__(self, path: Path) -> None:
        self.path: Path = Path(path)
        self._layers: dict[str, tuple[CRS | None, dict[str, str]]] = {}

    # ------------------------------------------------------------------
    # Container
    # ------------------------------------------------------------------

    def replace(self) -> None:
        """Delete an existing container so a re-run starts from scratch.

        Raises:
            OutputWriteError: If the existing file cannot be removed.
        """
        if not self.path.exists():
            return
        try:
            self.path.unlink()
        except OSError as exc:
            raise OutputWriteError(str(self.path), f"Unable to replace existing GeoPackage: {exc}") from exc
        logger.debug("Removed existing container %s", self.path)

    def list_layers(self) -> list[str]:
        """Names of the layers currently stored in the container."""
        if not self.path.exists():
            return []
        return [str(name) for name, _ in pyogrio.list_layers(self.path)]

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def create_layer(
        self,
        name: str,
        crs: CRS | None,
        schema: Mapping[str, str] | None = None,
        *,
        description: str | None = None,
    ) -> None:
        """Create (or overwrite) an empty layer.

        The layer exists afterwards even if no feature is ever written,
        which keeps an empty result distinguishable from a failed run.

        Args:
            name: Layer (table) name.
            crs: Layer CRS; its EPSG code becomes the layer SRID.
            schema: Attribute name → pandas dtype.  Defaults to
                    ``{"value": "float64"}``.
            description: Free text stored as the layer description.

        Raises:
            OutputWriteError: If the container cannot be written.
        """
        schema = dict(schema or DEFAULT_SCHEMA)
        empty = gpd.GeoDataFrame(
            {column: pd.Series([], dtype=dtype) for column, dtype in schema.items()},
            geometry=gpd.GeoSeries([], crs=crs),
            crs=crs,
        )
        metadata = {"IDENTIFIER": name}
        if description:
            metadata["DESCRIPTION"] = description
        self._write(empty, name, append=False, layer_metadata=metadata)
        self._layers[name] = (crs, schema)
        logger.debug("Created layer '%s' in %s", name, self.path.name)

    def write_features(self, name: str, features: Sequence[DissolvedFeature]) -> int:
        """Append *features* to layer *name* created by :meth:`create_layer`.

        Returns:
            Number of features written.

        Raises:
            OutputWriteError: If the layer was never created or the write fails.
        """
        if name not in self._layers:
            raise OutputWriteError(str(self.path), f"Layer '{name}' has not been created.")
        if not features:
            return 0

        crs, schema = self._layers[name]
        gdf = gpd.GeoDataFrame(
            {"value": pd.Series([f.value for f in features], dtype=schema.get("value", "float64"))},
            geometry=[f.geometry for f in features],
            crs=crs,
        )
        self._write(gdf, name, append=True)
        logger.info("Wrote %d feature(s) to %s:%s", len(gdf), self.path.name, name)
        return len(gdf)

    def drop_layer(self, name: str) -> None:
        """Remove layer *name* so the next run recreates it.

        A missing container or layer is a no-op.  When *name* is the only
        layer the whole container is removed; in a multi-layer container
        the layer is left for :meth:`create_layer` to overwrite in place.
        """
        self._layers.pop(name, None)
        layers = self.list_layers()
        if name not in layers:
            return
        if layers == [name]:
            self.replace()
        else:
            logger.debug("Layer '%s' will be overwritten by the next create_layer", name)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _write(self, gdf: gpd.GeoDataFrame, name: str, *, append: bool, **kwargs: object) -> None:
        try:
            gdf.to_file(
                self.path,
                layer=name,
                driver=self.DRIVER,
                engine="pyogrio",
                mode="a" if append else "w",
                geometry_type=self.GEOMETRY_TYPE,
                **kwargs,
            )
        except (OSError, ValueError, DataSourceError, DataLayerError) as exc:
            raise OutputWriteError(str(self.path), str(exc)) from exc
