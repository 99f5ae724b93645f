"""
Tests — GeoPackage Vector Sink
===============================
Integration tests for :class:`~raster_vectorizer.sink.GeoPackageSink`.
Layers are written to ``tmp_path`` and read back with geopandas.
"""

from __future__ import annotations

from pathlib import Path

import geopandas as gpd
import pytest
from pyproj import CRS
from shapely.geometry import box

from raster_vectorizer.dissolve import dissolve
from raster_vectorizer.sink import GeoPackageSink
from shared.python.exceptions import OutputWriteError

LV95 = CRS.from_epsg(2056)


def _features():
    return dissolve({
        55.0: [box(0, 0, 10, 10), box(10, 0, 20, 10)],
        60.0: [box(50, 50, 60, 60)],
    })


def _read(path: Path, layer: str) -> gpd.GeoDataFrame:
    return gpd.read_file(path, layer=layer, engine="pyogrio")


class TestGeoPackageSink:
    def test_features_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "reclass.gpkg"
        sink = GeoPackageSink(path)
        sink.create_layer("reclass", LV95)
        assert sink.write_features("reclass", _features()) == 2

        gdf = _read(path, "reclass")
        assert sorted(gdf["value"].tolist()) == [55.0, 60.0]
        assert set(gdf.geom_type) == {"MultiPolygon"}
        assert gdf.crs.to_epsg() == 2056
        assert gdf.loc[gdf["value"] == 55.0].geometry.iloc[0].area == pytest.approx(200.0)

    def test_empty_layer_still_created(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.gpkg"
        sink = GeoPackageSink(path)
        sink.create_layer("empty", LV95, description="Polygons for raster value 1.000 in empty.tif")
        assert sink.write_features("empty", []) == 0

        assert sink.list_layers() == ["empty"]
        assert len(_read(path, "empty")) == 0

    def test_write_without_create_raises(self, tmp_path: Path) -> None:
        with pytest.raises(OutputWriteError, match="has not been created"):
            GeoPackageSink(tmp_path / "x.gpkg").write_features("x", _features())

    def test_create_layer_overwrites(self, tmp_path: Path) -> None:
        path = tmp_path / "again.gpkg"
        sink = GeoPackageSink(path)
        for _ in range(2):
            sink.create_layer("again", LV95)
            sink.write_features("again", _features())
        assert len(_read(path, "again")) == 2

    def test_replace_removes_container(self, tmp_path: Path) -> None:
        path = tmp_path / "old.gpkg"
        sink = GeoPackageSink(path)
        sink.create_layer("old", LV95)
        sink.replace()
        assert not path.exists()
        assert sink.list_layers() == []

    def test_drop_layer_missing_is_noop(self, tmp_path: Path) -> None:
        sink = GeoPackageSink(tmp_path / "none.gpkg")
        sink.drop_layer("none")
        assert sink.list_layers() == []

    def test_drop_only_layer_removes_container(self, tmp_path: Path) -> None:
        path = tmp_path / "single.gpkg"
        sink = GeoPackageSink(path)
        sink.create_layer("single", LV95)
        sink.drop_layer("single")
        assert not path.exists()
