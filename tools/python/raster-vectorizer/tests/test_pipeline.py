"""
Tests — Raster Vectorizer Tools
================================
Integration tests for :class:`~raster_vectorizer.pipeline.RasterReclassifier`,
:class:`~raster_vectorizer.pipeline.RasterVectorizer` and the two click
commands.

Synthetic GeoTIFFs are written into ``tmp_path`` with rasterio.
"""

from __future__ import annotations

import logging
from pathlib import Path

import geopandas as gpd
import numpy as np
import pytest
import rasterio
from click.testing import CliRunner
from rasterio.transform import from_bounds

from raster_vectorizer.cli import reclassify_main, vectorize_main
from raster_vectorizer.pipeline import (
    RasterReclassifier,
    RasterVectorizer,
    ReclassifyConfig,
    VectorizeConfig,
)
from raster_vectorizer.sink import GeoPackageSink
from shared.python.exceptions import BandIndexError, CRSError, InputValidationError

NOISE_BREAKS = (0, 55, 60, 65, 70, 500)
NOISE_CLASSES = (0, 55, 60, 65, 70)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _create_geotiff(
    tmp_path: Path,
    values: list[list[float]],
    filename: str = "noise.tif",
    crs: str | None = "EPSG:2056",
    cell_size: float = 10.0,
    nodata: float | None = None,
) -> Path:
    """Write a single-band float32 GeoTIFF in Swiss LV95 coordinates."""
    path = tmp_path / filename
    data = np.array(values, dtype=np.float32)
    height, width = data.shape
    west, south = 2600000.0, 1200000.0
    transform = from_bounds(west, south, west + width * cell_size, south + height * cell_size, width, height)

    with rasterio.open(
        path, "w",
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype="float32",
        crs=crs,
        transform=transform,
        nodata=nodata,
    ) as dst:
        dst.write(data, 1)
    return path


def _read_layer(path: Path, layer: str) -> gpd.GeoDataFrame:
    return gpd.read_file(path, layer=layer, engine="pyogrio")


# ---------------------------------------------------------------------------
# Integration tests — RasterReclassifier
# ---------------------------------------------------------------------------


class TestRasterReclassifier:
    def test_noise_scenario(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[55, 62], [500, 600]])
        output = tmp_path / "out" / "reclass.tif"
        cfg = ReclassifyConfig(breaks=NOISE_BREAKS, class_values=NOISE_CLASSES)
        tool = RasterReclassifier(tif, output, cfg)
        tool.run()

        with rasterio.open(output) as src:
            np.testing.assert_array_equal(src.read(1), [[55, 60], [70, -100]])
            assert src.nodata == -100
            assert src.crs.to_epsg() == 2056
        assert tool.result is not None
        assert tool.result.class_counts == {55.0: 1, 60.0: 1, 70.0: 1}
        assert tool.result.nodata_cells == 1

    def test_default_crs_stamped(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1, 2]], crs=None)
        output = tmp_path / "stamped.tif"
        RasterReclassifier(tif, output).run()
        with rasterio.open(output) as src:
            assert src.crs.to_epsg() == 2056
            assert src.bounds.left == pytest.approx(2600000.0)

    def test_existing_crs_kept(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1, 2]], crs="EPSG:21781")
        output = tmp_path / "kept.tif"
        RasterReclassifier(tif, output).run()
        with rasterio.open(output) as src:
            assert src.crs.to_epsg() == 21781

    def test_lower_bound_mode(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[39, 41], [43, 46]])
        output = tmp_path / "lower.tif"
        cfg = ReclassifyConfig(breaks=(0, 40, 42, 45), class_mode="lower_bound")
        RasterReclassifier(tif, output, cfg).run()
        with rasterio.open(output) as src:
            np.testing.assert_array_equal(src.read(1), [[0, 40], [42, -100]])

    def test_fractional_class_values_written_exactly(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[5, 15]])
        output = tmp_path / "fractional.tif"
        tool = RasterReclassifier(tif, output, ReclassifyConfig(breaks=(0, 10, 20), class_values=(0.1, 1.1)))
        tool.run()

        with rasterio.open(output) as src:
            written = src.read(1)
        assert written.tolist() == [[0.1, 1.1]]
        assert tool.result is not None
        classes, counts = np.unique(written, return_counts=True)
        assert tool.result.class_counts == {float(c): int(n) for c, n in zip(classes, counts)}

    def test_source_nodata_propagates(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[-9999, 57]], nodata=-9999)
        output = tmp_path / "nodata.tif"
        tool = RasterReclassifier(tif, output, ReclassifyConfig(class_values=NOISE_CLASSES))
        tool.run()
        with rasterio.open(output) as src:
            np.testing.assert_array_equal(src.read(1), [[-100, 55]])

    def test_invalid_breaks_fail_before_output(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1]])
        output = tmp_path / "never" / "out.tif"
        with pytest.raises(InputValidationError):
            RasterReclassifier(tif, output, ReclassifyConfig(breaks=(0, 10, 10))).run()
        assert not output.parent.exists()

    def test_band_out_of_range(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1]])
        with pytest.raises(BandIndexError):
            RasterReclassifier(tif, tmp_path / "out.tif", ReclassifyConfig(band=1)).run()

    def test_invalid_crs(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1]])
        with pytest.raises(CRSError):
            RasterReclassifier(tif, tmp_path / "out.tif", ReclassifyConfig(default_crs="EPSG:99999")).run()

    def test_missing_input(self, tmp_path: Path) -> None:
        with pytest.raises(InputValidationError, match="not found"):
            RasterReclassifier(tmp_path / "missing.tif", tmp_path / "out.tif").run()

    def test_logs_lifecycle(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        tif = _create_geotiff(tmp_path, [[1]])
        with caplog.at_level(logging.INFO, logger="geovectorize"):
            RasterReclassifier(tif, tmp_path / "out.tif").run()
        lifecycle = [r.getMessage() for r in caplog.records if r.levelname == "LIFECYCLE"]
        assert lifecycle[0].startswith("Start RasterReclassifier")
        assert lifecycle[-1].startswith("End RasterReclassifier")


# ---------------------------------------------------------------------------
# Integration tests — RasterVectorizer
# ---------------------------------------------------------------------------


class TestRasterVectorizer:
    def test_two_target_values(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[55, 60], [99, 55]])
        output = tmp_path / "noise.gpkg"
        tool = RasterVectorizer(tif, output, VectorizeConfig(cell_values=[55.0, 60.0]))
        tool.run()

        assert [f.value for f in tool.features] == [55.0, 60.0]
        assert tool.features[0].area == pytest.approx(200.0)
        assert tool.features[1].area == pytest.approx(100.0)

        gdf = _read_layer(output, "noise")
        assert sorted(gdf["value"].tolist()) == [55.0, 60.0]
        assert set(gdf.geom_type) == {"MultiPolygon"}
        assert gdf.crs.to_epsg() == 2056

    def test_metadata_and_result(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[55, 60], [99, 55]])
        tool = RasterVectorizer(tif, tmp_path / "noise.gpkg", VectorizeConfig(cell_values=[60.0]))
        tool.run()
        assert tool.metadata is not None
        assert tool.metadata.srid == 2056
        assert tool.metadata.bounds == (2600010.0, 1200010.0, 2600020.0, 1200020.0)
        assert tool.result is not None
        assert tool.result.feature_count == 1
        assert tool.result.layer_name == "noise"

    def test_all_values_when_unrestricted(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1, 2], [3, -1]], nodata=-1)
        tool = RasterVectorizer(tif, tmp_path / "all.gpkg")
        tool.run()
        assert [f.value for f in tool.features] == [1.0, 2.0, 3.0]

    def test_area_law(self, tmp_path: Path) -> None:
        values = [[7, 7, 7], [0, 7, 0], [7, 0, 0]]
        tif = _create_geotiff(tmp_path, values, cell_size=5.0)
        tool = RasterVectorizer(tif, tmp_path / "area.gpkg", VectorizeConfig(cell_values=[7.0]))
        tool.run()
        (feature,) = tool.features
        assert feature.area == pytest.approx(5 * 25.0, abs=1e-6)
        assert len(feature.geometry.geoms) == 2

    def test_no_match_writes_empty_layer(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1, 2]])
        output = tmp_path / "empty.gpkg"
        tool = RasterVectorizer(tif, output, VectorizeConfig(cell_values=[9.0], layer_name="nothing"))
        tool.run()
        assert tool.features == []
        assert tool.metadata is not None
        assert tool.metadata.bounds == (2600000.0, 1200000.0, 2600020.0, 1200010.0)
        assert GeoPackageSink(output).list_layers() == ["nothing"]
        assert len(_read_layer(output, "nothing")) == 0

    def test_regions_strategy_matches_cells(self, tmp_path: Path) -> None:
        values = [[1, 1, 2], [2, 1, 2], [1, 2, 2]]
        tif = _create_geotiff(tmp_path, values)
        cells = RasterVectorizer(tif, tmp_path / "cells.gpkg")
        regions = RasterVectorizer(tif, tmp_path / "regions.gpkg", VectorizeConfig(strategy="regions"))
        cells.run()
        regions.run()
        assert [f.value for f in regions.features] == [f.value for f in cells.features]
        for a, b in zip(cells.features, regions.features):
            assert a.area == pytest.approx(b.area)
            assert a.geometry.symmetric_difference(b.geometry).area == pytest.approx(0.0, abs=1e-6)

    def test_parallel_workers_match_sequential(self, tmp_path: Path) -> None:
        rng = np.random.default_rng(3)
        tif = _create_geotiff(tmp_path, rng.integers(1, 5, size=(12, 8)).tolist())
        sequential = RasterVectorizer(tif, tmp_path / "seq.gpkg")
        parallel = RasterVectorizer(tif, tmp_path / "par.gpkg", VectorizeConfig(max_workers=4))
        sequential.run()
        parallel.run()
        assert [f.value for f in parallel.features] == [f.value for f in sequential.features]
        assert [f.area for f in parallel.features] == pytest.approx([f.area for f in sequential.features])

    def test_reclassify_then_vectorize(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[56, 57], [62, 600]], crs=None)
        cfg = VectorizeConfig(
            cell_values=[55.0, 60.0],
            reclassify=ReclassifyConfig(breaks=NOISE_BREAKS, class_values=NOISE_CLASSES),
        )
        tool = RasterVectorizer(tif, tmp_path / "chain.gpkg", cfg)
        tool.run()
        assert [f.value for f in tool.features] == [55.0, 60.0]
        assert tool.features[0].area == pytest.approx(200.0)
        assert tool.metadata is not None and tool.metadata.srid == 2056

    def test_rerun_replaces_output(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[55, 60]])
        output = tmp_path / "rerun.gpkg"
        for _ in range(2):
            RasterVectorizer(tif, output).run()
        assert len(_read_layer(output, "noise")) == 2

    def test_append_keeps_other_layers(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[55, 60]])
        output = tmp_path / "multi.gpkg"
        RasterVectorizer(tif, output, VectorizeConfig(layer_name="first")).run()
        RasterVectorizer(tif, output, VectorizeConfig(layer_name="second", cell_values=[55.0], replace=False)).run()
        assert sorted(GeoPackageSink(output).list_layers()) == ["first", "second"]
        assert len(_read_layer(output, "second")) == 1

    def test_empty_value_list_raises(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1]])
        with pytest.raises(InputValidationError, match="must not be empty"):
            RasterVectorizer(tif, tmp_path / "x.gpkg", VectorizeConfig(cell_values=[])).run()

    def test_negative_band_raises(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1]])
        with pytest.raises(BandIndexError):
            RasterVectorizer(tif, tmp_path / "x.gpkg", VectorizeConfig(band=-1)).run()

    def test_unknown_strategy_raises(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1]])
        with pytest.raises(InputValidationError, match="strategy"):
            RasterVectorizer(tif, tmp_path / "x.gpkg", VectorizeConfig(strategy="blobs")).run()  # type: ignore[arg-type]

    def test_wrong_output_extension_raises(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1]])
        with pytest.raises(InputValidationError, match="Unsupported file extension"):
            RasterVectorizer(tif, tmp_path / "x.shp").run()


# ---------------------------------------------------------------------------
# CLI tests
# ---------------------------------------------------------------------------


class TestCli:
    def test_reclassify_command(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[55, 62]])
        output = tmp_path / "reclass.tif"
        result = CliRunner().invoke(reclassify_main, [
            "-i", str(tif), "-o", str(output),
            "--breaks", "0,55,60,65,70,500", "--classes", "0,55,60,65,70",
        ])
        assert result.exit_code == 0, result.output
        with rasterio.open(output) as src:
            np.testing.assert_array_equal(src.read(1), [[55, 60]])

    def test_vectorize_command(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[55, 60], [99, 55]])
        output = tmp_path / "reclass.gpkg"
        result = CliRunner().invoke(vectorize_main, [
            "-i", str(tif), "-o", str(output), "--values", "55,60", "--layer", "zones",
        ])
        assert result.exit_code == 0, result.output
        assert "value=55" in result.output
        assert len(_read_layer(output, "zones")) == 2

    def test_vectorize_with_reclassify_flag(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[56, 61]])
        output = tmp_path / "chain.gpkg"
        result = CliRunner().invoke(vectorize_main, [
            "-i", str(tif), "-o", str(output), "--reclassify", "--classes", "0,55,60,65,70",
        ])
        assert result.exit_code == 0, result.output
        assert sorted(_read_layer(output, "noise")["value"].tolist()) == [55.0, 60.0]

    def test_validation_error_exits_1(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1]])
        result = CliRunner().invoke(reclassify_main, [
            "-i", str(tif), "-o", str(tmp_path / "out.tif"), "--breaks", "10,0,20",
        ])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_bad_number_list_is_usage_error(self, tmp_path: Path) -> None:
        tif = _create_geotiff(tmp_path, [[1]])
        result = CliRunner().invoke(vectorize_main, ["-i", str(tif), "-o", str(tmp_path / "x.gpkg"), "--values", "a,b"])
        assert result.exit_code == 2
