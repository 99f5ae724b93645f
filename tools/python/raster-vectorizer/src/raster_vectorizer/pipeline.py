"""
Raster Vectorizer — Tools
==========================
The two user-facing tools of the package, both following the
:class:`~shared.python.GeoTool` template (validate → process → report):

    RasterReclassifier  raster → CRS stamp → reclassify → GeoTIFF
    RasterVectorizer    raster → [CRS stamp] → [reclassify] → cell polygons
                        → dissolve by value → GeoPackage layer

Classes:
    ReclassifyConfig    Break table, no-data and CRS settings.
    ReclassifyResult    Class histogram of a reclassification run.
    RasterReclassifier  Primary reclassification tool (inherits GeoTool).
    VectorizeConfig     Band, target values, strategy and sink settings.
    VectorizeResult     Summary of a vectorization run.
    RasterVectorizer    Primary vectorization tool (inherits GeoTool).

Usage::

    from pathlib import Path
    from raster_vectorizer.pipeline import RasterVectorizer, VectorizeConfig

    tool = RasterVectorizer(
        input_path=Path("data/reclass.tif"),
        output_path=Path("output/reclass.gpkg"),
        config=VectorizeConfig(cell_values=[55.0, 60.0]),
    )
    tool.run()

    for feature in tool.features:
        print(feature)
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import numpy as np
import rasterio
from rasterio.errors import NotGeoreferencedWarning, RasterioError

from raster_vectorizer.crs import decode_crs, ensure_crs
from raster_vectorizer.dissolve import DissolvedFeature, LayerMetadata, dissolve
from raster_vectorizer.geometry import (
    DEFAULT_TOLERANCE,
    CellSelector,
    extract_regions,
    group_cells,
)
from raster_vectorizer.grid import RasterGrid, read_raster, write_raster
from raster_vectorizer.reclassify import BreakTable, ClassMode, reclassify
from raster_vectorizer.sink import GeoPackageSink
from shared.python.base_tool import GeoTool
from shared.python.exceptions import InputValidationError, RasterError
from shared.python.validators import Validators

logger = logging.getLogger("geovectorize.raster_vectorizer")

RASTER_EXTENSIONS = [".tif", ".tiff", ".asc", ".img", ".vrt"]

DEFAULT_BREAKS: tuple[float, ...] = (0.0, 55.0, 60.0, 65.0, 70.0, 500.0)
DEFAULT_NO_DATA = -100.0
DEFAULT_CRS = "EPSG:2056"


def _check_band(input_path: Path, band: int) -> None:
    """Validate *band* against the band count of the raster on disk."""
    Validators.assert_band_index_valid(band)
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NotGeoreferencedWarning)
            with rasterio.open(input_path) as src:
                Validators.assert_band_index_valid(band, src.count)
    except RasterioError as exc:
        raise RasterError(f"Could not open raster '{input_path}': {exc}") from exc


# ---------------------------------------------------------------------------
# Reclassification
# ---------------------------------------------------------------------------


@dataclass
class ReclassifyConfig:
    """Configuration for :class:`RasterReclassifier`.

    Attributes:
        breaks: Ordered, strictly increasing class boundaries.
        class_values: Explicit class value per bin.  ``None`` derives them
                      from *class_mode*.
        class_mode: ``"ordinal"`` (1..N) or ``"lower_bound"`` (rounded
                    lower break of each bin).
        no_data: Value written for out-of-range and no-data cells.
        band: 0-based band to classify.
        default_crs: CRS attached when the input has none (or only a pixel
                     CRS).  ``None`` leaves the CRS untouched.
    """

    breaks: tuple[float, ...] = DEFAULT_BREAKS
    class_values: tuple[float, ...] | None = None
    class_mode: ClassMode = "ordinal"
    no_data: float = DEFAULT_NO_DATA
    band: int = 0
    default_crs: str | None = DEFAULT_CRS

    def break_table(self) -> BreakTable:
        """Validated :class:`BreakTable` for these settings.

        Raises:
            InputValidationError: If the breaks or class values are malformed.
        """
        return BreakTable.from_breaks(self.breaks, self.class_values, mode=self.class_mode)


@dataclass(frozen=True)
class ReclassifyResult:
    """Outcome of one :class:`RasterReclassifier` run.

    Attributes:
        output_path: Written GeoTIFF.
        class_counts: Class value → number of cells, in ascending value order.
        nodata_cells: Cells written as no-data.
        crs_name: Name of the CRS the output carries, if any.
    """

    output_path: Path
    class_counts: dict[float, int]
    nodata_cells: int
    crs_name: str | None

    def summary(self) -> str:
        """Return a human-readable summary string for logging or display."""
        classes = ", ".join(f"{k:g}={v:,}" for k, v in self.class_counts.items())
        return f"{classes or 'no classified cells'} | no-data={self.nodata_cells:,} | CRS: {self.crs_name}"


def _class_counts(grid: RasterGrid) -> tuple[dict[float, int], int]:
    values = grid.band_array(0)
    nodata_mask = grid.is_nodata(values)
    classes, counts = np.unique(values[~nodata_mask], return_counts=True)
    return {float(c): int(n) for c, n in zip(classes, counts)}, int(nodata_mask.sum())


class RasterReclassifier(GeoTool):
    """Reclassify one band of a raster into discrete classes.

    Inherits the Template Method pipeline from :class:`~shared.python.GeoTool`.

    Reads the input with :mod:`rasterio`, stamps ``default_crs`` when the
    raster carries no real CRS, bins every cell through the configured
    :class:`~raster_vectorizer.reclassify.BreakTable` and writes a
    single-band GeoTIFF whose nodata value is ``config.no_data``.

    Args:
        input_path: Input raster (GeoTIFF, ESRI ASCII grid, ...).
        output_path: Output GeoTIFF path.
        config: A :class:`ReclassifyConfig`; defaults apply when ``None``.
        verbose: Enable DEBUG-level logging.

    Example::

        RasterReclassifier(
            Path("data/noise.asc"),
            Path("output/reclass.tif"),
            ReclassifyConfig(breaks=(0, 40, 42, 45), class_mode="lower_bound"),
        ).run()
    """

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        config: ReclassifyConfig | None = None,
        *,
        verbose: bool = False,
    ) -> None:
        super().__init__(input_path, output_path, verbose=verbose)
        self.config = config or ReclassifyConfig()
        self._table: BreakTable | None = None
        self._result: ReclassifyResult | None = None

    # ------------------------------------------------------------------
    # GeoTool abstract method implementations
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        """Validate the break table, CRS, input raster and output location.

        Raises:
            InputValidationError: On malformed breaks/class values, a
                missing input or an unsupported extension.
            BandIndexError: If the band does not exist.
            CRSError: If ``default_crs`` cannot be resolved.
            OutputWriteError: If the output directory cannot be created.
        """
        self._table = self.config.break_table()
        if self.config.default_crs is not None:
            Validators.assert_crs_valid(self.config.default_crs)
        Validators.assert_file_exists(self.input_path)
        Validators.assert_supported_extension(self.input_path, RASTER_EXTENSIONS)
        Validators.assert_supported_extension(self.output_path, [".tif", ".tiff"])
        _check_band(self.input_path, self.config.band)
        Validators.assert_output_dir_writable(self.output_path)
        logger.debug("Inputs validated: %d bin(s).", self._table.bins)

    def process(self) -> None:
        """Read, stamp, classify and write the raster.

        Raises:
            RasterError: If the raster cannot be read.
            OutputWriteError: If the GeoTIFF cannot be written.
        """
        table = self._table or self.config.break_table()
        grid = read_raster(self.input_path)
        if self.config.default_crs is not None:
            grid = ensure_crs(grid, decode_crs(self.config.default_crs))

        logger.info("Reclassifying band %d of %s with breaks %s", self.config.band, self.input_path.name, list(table.breaks))
        classified = reclassify(grid, self.config.band, table, self.config.no_data)
        write_raster(classified, self.output_path)

        counts, nodata_cells = _class_counts(classified)
        self._result = ReclassifyResult(
            output_path=self.output_path,
            class_counts=counts,
            nodata_cells=nodata_cells,
            crs_name=classified.crs.name if classified.crs is not None else None,
        )
        logger.info("  %s", self._result.summary())

    @property
    def result(self) -> ReclassifyResult | None:
        """:class:`ReclassifyResult` of the last run, or ``None``."""
        return self._result


# ---------------------------------------------------------------------------
# Vectorization
# ---------------------------------------------------------------------------


@dataclass
class VectorizeConfig:
    """Configuration for :class:`RasterVectorizer`.

    Attributes:
        band: 0-based band to vectorize (after optional reclassification
              the classified band is used).
        cell_values: Values to extract.  ``None`` extracts every valid
                     value, one feature per distinct value.
        layer_name: Output layer name.  Defaults to the raster file stem.
        strategy: ``"cells"`` builds one polygon per cell and dissolves
                  them; ``"regions"`` polygonizes contiguous regions first.
        tolerance: Absolute tolerance when matching ``cell_values``.
        max_workers: Threads used for cell mapping (``"cells"`` only).
        default_crs: CRS attached when the input has none.  ``None``
                     keeps the input CRS as read.
        reclassify: Optional :class:`ReclassifyConfig` applied before
                    vectorizing; its own ``band`` selects the source band.
        replace: Delete an existing output container before writing.
    """

    band: int = 0
    cell_values: list[float] | None = None
    layer_name: str | None = None
    strategy: Literal["cells", "regions"] = "cells"
    tolerance: float = DEFAULT_TOLERANCE
    max_workers: int = 1
    default_crs: str | None = None
    reclassify: ReclassifyConfig | None = None
    replace: bool = True


@dataclass(frozen=True)
class VectorizeResult:
    """Outcome of one :class:`RasterVectorizer` run.

    Attributes:
        output_path: Written GeoPackage.
        layer_name: Layer holding the features.
        values: Feature values in output order.
        srid: EPSG code of the layer CRS, if resolvable.
        bounds: Aggregate feature bounds, or the raster extent for an empty layer.
    """

    output_path: Path
    layer_name: str
    values: list[float] = field(default_factory=list)
    srid: int | None = None
    bounds: tuple[float, float, float, float] | None = None

    @property
    def feature_count(self) -> int:
        """Number of features written."""
        return len(self.values)

    def summary(self) -> str:
        """Return a human-readable summary string for logging or display."""
        values = ", ".join(f"{v:g}" for v in self.values) or "none"
        return (
            f"{self.feature_count} feature(s) [{values}] → "
            f"{self.output_path.name}:{self.layer_name} (SRID {self.srid})"
        )


class RasterVectorizer(GeoTool):
    """Vectorize raster cells into one dissolved multipolygon per value.

    Inherits the Template Method pipeline from :class:`~shared.python.GeoTool`.

    Every qualifying cell becomes a world-space polygon, polygons are
    grouped by value and unioned, and each group is written as one
    MultiPolygon feature with a ``value`` attribute to a GeoPackage layer.

    Args:
        input_path: Input raster.
        output_path: Output GeoPackage path (``.gpkg``).
        config: A :class:`VectorizeConfig`; defaults apply when ``None``.
        verbose: Enable DEBUG-level logging.

    Example::

        RasterVectorizer(
            Path("output/reclass.tif"),
            Path("output/reclass.gpkg"),
            VectorizeConfig(cell_values=[55.0]),
        ).run()
    """

    STRATEGIES = ("cells", "regions")

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        config: VectorizeConfig | None = None,
        *,
        verbose: bool = False,
    ) -> None:
        super().__init__(input_path, output_path, verbose=verbose)
        self.config = config or VectorizeConfig()
        self._features: list[DissolvedFeature] = []
        self._metadata: LayerMetadata | None = None
        self._result: VectorizeResult | None = None

    @property
    def layer_name(self) -> str:
        """Configured layer name, or the input file stem."""
        return self.config.layer_name or self.input_path.stem

    # ------------------------------------------------------------------
    # GeoTool abstract method implementations
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        """Validate values, strategy, CRS, raster and output location.

        Raises:
            InputValidationError: On an empty/invalid value list, unknown
                strategy, bad worker count, malformed reclassification
                settings, missing input or unsupported extension.
            BandIndexError: If the band does not exist.
            CRSError: If a configured CRS cannot be resolved.
            OutputWriteError: If the output directory cannot be created.
        """
        cfg = self.config
        Validators.assert_values_non_empty(cfg.cell_values, "cell_values")
        if cfg.strategy not in self.STRATEGIES:
            raise InputValidationError(
                f"Unknown strategy '{cfg.strategy}'. Choose one of: {', '.join(self.STRATEGIES)}"
            )
        if cfg.max_workers < 1:
            raise InputValidationError(f"max_workers must be at least 1, got {cfg.max_workers}.")
        if cfg.tolerance < 0:
            raise InputValidationError(f"tolerance must not be negative, got {cfg.tolerance}.")
        if not self.layer_name:
            raise InputValidationError("Layer name must not be empty.")
        if cfg.reclassify is not None:
            cfg.reclassify.break_table()
            if cfg.reclassify.default_crs is not None:
                Validators.assert_crs_valid(cfg.reclassify.default_crs)
        if cfg.default_crs is not None:
            Validators.assert_crs_valid(cfg.default_crs)

        Validators.assert_file_exists(self.input_path)
        Validators.assert_supported_extension(self.input_path, RASTER_EXTENSIONS)
        Validators.assert_supported_extension(self.output_path, [".gpkg"])
        source_band = cfg.reclassify.band if cfg.reclassify is not None else cfg.band
        _check_band(self.input_path, source_band)
        if cfg.reclassify is not None:
            Validators.assert_band_index_valid(cfg.band, 1)
        Validators.assert_output_dir_writable(self.output_path)
        logger.debug("Inputs validated.")

    def process(self) -> None:
        """Read, optionally stamp and reclassify, vectorize, dissolve and write.

        Raises:
            RasterError: If the raster cannot be read.
            TransformError: If the raster transform cannot map cells.
            GeometryError: If a dissolve yields a non-polygonal result.
            OutputWriteError: If the GeoPackage cannot be written.
        """
        cfg = self.config
        grid, band = self._prepare_grid()

        selector = CellSelector.for_band(grid, band, cfg.cell_values, cfg.tolerance)
        if cfg.strategy == "regions":
            groups: dict[float, list] = {}
            for value, polygon in extract_regions(grid, band, selector):
                groups.setdefault(value, []).append(polygon)
        else:
            groups = group_cells(grid, band, selector, max_workers=cfg.max_workers)
        logger.info(
            "Mapped %d polygon(s) in %d value group(s) from %s",
            sum(len(p) for p in groups.values()), len(groups), self.input_path.name,
        )

        self._features = dissolve(groups)
        self._metadata = LayerMetadata.from_features(self._features, grid.crs, grid.bounds)
        if not self._features:
            logger.info("No cells matched; writing an empty layer.")

        self._write_layer(grid)

        self._result = VectorizeResult(
            output_path=self.output_path,
            layer_name=self.layer_name,
            values=[f.value for f in self._features],
            srid=self._metadata.srid,
            bounds=self._metadata.bounds,
        )
        logger.info("  %s", self._result.summary())

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _prepare_grid(self) -> tuple[RasterGrid, int]:
        """Read the raster and apply CRS stamping / reclassification."""
        cfg = self.config
        grid = read_raster(self.input_path)
        crs_code = cfg.default_crs or (cfg.reclassify.default_crs if cfg.reclassify else None)
        if crs_code is not None:
            grid = ensure_crs(grid, decode_crs(crs_code))

        if cfg.reclassify is None:
            return grid, cfg.band

        rc = cfg.reclassify
        logger.info("Reclassifying band %d before vectorizing", rc.band)
        return reclassify(grid, rc.band, rc.break_table(), rc.no_data), cfg.band

    def _write_layer(self, grid: RasterGrid) -> None:
        sink = GeoPackageSink(self.output_path)
        if self.config.replace:
            sink.replace()
        else:
            sink.drop_layer(self.layer_name)

        if self.config.cell_values:
            subject = "raster value(s) " + ", ".join(f"{v:.3f}" for v in self.config.cell_values)
        else:
            subject = "all raster values"
        sink.create_layer(
            self.layer_name,
            grid.crs,
            description=f"Polygons for {subject} in {self.input_path.name}",
        )
        sink.write_features(self.layer_name, self._features)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    @property
    def features(self) -> list[DissolvedFeature]:
        """Features written by the last run, or ``[]``."""
        return self._features

    @property
    def metadata(self) -> LayerMetadata | None:
        """:class:`LayerMetadata` of the last run, or ``None``."""
        return self._metadata

    @property
    def result(self) -> VectorizeResult | None:
        """:class:`VectorizeResult` of the last run, or ``None``."""
        return self._result
