"""
Raster Vectorizer — Raster Grid & Raster Source
================================================
In-memory raster model shared by every pipeline stage, plus the rasterio
adapters that read it from and write it to disk.

Classes:
    RasterGrid      Immutable band stack with transform, CRS and no-data markers.

Functions:
    read_raster     Open any rasterio-supported raster as a :class:`RasterGrid`.
    write_raster    Write a :class:`RasterGrid` to a GeoTIFF.

Usage::

    from pathlib import Path
    from raster_vectorizer.grid import read_raster, write_raster

    grid = read_raster(Path("data/noise.asc"))
    print(grid.width, grid.height, grid.bounds)
    write_raster(grid, Path("output/noise.tif"))
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, replace
from pathlib import Path

import numpy as np
import numpy.typing as npt
import rasterio
from pyproj import CRS
from rasterio.dtypes import get_minimum_dtype
from rasterio.errors import NotGeoreferencedWarning, RasterioError
from rasterio.transform import Affine

from shared.python.exceptions import OutputWriteError, RasterError
from shared.python.validators import Validators

logger = logging.getLogger("geovectorize.raster_vectorizer.grid")

Bounds = tuple[float, float, float, float]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class RasterGrid:
    """Immutable raster band stack in float64.

    Attributes:
        data: Sample array shaped ``(bands, rows, cols)``.  A 2-D array is
              accepted and treated as a single band.  The array is copied
              and made read-only.
        transform: Grid-to-world affine transform mapping ``(col, row)``
                   to ``(x, y)``.  Supports scale, rotation and shear.
        crs: Coordinate reference system, or ``None`` when the source
             carries none.
        nodata: Per-band tuple of no-data markers.  NaN is always treated
                as no-data and never needs listing.  Defaults to no
                markers on every band.
        name: Label used in log messages, usually the file stem.
    """

    data: npt.NDArray[np.float64]
    transform: Affine = Affine.identity()
    crs: CRS | None = None
    nodata: tuple[tuple[float, ...], ...] = ()
    name: str = ""

    def __post_init__(self) -> None:
        data = np.array(self.data, dtype=np.float64)
        if data.ndim == 2:
            data = data[np.newaxis, ...]
        if data.ndim != 3:
            raise RasterError(f"Raster data must be 2-D or 3-D, got shape {data.shape}.")
        data.setflags(write=False)
        object.__setattr__(self, "data", data)

        if self.nodata:
            nodata = tuple(tuple(float(v) for v in band) for band in self.nodata)
        else:
            nodata = tuple(() for _ in range(data.shape[0]))
        if len(nodata) != data.shape[0]:
            raise RasterError(
                f"Expected no-data markers for {data.shape[0]} band(s), got {len(nodata)}."
            )
        object.__setattr__(self, "nodata", nodata)

    # ------------------------------------------------------------------
    # Dimensions & access
    # ------------------------------------------------------------------

    @property
    def count(self) -> int:
        """Number of bands."""
        return int(self.data.shape[0])

    @property
    def height(self) -> int:
        """Number of rows."""
        return int(self.data.shape[1])

    @property
    def width(self) -> int:
        """Number of columns."""
        return int(self.data.shape[2])

    def band_array(self, band: int) -> npt.NDArray[np.float64]:
        """Return the read-only ``(rows, cols)`` array of 0-based *band*."""
        Validators.assert_band_index_valid(band, self.count)
        return self.data[band]

    def sample(self, row: int, col: int, band: int = 0) -> float:
        """Return the sample at grid indices (*row*, *col*) of *band*."""
        return float(self.band_array(band)[row, col])

    def is_nodata(self, values: npt.ArrayLike, band: int = 0) -> npt.NDArray[np.bool_]:
        """Element-wise mask of NaN samples and exact no-data marker matches."""
        values = np.asarray(values, dtype=np.float64)
        mask = np.isnan(values)
        for marker in self.nodata[band]:
            if not math.isnan(marker):
                mask |= values == marker
        return mask

    # ------------------------------------------------------------------
    # Georeferencing
    # ------------------------------------------------------------------

    @property
    def bounds(self) -> Bounds:
        """World extent ``(minx, miny, maxx, maxy)`` of the four outer corners.

        Rotated and sheared transforms are handled by transforming every
        corner; the result may contain NaN for an ill-defined transform.
        """
        corners = [
            self.transform * (0, 0),
            self.transform * (self.width, 0),
            self.transform * (self.width, self.height),
            self.transform * (0, self.height),
        ]
        xs = [x for x, _ in corners]
        ys = [y for _, y in corners]
        if any(math.isnan(v) for v in xs + ys):
            nan = float("nan")
            return (nan, nan, nan, nan)
        return (min(xs), min(ys), max(xs), max(ys))

    @property
    def cell_area(self) -> float:
        """World-space area of one cell (absolute transform determinant)."""
        return abs(self.transform.determinant)

    def with_crs(self, crs: CRS, transform: Affine | None = None) -> RasterGrid:
        """Return a copy carrying *crs* (and optionally a new *transform*)."""
        return replace(self, crs=crs, transform=self.transform if transform is None else transform)

    def __repr__(self) -> str:
        return (
            f"RasterGrid(name={self.name!r}, bands={self.count}, "
            f"height={self.height}, width={self.width})"
        )


# ---------------------------------------------------------------------------
# Raster source / sink adapters
# ---------------------------------------------------------------------------


def read_raster(path: Path) -> RasterGrid:
    """Read every band of a rasterio-supported raster into a :class:`RasterGrid`.

    The dataset handle is scoped to this call and released on every exit
    path.  Rasters without georeferencing come back with rasterio's
    identity transform and ``crs=None``.

    Args:
        path: Raster file (GeoTIFF, ESRI ASCII grid, ...).

    Returns:
        The loaded grid, samples converted to float64.

    Raises:
        RasterError: If rasterio cannot open or decode the file.
    """
    path = Path(path)
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NotGeoreferencedWarning)
            with rasterio.open(path) as src:
                data = src.read(out_dtype="float64")
                transform = src.transform
                crs = CRS.from_user_input(src.crs) if src.crs else None
                nodata = tuple(() if v is None else (float(v),) for v in src.nodatavals)
    except RasterioError as exc:
        raise RasterError(f"Could not open raster '{path}': {exc}") from exc

    logger.debug(
        "Read %s: %d band(s), %dx%d, crs=%s",
        path.name, data.shape[0], data.shape[2], data.shape[1],
        crs.name if crs is not None else None,
    )
    return RasterGrid(data=data, transform=transform, crs=crs, nodata=nodata, name=path.stem)


def write_raster(grid: RasterGrid, output_path: Path, *, dtype: str | None = None) -> Path:
    """Write *grid* to a LZW-compressed GeoTIFF.

    GeoTIFF stores one nodata value for the whole dataset, so the first
    marker of the first band is written.  When *dtype* is omitted the
    smallest GDAL data type that holds every sample and marker exactly is
    used: integer class rasters come out as integer GeoTIFFs, and float
    data falls back to float64 whenever float32 would round it.

    Args:
        grid: Grid to write.
        output_path: Destination file path.
        dtype: Explicit rasterio dtype name (e.g. ``"float32"``).

    Returns:
        *output_path* as a :class:`~pathlib.Path`.

    Raises:
        OutputWriteError: If the file cannot be written.
    """
    output_path = Path(output_path)
    markers = [band[0] if band else None for band in grid.nodata]
    dtype = dtype or _minimum_dtype(grid, markers)

    profile = {
        "driver": "GTiff",
        "height": grid.height,
        "width": grid.width,
        "count": grid.count,
        "dtype": dtype,
        "crs": grid.crs.to_wkt() if grid.crs is not None else None,
        "transform": grid.transform,
        "nodata": markers[0],
        "compress": "lzw",
    }
    try:
        with rasterio.open(output_path, "w", **profile) as dst:
            dst.write(grid.data.astype(dtype))
    except (OSError, RasterioError) as exc:
        raise OutputWriteError(str(output_path), str(exc)) from exc

    logger.debug("Wrote %s as %s", output_path.name, dtype)
    return output_path


def _minimum_dtype(grid: RasterGrid, markers: list[float | None]) -> str:
    """Smallest rasterio dtype holding every sample and marker exactly."""
    values = np.concatenate([
        grid.data[np.isfinite(grid.data)],
        np.array([m for m in markers if m is not None], dtype=np.float64),
    ])
    non_finite = bool((~np.isfinite(grid.data)).any()) or any(
        m is not None and not math.isfinite(m) for m in markers
    )
    if values.size == 0:
        return "float32"
    if not non_finite and np.all(np.mod(values, 1) == 0):
        dtype = get_minimum_dtype(values.astype(np.int64))
        # int8 needs GDAL >= 3.7
        return "int16" if dtype == "int8" else dtype
    if np.array_equal(values.astype(np.float32).astype(np.float64), values):
        return "float32"
    return "float64"
