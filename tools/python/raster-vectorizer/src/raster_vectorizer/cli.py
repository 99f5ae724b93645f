"""
Raster Vectorizer — CLI Entry Points
=====================================
Installed as the ``geo-reclassify`` and ``geo-vectorize`` commands via
``pyproject.toml``.

Usage:
    geo-reclassify --input data/noise.asc --output output/reclass.tif
    geo-reclassify -i data/noise.asc -o out.tif --breaks 0,40,42,45 --class-mode lower_bound
    geo-vectorize --input output/reclass.tif --output output/reclass.gpkg --values 55,60
    geo-vectorize -i data/noise.asc -o out.gpkg --reclassify --breaks 0,55,60,65,70,500 --workers 4
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from raster_vectorizer.pipeline import (
    DEFAULT_BREAKS,
    DEFAULT_CRS,
    DEFAULT_NO_DATA,
    RasterReclassifier,
    RasterVectorizer,
    ReclassifyConfig,
    VectorizeConfig,
)
from shared.python.exceptions import GeoVectorizeError

logger = logging.getLogger("geovectorize.raster_vectorizer.cli")

_DEFAULT_BREAKS_TEXT = ",".join(f"{b:g}" for b in DEFAULT_BREAKS)


def _parse_floats(text: str, option: str) -> tuple[float, ...] | None:
    """Parse a comma-separated number list; empty text means ``None``."""
    items = [item.strip() for item in text.split(",") if item.strip()]
    if not items:
        return None
    try:
        return tuple(float(item) for item in items)
    except ValueError as exc:
        raise click.BadParameter(f"expected comma-separated numbers, got '{text}'", param_hint=option) from exc


def _run(tool: RasterReclassifier | RasterVectorizer) -> None:
    try:
        tool.run()
    except GeoVectorizeError as exc:
        logger.error("%s failed: %s", tool.__class__.__name__, exc.message)
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)


_input_option = click.option(
    "--input", "-i", "input_path",
    required=True,
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    help="Path to the input raster (GeoTIFF, ESRI ASCII grid, ...).",
)
_band_option = click.option(
    "--band", "-b",
    type=int,
    default=0,
    show_default=True,
    help="0-based band index.",
)
_breaks_option = click.option(
    "--breaks",
    default=_DEFAULT_BREAKS_TEXT,
    show_default=True,
    help="Comma-separated, strictly increasing class breaks.",
)
_classes_option = click.option(
    "--classes",
    default="",
    help="Comma-separated class value per bin. Omit to derive them from --class-mode.",
)
_class_mode_option = click.option(
    "--class-mode",
    type=click.Choice(["ordinal", "lower_bound"], case_sensitive=False),
    default="ordinal",
    show_default=True,
    help="How class values are derived when --classes is omitted.",
)
_no_data_option = click.option(
    "--no-data",
    type=float,
    default=DEFAULT_NO_DATA,
    show_default=True,
    help="Output value for out-of-range and no-data cells.",
)
_verbose_option = click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")


# ---------------------------------------------------------------------------
# geo-reclassify
# ---------------------------------------------------------------------------


@click.command(
    name="geo-reclassify",
    help="Reclassify one raster band into discrete classes and write a GeoTIFF.",
)
@_input_option
@click.option(
    "--output", "-o", "output_path",
    required=True,
    type=click.Path(file_okay=True, dir_okay=False, path_type=Path),
    help="Path for the output GeoTIFF.",
)
@_band_option
@_breaks_option
@_classes_option
@_class_mode_option
@_no_data_option
@click.option(
    "--crs",
    default=DEFAULT_CRS,
    show_default=True,
    help="CRS attached when the raster has none (EPSG code, WKT or PROJ string).",
)
@_verbose_option
def reclassify_main(
    input_path: Path,
    output_path: Path,
    band: int,
    breaks: str,
    classes: str,
    class_mode: str,
    no_data: float,
    crs: str,
    verbose: bool,
) -> None:
    """CLI entry point — wires Click options into RasterReclassifier."""
    config = ReclassifyConfig(
        breaks=_parse_floats(breaks, "--breaks") or (),
        class_values=_parse_floats(classes, "--classes"),
        class_mode=class_mode.lower(),  # type: ignore[arg-type]
        no_data=no_data,
        band=band,
        default_crs=crs or None,
    )
    tool = RasterReclassifier(input_path, output_path, config, verbose=verbose)
    _run(tool)

    click.echo(f"\nReclassified raster written to: {output_path}")
    if tool.result is not None:
        click.echo(f"  {tool.result.summary()}")


# ---------------------------------------------------------------------------
# geo-vectorize
# ---------------------------------------------------------------------------


@click.command(
    name="geo-vectorize",
    help="Vectorize raster cells into one dissolved multipolygon per value, written to a GeoPackage.",
)
@_input_option
@click.option(
    "--output", "-o", "output_path",
    required=True,
    type=click.Path(file_okay=True, dir_okay=False, path_type=Path),
    help="Path for the output GeoPackage (.gpkg).",
)
@_band_option
@click.option(
    "--values",
    default="",
    help="Comma-separated cell values to extract. Omit to extract every valid value.",
)
@click.option("--layer", "layer_name", default=None, help="Output layer name. Defaults to the raster file stem.")
@click.option(
    "--strategy",
    type=click.Choice(["cells", "regions"], case_sensitive=False),
    default="cells",
    show_default=True,
    help="'cells' dissolves per-cell polygons; 'regions' polygonizes contiguous regions first.",
)
@click.option("--tolerance", type=float, default=1e-6, show_default=True, help="Value matching tolerance.")
@click.option("--workers", "max_workers", type=int, default=1, show_default=True, help="Threads for cell mapping.")
@click.option("--crs", default=None, help="CRS attached when the raster has none.")
@click.option(
    "--reclassify/--no-reclassify",
    "do_reclassify",
    default=False,
    show_default=True,
    help="Reclassify the band with --breaks before vectorizing.",
)
@_breaks_option
@_classes_option
@_class_mode_option
@_no_data_option
@click.option(
    "--append",
    is_flag=True,
    default=False,
    help="Keep an existing GeoPackage and only rewrite this layer.",
)
@_verbose_option
def vectorize_main(
    input_path: Path,
    output_path: Path,
    band: int,
    values: str,
    layer_name: str | None,
    strategy: str,
    tolerance: float,
    max_workers: int,
    crs: str | None,
    do_reclassify: bool,
    breaks: str,
    classes: str,
    class_mode: str,
    no_data: float,
    append: bool,
    verbose: bool,
) -> None:
    """CLI entry point — wires Click options into RasterVectorizer."""
    cell_values = _parse_floats(values, "--values")
    reclassify = None
    if do_reclassify:
        reclassify = ReclassifyConfig(
            breaks=_parse_floats(breaks, "--breaks") or (),
            class_values=_parse_floats(classes, "--classes"),
            class_mode=class_mode.lower(),  # type: ignore[arg-type]
            no_data=no_data,
            band=band,
            default_crs=None,
        )

    config = VectorizeConfig(
        band=0 if do_reclassify else band,
        cell_values=list(cell_values) if cell_values is not None else None,
        layer_name=layer_name,
        strategy=strategy.lower(),  # type: ignore[arg-type]
        tolerance=tolerance,
        max_workers=max_workers,
        default_crs=crs,
        reclassify=reclassify,
        replace=not append,
    )
    tool = RasterVectorizer(input_path, output_path, config, verbose=verbose)
    _run(tool)

    click.echo(f"\nFeatures written to: {output_path}")
    for feature in tool.features:
        click.echo(f"  {feature}")


if __name__ == "__main__":
    vectorize_main()
