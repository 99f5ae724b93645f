"""
geovectorize — Shared Input Validators
=======================================
Static utility methods used by every geovectorize tool to validate
common preconditions before processing begins.

All methods raise an appropriate exception from
:mod:`shared.python.exceptions` rather than returning booleans — this
makes ``validate_inputs`` implementations in each tool simple and
readable::

    class MyTool(GeoTool):
        def validate_inputs(self) -> None:
            Validators.assert_file_exists(self.input_path)
            Validators.assert_supported_extension(self.input_path, [".tif"])
            Validators.assert_strictly_increasing(self.config.breaks, "breaks")
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Sequence

# Lazy import for pyproj (assert_crs_valid) so tools that never stamp a
# CRS avoid the import cost at startup.

from shared.python.exceptions import (
    BandIndexError,
    CRSError,
    InputValidationError,
    OutputWriteError,
)


class Validators:
    """Collection of static precondition checks shared across all tools.

    All methods are ``@staticmethod`` — this class is never instantiated.
    It exists purely as a logical namespace.
    """

    # ------------------------------------------------------------------
    # File-system checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_file_exists(path: Path) -> None:
        """Assert that *path* points to an existing regular file.

        Args:
            path: Path object to check.

        Raises:
            InputValidationError: If *path* does not exist or is a
                directory rather than a file.

        Example::

            Validators.assert_file_exists(Path("data/dem.tif"))
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(
                f"Input file not found: '{path}'. "
                "Check that the path is correct and the file exists."
            )
        if path.is_dir():
            raise InputValidationError(
                f"Expected a file but got a directory: '{path}'."
            )

    @staticmethod
    def assert_output_dir_writable(output_path: Path) -> None:
        """Assert that the parent directory of *output_path* is writable.

        Creates the parent directory (and any missing parents) if it does
        not yet exist, so authors never have to pre-create output dirs.

        Args:
            output_path: Intended output file path.  The parent directory
                         is created if absent.

        Raises:
            OutputWriteError: If the parent directory cannot be created.
        """
        parent = Path(output_path).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output_path), str(exc)) from exc

    @staticmethod
    def assert_supported_extension(path: Path, extensions: Sequence[str]) -> None:
        """Assert that *path* has one of the allowed file extensions.

        Args:
            path: File path to check.
            extensions: Sequence of allowed extensions, each starting with
                        a dot (e.g. ``[".tif", ".asc"]``).

        Raises:
            InputValidationError: If the file extension is not in
                *extensions*.
        """
        path = Path(path)
        suffix = path.suffix.lower()
        allowed = [ext.lower() for ext in extensions]
        if suffix not in allowed:
            raise InputValidationError(
                f"Unsupported file extension '{suffix}' for '{path.name}'. "
                f"Accepted extensions: {', '.join(allowed)}"
            )

    # ------------------------------------------------------------------
    # CRS / projection checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_crs_valid(crs_string: str) -> None:
        """Assert that *crs_string* can be parsed as a valid CRS.

        Uses :mod:`pyproj` to attempt parsing.  Accepts EPSG codes
        (``"EPSG:2056"``), PROJ strings, and WKT strings.

        Raises:
            CRSError: If *crs_string* is not recognised by pyproj.
        """
        try:
            from pyproj import CRS  # noqa: PLC0415

            CRS.from_user_input(crs_string)
        except Exception as exc:
            raise CRSError(crs_string) from exc

    # ------------------------------------------------------------------
    # Numeric sequence checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_strictly_increasing(values: Sequence[float], label: str = "values") -> None:
        """Assert that *values* holds at least two finite, strictly increasing numbers.

        Args:
            values: Sequence to check, e.g. a break table.
            label: Name used in the error message.

        Raises:
            InputValidationError: If fewer than two values are given, a
                value is NaN/infinite, or any step is not increasing.

        Example::

            Validators.assert_strictly_increasing([0, 55, 60, 500], "breaks")
        """
        values = list(values)
        if len(values) < 2:
            raise InputValidationError(
                f"Provide at least two {label}, got {len(values)}."
            )
        if not all(math.isfinite(v) for v in values):
            raise InputValidationError(f"{label} must be finite numbers: {values}")
        for previous, current in zip(values, values[1:]):
            if not current > previous:
                raise InputValidationError(
                    f"{label} must be strictly increasing: {values}"
                )

    @staticmethod
    def assert_values_non_empty(values: Sequence[float] | None, label: str = "values") -> None:
        """Assert that an explicit value list is non-empty and contains only numbers.

        ``None`` means "not restricted" and passes.

        Raises:
            InputValidationError: If *values* is empty or holds ``None``/NaN.
        """
        if values is None:
            return
        values = list(values)
        if not values:
            raise InputValidationError(f"{label} must not be empty.")
        if any(v is None or math.isnan(v) for v in values):
            raise InputValidationError(f"{label} must not contain null values: {values}")

    # ------------------------------------------------------------------
    # Raster checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_band_index_valid(band_index: int, total_bands: int | None = None) -> None:
        """Assert that *band_index* is within the valid range for a raster.

        Args:
            band_index: 0-based band index requested by the user.
            total_bands: Total number of bands in the raster.  When
                         ``None`` only the lower bound is checked.

        Raises:
            BandIndexError: If *band_index* is negative or not below
                *total_bands*.

        Example::

            Validators.assert_band_index_valid(band_index=0, total_bands=1)
        """
        if band_index < 0:
            raise BandIndexError(band_index)
        if total_bands is not None and band_index >= total_bands:
            raise BandIndexError(band_index, total_bands)
