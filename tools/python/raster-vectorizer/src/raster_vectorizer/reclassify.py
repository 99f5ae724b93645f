"""
Raster Vectorizer — Reclassification Engine
============================================
Maps continuous raster samples onto discrete class codes using an ordered
break table.

Binning policy for ``n + 1`` breaks ``b0 < b1 < ... < bn``::

    bin i   = [b_i, b_(i+1))     for i < n - 1   (left-closed, right-open)
    bin n-1 = [b_(n-1), b_n]                      (closed on both ends)

Anything outside ``[b0, bn]``, NaN, or equal to a source no-data marker
becomes the output no-data value.

Class values come from one of two explicit modes (or an explicit list):

    ``"ordinal"``       1..N ascending (default)
    ``"lower_bound"``   each bin's lower break rounded to the nearest integer,
                        e.g. breaks ``0, 40, 42, 45`` → classes ``0, 40, 42``

Classes:
    BreakTable      Validated breaks + class values.

Functions:
    derive_class_values  Class values for a break list in a given mode.
    reclassify           Classify one band of a :class:`RasterGrid`.

Usage::

    from raster_vectorizer.reclassify import BreakTable, reclassify

    table = BreakTable.from_breaks([0, 55, 60, 65, 70, 500])
    classified = reclassify(grid, band=0, table=table, no_data=-100)
"""

from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass
from typing import Literal, Sequence

import numpy as np
import numpy.typing as npt

from raster_vectorizer.grid import RasterGrid
from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

logger = logging.getLogger("geovectorize.raster_vectorizer.reclassify")

ClassMode = Literal["ordinal", "lower_bound"]
CLASS_MODES: tuple[str, ...] = ("ordinal", "lower_bound")


def derive_class_values(breaks: Sequence[float], mode: ClassMode = "ordinal") -> tuple[float, ...]:
    """Derive one class value per bin of *breaks*.

    Args:
        breaks: Validated, strictly increasing breaks.
        mode: ``"ordinal"`` for ``1..N`` or ``"lower_bound"`` for the
              rounded lower break of each bin (halves round up).

    Raises:
        InputValidationError: If *mode* is unknown.
    """
    bins = len(breaks) - 1
    if mode == "ordinal":
        return tuple(float(i) for i in range(1, bins + 1))
    if mode == "lower_bound":
        return tuple(float(math.floor(b + 0.5)) for b in breaks[:-1])
    raise InputValidationError(
        f"Unknown class mode '{mode}'. Choose one of: {', '.join(CLASS_MODES)}"
    )


# ---------------------------------------------------------------------------
# Break table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BreakTable:
    """Ordered class boundaries with one class value per bin.

    Validation happens on construction, so a :class:`BreakTable` that
    exists is always usable.

    Attributes:
        breaks: At least two strictly increasing, finite break values.
        class_values: ``len(breaks) - 1`` class values, in bin order.

    Raises:
        InputValidationError: On too few breaks, a non-increasing step, or
            a class value count that does not match the bin count.
    """

    breaks: tuple[float, ...]
    class_values: tuple[float, ...]

    def __post_init__(self) -> None:
        breaks = tuple(float(b) for b in self.breaks)
        Validators.assert_strictly_increasing(breaks, "breaks")
        class_values = tuple(float(v) for v in self.class_values)
        if len(class_values) != len(breaks) - 1:
            raise InputValidationError(
                "class_values length must be breaks length - 1 "
                f"(got {len(class_values)} class value(s) for {len(breaks)} breaks)."
            )
        if not all(math.isfinite(v) for v in class_values):
            raise InputValidationError(f"class_values must be finite numbers: {list(class_values)}")
        object.__setattr__(self, "breaks", breaks)
        object.__setattr__(self, "class_values", class_values)

    @classmethod
    def from_breaks(
        cls,
        breaks: Sequence[float],
        class_values: Sequence[float] | None = None,
        *,
        mode: ClassMode = "ordinal",
    ) -> BreakTable:
        """Build a table from *breaks*, deriving class values when omitted.

        Args:
            breaks: Break values, e.g. ``[0, 55, 60, 65, 70, 500]``.
            class_values: Explicit class values; takes precedence over *mode*.
            mode: Derivation mode used when *class_values* is ``None``.
        """
        breaks = [float(b) for b in breaks]
        Validators.assert_strictly_increasing(breaks, "breaks")
        if class_values is None:
            class_values = derive_class_values(breaks, mode)
        return cls(tuple(breaks), tuple(class_values))

    @property
    def bins(self) -> int:
        """Number of bins (``len(breaks) - 1``)."""
        return len(self.breaks) - 1

    def bin_index(self, value: float) -> int | None:
        """Return the 0-based bin holding *value*, or ``None`` if out of range."""
        if math.isnan(value):
            return None
        if value == self.breaks[-1]:
            return self.bins - 1
        index = bisect.bisect_right(self.breaks, value) - 1
        return index if 0 <= index < self.bins else None

    def classify(self, values: npt.ArrayLike, no_data: float) -> npt.NDArray[np.float64]:
        """Vectorised :meth:`bin_index` + class lookup over an array.

        Args:
            values: Samples of any shape.
            no_data: Value written where a sample falls in no bin.

        Returns:
            New float64 array of class values / *no_data*, same shape.
        """
        values = np.asarray(values, dtype=np.float64)
        breaks = np.asarray(self.breaks, dtype=np.float64)
        classes = np.asarray(self.class_values, dtype=np.float64)

        # NaN sorts past the last break and lands out of range
        index = np.searchsorted(breaks, values, side="right") - 1
        index = np.where(values == breaks[-1], self.bins - 1, index)
        in_range = (index >= 0) & (index < self.bins)

        out = np.full(values.shape, no_data, dtype=np.float64)
        out[in_range] = classes[index[in_range]]
        return out


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def reclassify(
    grid: RasterGrid,
    band: int,
    table: BreakTable,
    no_data: float = -100.0,
) -> RasterGrid:
    """Classify 0-based *band* of *grid* with *table*.

    Source cells that are NaN or equal to one of the band's no-data
    markers become *no_data*.  The result is a new single-band grid with
    the same dimensions, transform and CRS whose only no-data marker is
    *no_data*; *grid* is left untouched.

    Raises:
        BandIndexError: If *band* does not exist.
    """
    values = grid.band_array(band)
    classified = table.classify(values, no_data)
    classified[grid.is_nodata(values, band)] = no_data

    logger.debug(
        "Reclassified band %d of %s into %d bin(s); %d no-data cell(s)",
        band, grid.name or "raster", table.bins,
        int(np.count_nonzero(classified == no_data)),
    )
    return RasterGrid(
        data=classified,
        transform=grid.transform,
        crs=grid.crs,
        nodata=((float(no_data),),),
        name=grid.name,
    )
