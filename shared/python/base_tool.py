"""
geovectorize — Shared Base Tool
================================
Abstract base class that every geovectorize tool inherits from, plus the
process-wide logging setup.

Design Pattern:
    Template Method — the public ``run()`` method defines a fixed
    pipeline (validate → process → report) that subclasses fill in
    by implementing the abstract methods ``validate_inputs`` and
    ``process``.

Logging:
    Tools log through child loggers of the ``geovectorize`` root logger
    using four severities: LIFECYCLE (start/end of a run), INFO, DEBUG
    and ERROR.  :func:`configure_logging` installs the console handler
    once per process.

Usage:
    Do NOT instantiate this class directly.  Subclass it and implement
    the two abstract methods::

        from shared.python.base_tool import GeoTool

        class MyTool(GeoTool):
            def validate_inputs(self) -> None:
                ...
            def process(self) -> None:
                ...
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path

# ---------------------------------------------------------------------------
# Module-level logger — each tool gets its own child logger via
#   logging.getLogger("geovectorize.<tool>") inside its own module.
# ---------------------------------------------------------------------------
logger = logging.getLogger("geovectorize")

LIFECYCLE = 25
logging.addLevelName(LIFECYCLE, "LIFECYCLE")


def lifecycle(log: logging.Logger, msg: str, *args: object) -> None:
    """Log *msg* at the LIFECYCLE level (between INFO and WARNING)."""
    log.log(LIFECYCLE, msg, *args)


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Set up console logging for the ``geovectorize`` logger hierarchy.

    Attaches a :class:`logging.StreamHandler` to the root ``geovectorize``
    logger if no handlers are already present, so repeated calls never
    duplicate output.  Uses DEBUG level when *verbose* is ``True``,
    otherwise INFO.

    Returns:
        The configured root ``geovectorize`` logger.
    """
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt="[%(asctime)s] %(levelname)-8s %(name)s — %(message)s",
            datefmt="%H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger


class GeoTool(ABC):
    """Abstract base class for all geovectorize tools.

    Every concrete tool must inherit from this class and implement
    :meth:`validate_inputs` and :meth:`process`.  Calling :meth:`run`
    executes the full pipeline in the correct order.

    Attributes:
        input_path: Path to the primary input raster.
        output_path: Path where output will be written.
        verbose: When ``True`` the tool logs DEBUG-level messages in
            addition to LIFECYCLE/INFO/ERROR.

    Example::

        tool = RasterVectorizer(
            input_path=Path("reclass.tif"),
            output_path=Path("output/reclass.gpkg"),
            config=VectorizeConfig(cell_values=[55.0]),
        )
        tool.run()
    """

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        *,
        verbose: bool = False,
    ) -> None:
        """Initialise the base tool.

        Args:
            input_path: Path to the primary input raster.
            output_path: Path where the tool will write its output.
            verbose: Set to ``True`` to enable debug-level console
                     logging during the run.  Defaults to ``False``.
        """
        self.input_path: Path = Path(input_path)
        self.output_path: Path = Path(output_path)
        self.verbose: bool = verbose

        configure_logging(self.verbose)

    # ------------------------------------------------------------------
    # Abstract interface — subclasses MUST implement these
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_inputs(self) -> None:
        """Validate all inputs before processing begins.

        Subclasses should raise :class:`~shared.python.exceptions.InputValidationError`
        (or a subclass) when any input condition is not satisfied.
        Nothing may be written before this method returns.
        """

    @abstractmethod
    def process(self) -> None:
        """Execute the core geospatial processing logic.

        This method is called by :meth:`run` after :meth:`validate_inputs`
        has succeeded.  Any exception raised here will propagate up
        through :meth:`run`.
        """

    # ------------------------------------------------------------------
    # Template method — the public API callers use
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Execute the full tool pipeline.

        Runs the steps in order:

        1. :meth:`validate_inputs` — verify all preconditions.
        2. :meth:`process` — perform the geospatial work.
        3. :meth:`_report_success` — log the elapsed time and output path.

        Raises:
            Any exception raised by ``validate_inputs`` or ``process``
            propagates unchanged so callers can handle it appropriately.
        """
        lifecycle(logger, "Start %r", self)
        start = time.perf_counter()

        self.validate_inputs()
        self.process()

        elapsed = time.perf_counter() - start
        self._report_success(elapsed)

    # ------------------------------------------------------------------
    # Protected helpers — subclasses may override if needed
    # ------------------------------------------------------------------

    def _report_success(self, elapsed: float) -> None:
        """Log the end-of-run LIFECYCLE message with elapsed time and output path.

        Args:
            elapsed: Seconds taken for the full run, as returned by
                     ``time.perf_counter()``.
        """
        lifecycle(
            logger,
            "End %s in %.2fs → %s",
            self.__class__.__name__,
            elapsed,
            self.output_path,
        )

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"input_path={self.input_path!r}, "
            f"output_path={self.output_path!r})"
        )
