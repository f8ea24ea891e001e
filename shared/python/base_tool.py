"""
Urban Heat Risk — Shared Base Tool
===================================
Abstract base class for the batch tools in this repository.

Design Pattern:
    Template Method — the public ``run()`` method fixes the pipeline
    (validate → process → report) and subclasses fill in
    ``validate_inputs`` and ``process``.  Inside ``process`` a subclass
    wraps each step in :meth:`GeoTool._stage` so a failure is logged with
    the stage that raised it before it propagates.

Usage::

    from shared.python.base_tool import GeoTool

    class MyTool(GeoTool):
        def validate_inputs(self) -> None:
            ...
        def process(self) -> None:
            with self._stage("load", self.input_path):
                ...
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from shared.python.exceptions import UrbanHeatError

# Root logger for the project; every module uses a child of it.
logger = logging.getLogger("urbanheat")


class GeoTool(ABC):
    """Abstract base class for one-shot geospatial batch tools.

    Attributes:
        input_path: Primary input file or directory.
        output_path: Output file or directory.
        verbose: When ``True`` DEBUG messages are logged.
        completed_stages: Names of the stages that finished during the
            current run, in order.
    """

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        *,
        verbose: bool = False,
    ) -> None:
        self.input_path: Path = Path(input_path)
        self.output_path: Path = Path(output_path)
        self.verbose: bool = verbose
        self.completed_stages: list[str] = []

        self._configure_logging()

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_inputs(self) -> None:
        """Check every precondition before processing begins.

        Raises:
            InputValidationError: If a required file is missing or a
                parameter is out of range.
        """

    @abstractmethod
    def process(self) -> None:
        """Run the tool's processing steps.

        Called by :meth:`run` once :meth:`validate_inputs` has passed.
        """

    # ------------------------------------------------------------------
    # Template method
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Execute validate → process → report.

        There are no retries: any exception aborts the run and propagates
        unchanged.
        """
        logger.info("Starting %s", self.__class__.__name__)
        start = time.perf_counter()
        self.completed_stages = []

        with self._stage("validate", self.input_path):
            self.validate_inputs()
        self.process()

        elapsed = time.perf_counter() - start
        self._report_success(elapsed)

    # ------------------------------------------------------------------
    # Protected helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _stage(self, name: str, subject: Any = None) -> Iterator[None]:
        """Run a block as a named pipeline stage.

        On failure the stage name and *subject* (the data being worked on)
        are logged at ERROR level and recorded on the exception's
        ``stage`` attribute when it is an :class:`UrbanHeatError`.

        Args:
            name: Short stage name, e.g. ``"align"``.
            subject: Whatever identifies the stage input (a path, a list
                of grid names); only used for log messages.
        """
        logger.debug("Stage '%s' started (%s)", name, subject)
        try:
            yield
        except UrbanHeatError as exc:
            if exc.stage is None:
                exc.stage = name
            logger.error("Stage '%s' failed on %s: %s", name, subject, exc)
            raise
        except Exception:
            logger.exception("Stage '%s' failed unexpectedly on %s", name, subject)
            raise
        self.completed_stages.append(name)
        logger.debug("Stage '%s' finished", name)

    def _report_success(self, elapsed: float) -> None:
        """Log elapsed time and the output location."""
        logger.info(
            "%s completed in %.2fs → %s",
            self.__class__.__name__,
            elapsed,
            self.output_path,
        )

    def _configure_logging(self) -> None:
        """Attach a console handler to the ``urbanheat`` logger once.

        Uses DEBUG level when ``self.verbose`` is ``True``, otherwise INFO.
        """
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                fmt="[%(asctime)s] %(levelname)-8s %(name)s — %(message)s",
                datefmt="%H:%M:%S",
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"input_path={self.input_path!r}, "
            f"output_path={self.output_path!r})"
        )
