"""
Error handling utilities for the chromosome pipeline.

This module provides:
- The exception hierarchy used to abort a chromosome run
- The non-fatal ArchiveMoveWarning category
- A context manager that wraps unexpected stage errors
- Signal handlers that turn scheduler interrupts into exceptions
"""

import logging
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, stage: Optional[str] = None, details: Optional[Dict] = None):
        """Initialize pipeline error.

        Parameters
        ----------
        message : str
            Error message
        stage : str, optional
            Stage where error occurred
        details : dict, optional
            Additional error details
        """
        super().__init__(message)
        self.stage = stage
        self.details = details or {}


class ConfigMissing(PipelineError):
    """Raised when required configuration is absent or unreadable."""


class InvalidTaskIndex(ConfigMissing):
    """Raised when a scheduler task index does not map to a chromosome."""

    def __init__(self, index):
        """Initialize invalid task index error."""
        super().__init__(f"Invalid array id: {index}", details={"index": index})
        self.index = index


class NoInputFiles(PipelineError):
    """Raised when the results directory holds no genotype tables."""

    def __init__(self, results_dir: Union[str, Path], pattern: str):
        """Initialize no input files error."""
        message = f"No genotype files matching '*{pattern}' in {results_dir}"
        super().__init__(message, "input_catalog", {"results_dir": str(results_dir)})


class NoChromosomeData(PipelineError):
    """Raised when no sample has rows for the target chromosome."""

    def __init__(self, chromosome: str, n_samples: int):
        """Initialize no chromosome data error."""
        message = f"No {chromosome} data found in any of {n_samples} genotype files"
        super().__init__(
            message, "chromosome_filter", {"chromosome": chromosome, "samples": n_samples}
        )
        self.chromosome = chromosome


class RunnerFailure(PipelineError):
    """Raised when the outlier engine exits with a non-zero status."""

    def __init__(self, returncode: int, log_path: Optional[Path] = None):
        """Initialize runner failure error."""
        message = f"outliers exit={returncode}"
        if log_path is not None:
            message += f" (see {log_path})"
        super().__init__(
            message,
            "outliers_invocation",
            {"returncode": returncode, "log_path": str(log_path) if log_path else None},
        )
        self.returncode = returncode
        self.log_path = log_path


class AggregationEmpty(PipelineError):
    """Raised when aggregation yields no data rows for the chromosome."""

    def __init__(self, message: str):
        """Initialize aggregation empty error."""
        super().__init__(message, "result_aggregation")


class ToolNotFoundError(PipelineError):
    """Raised when a required external tool is not found."""

    def __init__(self, tool: str, stage: Optional[str] = None):
        """Initialize tool not found error."""
        message = f"Required tool '{tool}' not found in PATH"
        super().__init__(message, stage, {"tool": tool})


class StageExecutionError(PipelineError):
    """Raised when a stage fails with an unexpected error."""

    def __init__(self, stage_name: str, original_error: Exception):
        """Initialize stage execution error."""
        message = f"Stage '{stage_name}' failed: {str(original_error)}"
        super().__init__(
            message,
            stage_name,
            {
                "original_error": str(original_error),
                "error_type": type(original_error).__name__,
            },
        )
        self.original_error = original_error

    def __reduce__(self):
        """Custom pickling to handle multiprocessing correctly."""
        return (self.__class__, (self.stage, self.original_error), self.__dict__)


class PipelineInterrupted(PipelineError):
    """Raised when the scheduler signals the process to stop."""

    def __init__(self, signum: int):
        """Initialize interruption error."""
        super().__init__(f"Interrupted by signal {signal.Signals(signum).name}")
        self.signum = signum


class ArchiveMoveWarning(UserWarning):
    """A per-sample output could not be moved into the archive."""


@contextmanager
def graceful_error_handling(stage_name: str, logger: Optional[logging.Logger] = None):
    """Context manager for error handling in stages.

    Pipeline errors pass through unchanged; anything else is logged and
    wrapped in a StageExecutionError so the CLI can report it uniformly.

    Parameters
    ----------
    stage_name : str
        Name of the stage for error reporting
    logger : logging.Logger, optional
        Logger instance

    Examples
    --------
    >>> with graceful_error_handling("chromosome_filter"):
    ...     pass
    """
    _logger = logger or logging.getLogger(__name__)

    try:
        yield
    except PipelineError:
        raise
    except Exception as e:
        _logger.error(f"Unexpected error in {stage_name}: {e}", exc_info=True)
        raise StageExecutionError(stage_name, e) from e


def _raise_interrupt(signum, frame):
    raise PipelineInterrupted(signum)


@contextmanager
def interrupt_guard(signals=(signal.SIGTERM, signal.SIGINT)):
    """Convert termination signals into PipelineInterrupted for the enclosed block.

    Scheduler wall-clock limits deliver SIGTERM before killing the job; raising
    an exception lets ``finally`` blocks remove node-local scratch space.
    Previous handlers are restored on exit. Outside the main thread this is a
    no-op, because Python only installs handlers there.
    """
    previous = {}
    try:
        for signum in signals:
            previous[signum] = signal.signal(signum, _raise_interrupt)
    except ValueError:
        logger.debug("Not in main thread; signal handlers not installed")
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
