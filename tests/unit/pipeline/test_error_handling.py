"""Unit tests for error handling utilities."""

import pickle
import signal
from pathlib import Path

import pytest

from stroutliers.pipeline_core.error_handling import (
    AggregationEmpty,
    ArchiveMoveWarning,
    ConfigMissing,
    InvalidTaskIndex,
    NoChromosomeData,
    NoInputFiles,
    PipelineError,
    PipelineInterrupted,
    RunnerFailure,
    StageExecutionError,
    ToolNotFoundError,
    graceful_error_handling,
    interrupt_guard,
)


class TestExceptionClasses:
    """Test custom exception classes."""

    def test_pipeline_error(self):
        """Test PipelineError initialization."""
        error = PipelineError("Test error", stage="test_stage", details={"key": "value"})
        assert str(error) == "Test error"
        assert error.stage == "test_stage"
        assert error.details == {"key": "value"}

    def test_hierarchy(self):
        """Every fatal error is a PipelineError; the archive warning is not."""
        for cls in (
            ConfigMissing,
            InvalidTaskIndex,
            NoInputFiles,
            NoChromosomeData,
            RunnerFailure,
            AggregationEmpty,
            ToolNotFoundError,
            StageExecutionError,
            PipelineInterrupted,
        ):
            assert issubclass(cls, PipelineError)
        assert issubclass(InvalidTaskIndex, ConfigMissing)
        assert issubclass(ArchiveMoveWarning, UserWarning)
        assert not issubclass(ArchiveMoveWarning, PipelineError)

    def test_invalid_task_index(self):
        error = InvalidTaskIndex(25)
        assert str(error) == "Invalid array id: 25"
        assert error.index == 25

    def test_runner_failure(self):
        """RunnerFailure carries the exit status and log location."""
        error = RunnerFailure(2, Path("/logs/outliers_chr1.log"))
        assert str(error).startswith("outliers exit=2")
        assert "/logs/outliers_chr1.log" in str(error)
        assert error.returncode == 2
        assert error.stage == "outliers_invocation"

    def test_no_chromosome_data(self):
        error = NoChromosomeData("chrY", 10)
        assert "chrY" in str(error)
        assert error.details["samples"] == 10

    def test_tool_not_found_error(self):
        error = ToolNotFoundError("rg", stage="tool_resolution")
        assert "rg" in str(error)
        assert "not found in PATH" in str(error)
        assert error.details["tool"] == "rg"

    def test_stage_execution_error_pickles(self):
        """StageExecutionError survives a round trip through a worker process."""
        error = StageExecutionError("chromosome_filter", OSError("disk full"))
        restored = pickle.loads(pickle.dumps(error))
        assert restored.stage == "chromosome_filter"
        assert "disk full" in str(restored)


class TestGracefulErrorHandling:
    """Test graceful_error_handling context manager."""

    def test_pipeline_error_passes_through(self):
        with pytest.raises(NoInputFiles):
            with graceful_error_handling("input_catalog"):
                raise NoInputFiles("/data", "-genotype.txt")

    def test_other_errors_are_wrapped(self):
        with pytest.raises(StageExecutionError) as exc_info:
            with graceful_error_handling("result_aggregation"):
                raise OSError("boom")
        assert exc_info.value.stage == "result_aggregation"
        assert isinstance(exc_info.value.original_error, OSError)

    def test_no_error(self):
        with graceful_error_handling("any"):
            value = 1
        assert value == 1


class TestInterruptGuard:
    """Test conversion of termination signals."""

    def test_sigterm_raises_pipeline_interrupted(self):
        """SIGTERM inside the guard becomes an exception that unwinds finally blocks."""
        cleaned = []
        with pytest.raises(PipelineInterrupted) as exc_info:
            with interrupt_guard():
                try:
                    signal.raise_signal(signal.SIGTERM)
                finally:
                    cleaned.append(True)
        assert cleaned == [True]
        assert exc_info.value.signum == signal.SIGTERM
        assert "SIGTERM" in str(exc_info.value)

    def test_handlers_restored(self):
        before = signal.getsignal(signal.SIGTERM)
        with interrupt_guard():
            assert signal.getsignal(signal.SIGTERM) is not before
        assert signal.getsignal(signal.SIGTERM) is before
