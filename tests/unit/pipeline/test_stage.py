"""Unit tests for Stage abstract base class."""

from unittest.mock import Mock

import pytest

from stroutliers.models import RunState
from stroutliers.pipeline_core import PipelineContext, Stage


class ConcreteStage(Stage):
    """Concrete implementation for testing."""

    def __init__(self, name="test_stage", dependencies=None, state=None):
        super().__init__()
        self._name = name
        self._dependencies = dependencies or set()
        self._state = state
        self.process_called = False

    @property
    def name(self):
        """Return the stage name."""
        return self._name

    @property
    def dependencies(self):
        """Return the stage dependencies."""
        return self._dependencies

    @property
    def run_state(self):
        """Return the configured run state."""
        return self._state or super().run_state

    def _process(self, context):
        self.process_called = True
        start = self._start_subtask("work")
        self._end_subtask("work", start)
        return context


class FailingStage(Stage):
    """Stage that fails during processing."""

    @property
    def name(self):
        """Return the stage name."""
        return "failing_stage"

    def _process(self, context):
        raise ValueError("Stage failed!")


class TestStage:
    """Test suite for Stage base class."""

    @pytest.fixture
    def context(self):
        """Create a mock PipelineContext."""
        context = Mock(spec=PipelineContext)
        context.is_complete = Mock(return_value=False)
        context.mark_complete = Mock()
        context.transition = Mock()
        return context

    def test_stage_properties(self):
        """Test stage property defaults."""
        stage = ConcreteStage()
        assert stage.name == "test_stage"
        assert stage.dependencies == set()
        assert stage.description == "Stage: test_stage"
        assert stage.run_state == RunState.EXTRACT

    def test_stage_execution(self, context):
        """Test normal stage execution."""
        stage = ConcreteStage(state=RunState.INVOKE)
        result = stage(context)

        assert result is context
        assert stage.process_called
        context.transition.assert_called_once_with(RunState.INVOKE)
        context.mark_complete.assert_called_once_with("test_stage")

    def test_missing_dependencies(self, context):
        """A stage refuses to run before its dependencies."""
        stage = ConcreteStage(dependencies={"dep_a", "dep_b"})
        with pytest.raises(RuntimeError, match="dep_a, dep_b"):
            stage(context)
        assert not stage.process_called

    def test_already_complete_is_skipped(self, context):
        """A completed stage is not executed again."""
        context.is_complete = Mock(side_effect=lambda name: name == "test_stage")
        stage = ConcreteStage()
        stage(context)
        assert not stage.process_called
        context.mark_complete.assert_not_called()

    def test_failure_propagates_unchanged(self, context):
        """Errors from _process are re-raised and the stage is not completed."""
        with pytest.raises(ValueError, match="Stage failed!"):
            FailingStage()(context)
        context.mark_complete.assert_not_called()

    def test_subtask_times(self, context):
        """Subtask timings are recorded."""
        stage = ConcreteStage()
        stage(context)
        assert "work" in stage.subtask_times
        assert stage.subtask_times["work"] >= 0

    def test_repr(self):
        stage = ConcreteStage(dependencies={"x"})
        assert "test_stage" in repr(stage)
        assert "depends_on" in repr(stage)
