"""
Processing stages for chromosome extraction and engine invocation.

This module contains stages that handle the core data movement:
- Parallel per-sample chromosome extraction
- Unplaced table lookup for retained samples
- The single outlier engine invocation
"""

import logging
from pathlib import Path
from typing import List, Set

from ..catalog import resolve_unplaced
from ..filters import extract_chromosome_subsets
from ..models import RunState
from ..outliers import engine_environment, run_outliers
from ..pipeline_core import PipelineContext, Stage
from ..pipeline_core.error_handling import graceful_error_handling
from ..utils import extract_parallelism

logger = logging.getLogger(__name__)


class ChromosomeFilterStage(Stage):
    """Extract each sample's rows for the target chromosome in parallel."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "chromosome_filter"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Extract chromosome rows from every genotype table"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"input_catalog", "tool_resolution"}

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Populate ``context.subsets`` with the retained samples."""
        workers = extract_parallelism(
            context.cpus, int(context.config.get("extract_reserve_cpus", 2))
        )
        start = self._start_subtask("extract")
        with graceful_error_handling(self.name, logger):
            context.subsets = extract_chromosome_subsets(
                context.genotype_files,
                context.chromosome,
                context.workspace,
                context.row_filter,
                workers=workers,
                suffix=context.config.get("genotype_suffix", "-genotype.txt"),
            )
        self._end_subtask("extract", start)
        return context

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the retained subset files."""
        return [s.path for s in context.subsets]


class UnplacedResolutionStage(Stage):
    """Find the non-empty unplaced table of every retained sample."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "unplaced_resolution"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Resolve unplaced tables of retained samples"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"chromosome_filter"}

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Populate ``context.unplaced_files``."""
        context.unplaced_files = resolve_unplaced(
            context.subsets,
            context.results_dir,
            context.config.get("unplaced_suffix", "-unplaced.txt"),
        )
        return context


class OutliersInvocationStage(Stage):
    """Run the outlier engine once, inside the workspace's working directory."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "outliers_invocation"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Run the STRling outlier engine"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"unplaced_resolution"}

    @property
    def run_state(self) -> RunState:
        """Return the run state of this stage."""
        return RunState.INVOKE

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Invoke the engine and collect its per-sample outputs."""
        logger.info(f"Running outliers for {context.chromosome} ...")
        with graceful_error_handling(self.name, logger):
            context.engine_returncode = run_outliers(
                context.outliers_runner,
                [s.path for s in context.subsets],
                context.unplaced_paths,
                context.workspace.work_dir,
                log_path=context.log_path,
                env=engine_environment(context.config.get("engine_env")),
            )
        context.sample_outputs = context.workspace.list_work_files(
            context.config.get("sample_output_glob", "*.STRs.tsv")
        )
        logger.info(f"Engine produced {len(context.sample_outputs)} per-sample files")
        return context

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the per-sample engine outputs."""
        return list(context.sample_outputs)
