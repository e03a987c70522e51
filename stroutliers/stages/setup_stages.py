"""
Setup stages for input discovery and tool resolution.

This module contains stages that run before any data is written:
- Genotype table discovery
- One-time selection of the row-filter and engine execution strategies
"""

import logging
from typing import List

from ..catalog import list_genotype_files
from ..filters import select_row_filter
from ..outliers import resolve_outliers_runner
from ..pipeline_core import PipelineContext, Stage
from ..pipeline_core.error_handling import graceful_error_handling

logger = logging.getLogger(__name__)


class InputCatalogStage(Stage):
    """Enumerate the per-sample genotype tables in the results directory."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "input_catalog"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Enumerate per-sample genotype tables"

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Populate ``context.genotype_files``."""
        with graceful_error_handling(self.name, logger):
            context.genotype_files = list_genotype_files(
                context.results_dir, context.config.get("genotype_suffix", "-genotype.txt")
            )
        return context

    def get_output_files(self, context: PipelineContext) -> List:
        """Return the catalogued input paths."""
        return [g.path for g in context.genotype_files]


class ToolResolutionStage(Stage):
    """Select the row filter and the engine runner once for the whole run."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "tool_resolution"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Resolve row-filter and outlier engine strategies"

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Probe the environment and store both strategies on the context."""
        config = context.config
        if context.row_filter is None:
            context.row_filter = select_row_filter(config.get("row_filter"))
        if context.outliers_runner is None:
            context.outliers_runner = resolve_outliers_runner(
                config.get("outliers_runner"),
                config.get("outliers_module"),
                config.get("python_interpreter"),
            )
        logger.info(
            f"Row filter: {context.row_filter.name}; "
            f"outliers runner: {context.outliers_runner.describe()}"
        )
        return context

