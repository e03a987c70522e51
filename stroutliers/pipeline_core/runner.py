"""
PipelineRunner - Executes stages in dependency order.

This module provides the PipelineRunner class that orders stages by their
declared dependencies, runs them one after another and reports timings.
Parallelism inside a run lives in the stages themselves (chromosome
extraction); stages never run concurrently with each other.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Dict, List

from .context import PipelineContext
from .stage import Stage

logger = logging.getLogger(__name__)


class PipelineRunner:
    """Executes stages in dependency order.

    The runner:
    - Builds the dependency graph
    - Groups stages into levels by topological sort
    - Executes every stage, stopping at the first failure
    - Logs a per-stage timing summary
    """

    def __init__(self):
        """Initialize the pipeline runner."""
        self._execution_times: Dict[str, float] = {}
        self._subtask_times: Dict[str, Dict[str, float]] = {}

    def run(self, stages: List[Stage], context: PipelineContext) -> PipelineContext:
        """Execute all stages in dependency order.

        Parameters
        ----------
        stages : List[Stage]
            List of stages to execute
        context : PipelineContext
            Initial pipeline context

        Returns
        -------
        PipelineContext
            Final context after all stages complete

        Raises
        ------
        ValueError
            If stage names are duplicated or dependencies are circular
        Exception
            If any stage fails
        """
        start_time = time.time()
        logger.info(f"Starting pipeline execution with {len(stages)} stages")

        stage_map = {stage.name: stage for stage in stages}
        if len(stage_map) != len(stages):
            raise ValueError("Duplicate stage names detected")

        execution_plan = self._create_execution_plan(stages)
        logger.debug(f"Execution plan has {len(execution_plan)} levels")
        for level, level_stages in enumerate(execution_plan):
            logger.debug(f"Level {level}: {[s.name for s in level_stages]}")

        for level_stages in execution_plan:
            for stage in level_stages:
                context = self._execute_stage(stage, context)

        total_time = time.time() - start_time
        logger.info(f"Pipeline execution completed in {total_time:.1f}s")
        self._log_execution_summary()

        return context

    def _create_execution_plan(self, stages: List[Stage]) -> List[List[Stage]]:
        """Group stages by dependency level.

        Within a level, stages keep the order in which they were given.

        Raises
        ------
        ValueError
            If circular dependencies are detected
        """
        graph = {stage.name: stage for stage in stages}
        order = {stage.name: i for i, stage in enumerate(stages)}

        dependencies = {
            stage.name: {dep for dep in stage.dependencies if dep in graph} for stage in stages
        }

        dependents = defaultdict(set)
        for stage_name, deps in dependencies.items():
            for dep in deps:
                dependents[dep].add(stage_name)

        in_degree = {name: len(deps) for name, deps in dependencies.items()}
        queue = deque(sorted((n for n, d in in_degree.items() if d == 0), key=order.get))

        execution_plan = []
        processed = set()

        while queue:
            current_level = []
            next_ready = []
            for _ in range(len(queue)):
                stage_name = queue.popleft()
                current_level.append(graph[stage_name])
                processed.add(stage_name)

                for dependent in dependents[stage_name]:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        next_ready.append(dependent)

            queue.extend(sorted(next_ready, key=order.get))
            execution_plan.append(current_level)

        if len(processed) != len(stages):
            unprocessed = set(graph.keys()) - processed
            raise ValueError(f"Circular dependency detected involving stages: {unprocessed}")

        return execution_plan

    def _execute_stage(self, stage: Stage, context: PipelineContext) -> PipelineContext:
        """Execute a single stage and track timing."""
        start_time = time.time()
        result = stage(context)
        self._execution_times[stage.name] = time.time() - start_time

        if stage.subtask_times:
            self._subtask_times[stage.name] = stage.subtask_times

        return result

    def _log_execution_summary(self) -> None:
        """Log summary of stage execution times."""
        if not self._execution_times:
            return

        logger.info("=" * 60)
        logger.info("Stage Execution Summary")
        logger.info("=" * 60)

        sorted_times = sorted(self._execution_times.items(), key=lambda x: x[1], reverse=True)
        total_time = sum(self._execution_times.values())

        for stage_name, elapsed in sorted_times:
            percentage = (elapsed / total_time) * 100 if total_time > 0 else 0
            logger.info(f"{stage_name:30s} {elapsed:6.1f}s ({percentage:4.1f}%)")

            for subtask_name, subtask_elapsed in sorted(
                self._subtask_times.get(stage_name, {}).items(), key=lambda x: x[1], reverse=True
            ):
                subtask_percentage = (subtask_elapsed / elapsed) * 100 if elapsed > 0 else 0
                logger.info(
                    f"  └─ {subtask_name:32s} {subtask_elapsed:6.1f}s ({subtask_percentage:4.1f}%)"
                )

        logger.info("-" * 60)
        logger.info(f"{'Total stage time:':30s} {total_time:6.1f}s")
        logger.info("=" * 60)

    def dry_run(self, stages: List[Stage]) -> List[List[str]]:
        """Return the execution plan as stage names per level without running anything."""
        execution_plan = self._create_execution_plan(stages)
        return [[stage.name for stage in level] for level in execution_plan]

    @property
    def execution_times(self) -> Dict[str, float]:
        """Recorded wall-clock time per executed stage."""
        return dict(self._execution_times)
