"""
Output stages for aggregation, archiving and the run summary.

This module contains stages that publish results:
- Atomic chromosome aggregate
- Per-sample output archive
- Per-sample summary table
"""

import logging
from pathlib import Path
from typing import List, Set

import pandas as pd

from ..aggregate import aggregate_sample_outputs, archive_sample_outputs
from ..models import ChromosomeSubset, RunState
from ..pipeline_core import PipelineContext, Stage
from ..pipeline_core.error_handling import graceful_error_handling

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = ["sample", "subset_rows", "output_file", "output_rows"]


class ResultAggregationStage(Stage):
    """Merge per-sample outputs into the chromosome aggregate."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "result_aggregation"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Aggregate per-sample outlier tables"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"outliers_invocation"}

    @property
    def run_state(self) -> RunState:
        """Return the run state of this stage."""
        return RunState.AGGREGATE

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Write the aggregate atomically and store the result."""
        with graceful_error_handling(self.name, logger):
            context.aggregate = aggregate_sample_outputs(
                context.sample_outputs, context.chromosome, context.output_path
            )
        return context

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the aggregate path."""
        return [context.aggregate.path] if context.aggregate else []


class PerSampleArchiveStage(Stage):
    """Move per-sample outputs into the per-chromosome archive."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "per_sample_archive"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Archive per-sample outlier tables"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"result_aggregation"}

    @property
    def run_state(self) -> RunState:
        """Return the run state of this stage."""
        return RunState.ARCHIVE

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Move files; failures become warnings on the context."""
        saved, problems = archive_sample_outputs(context.sample_outputs, context.archive_dir)
        context.archived_count = saved
        for problem in problems:
            context.add_warning(str(problem))
        return context


class RunSummaryStage(Stage):
    """Tabulate per-sample row counts and flag samples that vanished in the engine.

    A retained sample whose output file is missing or contributed no rows
    for the chromosome is logged as a warning. Counts are not expected to
    match between subset and output, so nothing fails here. A summary file
    that cannot be written is recorded as a warning.
    """

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "run_summary"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Summarize per-sample row counts"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"per_sample_archive"}

    @property
    def run_state(self) -> RunState:
        """Return the run state of this stage."""
        return RunState.ARCHIVE

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Build the summary DataFrame and write it next to the run log."""
        summary = build_summary(context)
        context.summary = summary

        for row in summary.itertuples(index=False):
            if row.output_file == "":
                context.add_warning(f"{row.sample}: no per-sample output produced")
                logger.warning(f"Sample {row.sample} had {row.subset_rows} rows but no output")
            elif row.output_rows == 0:
                context.add_warning(f"{row.sample}: no {context.chromosome} rows in output")
                logger.warning(
                    f"Sample {row.sample} output {row.output_file} has no "
                    f"{context.chromosome} rows"
                )

        path = summary_path(context)
        if path is not None:
            try:
                summary.to_csv(path, sep="\t", index=False)
                logger.info(f"Run summary written to {path}")
            except OSError as e:
                context.add_warning(f"summary not written: {path}: {e}")
                logger.warning(f"Could not write run summary {path}: {e}")
        return context

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the summary path, if any."""
        path = summary_path(context)
        return [path] if path is not None else []


def summary_path(context: PipelineContext):
    """``<log_dir>/outliers_<chromosome>.summary.tsv`` beside the run log, or None."""
    if context.log_path is None:
        return None
    return context.log_path.with_name(f"outliers_{context.chromosome}.summary.tsv")


def _match_output(subset: ChromosomeSubset, output_names: List[str]) -> str:
    # <sample>.STRs.tsv, or <subset stem>.STRs.tsv for engines keeping the suffix
    for candidate in (f"{subset.sample_id}.STRs.tsv", f"{subset.path.stem}.STRs.tsv"):
        if candidate in output_names:
            return candidate
    return ""


def build_summary(context: PipelineContext) -> pd.DataFrame:
    """One row per retained sample with subset and aggregated row counts."""
    rows_per_file = context.aggregate.rows_per_file if context.aggregate else {}
    output_names = sorted(rows_per_file)
    records = []
    for subset in context.subsets:
        output_file = _match_output(subset, output_names)
        records.append(
            {
                "sample": subset.sample_id,
                "subset_rows": subset.data_rows,
                "output_file": output_file,
                "output_rows": rows_per_file.get(output_file, 0),
            }
        )
    return pd.DataFrame.from_records(records, columns=SUMMARY_COLUMNS)
