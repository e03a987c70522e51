# File: stroutliers/pipeline.py
# Location: stroutliers/stroutliers/pipeline.py

"""
Chromosome run orchestration.

``run_chromosome_pipeline`` drives one chromosome through
Init -> CheckExisting -> Extract -> Invoke -> Aggregate -> Archive -> Cleanup
and ends in Done or Failed. The permanent aggregate at
``<results_dir>/outliers/STRs_<chromosome>.tsv`` is the only durable success
signal: a run is skipped when it already exists with at least
``min_existing_size`` bytes, and the node-local workspace is removed on every
exit path, including termination signals.
"""

import logging
import os
import socket
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import validate_config
from .models import RunResult, RunState
from .pipeline_core import PipelineContext, PipelineRunner, Workspace
from .pipeline_core.error_handling import interrupt_guard
from .pipeline_core.stage import Stage
from .stages import (
    ChromosomeFilterStage,
    InputCatalogStage,
    OutliersInvocationStage,
    PerSampleArchiveStage,
    ResultAggregationStage,
    RunSummaryStage,
    ToolResolutionStage,
    UnplacedResolutionStage,
)
from .utils import available_cpus, count_lines, format_size

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def build_pipeline_stages() -> List[Stage]:
    """Build the list of stages of a chromosome run.

    Returns
    -------
    List[Stage]
        Stages in execution order
    """
    return [
        InputCatalogStage(),
        ToolResolutionStage(),
        ChromosomeFilterStage(),
        UnplacedResolutionStage(),
        OutliersInvocationStage(),
        ResultAggregationStage(),
        PerSampleArchiveStage(),
        RunSummaryStage(),
    ]


def output_paths(results_dir: Path, chromosome: str) -> Dict[str, Path]:
    """Permanent locations of a chromosome's outputs."""
    outliers_dir = results_dir / "outliers"
    return {
        "outliers_dir": outliers_dir,
        "output_path": outliers_dir / f"STRs_{chromosome}.tsv",
        "archive_dir": outliers_dir / "per-sample" / chromosome,
    }


def check_existing_output(output_path: Path, min_size: int) -> bool:
    """
    Decide whether a previous run already produced the aggregate.

    Parameters
    ----------
    output_path : Path
        Permanent aggregate path
    min_size : int
        Minimum size in bytes of a complete aggregate

    Returns
    -------
    bool
        True if the run should be skipped. An existing file below
        ``min_size`` is deleted and False is returned.
    """
    if not output_path.exists():
        return False
    size = output_path.stat().st_size
    if size >= min_size:
        logger.info(f"Exists: {output_path} ({format_size(size)}); skipping")
        return True
    logger.warning(
        f"Existing {output_path} is only {size} bytes (< {min_size}); "
        "removing it and rebuilding"
    )
    output_path.unlink()
    return False


def _attach_run_log(log_path: Path) -> logging.Handler:
    handler = logging.FileHandler(log_path)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    logging.getLogger("stroutliers").addHandler(handler)
    return handler


def _detach_run_log(handler: logging.Handler) -> None:
    logging.getLogger("stroutliers").removeHandler(handler)
    handler.close()


def _log_banner(chromosome: str, cpus: int) -> None:
    logger.info(f"Host: {socket.gethostname()}")
    logger.info(
        f"Job: {os.environ.get('SLURM_JOB_ID', '-')} "
        f"task: {os.environ.get('SLURM_ARRAY_TASK_ID', '-')}"
    )
    logger.info(f"Chromosome: {chromosome}  CPUs: {cpus}")


def _scratch_root(config: Dict[str, Any]) -> Optional[str]:
    return config.get("tmp_root") or os.environ.get("SLURM_TMPDIR") or None


def run_chromosome_pipeline(
    config: Dict[str, Any],
    chromosome: str,
    cpus: Optional[int] = None,
    row_filter: Optional[str] = None,
    keep_workspace: bool = False,
) -> RunResult:
    """
    Run the outlier analysis for one chromosome.

    Parameters
    ----------
    config : dict
        Merged configuration (see ``load_config`` and ``merge_overrides``)
    chromosome : str
        Chromosome id, e.g. ``chr3``
    cpus : int, optional
        CPUs available to the run; probed when not given
    row_filter : str, optional
        Force a row-filter strategy (``auto``, ``rg``, ``mawk``, ``awk``, ``python``)
    keep_workspace : bool
        Leave the node-local workspace in place (debugging)

    Returns
    -------
    RunResult
        Status ``"done"`` or ``"skipped"`` with the output path and counts

    Raises
    ------
    PipelineError
        Any validation or processing failure. The workspace is removed and
        no partial aggregate is left behind.
    """
    validate_config(config)
    if row_filter is not None:
        config = {**config, "row_filter": row_filter}

    # Init
    results_dir = Path(config["results_dir"])
    log_dir = Path(config["log_dir"])
    paths = output_paths(results_dir, chromosome)
    paths["archive_dir"].parent.mkdir(parents=True, exist_ok=True)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"outliers_{chromosome}.log"

    states = [RunState.INIT]
    handler = _attach_run_log(log_path)
    try:
        cpus = cpus or available_cpus()
        _log_banner(chromosome, cpus)

        states.append(RunState.CHECK_EXISTING)
        logger.debug(f"{chromosome}: init -> check_existing")
        min_size = int(config.get("min_existing_size", 512000))
        if check_existing_output(paths["output_path"], min_size):
            states.append(RunState.DONE)
            return RunResult(
                chromosome=chromosome,
                status="skipped",
                output_path=paths["output_path"],
                rows=max(0, count_lines(paths["output_path"]) - 1),
                states=states,
            )

        with interrupt_guard():
            return _run_stages(config, chromosome, cpus, paths, log_path, keep_workspace, states)
    finally:
        _detach_run_log(handler)


def _run_stages(
    config: Dict[str, Any],
    chromosome: str,
    cpus: int,
    paths: Dict[str, Path],
    log_path: Path,
    keep_workspace: bool,
    states: List[RunState],
) -> RunResult:
    workspace = Workspace(chromosome, _scratch_root(config))
    logger.info(f"Workspace: {workspace.root_dir}")

    context = PipelineContext(
        state=states[-1],
        state_history=states,
        config=config,
        chromosome=chromosome,
        workspace=workspace,
        results_dir=Path(config["results_dir"]),
        output_path=paths["output_path"],
        archive_dir=paths["archive_dir"],
        log_path=log_path,
        cpus=cpus,
    )

    stages = build_pipeline_stages()
    runner = PipelineRunner()
    logger.debug(f"Execution plan: {runner.dry_run(stages)}")

    failed = True
    try:
        context = runner.run(stages, context)
        failed = False
    except Exception as e:
        logger.error(f"{chromosome} failed in state {context.state.value}: {e}")
        raise
    finally:
        context.transition(RunState.CLEANUP)
        if keep_workspace:
            logger.info(f"Keeping workspace {workspace.root_dir}")
        else:
            workspace.cleanup()
        context.transition(RunState.FAILED if failed else RunState.DONE)

    elapsed = context.get_execution_time()
    for warning in context.warnings:
        logger.warning(f"Warning recorded during run: {warning}")
    logger.info(
        f"Done {chromosome}: samples={len(context.subsets)} "
        f"output={context.output_path} rows={context.aggregate.data_rows} "
        f"archived={context.archived_count} elapsed={elapsed:.0f}s"
    )
    return RunResult(
        chromosome=chromosome,
        status="done",
        output_path=context.output_path,
        rows=context.aggregate.data_rows,
        samples=len(context.subsets),
        archived=context.archived_count,
        elapsed=elapsed,
        states=context.state_history,
    )
