"""Command-line interface for stroutliers."""

import argparse
import datetime
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import load_config, merge_overrides, validate_config
from .filters import ROW_FILTER_CHOICES
from .pipeline import run_chromosome_pipeline
from .pipeline_core.error_handling import PipelineError
from .utils import chromosome_for_task
from .version import __version__

logger = logging.getLogger("stroutliers")


def create_parser() -> argparse.ArgumentParser:
    """Create and return the argument parser for the stroutliers CLI."""
    parser = argparse.ArgumentParser(
        description="stroutliers: Run STRling outlier detection for one chromosome."
    )

    # General Options
    general_group = parser.add_argument_group("General Options")
    general_group.add_argument(
        "--version",
        action="version",
        version=f"stroutliers {__version__}",
        help="Show the current version and exit",
    )
    general_group.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        default="INFO",
        help="Set the logging level",
    )
    general_group.add_argument(
        "--log-file", help="Path to a file to write logs to (in addition to stderr)."
    )
    general_group.add_argument(
        "-c",
        "--config",
        help="Path to configuration file",
        default=None,
    )

    # Locations
    io_group = parser.add_argument_group("Locations")
    io_group.add_argument(
        "--results-dir",
        help="Directory with per-sample genotype tables (default: $STR_RES_DIR)",
    )
    io_group.add_argument("--log-dir", help="Directory for per-chromosome logs (default: $LOG_DIR)")
    io_group.add_argument(
        "--tmp-root",
        help="Node-local scratch root (default: $SLURM_TMPDIR, then the system temp dir)",
    )

    # Chromosome selection
    chrom_group = parser.add_argument_group("Chromosome Selection")
    chrom_group.add_argument(
        "--task-id",
        help="Array task index 1-24 (1-22, 23=chrX, 24=chrY; default: $SLURM_ARRAY_TASK_ID or 1)",
    )
    chrom_group.add_argument(
        "--chromosome", help="Chromosome id to process; takes precedence over --task-id"
    )

    # Execution
    exec_group = parser.add_argument_group("Execution")
    exec_group.add_argument(
        "--cpus",
        type=int,
        help="CPUs available to the run (default: $SLURM_CPUS_ON_NODE, then detected)",
    )
    exec_group.add_argument(
        "--row-filter",
        choices=list(ROW_FILTER_CHOICES),
        default=None,
        help="Force the per-sample row filter (default: auto)",
    )
    exec_group.add_argument(
        "--outliers-runner",
        help="Outlier engine program, script path or name (default: $STRLING_OUTLIERS)",
    )
    exec_group.add_argument(
        "--keep-workspace",
        action="store_true",
        help="Do not delete the node-local workspace (debugging)",
    )
    return parser


def parse_args(args_list: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Parameters
    ----------
    args_list : list of str, optional
        Arguments to parse (default: ``sys.argv[1:]``)

    Returns
    -------
    argparse.Namespace
        Parsed arguments
    """
    parser = create_parser()
    return parser.parse_args(args_list)


def resolve_chromosome(args: argparse.Namespace) -> str:
    """Chromosome from ``--chromosome``, else from the task index."""
    if args.chromosome:
        return args.chromosome
    task_id = args.task_id or os.environ.get("SLURM_ARRAY_TASK_ID") or 1
    return chromosome_for_task(task_id)


def main(args_list: Optional[List[str]] = None) -> int:
    """Run main entry point for the stroutliers CLI.

    Steps:
        1. Parse arguments.
        2. Configure logging and load config.
        3. Merge command-line values and environment fallbacks, then validate.
        4. Map the task index to a chromosome.
        5. Run the chromosome pipeline.

    Returns
    -------
    int
        0 on success or when the chromosome was already done, 1 on failure
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    start_time: datetime.datetime = datetime.datetime.now()
    args = parse_args(args_list)

    # Configure logging level
    log_level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
    }
    logger.setLevel(log_level_map[args.log_level])

    # If a log file is specified, add a file handler
    if args.log_file:
        log_file_path = Path(args.log_file)
        log_file_path.parent.mkdir(parents=True, exist_ok=True)

        fh = logging.FileHandler(args.log_file)
        fh.setLevel(log_level_map[args.log_level])
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        logger.addHandler(fh)
        logger.debug(f"Logging to file enabled: {args.log_file}")

    logger.info(f"Run started at {start_time.isoformat()}")
    logger.debug(f"CLI arguments: {args}")

    try:
        cfg: Dict[str, Any] = load_config(args.config)
        cfg = merge_overrides(
            cfg,
            {
                "results_dir": args.results_dir,
                "log_dir": args.log_dir,
                "tmp_root": args.tmp_root,
                "outliers_runner": args.outliers_runner,
            },
        )
        validate_config(cfg)
        logger.debug(f"Configuration loaded: {cfg}")

        chromosome = resolve_chromosome(args)
        result = run_chromosome_pipeline(
            cfg,
            chromosome,
            cpus=args.cpus,
            row_filter=args.row_filter,
            keep_workspace=args.keep_workspace,
        )
    except PipelineError as e:
        logger.error(f"Pipeline failed: {e}")
        return 1
    except Exception as e:
        logger.error(f"Pipeline failed: {e}", exc_info=True)
        return 1

    if result.status == "skipped":
        logger.info(f"{result.chromosome} already done: {result.output_path}")
    else:
        logger.info(f"{result.chromosome} finished: {result.output_path} ({result.rows} rows)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
