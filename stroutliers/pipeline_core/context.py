"""
PipelineContext - Single source of truth for a chromosome run.

This module provides the PipelineContext dataclass that flows through all stages,
carrying configuration, the workspace and every artifact produced along the way.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, TYPE_CHECKING

import pandas as pd

from ..models import AggregateResult, ChromosomeSubset, RunState, SampleGenotypeFile

if TYPE_CHECKING:
    from ..filters import RowFilter
    from ..outliers import OutliersRunner
    from .workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """Container for all state of one chromosome run.

    Attributes
    ----------
    config : Dict[str, Any]
        Validated configuration
    chromosome : str
        Target chromosome id
    workspace : Workspace
        Node-local scratch space of this run
    results_dir : Path
        Shared directory holding the per-sample genotype tables
    output_path : Path
        Permanent path of the chromosome aggregate
    archive_dir : Path
        Permanent per-chromosome archive of per-sample outputs
    log_path : Optional[Path]
        Per-chromosome log file (engine output is appended here)
    cpus : int
        CPUs available to this run
    start_time : datetime
        Run start time
    state : RunState
        Current state of the run
    state_history : List[RunState]
        Every state entered so far, in order
    genotype_files : List[SampleGenotypeFile]
        Catalogued inputs
    row_filter : Optional[RowFilter]
        Row-filtering strategy chosen once for the run
    outliers_runner : Optional[OutliersRunner]
        Engine execution strategy chosen once for the run
    subsets : List[ChromosomeSubset]
        Retained samples, sorted by subset path
    unplaced_files : Dict[str, Optional[Path]]
        Retained sample id to non-empty unplaced table (or None)
    engine_returncode : Optional[int]
        Exit status of the engine
    sample_outputs : List[Path]
        Per-sample engine outputs in lexicographic order
    aggregate : Optional[AggregateResult]
        The published aggregate
    archived_count : int
        Number of per-sample outputs moved to the archive
    warnings : List[str]
        Non-fatal problems recorded during the run
    summary : Optional[pd.DataFrame]
        Per-sample run summary
    """

    config: Dict[str, Any]
    chromosome: str
    workspace: "Workspace"
    results_dir: Path
    output_path: Path
    archive_dir: Path
    log_path: Optional[Path] = None
    cpus: int = 1
    start_time: datetime = field(default_factory=datetime.now)
    state: RunState = RunState.INIT
    state_history: List[RunState] = field(default_factory=lambda: [RunState.INIT])

    # Stage tracking
    completed_stages: Set[str] = field(default_factory=set)
    stage_results: Dict[str, Any] = field(default_factory=dict)

    # Extract
    genotype_files: List[SampleGenotypeFile] = field(default_factory=list)
    row_filter: Optional["RowFilter"] = None
    outliers_runner: Optional["OutliersRunner"] = None
    subsets: List[ChromosomeSubset] = field(default_factory=list)
    unplaced_files: Dict[str, Optional[Path]] = field(default_factory=dict)

    # Invoke
    engine_returncode: Optional[int] = None
    sample_outputs: List[Path] = field(default_factory=list)

    # Aggregate / archive
    aggregate: Optional[AggregateResult] = None
    archived_count: int = 0
    warnings: List[str] = field(default_factory=list)
    summary: Optional[pd.DataFrame] = None

    def mark_complete(self, stage_name: str, result: Any = None) -> None:
        """Mark a stage as complete with optional result storage.

        Parameters
        ----------
        stage_name : str
            Name of the stage to mark complete
        result : Any, optional
            Optional result to store for the stage
        """
        self.completed_stages.add(stage_name)
        if result is not None:
            self.stage_results[stage_name] = result
        logger.debug(f"Stage '{stage_name}' marked as complete")

    def is_complete(self, stage_name: str) -> bool:
        """Check if a stage has been completed."""
        return stage_name in self.completed_stages

    def get_result(self, stage_name: str) -> Optional[Any]:
        """Get the stored result for a completed stage."""
        return self.stage_results.get(stage_name)

    def transition(self, state: RunState) -> None:
        """Move the run to a new state, logging the change."""
        if state != self.state:
            logger.debug(f"{self.chromosome}: {self.state.value} -> {state.value}")
            self.state = state
            self.state_history.append(state)

    def add_warning(self, message: str) -> None:
        """Record a non-fatal problem."""
        self.warnings.append(message)

    @property
    def unplaced_paths(self) -> List[Path]:
        """Resolved unplaced tables, in retained-sample order."""
        return [
            self.unplaced_files[s.sample_id]
            for s in self.subsets
            if self.unplaced_files.get(s.sample_id) is not None
        ]

    def get_execution_time(self) -> float:
        """Get the elapsed execution time in seconds."""
        return (datetime.now() - self.start_time).total_seconds()

    def __repr__(self) -> str:
        """Return string representation showing key state information."""
        return (
            f"PipelineContext("
            f"chromosome={self.chromosome}, "
            f"state={self.state.value}, "
            f"stages_completed={len(self.completed_stages)}, "
            f"execution_time={self.get_execution_time():.1f}s)"
        )
