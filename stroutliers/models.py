"""Data records passed between pipeline stages."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional


class RunState(str, Enum):
    """States of a chromosome run."""

    INIT = "init"
    CHECK_EXISTING = "check_existing"
    EXTRACT = "extract"
    INVOKE = "invoke"
    AGGREGATE = "aggregate"
    ARCHIVE = "archive"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class SampleGenotypeFile:
    """One sample's multi-chromosome genotype table (read-only input)."""

    sample_id: str
    path: Path


@dataclass(frozen=True)
class ChromosomeSubset:
    """A sample's rows for the target chromosome, written to the workspace."""

    sample_id: str
    path: Path
    data_rows: int


@dataclass(frozen=True)
class SubsetResult:
    """Outcome of one extraction task: retained (subset set) or dropped."""

    sample_id: str
    subset: Optional[ChromosomeSubset] = None

    @property
    def retained(self) -> bool:
        return self.subset is not None


@dataclass
class AggregateResult:
    """The published chromosome-level table."""

    chromosome: str
    path: Path
    data_rows: int
    source_files: List[Path] = field(default_factory=list)
    rows_per_file: dict = field(default_factory=dict)


@dataclass
class RunResult:
    """Summary returned to the caller of a chromosome run."""

    chromosome: str
    status: str
    output_path: Path
    rows: int = 0
    samples: int = 0
    archived: int = 0
    elapsed: float = 0.0
    states: List[RunState] = field(default_factory=list)
