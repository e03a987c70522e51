# File: stroutliers/filters.py
# Location: stroutliers/stroutliers/filters.py

"""
Chromosome extraction module.

Each sample's genotype table is reduced to its header plus the rows whose
first column equals the target chromosome. Extraction runs one task per
sample in a process pool; every task writes only to its own subset path in
the workspace, so no two tasks ever touch the same file.

The row-filtering mechanism is a strategy chosen once per run, in order of
preference: ripgrep, mawk, awk, then an in-process Python reader.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

import smart_open

from .models import ChromosomeSubset, SampleGenotypeFile, SubsetResult
from .pipeline_core.error_handling import NoChromosomeData, ToolNotFoundError
from .pipeline_core.workspace import Workspace
from .utils import count_lines, run_command, tool_available

logger = logging.getLogger(__name__)

ROW_FILTER_CHOICES = ("auto", "rg", "mawk", "awk", "python")


def _read_header(path: Union[str, Path]) -> bytes:
    with smart_open.open(str(path), "rb") as f:
        header = f.readline()
    if header and not header.endswith(b"\n"):
        header += b"\n"
    return header


class RowFilter(ABC):
    """Writes a table's header and the rows of one chromosome to a new file."""

    name = "base"

    @abstractmethod
    def write_subset(self, source: Path, chromosome: str, destination: Path) -> int:
        """Write header + matching rows to ``destination``.

        Returns
        -------
        int
            Number of data rows written (header excluded)
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


@dataclass(frozen=True)
class RipgrepRowFilter(RowFilter):
    """Header copied directly, data rows selected with ``rg '^<chr>\\t'``."""

    executable: str = "rg"
    name = "rg"

    def write_subset(self, source: Path, chromosome: str, destination: Path) -> int:
        header = _read_header(source)
        with open(destination, "wb") as out:
            out.write(header)
        if not header:
            return 0
        pattern = f"^{chromosome}\\t"
        # rg exits 1 when nothing matches
        run_command(
            [self.executable, "--no-heading", "--no-line-number", "-e", pattern, str(source)],
            output_file=destination,
            append=True,
            ok_returncodes=(0, 1),
        )
        return max(0, count_lines(destination) - 1)


@dataclass(frozen=True)
class AwkRowFilter(RowFilter):
    """``awk -F '\\t' 'NR==1 || $1==chr'`` with mawk or any POSIX awk."""

    executable: str = "awk"

    @property
    def name(self) -> str:
        return self.executable

    def write_subset(self, source: Path, chromosome: str, destination: Path) -> int:
        run_command(
            [
                self.executable,
                "-F",
                "\t",
                "-v",
                f"chr={chromosome}",
                "NR==1 || $1==chr",
                str(source),
            ],
            output_file=destination,
        )
        return max(0, count_lines(destination) - 1)


@dataclass(frozen=True)
class PythonRowFilter(RowFilter):
    """Streams the table in-process; plain or compressed input via smart_open."""

    name = "python"

    def write_subset(self, source: Path, chromosome: str, destination: Path) -> int:
        key = chromosome.encode()
        rows = 0
        with smart_open.open(str(source), "rb") as src, open(destination, "wb") as out:
            header = src.readline()
            if not header:
                return 0
            out.write(header if header.endswith(b"\n") else header + b"\n")
            for line in src:
                if line.split(b"\t", 1)[0].rstrip(b"\r\n") == key:
                    out.write(line if line.endswith(b"\n") else line + b"\n")
                    rows += 1
        return rows


def make_row_filter(name: str) -> RowFilter:
    """Build a row filter by name without probing the environment."""
    if name == "rg":
        return RipgrepRowFilter()
    if name in ("mawk", "awk"):
        return AwkRowFilter(executable=name)
    if name == "python":
        return PythonRowFilter()
    raise ValueError(f"Unknown row filter '{name}'. Choose from {', '.join(ROW_FILTER_CHOICES)}")


def select_row_filter(preferred: Optional[str] = None) -> RowFilter:
    """
    Choose the row-filtering strategy for the whole run.

    Parameters
    ----------
    preferred : str, optional
        One of ``ROW_FILTER_CHOICES``. ``None`` or ``"auto"`` probes PATH for
        rg, then mawk, then awk, and falls back to the Python reader.

    Returns
    -------
    RowFilter
        The selected strategy

    Raises
    ------
    ToolNotFoundError
        If a specific external tool was requested but is not installed.
    """
    if preferred and preferred != "auto":
        row_filter = make_row_filter(preferred)
        if preferred != "python" and not tool_available(preferred):
            raise ToolNotFoundError(preferred, "tool_resolution")
        return row_filter

    for tool in ("rg", "mawk", "awk"):
        if tool_available(tool):
            return make_row_filter(tool)
    logger.info("No external row filter found; using the Python reader")
    return PythonRowFilter()


def extract_sample_subset(
    row_filter: RowFilter, genotype_file: SampleGenotypeFile, chromosome: str, subset_path: Path
) -> SubsetResult:
    """
    Extract one sample's chromosome subset (runs inside a worker process).

    The subset is kept only if it has at least one data row; otherwise the
    file is removed and the sample is dropped.
    """
    rows = row_filter.write_subset(genotype_file.path, chromosome, subset_path)
    if rows > 0:
        return SubsetResult(
            genotype_file.sample_id, ChromosomeSubset(genotype_file.sample_id, subset_path, rows)
        )
    subset_path.unlink(missing_ok=True)
    return SubsetResult(genotype_file.sample_id)


def extract_chromosome_subsets(
    genotype_files: Iterable[SampleGenotypeFile],
    chromosome: str,
    workspace: Workspace,
    row_filter: RowFilter,
    workers: int = 1,
    suffix: str = "-genotype.txt",
) -> List[ChromosomeSubset]:
    """
    Extract the chromosome subset of every sample.

    Parameters
    ----------
    genotype_files : Iterable[SampleGenotypeFile]
        Catalogued inputs
    chromosome : str
        Target chromosome id
    workspace : Workspace
        Workspace receiving the subset files
    row_filter : RowFilter
        Strategy chosen for this run
    workers : int
        Maximum concurrent extraction tasks; 1 runs in-process
    suffix : str
        Suffix used for subset file names

    Returns
    -------
    List[ChromosomeSubset]
        Retained samples, deduplicated and sorted by subset path

    Raises
    ------
    NoChromosomeData
        If no sample has any row for the chromosome.
    """
    genotype_files = list(genotype_files)
    jobs = [(g, workspace.get_subset_path(g.sample_id, suffix)) for g in genotype_files]
    results: List[SubsetResult] = []

    logger.info(
        f"Extracting {chromosome} from {len(jobs)} samples "
        f"(workers={workers}, filter={row_filter.name})"
    )

    if workers <= 1 or len(jobs) <= 1:
        for genotype_file, subset_path in jobs:
            results.append(extract_sample_subset(row_filter, genotype_file, chromosome, subset_path))
    else:
        with ProcessPoolExecutor(max_workers=min(workers, len(jobs))) as executor:
            future_to_sample = {
                executor.submit(
                    extract_sample_subset, row_filter, genotype_file, chromosome, subset_path
                ): genotype_file
                for genotype_file, subset_path in jobs
            }
            for future in as_completed(future_to_sample):
                genotype_file = future_to_sample[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.error(f"Failed to extract {chromosome} from {genotype_file.path}: {e}")
                    for f in future_to_sample:
                        if not f.done():
                            f.cancel()
                    raise

    retained = {r.subset.path: r.subset for r in results if r.retained}
    subsets = [retained[path] for path in sorted(retained)]

    if not subsets:
        raise NoChromosomeData(chromosome, len(jobs))

    logger.info(f"Samples with {chromosome} data: {len(subsets)}")
    return subsets
