"""
Input discovery: per-sample genotype tables and their unplaced companions.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .models import ChromosomeSubset, SampleGenotypeFile
from .pipeline_core.error_handling import NoInputFiles

logger = logging.getLogger(__name__)


def sample_id_from_path(path: Union[str, Path], suffix: str = "-genotype.txt") -> str:
    """Strip ``suffix`` from a file name to get the sample id."""
    name = Path(path).name
    return name[: -len(suffix)] if suffix and name.endswith(suffix) else name


def list_genotype_files(
    results_dir: Union[str, Path], suffix: str = "-genotype.txt"
) -> List[SampleGenotypeFile]:
    """
    Enumerate the per-sample genotype tables in ``results_dir``.

    Only regular files directly inside the directory are considered.

    Parameters
    ----------
    results_dir : str or Path
        Shared results directory
    suffix : str
        File name suffix of genotype tables

    Returns
    -------
    List[SampleGenotypeFile]
        One entry per sample, sorted by sample id

    Raises
    ------
    NoInputFiles
        If no file matches.
    """
    results_dir = Path(results_dir)
    files = []
    if results_dir.is_dir():
        for path in results_dir.iterdir():
            if path.name.endswith(suffix) and path.is_file():
                files.append(SampleGenotypeFile(sample_id_from_path(path, suffix), path))

    if not files:
        raise NoInputFiles(results_dir, suffix)

    files.sort(key=lambda f: f.sample_id)
    logger.info(f"Genotypes: {len(files)} files")
    return files


def resolve_unplaced(
    subsets: Iterable[ChromosomeSubset],
    results_dir: Union[str, Path],
    suffix: str = "-unplaced.txt",
) -> Dict[str, Optional[Path]]:
    """
    Look up the unplaced table of every retained sample.

    A table is used only when it exists and is non-empty; absence is not an error.

    Returns
    -------
    Dict[str, Optional[Path]]
        Sample id to unplaced table path, or None
    """
    results_dir = Path(results_dir)
    resolved: Dict[str, Optional[Path]] = {}
    for subset in subsets:
        candidate = results_dir / f"{subset.sample_id}{suffix}"
        if candidate.is_file() and candidate.stat().st_size > 0:
            resolved[subset.sample_id] = candidate
        else:
            resolved[subset.sample_id] = None

    found = sum(1 for p in resolved.values() if p is not None)
    logger.info(f"Unplaced files: {found}")
    return resolved
